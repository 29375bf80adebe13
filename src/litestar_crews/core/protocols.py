"""Protocol definitions for the collaborators the engine consumes.

This module defines the structural interfaces of the external capabilities the
orchestration engine depends on, using Python's Protocol for duck typing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from litestar_crews.core.types import RecordKind

__all__ = ["EventBus", "StateStore", "Worker"]


@runtime_checkable
class Worker(Protocol):
    """Protocol for the worker capability.

    A worker turns an input string into an output string. How the call is
    transported (HTTP, local process, an LLM provider) is up to the
    implementation.

    Example:
        >>> class EchoWorker:
        ...     async def invoke(self, worker_id: str, input: str, timeout: float) -> str:
        ...         return input
        ...
        ...     def worker_name(self, worker_id: str) -> str | None:
        ...         return "Echo"
    """

    async def invoke(self, worker_id: str, input: str, timeout: float) -> str:  # noqa: A002
        """Run the worker identified by ``worker_id`` on ``input``.

        Args:
            worker_id: Identifier of the worker.
            input: Input string.
            timeout: Time budget in seconds.

        Returns:
            The worker output.

        Raises:
            WorkerNotFoundError: If no worker is known under ``worker_id``.
            StepTimeoutError: If the budget elapsed.
            ProviderError: If the underlying call failed.
        """
        ...

    def worker_name(self, worker_id: str) -> str | None:
        """Return the display name of a worker, or None if it is unknown."""
        ...


@runtime_checkable
class StateStore(Protocol):
    """Protocol for durable storage of opaque JSON records.

    Two record kinds are stored: workflow run states and approval gates.
    "Pending" records are non-terminal runs and undecided gates.
    """

    async def save(self, kind: RecordKind, record_id: str, record: dict[str, Any]) -> None:
        """Insert or replace a record."""
        ...

    async def load_by_id(self, kind: RecordKind, record_id: str) -> dict[str, Any] | None:
        """Load a record, or None if it does not exist."""
        ...

    async def load_pending(self, kind: RecordKind) -> list[dict[str, Any]]:
        """Load every pending record of ``kind``."""
        ...

    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        """Delete a record. Returns whether it existed."""
        ...

    async def load_all(self, kind: RecordKind) -> list[dict[str, Any]]:
        """Load every record of ``kind``."""
        ...


@runtime_checkable
class EventBus(Protocol):
    """Protocol for event sinks notified during execution."""

    async def emit(self, event_type: str, **payload: Any) -> None:
        """Publish an event.

        Args:
            event_type: One of ``run``, ``step``, ``complete`` or ``error``.
            **payload: Event fields, including ``event`` (the event dataclass).
        """
        ...
