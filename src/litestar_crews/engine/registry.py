"""Worker registry for in-process workers.

This module provides a registry that maps worker identifiers to async
callables and exposes them through the ``Worker`` protocol.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from litestar_crews.exceptions import CrewsError, ProviderError, StepTimeoutError, WorkerNotFoundError
from litestar_crews.utils.logging import get_logger

__all__ = ["WorkerHandler", "WorkerRegistry"]

logger = get_logger(__name__)

WorkerHandler = Callable[[str], Awaitable[str]]
"""Async callable turning an input string into an output string."""


@dataclass(frozen=True)
class _Registration:
    handler: WorkerHandler
    name: str


class WorkerRegistry:
    """Registry for storing and invoking in-process workers.

    The registry maintains a mapping of worker identifiers to handlers and
    display names. It implements the ``Worker`` protocol, so it can be passed
    straight to the executor.

    Attributes:
        _workers: Map of worker ids to their registrations.
    """

    def __init__(self) -> None:
        """Initialize an empty worker registry."""
        self._workers: dict[str, _Registration] = {}

    def register(self, worker_id: str, handler: WorkerHandler, name: str | None = None) -> None:
        """Register a worker handler.

        Registering an existing id replaces the previous handler.

        Args:
            worker_id: Identifier steps use to reference the worker.
            handler: Async callable ``handler(input) -> output``.
            name: Display name. Defaults to ``worker_id``.

        Example:
            >>> registry = WorkerRegistry()
            >>> async def shout(text: str) -> str:
            ...     return text.upper()
            >>> registry.register("shouter", shout, name="Shouter")
        """
        self._workers[worker_id] = _Registration(handler=handler, name=name or worker_id)

    def unregister(self, worker_id: str) -> None:
        """Remove a worker from the registry. Unknown ids are ignored."""
        self._workers.pop(worker_id, None)

    def has_worker(self, worker_id: str) -> bool:
        """Check if a worker exists in the registry."""
        return worker_id in self._workers

    def list_workers(self) -> list[str]:
        """List registered worker ids in registration order."""
        return list(self._workers)

    def worker_name(self, worker_id: str) -> str | None:
        """Return the display name of a worker, or None if it is unknown."""
        registration = self._workers.get(worker_id)
        return registration.name if registration else None

    async def invoke(self, worker_id: str, input: str, timeout: float) -> str:  # noqa: A002
        """Invoke a registered worker with a time budget.

        Args:
            worker_id: Identifier of the worker.
            input: Input string.
            timeout: Time budget in seconds. Expiry cancels the handler.

        Returns:
            The handler's output.

        Raises:
            WorkerNotFoundError: If the worker is not registered.
            StepTimeoutError: If the handler did not finish in time.
            ProviderError: If the handler raised.
        """
        registration = self._workers.get(worker_id)
        if registration is None:
            raise WorkerNotFoundError(worker_id)

        try:
            return await asyncio.wait_for(registration.handler(input), timeout=timeout)
        except asyncio.TimeoutError:
            raise StepTimeoutError(worker_id, timeout) from None
        except CrewsError:
            raise
        except Exception as e:
            logger.debug("worker_handler_failed", worker_id=worker_id, error=str(e))
            raise ProviderError(worker_id, e) from e
