"""Shared test fixtures for litestar-crews test suite."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from litestar_crews.approvals.manager import ApprovalGateManager
    from litestar_crews.config import EngineSettings
    from litestar_crews.core.models import ApprovalGate
    from litestar_crews.engine.executor import WorkflowExecutor
    from litestar_crews.engine.registry import WorkerRegistry
    from litestar_crews.recovery.manager import RecoveryManager
    from litestar_crews.state.manager import StateManager
    from litestar_crews.store import InMemoryStore

    GateWaiter = Callable[..., Awaitable[list[ApprovalGate]]]


class MockEventBus:
    """Mock event bus for testing."""

    def __init__(self) -> None:
        """Initialize mock event bus."""
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event_type: str, **kwargs: Any) -> None:
        """Emit an event."""
        self.events.append((event_type, kwargs))

    def types(self) -> list[str]:
        """Event types in emission order."""
        return [event_type for event_type, _ in self.events]


class FlakyHandler:
    """Handler that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int, output: str = "recovered") -> None:
        self.failures = failures
        self.output = output
        self.calls: list[str] = []

    async def __call__(self, text: str) -> str:
        self.calls.append(text)
        if len(self.calls) <= self.failures:
            msg = f"transient failure {len(self.calls)}"
            raise RuntimeError(msg)
        return self.output


async def _wait_for_gate(approvals: ApprovalGateManager, count: int = 1, timeout: float = 2.0) -> list[ApprovalGate]:
    """Poll until ``count`` approval gates are pending.

    Args:
        approvals: The approval gate manager to watch.
        count: Number of pending gates to wait for.
        timeout: Seconds before giving up.

    Returns:
        The pending gates.
    """
    async with asyncio.timeout(timeout):
        while len(pending := approvals.get_pending_approvals()) < count:
            await asyncio.sleep(0.005)
    return pending


@pytest.fixture
def flaky() -> type[FlakyHandler]:
    """Return the FlakyHandler class for building failing-then-succeeding workers."""
    return FlakyHandler


@pytest.fixture
def wait_for_gate() -> GateWaiter:
    """Return the helper polling for pending approval gates."""
    return _wait_for_gate


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Create mock event bus.

    Returns:
        MockEventBus instance
    """
    return MockEventBus()


@pytest.fixture
def settings() -> EngineSettings:
    """Engine settings with short timeouts for fast tests."""
    from litestar_crews.config import EngineSettings

    return EngineSettings(step_timeout=1.0, retry_delay=0.0)


@pytest.fixture
def workers() -> WorkerRegistry:
    """Create a worker registry with a few deterministic workers.

    Workers:
        researcher: prefixes its input with ``research:``
        writer: prefixes its input with ``draft:``
        editor: upper-cases its input
        broken: always raises ``RuntimeError("boom")``
        slow: sleeps 5 seconds
    """
    from litestar_crews.engine.registry import WorkerRegistry

    async def research(text: str) -> str:
        return f"research:{text}"

    async def write(text: str) -> str:
        return f"draft:{text}"

    async def edit(text: str) -> str:
        return text.upper()

    async def broken(text: str) -> str:
        msg = "boom"
        raise RuntimeError(msg)

    async def slow(text: str) -> str:
        await asyncio.sleep(5)
        return text

    registry = WorkerRegistry()
    registry.register("researcher", research, name="Researcher")
    registry.register("writer", write, name="Writer")
    registry.register("editor", edit, name="Editor")
    registry.register("broken", broken, name="Broken")
    registry.register("slow", slow, name="Slow")
    return registry


@pytest.fixture
def store() -> InMemoryStore:
    """Create an empty in-memory store."""
    from litestar_crews.store import InMemoryStore

    return InMemoryStore()


@pytest.fixture
def state_manager(store: InMemoryStore) -> StateManager:
    """Create a state manager over the in-memory store."""
    from litestar_crews.state.manager import StateManager

    return StateManager(store)


@pytest.fixture
async def approvals(store: InMemoryStore) -> ApprovalGateManager:
    """Create an approval gate manager, closed after the test."""
    from litestar_crews.approvals.manager import ApprovalGateManager

    manager = ApprovalGateManager(store)
    yield manager
    await manager.close()


@pytest.fixture
def recovery(state_manager: StateManager) -> RecoveryManager:
    """Create a recovery manager without retry delays."""
    from litestar_crews.recovery.manager import RecoveryManager

    return RecoveryManager(state_manager, default_retry_delay=0.0)


@pytest.fixture
def executor(workers: WorkerRegistry, settings: EngineSettings) -> WorkflowExecutor:
    """Create an ephemeral executor (no state manager)."""
    from litestar_crews.engine.executor import WorkflowExecutor

    return WorkflowExecutor(workers, settings=settings)


@pytest.fixture
def stateful_executor(
    workers: WorkerRegistry,
    settings: EngineSettings,
    state_manager: StateManager,
    approvals: ApprovalGateManager,
    recovery: RecoveryManager,
    mock_event_bus: MockEventBus,
) -> WorkflowExecutor:
    """Create a state-backed executor with approvals, recovery and an event bus."""
    from litestar_crews.engine.executor import WorkflowExecutor

    return WorkflowExecutor(
        workers,
        settings=settings,
        state_manager=state_manager,
        approvals=approvals,
        recovery=recovery,
        event_bus=mock_event_bus,
    )


@pytest.fixture
def sequential_workflow() -> dict[str, Any]:
    """Three step research -> write -> edit pipeline in its external shape."""
    return {
        "type": "sequential",
        "steps": [{"workerId": "researcher"}, {"workerId": "writer"}, {"workerId": "editor"}],
    }


# Pytest configuration
def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers.

    Args:
        config: Pytest config object
    """
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
