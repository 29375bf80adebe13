"""Authoritative store of workflow run state.

This module provides the StateManager, the only component allowed to mutate a
``WorkflowState``. Every mutation is applied to the in-memory copy, snapshotted
and written through to durable storage, one mutation per run at a time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from litestar_crews.core.definition import WorkflowDefinition
from litestar_crews.core.models import WorkflowState, utcnow
from litestar_crews.core.types import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    RecordKind,
    WorkflowStatus,
)
from litestar_crews.exceptions import InvalidTransitionError, RunNotFoundError, SnapshotNotFoundError
from litestar_crews.state.snapshots import SnapshotLog
from litestar_crews.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import timedelta

    from litestar_crews.core.models import ExecutionResult, Snapshot, StepResult
    from litestar_crews.core.protocols import StateStore

__all__ = ["StateManager"]

logger = get_logger(__name__)


class StateManager:
    """Owns the persisted record of every workflow run.

    Callers always receive copies; the authoritative state never leaves the
    manager. Mutations of one run are serialised by a per-run ``asyncio.Lock``
    and follow apply, snapshot, persist.

    Attributes:
        store: Durable storage for run records.
        snapshot_limit: Number of snapshots kept per run.
        _states: Cache of authoritative states by run id.
        _snapshots: Snapshot log per run id.
        _locks: Mutation lock per run id.
    """

    def __init__(self, store: StateStore, *, snapshot_limit: int = 50) -> None:
        """Initialize the state manager.

        Args:
            store: Durable storage for run records.
            snapshot_limit: Number of snapshots kept per run.
        """
        self.store = store
        self.snapshot_limit = snapshot_limit
        self._states: dict[str, WorkflowState] = {}
        self._snapshots: dict[str, SnapshotLog] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def create_state(
        self,
        workflow_id: str,
        run_name: str,
        workflow: WorkflowDefinition | dict[str, Any],
        initial_input: str,
    ) -> WorkflowState:
        """Create a fresh, pending state for one execution attempt.

        Args:
            workflow_id: Identifier of the logical run or definition.
            run_name: Human-readable run name.
            workflow: Definition (or its external shape) being executed.
            initial_input: Input the run starts with.

        Returns:
            A copy of the new state.
        """
        state = WorkflowState(
            id=f"{workflow_id}-{uuid4().hex}",
            workflow_id=workflow_id,
            run_name=run_name,
            workflow=WorkflowDefinition.coerce(workflow),
            status=WorkflowStatus.PENDING,
            start_time=utcnow(),
            context={"initial_input": initial_input},
        )
        self._states[state.id] = state
        self._snapshots[state.id] = SnapshotLog(self.snapshot_limit)
        async with self._lock(state.id):
            await self._commit(state)
        logger.info("state_created", run_id=state.id, workflow_id=workflow_id)
        return state.copy()

    async def get_state(self, run_id: str) -> WorkflowState:
        """Return a copy of a run's state.

        The in-memory cache is consulted first; on a miss the state is loaded
        from storage and cached.

        Raises:
            RunNotFoundError: If the run is unknown.
        """
        return (await self._load(run_id)).copy()

    async def has_state(self, run_id: str) -> bool:
        """Check whether a run is cached or stored."""
        if run_id in self._states:
            return True
        return await self.store.load_by_id(RecordKind.WORKFLOW_RUN, run_id) is not None

    async def update_status(self, run_id: str, status: WorkflowStatus) -> WorkflowState:
        """Move a run to ``status``.

        Raises:
            InvalidTransitionError: If the state machine does not allow the move.
        """
        return await self._mutate(run_id, lambda state: self._transition(state, WorkflowStatus(status)))

    async def update_current_step(self, run_id: str, step_index: int) -> WorkflowState:
        """Record the index of the step being executed."""

        def apply(state: WorkflowState) -> None:
            state.current_step_index = step_index

        return await self._mutate(run_id, apply)

    async def add_step_result(self, run_id: str, result: StepResult) -> WorkflowState:
        """Append a produced step result."""
        return await self._mutate(run_id, lambda state: state.steps.append(result))

    async def update_context(self, run_id: str, updates: dict[str, Any]) -> WorkflowState:
        """Merge ``updates`` into the run context."""
        return await self._mutate(run_id, lambda state: state.context.update(updates))

    async def remove_context_keys(self, run_id: str, keys: Iterable[str]) -> WorkflowState:
        """Drop ``keys`` from the run context. Missing keys are ignored."""
        keys = list(keys)

        def apply(state: WorkflowState) -> None:
            for key in keys:
                state.context.pop(key, None)

        return await self._mutate(run_id, apply)

    async def set_error(self, run_id: str, error: str) -> WorkflowState:
        """Record a fatal error and fail the run."""

        def apply(state: WorkflowState) -> None:
            if state.status != WorkflowStatus.FAILED:
                self._transition(state, WorkflowStatus.FAILED)
            state.error = error

        return await self._mutate(run_id, apply)

    async def pause_workflow(self, run_id: str) -> WorkflowState:
        """Pause a running run."""
        return await self.update_status(run_id, WorkflowStatus.PAUSED)

    async def resume_workflow(self, run_id: str) -> WorkflowState:
        """Resume a paused run."""
        return await self.update_status(run_id, WorkflowStatus.RUNNING)

    async def complete_workflow(self, run_id: str, result: ExecutionResult) -> WorkflowState:
        """Finish a run from its execution result.

        The run becomes ``completed`` when the result succeeded and ``failed``
        otherwise, carrying the result's error.
        """

        def apply(state: WorkflowState) -> None:
            self._transition(state, WorkflowStatus.COMPLETED if result.success else WorkflowStatus.FAILED)
            state.error = result.error

        return await self._mutate(run_id, apply)

    async def get_snapshots(self, run_id: str) -> list[Snapshot]:
        """Return the retained snapshots of a run, oldest first."""
        await self._load(run_id)
        return self._snapshots[run_id].list()

    async def restore_from_snapshot(self, run_id: str, index: int) -> WorkflowState:
        """Make the snapshot at ``index`` the authoritative in-memory state.

        The restored state is neither snapshotted nor persisted; the caller
        finalizes it (see ``finalize_rollback``).

        Returns:
            A copy of the restored state.

        Raises:
            SnapshotNotFoundError: If ``index`` is out of range.
        """
        await self._load(run_id)
        async with self._lock(run_id):
            try:
                snapshot = self._snapshots[run_id].get(index)
            except IndexError:
                raise SnapshotNotFoundError(run_id, index) from None
            self._states[run_id] = snapshot.state
            logger.debug("state_restored", run_id=run_id, snapshot_index=index, sequence=snapshot.sequence)
            return snapshot.state.copy()

    async def finalize_rollback(self, run_id: str, state: WorkflowState, target_index: int) -> WorkflowState:
        """Commit a rolled back state.

        Keeps the first ``target_index + 1`` results of ``state``, points the run
        at ``target_index`` and re-opens it as ``paused`` whatever its status was.

        Args:
            run_id: The run being rolled back.
            state: The state to commit (typically a restored snapshot with the
                run's kept results).
            target_index: The step the run is rolled back to.

        Returns:
            A copy of the committed state.
        """
        await self._load(run_id)
        async with self._lock(run_id):
            rolled = state.copy()
            rolled.id = run_id
            rolled.steps = rolled.steps[: target_index + 1]
            rolled.current_step_index = target_index
            rolled.status = WorkflowStatus.PAUSED
            rolled.paused_at = utcnow()
            rolled.end_time = None
            rolled.error = None
            self._states[run_id] = rolled
            await self._commit(rolled)
            logger.info("state_rolled_back", run_id=run_id, target_index=target_index)
            return rolled.copy()

    async def list_states(
        self,
        status: WorkflowStatus | None = None,
        workflow_id: str | None = None,
    ) -> list[WorkflowState]:
        """List known runs, optionally filtered by status and workflow id.

        Stored runs are merged with cached ones; the cached copy wins.
        """
        states: dict[str, WorkflowState] = {}
        for record in await self.store.load_all(RecordKind.WORKFLOW_RUN):
            stored = WorkflowState.from_dict(record)
            states[stored.id] = stored
        for run_id, cached in self._states.items():
            states[run_id] = cached.copy()

        return [
            state
            for state in states.values()
            if (status is None or state.status == status) and (workflow_id is None or state.workflow_id == workflow_id)
        ]

    async def delete_state(self, run_id: str) -> bool:
        """Delete a run and its snapshots from memory and storage.

        Returns:
            Whether the run existed.
        """
        async with self._lock(run_id):
            cached = self._states.pop(run_id, None) is not None
            self._snapshots.pop(run_id, None)
            stored = await self.store.delete(RecordKind.WORKFLOW_RUN, run_id)
        self._locks.pop(run_id, None)
        if cached or stored:
            logger.info("state_deleted", run_id=run_id)
        return cached or stored

    async def cleanup_old_workflows(self, older_than: timedelta) -> int:
        """Delete terminal runs that ended before ``now - older_than``.

        Returns:
            Number of runs deleted.
        """
        cutoff = utcnow() - older_than
        deleted = 0
        for state in await self.list_states():
            if state.status in TERMINAL_STATUSES and state.end_time is not None and state.end_time < cutoff:
                if await self.delete_state(state.id):
                    deleted += 1
        if deleted:
            logger.info("old_workflows_cleaned", count=deleted)
        return deleted

    async def load_active(self) -> int:
        """Load every non-terminal run from storage into the cache.

        Returns:
            Number of runs loaded.
        """
        loaded = 0
        for record in await self.store.load_pending(RecordKind.WORKFLOW_RUN):
            state = WorkflowState.from_dict(record)
            if state.id in self._states:
                continue
            self._cache(state)
            loaded += 1
        logger.info("active_states_loaded", count=loaded)
        return loaded

    def _lock(self, run_id: str) -> asyncio.Lock:
        return self._locks.setdefault(run_id, asyncio.Lock())

    def _cache(self, state: WorkflowState) -> None:
        self._states[state.id] = state
        log = self._snapshots.setdefault(state.id, SnapshotLog(self.snapshot_limit))
        if not len(log):
            log.append(state)

    async def _load(self, run_id: str) -> WorkflowState:
        state = self._states.get(run_id)
        if state is not None:
            return state

        record = await self.store.load_by_id(RecordKind.WORKFLOW_RUN, run_id)
        if record is None:
            raise RunNotFoundError(run_id)

        state = self._states.get(run_id)
        if state is None:
            state = WorkflowState.from_dict(record)
            self._cache(state)
            logger.debug("state_loaded", run_id=run_id)
        return state

    async def _mutate(self, run_id: str, apply: Callable[[WorkflowState], Any]) -> WorkflowState:
        await self._load(run_id)
        async with self._lock(run_id):
            state = self._states.get(run_id)
            if state is None:
                raise RunNotFoundError(run_id)
            apply(state)
            await self._commit(state)
            return state.copy()

    async def _commit(self, state: WorkflowState) -> None:
        self._snapshots[state.id].append(state)
        await self.store.save(RecordKind.WORKFLOW_RUN, state.id, state.to_dict())

    @staticmethod
    def _transition(state: WorkflowState, status: WorkflowStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[state.status]:
            raise InvalidTransitionError(state.id, state.status, status)

        now = utcnow()
        if status == WorkflowStatus.PAUSED:
            state.paused_at = now
        elif status == WorkflowStatus.RUNNING and state.status == WorkflowStatus.PAUSED:
            state.resumed_at = now
        elif status in TERMINAL_STATUSES:
            state.end_time = now
        state.status = status
