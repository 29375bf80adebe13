"""Rollback and error recovery for workflow runs.

This module provides the RecoveryManager. Given a failed step and a recovery
strategy it decides how execution continues (retry, skip, rollback or manual)
and applies the matching state change through the StateManager.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from litestar_crews.core.models import RecoveryResult, RecoveryStrategy, RollbackAction
from litestar_crews.core.types import RecoveryStrategyType, RollbackActionType
from litestar_crews.exceptions import (
    MaxRetriesExceededError,
    RecoveryError,
    RollbackTargetInvalidError,
    SnapshotNotFoundError,
)
from litestar_crews.utils.logging import get_logger

if TYPE_CHECKING:
    from litestar_crews.core.models import StepResult, WorkflowState
    from litestar_crews.state.manager import StateManager

__all__ = ["RETRY_COUNT_PREFIX", "SKIPPED_STEP_PREFIX", "RecoveryManager"]

logger = get_logger(__name__)

RETRY_COUNT_PREFIX = "retry_count_"
SKIPPED_STEP_PREFIX = "skipped_step_"


class RecoveryManager:
    """Plans and applies recovery for failed steps.

    Attributes:
        state_manager: The StateManager owning the runs.
        default_max_retries: Retry budget when a strategy sets none.
        default_retry_delay: Seconds between retries when a strategy sets none.
    """

    def __init__(
        self,
        state_manager: StateManager,
        *,
        default_max_retries: int = 3,
        default_retry_delay: float = 1.0,
    ) -> None:
        self.state_manager = state_manager
        self.default_max_retries = default_max_retries
        self.default_retry_delay = default_retry_delay

    async def rollback_to_step(self, run_id: str, target_index: int) -> WorkflowState:
        """Roll a run back so that ``target_index`` is its last kept step.

        The most recent snapshot whose ``current_step_index`` does not exceed
        the target is restored, the run's results are truncated to
        ``target_index + 1`` entries and the run is re-opened as ``paused``,
        even if it had already completed or failed.

        Args:
            run_id: The run to roll back.
            target_index: Position of the last step to keep.

        Returns:
            A copy of the rolled back state.

        Raises:
            RunNotFoundError: If the run is unknown.
            RollbackTargetInvalidError: If the target is outside the recorded steps.
            SnapshotNotFoundError: If no snapshot is old enough.
        """
        current = await self.state_manager.get_state(run_id)
        if target_index < 0 or target_index >= len(current.steps):
            raise RollbackTargetInvalidError(run_id, target_index, len(current.steps))

        snapshots = await self.state_manager.get_snapshots(run_id)
        for index in range(len(snapshots) - 1, -1, -1):
            if snapshots[index].state.current_step_index <= target_index:
                break
        else:
            raise SnapshotNotFoundError(run_id, target_index, reason="No suitable snapshot found for rollback")

        restored = await self.state_manager.restore_from_snapshot(run_id, index)
        restored.steps = current.steps[: target_index + 1]
        rolled = await self.state_manager.finalize_rollback(run_id, restored, target_index)
        logger.info(
            "rollback_applied",
            run_id=run_id,
            target_index=target_index,
            snapshot_sequence=snapshots[index].sequence,
        )
        return rolled

    async def rollback_to_last_success(self, run_id: str) -> WorkflowState:
        """Roll back to the last successful step.

        Raises:
            RollbackTargetInvalidError: If the run has no successful step.
        """
        state = await self.state_manager.get_state(run_id)
        for index in range(len(state.steps) - 1, -1, -1):
            if state.steps[index].success:
                return await self.rollback_to_step(run_id, index)
        raise RollbackTargetInvalidError(run_id, -1, len(state.steps))

    async def recover_from_error(
        self,
        run_id: str,
        failed_step: StepResult,
        strategy: RecoveryStrategy,
    ) -> RecoveryResult:
        """Apply ``strategy`` to a failed step.

        Args:
            run_id: The run the step belongs to.
            failed_step: The failed step result.
            strategy: The recovery policy to apply.

        Returns:
            Whether the run recovered, a description, and where to continue.

        Raises:
            RunNotFoundError: If the run is unknown.
        """
        await self.state_manager.get_state(run_id)
        strategy_type = RecoveryStrategyType(strategy.type)

        if strategy_type == RecoveryStrategyType.RETRY:
            result = await self._retry(run_id, failed_step, strategy)
        elif strategy_type == RecoveryStrategyType.SKIP:
            result = await self._skip(run_id, failed_step)
        elif strategy_type == RecoveryStrategyType.ROLLBACK:
            result = await self._rollback(run_id, failed_step, strategy)
        else:
            result = RecoveryResult(
                recovered=False,
                strategy=RecoveryStrategyType.MANUAL,
                message="Manual intervention required",
            )

        log = logger.info if result.recovered else logger.warning
        log(
            "recovery_attempted",
            run_id=run_id,
            step_index=failed_step.step_index,
            strategy=str(strategy_type),
            recovered=result.recovered,
            message=result.message,
        )
        return result

    async def get_compensation_actions(self, run_id: str, from_index: int, to_index: int) -> list[RollbackAction]:
        """Plan compensation for the successful steps in ``(to_index, from_index]``.

        Steps are walked in reverse, from ``from_index`` down to but excluding
        ``to_index``. The compensation itself is left to the caller.
        """
        state = await self.state_manager.get_state(run_id)
        actions: list[RollbackAction] = []
        for index in range(from_index, to_index, -1):
            if not 0 <= index < len(state.steps):
                continue
            step = state.steps[index]
            if step.success:
                actions.append(
                    RollbackAction(
                        step_index=index,
                        action=RollbackActionType.COMPENSATE,
                        compensation_data={"original_output": step.output, "original_input": step.input},
                    )
                )
        return actions

    async def clear_retry_counters(self, run_id: str) -> int:
        """Remove every retry counter from a run's context.

        Returns:
            Number of counters removed.
        """
        state = await self.state_manager.get_state(run_id)
        keys = [key for key in state.context if key.startswith(RETRY_COUNT_PREFIX)]
        if keys:
            await self.state_manager.remove_context_keys(run_id, keys)
        return len(keys)

    async def _retry(self, run_id: str, failed_step: StepResult, strategy: RecoveryStrategy) -> RecoveryResult:
        max_retries = strategy.max_retries if strategy.max_retries is not None else self.default_max_retries
        retry_delay = strategy.retry_delay if strategy.retry_delay is not None else self.default_retry_delay

        retry_key = f"{RETRY_COUNT_PREFIX}{failed_step.step_index}"
        state = await self.state_manager.get_state(run_id)
        current_retries = int(state.context.get(retry_key) or 0)

        if current_retries >= max_retries:
            return RecoveryResult(
                recovered=False,
                strategy=RecoveryStrategyType.RETRY,
                message=str(MaxRetriesExceededError(failed_step.step_index, max_retries)),
            )

        await self.state_manager.update_context(run_id, {retry_key: current_retries + 1})

        if retry_delay > 0 and current_retries > 0:
            await asyncio.sleep(retry_delay)

        return RecoveryResult(
            recovered=True,
            strategy=RecoveryStrategyType.RETRY,
            message=f"Retrying step {failed_step.step_index} (attempt {current_retries + 1}/{max_retries})",
            next_step_index=failed_step.step_index,
        )

    async def _skip(self, run_id: str, failed_step: StepResult) -> RecoveryResult:
        await self.state_manager.update_context(run_id, {f"{SKIPPED_STEP_PREFIX}{failed_step.step_index}": True})
        return RecoveryResult(
            recovered=True,
            strategy=RecoveryStrategyType.SKIP,
            message=f"Skipped failed step {failed_step.step_index}",
            next_step_index=failed_step.step_index + 1,
        )

    async def _rollback(self, run_id: str, failed_step: StepResult, strategy: RecoveryStrategy) -> RecoveryResult:
        rollback_steps = strategy.rollback_steps if strategy.rollback_steps is not None else 1
        target_index = max(0, failed_step.step_index - rollback_steps)
        try:
            await self.rollback_to_step(run_id, target_index)
        except RecoveryError as e:
            return RecoveryResult(
                recovered=False,
                strategy=RecoveryStrategyType.ROLLBACK,
                message=f"Rollback failed: {e}",
            )
        return RecoveryResult(
            recovered=True,
            strategy=RecoveryStrategyType.ROLLBACK,
            message=f"Rolled back {rollback_steps} step(s) from step {failed_step.step_index}",
            next_step_index=target_index + 1,
        )
