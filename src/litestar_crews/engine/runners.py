"""Step-runner strategies, one per execution model.

Each runner drives the steps of a workflow definition through a ``RunContext``
supplied by the executor and returns a ``RunOutcome``. Aborting a run is an
outcome value, never an exception.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from litestar_crews.core.models import StepResult
from litestar_crews.core.types import ConditionKind, WorkflowType
from litestar_crews.exceptions import UnknownWorkflowTypeError

if TYPE_CHECKING:
    from litestar_crews.core.definition import Condition, Step, WorkflowDefinition

__all__ = [
    "RUNNERS",
    "ConditionalRunner",
    "ParallelRunner",
    "Resumption",
    "RunContext",
    "RunOutcome",
    "SequentialRunner",
    "StepRunner",
    "evaluate_condition",
    "get_runner",
]


@dataclass(frozen=True)
class Resumption:
    """Where a run continues after a successful recovery.

    Attributes:
        next_index: Step index to execute next.
        kept: Replacement for the kept results, or None to keep them as they are.
    """

    next_index: int
    kept: list[StepResult] | None = None


@dataclass
class RunContext:
    """Everything a runner needs from the executor.

    Attributes:
        definition: The workflow being run.
        initial_input: Input the run started with.
        results: Kept results so far; runners append to it as they go.
        execute_step: Runs one step (approval gate included) and returns its result.
        report: Publishes a produced result to the caller.
        persist: Records a kept result outside the runner (run state).
        recover: Attempts recovery for a failed result. Returns None when the run
            should abort.
        max_concurrency: Cap on concurrent invocations in a parallel batch.
    """

    definition: WorkflowDefinition
    initial_input: str
    execute_step: Callable[[int, Step, str], Awaitable[StepResult]]
    report: Callable[[StepResult], Awaitable[None]]
    persist: Callable[[StepResult], Awaitable[None]]
    recover: Callable[[StepResult], Awaitable[Resumption | None]]
    results: list[StepResult] = field(default_factory=list)
    max_concurrency: int | None = None

    async def keep(self, result: StepResult) -> None:
        """Append ``result`` to the kept results and persist it."""
        self.results.append(result)
        await self.persist(result)

    @property
    def rolling_input(self) -> str:
        """Output of the last kept successful result, or the initial input."""
        for result in reversed(self.results):
            if result.success:
                return result.output
        return self.initial_input

    @property
    def next_index(self) -> int:
        """Index after the last kept result."""
        return self.results[-1].step_index + 1 if self.results else 0


@dataclass(frozen=True)
class RunOutcome:
    """Result of driving a workflow's steps.

    Attributes:
        steps: Kept results.
        error: Failure summary, if the run failed.
        aborted: Whether the run stopped before reaching the last step.
    """

    steps: list[StepResult]
    error: str | None = None
    aborted: bool = False


def evaluate_condition(condition: Condition, results: list[StepResult]) -> bool:
    """Decide whether a conditional step runs.

    The referenced result is the one produced for ``reference_step_index`` or,
    when that is unset, the last produced result. A missing reference is false,
    except that ``failure`` holds when nothing has been produced at all.
    """
    kind = ConditionKind(condition.kind)
    if kind == ConditionKind.ALWAYS:
        return True

    if condition.reference_step_index is None:
        if not results:
            return kind == ConditionKind.FAILURE
        target = results[-1]
    else:
        matches = [result for result in results if result.step_index == condition.reference_step_index]
        if not matches:
            return False
        target = matches[-1]

    return target.success if kind == ConditionKind.SUCCESS else not target.success


class StepRunner(ABC):
    """Base for execution model strategies."""

    workflow_type: WorkflowType

    @abstractmethod
    async def run(self, ctx: RunContext) -> RunOutcome:
        """Drive the steps of ``ctx.definition``.

        Args:
            ctx: The executor-supplied run context.

        Returns:
            The run outcome.
        """
        ...


class SequentialRunner(StepRunner):
    """Run steps one after another, feeding each output to the next step.

    A step's explicit input wins over the rolling input. The first failure that
    is not recovered aborts the run.

    Example:
        >>> outcome = await SequentialRunner().run(ctx)
        # step0(initial) -> step1(output0) -> step2(output1)
    """

    workflow_type = WorkflowType.SEQUENTIAL

    async def run(self, ctx: RunContext) -> RunOutcome:
        steps = ctx.definition.steps
        index = ctx.next_index

        while index < len(steps):
            if not self.should_run(steps[index], ctx.results):
                index += 1
                continue

            step = steps[index]
            result = await ctx.execute_step(index, step, step.input or ctx.rolling_input)
            await ctx.report(result)

            if result.success:
                await ctx.keep(result)
                index += 1
                continue

            resumption = await ctx.recover(result)
            if resumption is not None:
                if resumption.kept is not None:
                    ctx.results[:] = resumption.kept
                index = resumption.next_index
                continue

            await ctx.keep(result)
            return RunOutcome(steps=list(ctx.results), error=f"Step {index + 1} failed: {result.error}", aborted=True)

        return RunOutcome(steps=list(ctx.results))

    def should_run(self, step: Step, results: list[StepResult]) -> bool:
        """Whether ``step`` executes given the results produced so far."""
        return True


class ConditionalRunner(SequentialRunner):
    """Sequential execution where each step may be gated on a prior result.

    Steps whose condition is false are omitted entirely: they produce no result
    and leave the rolling input untouched. Steps without a condition always run.
    """

    workflow_type = WorkflowType.CONDITIONAL

    def should_run(self, step: Step, results: list[StepResult]) -> bool:
        if step.condition is None:
            return True
        return evaluate_condition(step.condition, results)


class ParallelRunner(StepRunner):
    """Fan out every step concurrently and gather all of them.

    Every step gets its own explicit input or the initial input. The batch
    always settles completely; failures are counted only afterwards.
    """

    workflow_type = WorkflowType.PARALLEL

    async def run(self, ctx: RunContext) -> RunOutcome:
        done = {result.step_index for result in ctx.results}
        indices = [index for index in range(len(ctx.definition.steps)) if index not in done]
        semaphore = asyncio.Semaphore(ctx.max_concurrency) if ctx.max_concurrency else None

        async def run_one(index: int) -> StepResult:
            step = ctx.definition.steps[index]
            step_input = step.input or ctx.initial_input
            if semaphore is None:
                result = await ctx.execute_step(index, step, step_input)
            else:
                async with semaphore:
                    result = await ctx.execute_step(index, step, step_input)
            await ctx.report(result)
            return result

        settled = await asyncio.gather(*(run_one(index) for index in indices), return_exceptions=True)

        batch: list[StepResult] = []
        for index, outcome in zip(indices, settled, strict=True):
            if isinstance(outcome, BaseException):
                step = ctx.definition.steps[index]
                outcome = StepResult.failed(
                    step_index=index,
                    worker_id=step.worker_id,
                    worker_name=step.worker_id,
                    input=step.input or ctx.initial_input,
                    error=str(outcome) or type(outcome).__name__,
                )
                await ctx.report(outcome)
            batch.append(outcome)

        for result in sorted(batch, key=lambda result: result.step_index):
            await ctx.keep(result)
        ctx.results.sort(key=lambda result: result.step_index)

        failures = sum(1 for result in ctx.results if not result.success)
        if failures:
            return RunOutcome(steps=list(ctx.results), error=f"{failures} step(s) failed in parallel execution")
        return RunOutcome(steps=list(ctx.results))


RUNNERS: dict[WorkflowType, StepRunner] = {
    WorkflowType.SEQUENTIAL: SequentialRunner(),
    WorkflowType.PARALLEL: ParallelRunner(),
    WorkflowType.CONDITIONAL: ConditionalRunner(),
}


def get_runner(workflow_type: WorkflowType | str) -> StepRunner:
    """Return the runner for an execution model.

    Raises:
        UnknownWorkflowTypeError: If no runner handles ``workflow_type``.
    """
    try:
        return RUNNERS[WorkflowType(workflow_type)]
    except (KeyError, ValueError):
        raise UnknownWorkflowTypeError(workflow_type) from None
