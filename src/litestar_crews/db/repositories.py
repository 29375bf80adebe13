"""Repository implementations for crew persistence.

This module provides async repositories for the run and approval gate models
using advanced-alchemy's repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from advanced_alchemy.filters import LimitOffset, OrderBy
from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, select

from litestar_crews.core.types import ACTIVE_STATUSES, GateStatus, WorkflowStatus
from litestar_crews.db.models import ApprovalGateModel, WorkflowRunModel

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["ApprovalGateRepository", "WorkflowRunRepository"]


class WorkflowRunRepository(SQLAlchemyAsyncRepository[WorkflowRunModel]):
    """Repository for workflow run records."""

    model_type = WorkflowRunModel

    async def get_by_run_id(self, run_id: str) -> WorkflowRunModel | None:
        """Get a run by its natural id.

        Args:
            run_id: The run (state) id.

        Returns:
            The run or None if not found.
        """
        stmt = select(WorkflowRunModel).where(WorkflowRunModel.run_id == run_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_active(self) -> Sequence[WorkflowRunModel]:
        """Find all pending, running or paused runs, oldest first."""
        stmt = (
            select(WorkflowRunModel)
            .where(WorkflowRunModel.status.in_([str(status) for status in ACTIVE_STATUSES]))
            .order_by(WorkflowRunModel.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_by_workflow(
        self,
        workflow_id: str,
        status: WorkflowStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[WorkflowRunModel], int]:
        """Find runs created for a workflow id with optional status filter.

        Args:
            workflow_id: The caller-supplied run id to filter by.
            status: Optional status filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (runs, total_count).
        """
        conditions = [WorkflowRunModel.workflow_id == workflow_id]

        if status:
            conditions.append(WorkflowRunModel.status == str(status))

        return await self.list_and_count(
            *conditions,
            LimitOffset(limit=limit, offset=offset),
            OrderBy(field_name="created_at", sort_order="desc"),
        )


class ApprovalGateRepository(SQLAlchemyAsyncRepository[ApprovalGateModel]):
    """Repository for approval gate records."""

    model_type = ApprovalGateModel

    async def get_by_gate_id(self, gate_id: str) -> ApprovalGateModel | None:
        """Get a gate by its natural id.

        Args:
            gate_id: The gate id.

        Returns:
            The gate or None if not found.
        """
        stmt = select(ApprovalGateModel).where(ApprovalGateModel.gate_id == gate_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_pending(self, workflow_id: str | None = None) -> Sequence[ApprovalGateModel]:
        """Find undecided gates, optionally for one run.

        Args:
            workflow_id: Optional run filter.

        Returns:
            List of pending gates ordered by step index.
        """
        conditions = [ApprovalGateModel.status == str(GateStatus.PENDING)]

        if workflow_id:
            conditions.append(ApprovalGateModel.workflow_id == workflow_id)

        stmt = (
            select(ApprovalGateModel)
            .where(and_(*conditions))
            .order_by(ApprovalGateModel.workflow_id, ApprovalGateModel.step_index)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
