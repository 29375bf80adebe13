"""SQL implementation of the StateStore protocol.

Run and gate records are stored in their own tables. Every operation opens
its own session and commits before returning, so the store can be shared by
concurrently running workflows.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from litestar_crews.core.types import RecordKind
from litestar_crews.db.models import ApprovalGateModel, WorkflowRunModel
from litestar_crews.db.repositories import ApprovalGateRepository, WorkflowRunRepository
from litestar_crews.utils.logging import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = ["SQLAlchemyStateStore"]

logger = get_logger(__name__)


class SQLAlchemyStateStore:
    """Durable record store backed by SQLAlchemy.

    Attributes:
        session_maker: Factory for the async sessions used per operation.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///crews.db")
        >>> store = SQLAlchemyStateStore(async_sessionmaker(engine, expire_on_commit=False))
        >>> services = CrewServices.create(workers, store)
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def save(self, kind: RecordKind, record_id: str, record: dict[str, Any]) -> None:
        """Insert or replace the record with natural id ``record_id``."""
        async with self.session_maker() as session:
            if RecordKind(kind) == RecordKind.WORKFLOW_RUN:
                await self._save_run(WorkflowRunRepository(session=session), record_id, record)
            else:
                await self._save_gate(ApprovalGateRepository(session=session), record_id, record)
            await session.commit()
        logger.debug("record_saved", kind=str(kind), record_id=record_id)

    async def load_by_id(self, kind: RecordKind, record_id: str) -> dict[str, Any] | None:
        async with self.session_maker() as session:
            model = await self._get(session, RecordKind(kind), record_id)
            return dict(model.payload) if model is not None else None

    async def load_pending(self, kind: RecordKind) -> list[dict[str, Any]]:
        async with self.session_maker() as session:
            if RecordKind(kind) == RecordKind.WORKFLOW_RUN:
                models: Any = await WorkflowRunRepository(session=session).find_active()
            else:
                models = await ApprovalGateRepository(session=session).find_pending()
            return [dict(model.payload) for model in models]

    async def load_all(self, kind: RecordKind) -> list[dict[str, Any]]:
        async with self.session_maker() as session:
            if RecordKind(kind) == RecordKind.WORKFLOW_RUN:
                models: Any = await WorkflowRunRepository(session=session).list()
            else:
                models = await ApprovalGateRepository(session=session).list()
            return [dict(model.payload) for model in models]

    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        async with self.session_maker() as session:
            model = await self._get(session, RecordKind(kind), record_id)
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
        logger.debug("record_deleted", kind=str(kind), record_id=record_id)
        return True

    @staticmethod
    async def _get(
        session: AsyncSession,
        kind: RecordKind,
        record_id: str,
    ) -> WorkflowRunModel | ApprovalGateModel | None:
        if kind == RecordKind.WORKFLOW_RUN:
            return await WorkflowRunRepository(session=session).get_by_run_id(record_id)
        return await ApprovalGateRepository(session=session).get_by_gate_id(record_id)

    @staticmethod
    async def _save_run(repo: WorkflowRunRepository, record_id: str, record: dict[str, Any]) -> None:
        model = await repo.get_by_run_id(record_id)
        if model is None:
            model = WorkflowRunModel(run_id=record_id)
            repo.session.add(model)
        model.workflow_id = record.get("workflowId", "")
        model.run_name = record.get("runName", "")
        model.status = record.get("status", "pending")
        model.payload = record

    @staticmethod
    async def _save_gate(repo: ApprovalGateRepository, record_id: str, record: dict[str, Any]) -> None:
        model = await repo.get_by_gate_id(record_id)
        if model is None:
            model = ApprovalGateModel(gate_id=record_id)
            repo.session.add(model)
        model.workflow_id = record.get("workflowId", "")
        model.step_index = int(record.get("stepIndex", 0))
        model.status = record.get("status", "pending")
        model.payload = record
