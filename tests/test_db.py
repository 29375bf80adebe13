"""Integration tests for the database persistence layer.

Tests the SQLAlchemy models, repositories and SQLAlchemyStateStore using an
async SQLite in-memory database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from litestar_crews.core.types import GateStatus, RecordKind, WorkflowStatus
from litestar_crews.db.models import ApprovalGateModel, WorkflowRunModel
from litestar_crews.db.repositories import ApprovalGateRepository, WorkflowRunRepository
from litestar_crews.db.store import SQLAlchemyStateStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from litestar_crews.engine.registry import WorkerRegistry


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Create an async SQLite in-memory engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(WorkflowRunModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test engine."""
    return async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_store(session_maker: async_sessionmaker[AsyncSession]) -> SQLAlchemyStateStore:
    """Create a SQL state store."""
    return SQLAlchemyStateStore(session_maker)


def run_record(run_id: str, status: str = "pending", workflow_id: str = "crew-1") -> dict[str, Any]:
    return {"id": run_id, "workflowId": workflow_id, "runName": "Team", "status": status, "steps": []}


def gate_record(gate_id: str, step_index: int, status: str = "pending", workflow_id: str = "crew-1") -> dict[str, Any]:
    return {"id": gate_id, "workflowId": workflow_id, "stepIndex": step_index, "status": status}


# =============================================================================
# Store Tests
# =============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestSQLAlchemyStateStore:
    """Tests for SQLAlchemyStateStore."""

    async def test_save_and_load(self, sql_store: SQLAlchemyStateStore) -> None:
        """Test a saved record loads back unchanged."""
        record = run_record("crew-1-a")

        await sql_store.save(RecordKind.WORKFLOW_RUN, "crew-1-a", record)

        assert await sql_store.load_by_id(RecordKind.WORKFLOW_RUN, "crew-1-a") == record
        assert await sql_store.load_by_id(RecordKind.WORKFLOW_RUN, "missing") is None
        assert await sql_store.load_by_id(RecordKind.APPROVAL_GATE, "crew-1-a") is None

    async def test_save_replaces(
        self, sql_store: SQLAlchemyStateStore, session_maker: async_sessionmaker[AsyncSession]
    ) -> None:
        """Test saving an existing id replaces the record in place."""
        await sql_store.save(RecordKind.WORKFLOW_RUN, "crew-1-a", run_record("crew-1-a"))
        await sql_store.save(RecordKind.WORKFLOW_RUN, "crew-1-a", run_record("crew-1-a", status="running"))

        loaded = await sql_store.load_by_id(RecordKind.WORKFLOW_RUN, "crew-1-a")
        assert loaded["status"] == "running"

        async with session_maker() as session:
            repo = WorkflowRunRepository(session=session)
            assert await repo.count() == 1
            model = await repo.get_by_run_id("crew-1-a")
            assert model.status == "running"
            assert model.run_name == "Team"

    async def test_load_pending(self, sql_store: SQLAlchemyStateStore) -> None:
        """Test only in-flight runs and undecided gates are pending."""
        for run_id, status in (("r1", "pending"), ("r2", "running"), ("r3", "paused"), ("r4", "completed")):
            await sql_store.save(RecordKind.WORKFLOW_RUN, run_id, run_record(run_id, status=status))
        await sql_store.save(RecordKind.APPROVAL_GATE, "crew-1-0", gate_record("crew-1-0", 0))
        await sql_store.save(RecordKind.APPROVAL_GATE, "crew-1-1", gate_record("crew-1-1", 1, status="approved"))

        runs = await sql_store.load_pending(RecordKind.WORKFLOW_RUN)
        gates = await sql_store.load_pending(RecordKind.APPROVAL_GATE)

        assert sorted(record["id"] for record in runs) == ["r1", "r2", "r3"]
        assert [record["id"] for record in gates] == ["crew-1-0"]

    async def test_load_all(self, sql_store: SQLAlchemyStateStore) -> None:
        """Test load_all returns every record of a kind."""
        await sql_store.save(RecordKind.WORKFLOW_RUN, "r1", run_record("r1", status="failed"))
        await sql_store.save(RecordKind.WORKFLOW_RUN, "r2", run_record("r2"))
        await sql_store.save(RecordKind.APPROVAL_GATE, "crew-1-0", gate_record("crew-1-0", 0))

        assert len(await sql_store.load_all(RecordKind.WORKFLOW_RUN)) == 2
        assert len(await sql_store.load_all(RecordKind.APPROVAL_GATE)) == 1

    async def test_delete(self, sql_store: SQLAlchemyStateStore) -> None:
        """Test delete reports whether a record existed."""
        await sql_store.save(RecordKind.APPROVAL_GATE, "crew-1-0", gate_record("crew-1-0", 0))

        assert await sql_store.delete(RecordKind.APPROVAL_GATE, "crew-1-0") is True
        assert await sql_store.delete(RecordKind.APPROVAL_GATE, "crew-1-0") is False
        assert await sql_store.load_by_id(RecordKind.APPROVAL_GATE, "crew-1-0") is None


# =============================================================================
# Repository Tests
# =============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestRepositories:
    """Tests for the run and gate repositories."""

    async def test_find_by_workflow(
        self, sql_store: SQLAlchemyStateStore, session_maker: async_sessionmaker[AsyncSession]
    ) -> None:
        """Test runs can be listed per workflow id with a status filter."""
        await sql_store.save(RecordKind.WORKFLOW_RUN, "a", run_record("a", status="completed"))
        await sql_store.save(RecordKind.WORKFLOW_RUN, "b", run_record("b", status="failed"))
        await sql_store.save(RecordKind.WORKFLOW_RUN, "c", run_record("c", workflow_id="crew-2"))

        async with session_maker() as session:
            repo = WorkflowRunRepository(session=session)
            runs, total = await repo.find_by_workflow("crew-1")
            failed, failed_total = await repo.find_by_workflow("crew-1", status=WorkflowStatus.FAILED)

        assert total == 2
        assert {run.run_id for run in runs} == {"a", "b"}
        assert failed_total == 1
        assert failed[0].run_id == "b"

    async def test_find_pending_gates(
        self, sql_store: SQLAlchemyStateStore, session_maker: async_sessionmaker[AsyncSession]
    ) -> None:
        """Test pending gates are ordered by step index and filterable by workflow."""
        await sql_store.save(RecordKind.APPROVAL_GATE, "crew-1-2", gate_record("crew-1-2", 2))
        await sql_store.save(RecordKind.APPROVAL_GATE, "crew-1-0", gate_record("crew-1-0", 0))
        await sql_store.save(
            RecordKind.APPROVAL_GATE, "crew-2-0", gate_record("crew-2-0", 0, status="rejected", workflow_id="crew-2")
        )

        async with session_maker() as session:
            repo = ApprovalGateRepository(session=session)
            pending = await repo.find_pending()
            scoped = await repo.find_pending(workflow_id="crew-2")

        assert [gate.gate_id for gate in pending] == ["crew-1-0", "crew-1-2"]
        assert all(isinstance(gate, ApprovalGateModel) for gate in pending)
        assert pending[0].status == str(GateStatus.PENDING)
        assert scoped == []


# =============================================================================
# Engine Over SQL Tests
# =============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestEngineOverSQL:
    """Tests running the engine components on the SQL store."""

    async def test_run_is_persisted(
        self, workers: WorkerRegistry, sql_store: SQLAlchemyStateStore, sequential_workflow: dict
    ) -> None:
        """Test a completed run can be read back by a fresh state manager."""
        from litestar_crews.services import CrewServices
        from litestar_crews.state.manager import StateManager

        services = CrewServices.create(workers, sql_store)
        result = await services.executor.execute("crew-1", "Team", sequential_workflow, "topic")

        reloaded = await StateManager(sql_store).get_state(result.state_id)

        assert reloaded.status is WorkflowStatus.COMPLETED
        assert [step.output for step in reloaded.steps] == [step.output for step in result.steps]
        assert reloaded.workflow.type == "sequential"

    async def test_restart_resumes_paused_run(
        self, workers: WorkerRegistry, sql_store: SQLAlchemyStateStore, sequential_workflow: dict
    ) -> None:
        """Test a paused run survives a restart and can be resumed."""
        from litestar_crews.core.models import StepResult, utcnow
        from litestar_crews.services import CrewServices

        before = CrewServices.create(workers, sql_store)
        state = await before.state_manager.create_state("crew-1", "Team", sequential_workflow, "topic")
        await before.state_manager.update_status(state.id, WorkflowStatus.RUNNING)
        kept = StepResult.succeeded(0, "researcher", "Researcher", "topic", "notes", utcnow())
        await before.state_manager.add_step_result(state.id, kept)
        await before.state_manager.pause_workflow(state.id)

        after = CrewServices.create(workers, sql_store)
        await after.startup()
        result = await after.executor.resume(state.id)

        assert result.success is True
        assert [step.output for step in result.steps] == ["notes", "draft:notes", "DRAFT:NOTES"]
        assert await sql_store.load_pending(RecordKind.WORKFLOW_RUN) == []
