"""SQLAlchemy models for crew persistence.

This module defines the database models backing the SQL state store:
- WorkflowRunModel: Stores workflow run records (state plus results)
- ApprovalGateModel: Stores approval gate records

The full record lives in the ``payload`` column; the other columns duplicate
the fields the repositories filter on.
"""

from __future__ import annotations

from typing import Any

from advanced_alchemy.base import UUIDAuditBase
from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

__all__ = ["ApprovalGateModel", "JSONType", "WorkflowRunModel"]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


class WorkflowRunModel(UUIDAuditBase):
    """Persisted workflow run.

    Attributes:
        run_id: Natural id of the run (its state id).
        workflow_id: Caller-supplied run id the state was created for.
        run_name: Human-readable run name.
        status: Current run status.
        payload: The serialized ``WorkflowState``.
    """

    __tablename__ = "workflow_runs"
    __table_args__ = (
        Index("ix_workflow_runs_status", "status"),
        Index("ix_workflow_runs_workflow_id", "workflow_id"),
    )

    run_id: Mapped[str] = mapped_column(String(255), unique=True)
    workflow_id: Mapped[str] = mapped_column(String(255))
    run_name: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(50), default="pending")
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)


class ApprovalGateModel(UUIDAuditBase):
    """Persisted approval gate.

    Attributes:
        gate_id: Natural id of the gate (``{workflow_id}-{step_index}``).
        workflow_id: Run the gate belongs to.
        step_index: Step the gate guards.
        status: Current gate status.
        payload: The serialized ``ApprovalGate``.
    """

    __tablename__ = "workflow_approval_gates"
    __table_args__ = (
        Index("ix_workflow_approval_gates_status", "status"),
        Index("ix_workflow_approval_gates_workflow_id", "workflow_id"),
    )

    gate_id: Mapped[str] = mapped_column(String(255), unique=True)
    workflow_id: Mapped[str] = mapped_column(String(255))
    step_index: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(50), default="pending")
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
