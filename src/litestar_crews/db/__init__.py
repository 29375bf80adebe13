"""Database persistence layer for litestar-crews.

This module provides SQLAlchemy models, repositories and a ``StateStore``
implementation for persisting workflow runs and approval gates.

Requires an async SQLAlchemy driver, e.g. ``aiosqlite`` or ``asyncpg``.
"""

from __future__ import annotations

from litestar_crews.db.models import ApprovalGateModel, WorkflowRunModel
from litestar_crews.db.repositories import ApprovalGateRepository, WorkflowRunRepository
from litestar_crews.db.store import SQLAlchemyStateStore

__all__ = [
    "ApprovalGateModel",
    "ApprovalGateRepository",
    "SQLAlchemyStateStore",
    "WorkflowRunModel",
    "WorkflowRunRepository",
]
