"""Approval gates for litestar-crews."""

from __future__ import annotations

from litestar_crews.approvals.manager import ApprovalGateManager, gate_id_for

__all__ = ["ApprovalGateManager", "gate_id_for"]
