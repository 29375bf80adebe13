"""Rollback and recovery for litestar-crews."""

from __future__ import annotations

from litestar_crews.recovery.manager import RecoveryManager

__all__ = ["RecoveryManager"]
