"""Run state management for litestar-crews."""

from __future__ import annotations

from litestar_crews.state.manager import StateManager
from litestar_crews.state.snapshots import SnapshotLog

__all__ = ["SnapshotLog", "StateManager"]
