"""Bounded snapshot history for workflow runs."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from litestar_crews.core.models import Snapshot, WorkflowState, utcnow

if TYPE_CHECKING:
    from collections.abc import Iterator

__all__ = ["SnapshotLog"]


@dataclass(frozen=True)
class _Entry:
    sequence: int
    timestamp: datetime
    record: dict[str, Any]


class SnapshotLog:
    """Append-only, copy-on-write version log of one run's state.

    Entries are stored as serialized records, so every read materialises a
    fresh ``WorkflowState`` that shares nothing with the live state or with
    other reads. Once ``limit`` entries are held the oldest is evicted; the
    sequence counter keeps counting across evictions.

    Args:
        limit: Maximum number of snapshots retained.
    """

    def __init__(self, limit: int = 50) -> None:
        if limit < 1:
            msg = "Snapshot limit must be at least 1"
            raise ValueError(msg)
        self._entries: deque[_Entry] = deque(maxlen=limit)
        self._sequence = 0

    @property
    def limit(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Snapshot]:
        return iter(self.list())

    def append(self, state: WorkflowState) -> Snapshot:
        """Record a copy of ``state`` and return it as a snapshot."""
        entry = _Entry(sequence=self._sequence, timestamp=utcnow(), record=state.to_dict())
        self._sequence += 1
        self._entries.append(entry)
        return self._materialise(entry)

    def get(self, index: int) -> Snapshot:
        """Return the snapshot at ``index`` (0 is the oldest retained).

        Raises:
            IndexError: If ``index`` is out of range.
        """
        if index < 0 or index >= len(self._entries):
            msg = f"Snapshot index {index} out of range"
            raise IndexError(msg)
        return self._materialise(self._entries[index])

    def list(self) -> list[Snapshot]:
        """Return all retained snapshots, oldest first."""
        return [self._materialise(entry) for entry in self._entries]

    def latest(self) -> Snapshot | None:
        """Return the newest snapshot, or None if the log is empty."""
        if not self._entries:
            return None
        return self._materialise(self._entries[-1])

    @staticmethod
    def _materialise(entry: _Entry) -> Snapshot:
        return Snapshot(
            sequence=entry.sequence,
            timestamp=entry.timestamp,
            state=WorkflowState.from_dict(entry.record),
        )
