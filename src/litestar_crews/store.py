"""In-memory implementation of the StateStore protocol.

Suitable for development, testing, and single-process deployments where runs
do not need to outlive the process.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from litestar_crews.core.types import ACTIVE_STATUSES, GateStatus, RecordKind

__all__ = ["InMemoryStore", "is_pending_record"]


def is_pending_record(kind: RecordKind, record: dict[str, Any]) -> bool:
    """Whether a stored record is still in flight.

    Runs are pending while their status is pending, running or paused; gates
    while they are undecided.
    """
    if kind == RecordKind.WORKFLOW_RUN:
        return record.get("status") in {str(status) for status in ACTIVE_STATUSES}
    return record.get("status") == str(GateStatus.PENDING)


class InMemoryStore:
    """Dictionary-backed record store.

    Records are stored as JSON round-tripped copies, so neither the caller's
    dict nor a loaded record ever aliases what the store holds.

    Attributes:
        _records: Records by kind and id.
        save_count: Number of ``save`` calls, handy for assertions in tests.
    """

    def __init__(self) -> None:
        self._records: dict[RecordKind, dict[str, str]] = {kind: {} for kind in RecordKind}
        self._lock = asyncio.Lock()
        self.save_count = 0

    async def save(self, kind: RecordKind, record_id: str, record: dict[str, Any]) -> None:
        encoded = json.dumps(record)
        async with self._lock:
            self._records[RecordKind(kind)][record_id] = encoded
            self.save_count += 1

    async def load_by_id(self, kind: RecordKind, record_id: str) -> dict[str, Any] | None:
        encoded = self._records[RecordKind(kind)].get(record_id)
        return json.loads(encoded) if encoded is not None else None

    async def load_pending(self, kind: RecordKind) -> list[dict[str, Any]]:
        return [record for record in await self.load_all(kind) if is_pending_record(RecordKind(kind), record)]

    async def load_all(self, kind: RecordKind) -> list[dict[str, Any]]:
        return [json.loads(encoded) for encoded in self._records[RecordKind(kind)].values()]

    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        async with self._lock:
            return self._records[RecordKind(kind)].pop(record_id, None) is not None
