"""Human-in-the-loop approval gates.

This module provides the ApprovalGateManager. A gate is a two-phase handshake:
``request_approval`` issues a gate id and suspends the caller on a single-shot
future; ``provide_decision`` resolves that future by id. An optional timer races
the decision, and exactly one of them takes effect.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import TYPE_CHECKING

from litestar_crews.core.models import ApprovalDecision, ApprovalGate, utcnow
from litestar_crews.core.types import GateStatus, RecordKind
from litestar_crews.exceptions import (
    ApprovalPendingError,
    ApprovalRejectedError,
    ApprovalTimeoutError,
    GateAlreadyResolvedError,
    GateNotFoundError,
)
from litestar_crews.utils.logging import get_logger

if TYPE_CHECKING:
    from litestar_crews.core.models import ApprovalRequest
    from litestar_crews.core.protocols import StateStore

__all__ = ["ApprovalGateManager", "gate_id_for"]

logger = get_logger(__name__)


def gate_id_for(workflow_id: str, step_index: int) -> str:
    """Return the gate id guarding ``step_index`` of ``workflow_id``."""
    return f"{workflow_id}-{step_index}"


class ApprovalGateManager:
    """Brokers asynchronous approval decisions.

    Attributes:
        store: Optional durable storage for gate records.
        default_timeout: Seconds to wait when a request sets no timeout.
            None waits indefinitely.
        _pending: Undecided gates by id.
        resolved_limit: Most decided gates kept in memory.
        _resolved: Most recently decided gates by id, kept to reject repeated
            decisions. The oldest is forgotten once ``resolved_limit`` is reached.
        _waiters: Single-shot futures of suspended callers by gate id.
        _timers: Timeout handles by gate id.
    """

    def __init__(
        self,
        store: StateStore | None = None,
        *,
        default_timeout: float | None = None,
        resolved_limit: int = 1000,
    ) -> None:
        """Initialize the approval gate manager.

        Args:
            store: Optional durable storage for gate records.
            default_timeout: Seconds to wait when a request sets no timeout.
            resolved_limit: Most decided gates kept in memory.
        """
        self.store = store
        self.default_timeout = default_timeout
        self.resolved_limit = resolved_limit
        self._pending: dict[str, ApprovalGate] = {}
        self._resolved: OrderedDict[str, ApprovalGate] = OrderedDict()
        self._waiters: dict[str, asyncio.Future[ApprovalDecision]] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    async def request_approval(self, workflow_id: str, request: ApprovalRequest) -> ApprovalDecision:
        """Open a gate and wait for its decision.

        Args:
            workflow_id: Workflow the gate belongs to.
            request: What is being approved, with an optional timeout.

        Returns:
            The decision, approving or rejecting.

        Raises:
            ApprovalPendingError: If the same gate is already pending.
            ApprovalTimeoutError: If no decision arrived in time. The gate is removed.

        Example:
            >>> decision = await approvals.request_approval(
            ...     "wf-1", ApprovalRequest(step_index=2, step_name="publish", timeout=60)
            ... )
            >>> decision.approved
            True
        """
        gate_id = gate_id_for(workflow_id, request.step_index)
        if gate_id in self._pending:
            raise ApprovalPendingError(gate_id)

        gate = ApprovalGate(
            id=gate_id,
            workflow_id=workflow_id,
            step_index=request.step_index,
            status=GateStatus.PENDING,
            requested_at=utcnow(),
            data={"stepName": request.step_name, **request.data} if request.step_name else dict(request.data),
        )
        self._pending[gate_id] = gate
        self._resolved.pop(gate_id, None)
        logger.info("approval_requested", gate_id=gate_id, workflow_id=workflow_id, step_index=request.step_index)

        timeout = request.timeout if request.timeout is not None else self.default_timeout
        waiter = self._attach(gate_id, timeout)
        try:
            await self._save(gate)
        except Exception:
            self._pending.pop(gate_id, None)
            self._waiters.pop(gate_id, None)
            self._cancel_timer(gate_id)
            raise
        return await self._wait(gate_id, waiter, timeout)

    async def require_approval(self, workflow_id: str, request: ApprovalRequest) -> ApprovalDecision:
        """Like ``request_approval`` but treat a rejection as an error.

        Raises:
            ApprovalRejectedError: If the decision rejects the gate.
            ApprovalTimeoutError: If no decision arrived in time.
        """
        decision = await self.request_approval(workflow_id, request)
        if not decision.approved:
            raise ApprovalRejectedError(gate_id_for(workflow_id, request.step_index), decision.comment)
        return decision

    async def provide_decision(self, gate_id: str, decision: ApprovalDecision) -> ApprovalGate:
        """Resolve a pending gate exactly once.

        Args:
            gate_id: The gate to resolve.
            decision: The approver's decision.

        Returns:
            A copy of the resolved gate.

        Raises:
            GateNotFoundError: If the gate is unknown or expired.
            GateAlreadyResolvedError: If the gate was already decided.
        """
        gate = self._pending.pop(gate_id, None)
        if gate is None:
            resolved = self._resolved.get(gate_id)
            if resolved is not None:
                raise GateAlreadyResolvedError(gate_id, resolved.status)
            raise GateNotFoundError(gate_id)

        gate.status = GateStatus.APPROVED if decision.approved else GateStatus.REJECTED
        gate.resolved_at = utcnow()
        gate.resolved_by = decision.user_id
        gate.comment = decision.comment
        self._remember(gate)

        self._cancel_timer(gate_id)
        waiter = self._waiters.pop(gate_id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(decision)

        logger.info("approval_decided", gate_id=gate_id, approved=decision.approved, resolved_by=decision.user_id)
        await self._save(gate)
        return _copy(gate)

    async def wait_for_decision(self, gate_id: str, timeout: float | None = None) -> ApprovalDecision:
        """Re-attach a waiter to a gate, typically one reloaded after a restart.

        A gate that was already decided returns its decision immediately.

        Raises:
            GateNotFoundError: If the gate is unknown.
            ApprovalPendingError: If another caller is already waiting on the gate.
            ApprovalTimeoutError: If no decision arrived in time.
        """
        resolved = self._resolved.get(gate_id)
        if resolved is not None:
            return ApprovalDecision(
                approved=resolved.status == GateStatus.APPROVED,
                comment=resolved.comment,
                user_id=resolved.resolved_by,
            )
        if gate_id not in self._pending:
            raise GateNotFoundError(gate_id)
        if gate_id in self._waiters:
            raise ApprovalPendingError(gate_id)

        timeout = timeout if timeout is not None else self.default_timeout
        return await self._wait(gate_id, self._attach(gate_id, timeout), timeout)

    def get_pending_approvals(self, workflow_id: str | None = None) -> list[ApprovalGate]:
        """List pending gates, optionally for one workflow."""
        return [
            _copy(gate)
            for gate in self._pending.values()
            if workflow_id is None or gate.workflow_id == workflow_id
        ]

    def get_gate(self, gate_id: str) -> ApprovalGate | None:
        """Return a copy of a pending or decided gate, or None."""
        gate = self._pending.get(gate_id) or self._resolved.get(gate_id)
        return _copy(gate) if gate is not None else None

    async def cancel_approval(self, gate_id: str) -> bool:
        """Reject a pending gate with the comment "Approval cancelled".

        Returns:
            Whether a pending gate was cancelled.
        """
        if gate_id not in self._pending:
            return False
        await self.provide_decision(gate_id, ApprovalDecision(approved=False, comment="Approval cancelled"))
        return True

    async def clear_workflow_approvals(self, workflow_id: str) -> int:
        """Cancel every pending gate of a workflow and forget its decided gates.

        Returns:
            Number of pending gates cancelled.
        """
        cancelled = 0
        for gate in self.get_pending_approvals(workflow_id):
            if await self.cancel_approval(gate.id):
                cancelled += 1
        for gate_id in [gate_id for gate_id, gate in self._resolved.items() if gate.workflow_id == workflow_id]:
            del self._resolved[gate_id]
        return cancelled

    async def restore_pending(self) -> int:
        """Reload pending gates from storage.

        Reloaded gates have no waiter; callers re-await them with
        ``wait_for_decision``.

        Returns:
            Number of gates restored.
        """
        if self.store is None:
            return 0
        restored = 0
        for record in await self.store.load_pending(RecordKind.APPROVAL_GATE):
            gate = ApprovalGate.from_dict(record)
            if gate.status != GateStatus.PENDING or gate.id in self._pending:
                continue
            self._pending[gate.id] = gate
            restored += 1
        logger.info("approvals_restored", count=restored)
        return restored

    async def close(self) -> None:
        """Cancel outstanding timers and waiters. Pending gates stay stored."""
        for gate_id in list(self._timers):
            self._cancel_timer(gate_id)
        waiters, self._waiters = self._waiters, {}
        for waiter in waiters.values():
            if not waiter.done():
                waiter.cancel()

    def _attach(self, gate_id: str, timeout: float | None) -> asyncio.Future[ApprovalDecision]:
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[ApprovalDecision] = loop.create_future()
        self._waiters[gate_id] = waiter
        if timeout is not None:
            self._timers[gate_id] = loop.call_later(timeout, self._expire, gate_id, waiter, timeout)
        return waiter

    async def _wait(
        self,
        gate_id: str,
        waiter: asyncio.Future[ApprovalDecision],
        timeout: float | None,
    ) -> ApprovalDecision:
        try:
            return await waiter
        except ApprovalTimeoutError:
            logger.warning("approval_timeout", gate_id=gate_id, timeout=timeout)
            await self._delete(gate_id)
            raise
        finally:
            if self._waiters.get(gate_id) is waiter:
                del self._waiters[gate_id]
                self._cancel_timer(gate_id)

    def _expire(self, gate_id: str, waiter: asyncio.Future[ApprovalDecision], timeout: float) -> None:
        self._timers.pop(gate_id, None)
        if waiter.done() or self._waiters.get(gate_id) is not waiter:
            return
        del self._waiters[gate_id]
        self._pending.pop(gate_id, None)
        waiter.set_exception(ApprovalTimeoutError(gate_id, timeout))

    def _remember(self, gate: ApprovalGate) -> None:
        self._resolved[gate.id] = gate
        self._resolved.move_to_end(gate.id)
        while len(self._resolved) > self.resolved_limit:
            self._resolved.popitem(last=False)

    def _cancel_timer(self, gate_id: str) -> None:
        timer = self._timers.pop(gate_id, None)
        if timer is not None:
            timer.cancel()

    async def _save(self, gate: ApprovalGate) -> None:
        if self.store is not None:
            await self.store.save(RecordKind.APPROVAL_GATE, gate.id, gate.to_dict())

    async def _delete(self, gate_id: str) -> None:
        if self.store is not None:
            await self.store.delete(RecordKind.APPROVAL_GATE, gate_id)


def _copy(gate: ApprovalGate) -> ApprovalGate:
    return ApprovalGate.from_dict(gate.to_dict())
