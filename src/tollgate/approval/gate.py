"""Approval gate: lifecycle of pending human approvals.

Every L2 action gets a single-use nonce. The nonce stays pending until exactly
one of approve, deny, expire or bulk-reject wins; the boolean outcome is then
delivered to everyone awaiting it and the nonce is forgotten.

Mutations of the pending map are serialized by a lock and outcomes travel
through ``concurrent.futures.Future`` objects, so a messaging adapter may
resolve approvals from its own thread while the agent awaits them on an
event loop.
"""

import asyncio
import secrets
import threading
from concurrent.futures import Future
from datetime import UTC, datetime, timedelta
from typing import Any, Callable

from tollgate.approval.models import ApprovalStatus, Classification, PendingApproval
from tollgate.config import Settings, get_settings
from tollgate.logging import get_logger

logger = get_logger("tollgate.approval.gate")

Clock = Callable[[], datetime]
ResolutionListener = Callable[[PendingApproval, ApprovalStatus], None]


def utc_now() -> datetime:
    return datetime.now(UTC)


class _Slot:
    """A pending approval together with the future carrying its outcome."""

    __slots__ = ("approval", "future")

    def __init__(self, approval: PendingApproval):
        self.approval = approval
        self.future: Future[bool] = Future()


class ApprovalTicket:
    """Handle returned by ``ApprovalGate.create_approval``.

    Holds the outcome future directly, so an outcome that arrives before the
    caller starts waiting is not lost.
    """

    def __init__(self, gate: "ApprovalGate", slot: _Slot):
        self._gate = gate
        self._slot = slot

    @property
    def nonce(self) -> str:
        return self._slot.approval.nonce

    @property
    def approval(self) -> PendingApproval:
        return self._slot.approval

    def done(self) -> bool:
        """Check whether the approval has reached a terminal state."""
        return self._slot.future.done()

    async def wait(self) -> bool:
        """Wait for the outcome. Expiry counts as denial."""
        return await self._gate._await_slot(self._slot)

    def __repr__(self) -> str:
        return f"<ApprovalTicket nonce='{self.nonce}' done={self.done()}>"


class ApprovalGate:
    """Owner of the pending-approval set.

    Instances are independent, so tests and separate agent sessions can each
    use their own gate.

    Example:
        >>> gate = ApprovalGate(ttl=300)
        >>> ticket = gate.create_approval("delete_file", {"path": "a"}, classification)
        >>> gate.resolve_approval(ticket.nonce, True)
        True
        >>> await ticket.wait()
        True
    """

    def __init__(
        self,
        ttl: float | None = None,
        clock: Clock | None = None,
        nonce_bytes: int | None = None,
        settings: Settings | None = None,
    ):
        """Initialize the approval gate.

        Args:
            ttl: Default seconds an approval stays pending (defaults to settings)
            clock: Source of timezone-aware "now" (defaults to UTC wall clock)
            nonce_bytes: Random bytes per nonce (defaults to settings)
            settings: Settings instance (uses global if not provided)
        """
        settings = settings or get_settings()
        self.ttl = ttl if ttl is not None else settings.approval_ttl_seconds
        self.nonce_bytes = nonce_bytes or settings.nonce_bytes
        self.sweep_interval = settings.approval_sweep_interval
        self._clock = clock or utc_now

        self._lock = threading.Lock()
        self._pending: dict[str, _Slot] = {}
        self._listeners: list[ResolutionListener] = []

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_listener(self, listener: ResolutionListener) -> None:
        """Register a callback invoked once per terminal transition.

        Registering the same callback again has no effect.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ResolutionListener) -> None:
        self._listeners.remove(listener)

    def _notify(self, finished: list[tuple[PendingApproval, ApprovalStatus]]) -> None:
        for approval, status in finished:
            for listener in list(self._listeners):
                try:
                    listener(approval, status)
                except Exception:
                    logger.exception(
                        "Resolution listener failed",
                        nonce=approval.nonce,
                        status=status.value,
                    )

    # =========================================================================
    # Internal state transitions (caller holds the lock)
    # =========================================================================

    def _finish_locked(
        self, slot: _Slot, status: ApprovalStatus
    ) -> tuple[PendingApproval, ApprovalStatus]:
        del self._pending[slot.approval.nonce]
        slot.future.set_result(status.outcome)
        logger.info(
            "Approval resolved",
            nonce=slot.approval.nonce,
            tool_name=slot.approval.tool_name,
            status=status.value,
        )
        return slot.approval, status

    def _sweep_locked(self, now: datetime) -> list[tuple[PendingApproval, ApprovalStatus]]:
        expired = [slot for slot in self._pending.values() if slot.approval.is_expired(now)]
        return [self._finish_locked(slot, ApprovalStatus.EXPIRED) for slot in expired]

    def _new_nonce_locked(self) -> str:
        nonce = secrets.token_hex(self.nonce_bytes)
        while nonce in self._pending:
            nonce = secrets.token_hex(self.nonce_bytes)
        return nonce

    # =========================================================================
    # Operations
    # =========================================================================

    def create_approval(
        self,
        tool_name: str,
        args: dict[str, Any],
        classification: Classification,
        ttl: float | None = None,
    ) -> ApprovalTicket:
        """Open a new approval request.

        Identical tool calls are never merged; every invocation is its own
        decision with its own nonce.

        Args:
            tool_name: Name of the tool awaiting approval
            args: Tool arguments
            classification: Classification that triggered the request
            ttl: Seconds until expiry (defaults to the gate's ttl)

        Returns:
            ApprovalTicket: Handle exposing the nonce and the outcome
        """
        ttl = self.ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            finished = self._sweep_locked(now)
            approval = PendingApproval(
                nonce=self._new_nonce_locked(),
                tool_name=tool_name,
                args=dict(args),
                classification=classification,
                created_at=now,
                expires_at=now + timedelta(seconds=ttl),
            )
            slot = _Slot(approval)
            self._pending[approval.nonce] = slot

        self._notify(finished)
        logger.info(
            "Approval requested",
            nonce=approval.nonce,
            tool_name=tool_name,
            level=classification.level.value,
            expires_at=approval.expires_at.isoformat(),
        )
        return ApprovalTicket(self, slot)

    def get_pending(self, nonce: str) -> PendingApproval | None:
        """Look up a still-undecided approval without changing any state.

        Expired entries read as absent even before they are swept.
        """
        with self._lock:
            slot = self._pending.get(nonce)
            if slot is None or slot.approval.is_expired(self._clock()):
                return None
            return slot.approval

    def resolve_approval(self, nonce: str, approved: bool) -> bool:
        """Record the human decision for ``nonce``.

        Only the first call for a nonce succeeds. Unknown, already resolved
        and expired nonces return False.

        Args:
            nonce: Nonce of the approval
            approved: The decision

        Returns:
            bool: True if this call resolved a pending approval
        """
        with self._lock:
            slot = self._pending.get(nonce)
            if slot is None:
                resolved = False
                finished = []
            elif slot.approval.is_expired(self._clock()):
                resolved = False
                finished = [self._finish_locked(slot, ApprovalStatus.EXPIRED)]
            else:
                status = ApprovalStatus.APPROVED if approved else ApprovalStatus.DENIED
                resolved = True
                finished = [self._finish_locked(slot, status)]

        if not resolved:
            logger.debug("Ignoring resolution for unknown or settled nonce", nonce=nonce)
        self._notify(finished)
        return resolved

    def reject_all_pending(self, reason: str) -> int:
        """Deny every approval that is still pending.

        Entries that already expired are closed as expired and not counted.

        Args:
            reason: Why the approvals are being rejected, for the log

        Returns:
            int: Number of approvals rejected
        """
        with self._lock:
            finished = self._sweep_locked(self._clock())
            rejected = [
                self._finish_locked(slot, ApprovalStatus.REJECTED)
                for slot in list(self._pending.values())
            ]

        if rejected:
            logger.info("Rejected all pending approvals", count=len(rejected), reason=reason)
        self._notify(finished + rejected)
        return len(rejected)

    def sweep_expired(self) -> int:
        """Close every expired approval as denied.

        Returns:
            int: Number of approvals that expired
        """
        with self._lock:
            finished = self._sweep_locked(self._clock())
        self._notify(finished)
        return len(finished)

    def pending_count(self) -> int:
        """Number of approvals still awaiting a decision."""
        with self._lock:
            now = self._clock()
            return sum(1 for slot in self._pending.values() if not slot.approval.is_expired(now))

    async def wait_for_outcome(self, nonce: str) -> bool:
        """Wait for the outcome of a pending approval by nonce.

        Callers holding the ticket should prefer ``ApprovalTicket.wait``,
        which also works after the approval was resolved. Here an unknown
        or settled nonce yields False.
        """
        with self._lock:
            slot = self._pending.get(nonce)
        if slot is None:
            return False
        return await self._await_slot(slot)

    async def run_sweeper(self, interval: float | None = None) -> None:
        """Sweep expired approvals every ``interval`` seconds until cancelled."""
        interval = interval or self.sweep_interval
        logger.debug("Expiry sweeper started", interval_s=interval)
        while True:
            await asyncio.sleep(interval)
            self.sweep_expired()

    async def _await_slot(self, slot: _Slot) -> bool:
        wrapped = asyncio.wrap_future(slot.future)
        while not slot.future.done():
            remaining = (slot.approval.expires_at - self._clock()).total_seconds()
            if remaining <= 0:
                self.sweep_expired()
                continue
            try:
                # Shielded so a timeout here cannot cancel the shared future
                await asyncio.wait_for(asyncio.shield(wrapped), timeout=remaining)
            except asyncio.TimeoutError:
                continue
        return slot.future.result()
