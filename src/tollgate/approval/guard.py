"""Execution guard: the last check before a tool's side effect runs.

Pure function of the classification, the nonce and the gate's current
pending set. It never blocks, never performs I/O and never raises.
"""

from tollgate.approval.gate import ApprovalGate
from tollgate.approval.models import Classification, GuardResult, RiskLevel


def check_execution(
    gate: ApprovalGate,
    nonce: str | None,
    classification: Classification,
) -> GuardResult:
    """Decide whether the action may proceed right now.

    L3 is always blocked and L0/L1 always allowed. For L2 the guard only
    catches execution attempted while the decision is still outstanding: a
    nonce that is no longer pending was settled elsewhere, and the caller is
    expected to have branched on that outcome already.

    Args:
        gate: Gate holding the pending approvals
        nonce: Nonce of the approval for this call, if one was requested
        classification: Classification of the call

    Returns:
        GuardResult: Whether execution is allowed, and why
    """
    if classification.level == RiskLevel.L3:
        return GuardResult.block("action is blocked")

    if classification.level in (RiskLevel.L0, RiskLevel.L1):
        return GuardResult.allow("auto-approved")

    if nonce and gate.get_pending(nonce) is not None:
        return GuardResult.block("approval still pending")

    return GuardResult.allow("approved")


class ExecutionGuard:
    """``check_execution`` bound to one gate."""

    def __init__(self, gate: ApprovalGate):
        self.gate = gate

    def check_execution(self, nonce: str | None, classification: Classification) -> GuardResult:
        return check_execution(self.gate, nonce, classification)
