"""Value types shared by the classifier, the approval gate and the guard."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, Enum):
    """Risk level of a single tool invocation, ordered by severity.

    L0 and L1 run without asking, L2 waits for a human, L3 never runs.
    """

    L0 = "L0"  # Read-only
    L1 = "L1"  # Reversible change inside the project
    L2 = "L2"  # Needs approval
    L3 = "L3"  # Forbidden

    @property
    def severity(self) -> int:
        """Numeric rank of the level, 0 to 3."""
        return int(self.value[1])

    @property
    def requires_approval(self) -> bool:
        """Check if this level needs a human decision before running."""
        return self == RiskLevel.L2

    @property
    def is_blocked(self) -> bool:
        """Check if this level can never run, approved or not."""
        return self == RiskLevel.L3

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity >= other.severity

    def __str__(self) -> str:
        return self.value


class Classification(BaseModel):
    """Risk verdict for one tool call.

    Built fresh for every call and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    level: RiskLevel = Field(..., description="Assessed risk level")
    reason: str = Field(..., description="Human-readable justification")
    deterministic: bool = Field(
        ...,
        description="True if produced by rule matching, False if by the judgment oracle",
    )


class ApprovalStatus(str, Enum):
    """Lifecycle state of a single approval nonce."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    REJECTED = "rejected"  # Bulk rejection, e.g. on shutdown

    @property
    def is_terminal(self) -> bool:
        return self != ApprovalStatus.PENDING

    @property
    def outcome(self) -> bool:
        """Boolean outcome delivered to awaiting callers."""
        return self == ApprovalStatus.APPROVED


class PendingApproval(BaseModel):
    """An L2 action waiting for a human decision."""

    model_config = ConfigDict(frozen=True)

    nonce: str = Field(..., description="Single-use unpredictable token")
    tool_name: str = Field(..., description="Name of the tool awaiting approval")
    args: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")
    classification: Classification
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Check whether the approval window has closed at ``now``."""
        return now >= self.expires_at


class GuardResult(BaseModel):
    """Decision of the execution guard."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str

    @classmethod
    def allow(cls, reason: str) -> "GuardResult":
        return cls(allowed=True, reason=reason)

    @classmethod
    def block(cls, reason: str) -> "GuardResult":
        return cls(allowed=False, reason=reason)
