"""Authorization pipeline for agent tool calls.

Risk classification, human approval and the final execution guard.
"""

from tollgate.approval.models import (
    ApprovalStatus,
    Classification,
    GuardResult,
    PendingApproval,
    RiskLevel,
)
from tollgate.approval.rules import classify_deterministic
from tollgate.approval.classifier import (
    DeterministicClassifier,
    JudgmentClassifier,
    LayeredClassifier,
    RiskClassifier,
    classify_risk,
    classify_with_judgment,
)
from tollgate.approval.oracle import OllamaRiskOracle, OracleError, parse_classification
from tollgate.approval.gate import ApprovalGate, ApprovalTicket
from tollgate.approval.guard import ExecutionGuard, check_execution
from tollgate.approval.registry import ActionDefinition, ActionRegistry, default_registry
from tollgate.approval.channel import ApprovalChannel, ConsoleApprovalChannel
from tollgate.approval.executor import ActionExecutor, ExecutionOutcome

__all__ = [
    # Models
    "ApprovalStatus",
    "Classification",
    "GuardResult",
    "PendingApproval",
    "RiskLevel",
    # Classification
    "classify_deterministic",
    "classify_risk",
    "classify_with_judgment",
    "RiskClassifier",
    "DeterministicClassifier",
    "JudgmentClassifier",
    "LayeredClassifier",
    "OllamaRiskOracle",
    "OracleError",
    "parse_classification",
    # Approval
    "ApprovalGate",
    "ApprovalTicket",
    "ExecutionGuard",
    "check_execution",
    # Actions and channels
    "ActionDefinition",
    "ActionRegistry",
    "default_registry",
    "ApprovalChannel",
    "ConsoleApprovalChannel",
    "ActionExecutor",
    "ExecutionOutcome",
]
