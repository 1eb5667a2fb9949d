"""Tool execution behind the authorization pipeline.

``ActionExecutor`` strings the pieces together the way an agent loop has to:
classify, request approval for L2, wait for the human, check the guard right
before the side effect, then run it.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from tollgate.approval.channel import ApprovalChannel
from tollgate.approval.classifier import LayeredClassifier, RiskClassifier, classify_risk
from tollgate.approval.gate import ApprovalGate
from tollgate.approval.guard import check_execution
from tollgate.approval.models import Classification, RiskLevel
from tollgate.logging import get_logger

logger = get_logger("tollgate.approval.executor")

Action = Callable[[], Awaitable[Any]]


class ExecutionOutcome(BaseModel):
    """What happened to one tool call."""

    tool_name: str
    classification: Classification
    nonce: str | None = Field(default=None, description="Approval nonce, for L2 calls")
    allowed: bool = Field(..., description="Whether the action ran")
    approved: bool | None = Field(
        default=None,
        description="Human decision, None when no approval was requested",
    )
    reason: str
    result: Any = Field(default=None, description="Return value of the action")


class ActionExecutor:
    """Runs tool actions only when the pipeline allows them.

    Steps:
    1. Classify the call
    2. Refuse L3 outright
    3. For L2, open an approval, deliver the prompt and wait for the outcome
    4. Check the execution guard
    5. Run the action
    """

    def __init__(
        self,
        gate: ApprovalGate,
        classifier: RiskClassifier | None = None,
        channel: ApprovalChannel | None = None,
    ):
        """Initialize the executor.

        Args:
            gate: Gate holding pending approvals
            classifier: Risk classifier (defaults to rules plus judgment)
            channel: Channel used to ask the human; without one every L2
                call is denied
        """
        self.gate = gate
        self._owns_classifier = classifier is None
        self.classifier = classifier or LayeredClassifier.default()
        self.channel = channel

        if channel is not None:
            gate.add_listener(channel.on_resolution)

    async def close(self) -> None:
        """Release the default classifier, if this executor built it."""
        if self._owns_classifier:
            await self.classifier.close()

    async def __aenter__(self) -> "ActionExecutor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request_approval(
        self,
        tool_name: str,
        args: dict[str, Any],
        classification: Classification,
    ) -> tuple[str | None, bool]:
        if self.channel is None:
            logger.warning("No approval channel configured, denying", tool_name=tool_name)
            return None, False

        ticket = self.gate.create_approval(tool_name, args, classification)
        # A channel may block until the human answers; the wait stays bounded by the ttl
        prompt = asyncio.create_task(self.channel.deliver_prompt(ticket.approval))
        waiter = asyncio.create_task(ticket.wait())
        try:
            await asyncio.wait({prompt, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if prompt.done() and not prompt.cancelled() and prompt.exception() is not None:
                e = prompt.exception()
                logger.error(
                    "Failed to deliver approval prompt, denying",
                    tool_name=tool_name,
                    nonce=ticket.nonce,
                    error=f"{type(e).__name__}: {e}",
                )
                self.gate.resolve_approval(ticket.nonce, False)
            approved = await waiter
        finally:
            unfinished = [task for task in (prompt, waiter) if not task.done()]
            for task in unfinished:
                task.cancel()
            await asyncio.gather(*unfinished, return_exceptions=True)

        return ticket.nonce, approved

    async def execute(
        self,
        tool_name: str,
        args: dict[str, Any],
        action: Action,
    ) -> ExecutionOutcome:
        """Authorize and run one tool call.

        Exceptions raised by ``action`` propagate to the caller.

        Args:
            tool_name: Name of the tool
            args: Tool arguments
            action: Zero-argument coroutine function performing the side effect

        Returns:
            ExecutionOutcome: Decision details and the action's result
        """
        start = time.perf_counter()
        classification = await classify_risk(tool_name, args, self.classifier)

        def outcome(**kwargs: Any) -> ExecutionOutcome:
            return ExecutionOutcome(tool_name=tool_name, classification=classification, **kwargs)

        if classification.level == RiskLevel.L3:
            logger.warning("Blocked tool call", tool_name=tool_name, reason=classification.reason)
            return outcome(allowed=False, reason=f"blocked: {classification.reason}")

        nonce: str | None = None
        approved: bool | None = None
        if classification.level.requires_approval:
            nonce, approved = await self._request_approval(tool_name, args, classification)
            if not approved:
                logger.info("Tool call denied", tool_name=tool_name, nonce=nonce)
                return outcome(nonce=nonce, allowed=False, approved=False, reason="approval denied")

        # No suspension point between this check and the action
        guard = check_execution(self.gate, nonce, classification)
        if not guard.allowed:
            logger.warning("Execution guard refused tool call", tool_name=tool_name, reason=guard.reason)
            return outcome(nonce=nonce, allowed=False, approved=approved, reason=guard.reason)

        logger.info("Executing tool call", tool_name=tool_name, level=classification.level.value)
        result = await action()

        logger.debug(
            "Tool call complete",
            tool_name=tool_name,
            total_time_s=f"{time.perf_counter() - start:.3f}",
        )
        return outcome(nonce=nonce, allowed=True, approved=approved, reason=guard.reason, result=result)
