"""Approval channels: how a pending approval reaches a human.

The gate does not know about transports. A channel renders the prompt and,
once the human answers, calls ``ApprovalGate.resolve_approval`` exactly once.
``ConsoleApprovalChannel`` is the terminal implementation used by the CLI and
by local agent runs.
"""

import asyncio
import json
from typing import Callable, Protocol, runtime_checkable

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.text import Text

from tollgate.approval.gate import ApprovalGate
from tollgate.approval.models import ApprovalStatus, PendingApproval, RiskLevel
from tollgate.approval.registry import ActionRegistry, default_registry
from tollgate.logging import get_logger

logger = get_logger("tollgate.approval.channel")

RISK_COLORS = {
    RiskLevel.L0: "green",
    RiskLevel.L1: "green",
    RiskLevel.L2: "yellow",
    RiskLevel.L3: "red bold",
}

STATUS_STYLES = {
    ApprovalStatus.APPROVED: "green",
    ApprovalStatus.DENIED: "red",
    ApprovalStatus.EXPIRED: "yellow",
    ApprovalStatus.REJECTED: "red",
}

MAX_ARG_CHARS = 100


@runtime_checkable
class ApprovalChannel(Protocol):
    """Port between the approval gate and a messaging platform."""

    async def deliver_prompt(self, approval: PendingApproval) -> None:
        """Show the approval request to the human.

        May return right away or block until the human answers. Callers stop
        waiting on it once the approval settles, including by expiry, and
        cancel it. Raising signals that the prompt could not be delivered;
        the caller then treats the approval as denied.
        """
        ...

    def on_resolution(self, approval: PendingApproval, status: ApprovalStatus) -> None:
        """Called once when the approval reaches a terminal state."""
        ...


def format_args(args: dict) -> list[tuple[str, str]]:
    """Render tool arguments as (key, value) pairs, truncating long values."""
    rows = []
    for key, value in args.items():
        value_str = value if isinstance(value, str) else json.dumps(value, default=str)
        if len(value_str) > MAX_ARG_CHARS:
            value_str = value_str[:MAX_ARG_CHARS] + "..."
        rows.append((key, value_str))
    return rows


class ConsoleApprovalChannel:
    """Asks for approval on the terminal with a Rich panel and a y/n prompt.

    Attributes:
        gate: Gate the answers are reported to
        console: Rich console used for output
    """

    def __init__(
        self,
        gate: ApprovalGate,
        console: Console | None = None,
        registry: ActionRegistry | None = None,
        ask: Callable[[str], bool] | None = None,
    ):
        """Initialize the console channel.

        Args:
            gate: Gate to resolve approvals on
            console: Rich console (creates one on stderr if None)
            registry: Action registry used for descriptions
            ask: Blocking yes/no question; defaults to ``rich.prompt.Confirm``
        """
        self.gate = gate
        self.console = console or Console(stderr=True, highlight=False)
        self.registry = registry or default_registry()
        self._ask = ask or self._confirm

    def _confirm(self, message: str) -> bool:
        return Confirm.ask(f"[yellow]?[/yellow] {message}", default=False, console=self.console)

    def format_approval_prompt(self, approval: PendingApproval) -> Panel:
        """Build the Rich panel describing a pending approval."""
        classification = approval.classification
        risk_color = RISK_COLORS[classification.level]

        content = Text()
        content.append("Tool: ", style="bold")
        content.append(f"{approval.tool_name}\n", style="cyan bold")
        content.append("Action: ", style="bold")
        content.append(f"{self.registry.describe(approval.tool_name)}\n\n")

        content.append("Risk Level: ", style="bold")
        content.append(f"{classification.level.value}\n", style=risk_color)
        content.append("Reason: ", style="bold")
        content.append(f"{classification.reason}\n", style="dim")

        rows = format_args(approval.args)
        if rows:
            content.append("\nArguments:\n", style="bold")
            for key, value in rows:
                content.append(f"  {key}: {value}\n", style="dim")

        content.append(f"\nNonce: {approval.nonce}", style="dim")
        content.append(f"\nExpires: {approval.expires_at:%H:%M:%S %Z}", style="dim")

        return Panel(
            content,
            title="[bold]Approval Required[/bold]",
            border_style=risk_color,
            padding=(1, 2),
        )

    async def deliver_prompt(self, approval: PendingApproval) -> None:
        """Print the panel and ask. Blocks until answered or cancelled."""
        self.console.print(self.format_approval_prompt(approval))
        # The question blocks on stdin, keep it off the event loop
        approved = await asyncio.to_thread(self._ask, "Approve this action?")
        logger.info("Approval prompt answered", nonce=approval.nonce, approved=approved)
        if not self.gate.resolve_approval(approval.nonce, approved):
            self.console.print("[yellow]This approval was already handled.[/yellow]")

    def on_resolution(self, approval: PendingApproval, status: ApprovalStatus) -> None:
        style = STATUS_STYLES.get(status, "white")
        self.console.print(
            f"[{style}]{approval.tool_name} ({approval.nonce}): {status.value}[/{style}]"
        )
