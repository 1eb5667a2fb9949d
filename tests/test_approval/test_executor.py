"""Tests for the action executor."""

import asyncio
import io
import threading

import pytest
from rich.console import Console

from tollgate.approval.channel import ConsoleApprovalChannel
from tollgate.approval.classifier import DeterministicClassifier, JudgmentClassifier, LayeredClassifier
from tollgate.approval.executor import ActionExecutor, ExecutionOutcome
from tollgate.approval.gate import ApprovalGate
from tollgate.approval.models import ApprovalStatus, Classification, RiskLevel


class ScriptedChannel:
    """Channel answering every prompt with a fixed decision."""

    def __init__(self, gate: ApprovalGate, decision: bool | None, delay: float = 0):
        self.gate = gate
        self.decision = decision
        self.delay = delay
        self.prompts = []
        self.resolutions = []

    async def deliver_prompt(self, approval):
        self.prompts.append(approval)
        if self.decision is None:
            return
        if self.delay:
            loop = asyncio.get_running_loop()
            loop.call_later(self.delay, self.gate.resolve_approval, approval.nonce, self.decision)
        else:
            self.gate.resolve_approval(approval.nonce, self.decision)

    def on_resolution(self, approval, status):
        self.resolutions.append((approval.nonce, status))


class BrokenChannel(ScriptedChannel):
    async def deliver_prompt(self, approval):
        self.prompts.append(approval)
        raise ConnectionError("platform unreachable")


class Action:
    """Records whether the side effect ran, and what the gate looked like then."""

    def __init__(self, gate: ApprovalGate, result="done"):
        self.gate = gate
        self.result = result
        self.calls = 0
        self.pending_at_call = None

    async def __call__(self):
        self.calls += 1
        self.pending_at_call = self.gate.pending_count()
        return self.result


@pytest.fixture
def classifier(test_settings):
    async def oracle(tool_name, args):
        level = RiskLevel(args.get("judged", "L2"))
        return Classification(level=level, reason="judged", deterministic=False)

    return LayeredClassifier(
        [DeterministicClassifier(), JudgmentClassifier(oracle=oracle, settings=test_settings)]
    )


class TestActionExecutor:
    """Test the full authorization flow."""

    @pytest.mark.asyncio
    async def test_l0_runs_without_approval(self, gate, classifier):
        channel = ScriptedChannel(gate, decision=False)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate, result=["a", "b"])

        outcome = await executor.execute("list_dir", {"path": "."}, action)

        assert isinstance(outcome, ExecutionOutcome)
        assert outcome.allowed is True
        assert outcome.approved is None
        assert outcome.nonce is None
        assert outcome.result == ["a", "b"]
        assert outcome.reason == "auto-approved"
        assert channel.prompts == []
        assert action.calls == 1

    @pytest.mark.asyncio
    async def test_l1_runs_without_approval(self, gate, classifier):
        executor = ActionExecutor(gate, classifier, ScriptedChannel(gate, decision=False))
        action = Action(gate)

        outcome = await executor.execute("write_file", {"path": "notes.md", "judged": "L1"}, action)

        assert outcome.allowed is True
        assert outcome.classification.deterministic is False
        assert action.calls == 1

    @pytest.mark.asyncio
    async def test_l3_never_runs(self, gate, classifier):
        channel = ScriptedChannel(gate, decision=True)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate)

        outcome = await executor.execute("shell_exec", {"command": "sudo rm -rf /"}, action)

        assert outcome.allowed is False
        assert outcome.reason == "blocked: banned command"
        assert channel.prompts == []
        assert gate.pending_count() == 0
        assert action.calls == 0

    @pytest.mark.asyncio
    async def test_l2_approved(self, gate, classifier):
        channel = ScriptedChannel(gate, decision=True)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate)

        outcome = await executor.execute("write_file", {"path": "package.json"}, action)

        assert outcome.allowed is True
        assert outcome.approved is True
        assert outcome.reason == "approved"
        assert outcome.nonce == channel.prompts[0].nonce
        assert action.calls == 1
        assert action.pending_at_call == 0
        assert channel.resolutions == [(outcome.nonce, ApprovalStatus.APPROVED)]

    @pytest.mark.asyncio
    async def test_l2_denied(self, gate, classifier):
        channel = ScriptedChannel(gate, decision=False)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate)

        outcome = await executor.execute("write_file", {"path": "package.json"}, action)

        assert outcome.allowed is False
        assert outcome.approved is False
        assert outcome.reason == "approval denied"
        assert action.calls == 0
        assert channel.resolutions == [(outcome.nonce, ApprovalStatus.DENIED)]

    @pytest.mark.asyncio
    async def test_l2_waits_for_late_answer(self, gate, classifier):
        channel = ScriptedChannel(gate, decision=True, delay=0.05)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate)

        outcome = await asyncio.wait_for(
            executor.execute("write_file", {"path": "Dockerfile"}, action), timeout=2
        )

        assert outcome.allowed is True
        assert action.calls == 1

    @pytest.mark.asyncio
    async def test_l2_expires_without_answer(self, test_settings, classifier):
        gate = ApprovalGate(settings=test_settings, ttl=0.05)
        channel = ScriptedChannel(gate, decision=None)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate)

        outcome = await asyncio.wait_for(
            executor.execute("write_file", {"path": "Dockerfile"}, action), timeout=2
        )

        assert outcome.allowed is False
        assert action.calls == 0
        assert channel.resolutions == [(outcome.nonce, ApprovalStatus.EXPIRED)]

    @pytest.mark.asyncio
    async def test_l2_without_channel_denied(self, gate, classifier):
        executor = ActionExecutor(gate, classifier)
        action = Action(gate)

        outcome = await executor.execute("write_file", {"path": "package.json"}, action)

        assert outcome.allowed is False
        assert outcome.nonce is None
        assert gate.pending_count() == 0
        assert action.calls == 0

    @pytest.mark.asyncio
    async def test_delivery_failure_denies(self, gate, classifier):
        channel = BrokenChannel(gate, decision=True)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate)

        outcome = await executor.execute("write_file", {"path": "package.json"}, action)

        assert outcome.allowed is False
        assert outcome.approved is False
        assert gate.pending_count() == 0
        assert action.calls == 0

    @pytest.mark.asyncio
    async def test_judgment_fallback_requires_approval(self, gate, test_settings):
        """Test that a failing oracle leads to a human decision, not execution."""

        async def failing(tool_name, args):
            raise RuntimeError("oracle down")

        classifier = LayeredClassifier(
            [DeterministicClassifier(), JudgmentClassifier(oracle=failing, settings=test_settings)]
        )
        channel = ScriptedChannel(gate, decision=False)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate)

        outcome = await executor.execute("deploy", {"env": "prod"}, action)

        assert outcome.classification.level == RiskLevel.L2
        assert len(channel.prompts) == 1
        assert action.calls == 0

    @pytest.mark.asyncio
    async def test_action_errors_propagate(self, gate, classifier):
        executor = ActionExecutor(gate, classifier)

        async def explode():
            raise OSError("disk full")

        with pytest.raises(OSError):
            await executor.execute("list_dir", {}, explode)

    @pytest.mark.asyncio
    async def test_blocking_prompt_bounded_by_ttl(self, test_settings, classifier):
        """Test that an unanswered console prompt does not hold the call past expiry."""
        gate = ApprovalGate(settings=test_settings, ttl=0.1)
        release = threading.Event()

        def ask(message):
            release.wait(3)
            return True

        buffer = io.StringIO()
        channel = ConsoleApprovalChannel(gate, console=Console(file=buffer, width=120), ask=ask)
        executor = ActionExecutor(gate, classifier, channel)
        action = Action(gate)

        try:
            outcome = await asyncio.wait_for(
                executor.execute("write_file", {"path": "package.json"}, action), timeout=1.0
            )
        finally:
            release.set()

        assert outcome.allowed is False
        assert outcome.approved is False
        assert action.calls == 0
        assert gate.pending_count() == 0
        assert f"({outcome.nonce}): expired" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_prompt_failure_after_delay_denies(self, gate, classifier):
        class SlowBrokenChannel(ScriptedChannel):
            async def deliver_prompt(self, approval):
                await asyncio.sleep(0.01)
                raise ConnectionError("platform unreachable")

        executor = ActionExecutor(gate, classifier, SlowBrokenChannel(gate, decision=True))
        action = Action(gate)

        outcome = await asyncio.wait_for(
            executor.execute("write_file", {"path": "package.json"}, action), timeout=2
        )

        assert outcome.allowed is False
        assert action.calls == 0

    @pytest.mark.asyncio
    async def test_shared_channel_notified_once(self, gate, classifier):
        """Test that executors sharing a gate and channel report each outcome once."""
        channel = ScriptedChannel(gate, decision=True)
        first = ActionExecutor(gate, classifier, channel)
        ActionExecutor(gate, classifier, channel)

        outcome = await first.execute("write_file", {"path": "package.json"}, Action(gate))

        assert channel.resolutions == [(outcome.nonce, ApprovalStatus.APPROVED)]


class TestDefaultClassifier:
    """Test the classifier an executor builds for itself."""

    @pytest.mark.asyncio
    async def test_built_once_and_closed(self, gate, ollama_clients):
        executor = ActionExecutor(gate)
        action = Action(gate)

        await executor.execute("write_file", {"path": "a.txt"}, action)
        await executor.execute("write_file", {"path": "b.txt"}, action)

        assert len(ollama_clients) == 1
        assert ollama_clients[0].calls == 2
        assert action.calls == 2

        await executor.close()

        assert ollama_clients[0].closed is True

    @pytest.mark.asyncio
    async def test_injected_classifier_left_open(self, gate, test_settings, ollama_clients):
        classifier = LayeredClassifier.default(settings=test_settings)

        async with ActionExecutor(gate, classifier):
            pass

        assert ollama_clients[0].closed is False
