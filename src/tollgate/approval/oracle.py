"""LLM-backed judgment oracle for tool calls the rules cannot decide.

The oracle asks a local Ollama model for a JSON verdict. It raises on failure;
falling back to a safe level is the job of the judgment classifier.
"""

import json
import re
from typing import Any, Awaitable, Callable

from tollgate.approval.models import Classification, RiskLevel
from tollgate.config import Settings, get_settings
from tollgate.llm import ChatMessage, OllamaClient
from tollgate.logging import get_logger

logger = get_logger("tollgate.approval.oracle")

# Signature every judgment oracle satisfies
JudgmentOracle = Callable[[str, dict[str, Any]], Awaitable[Classification]]

RISK_CLASSIFIER_PROMPT = """You are a security risk classifier for an AI agent system. Your ONLY job is to classify tool/command requests into risk levels and return JSON.

ALWAYS respond with exactly this JSON structure, nothing else:
{"level": "L0"|"L1"|"L2"|"L3", "reason": "one-line explanation"}

Risk Levels:
- L0 AUTO_APPROVE: Read-only operations (read_file, list_dir, search, git status/log/diff, pwd, ls, cat, head, tail, wc)
- L1 NOTIFY: Low-risk modifications in project dir, reversible (write_file non-config, git add/stash/branch, test/lint runs)
- L2 REQUIRE_APPROVAL: Broader or harder-to-reverse impact (delete_file, git commit/merge/rebase/push, package installs, shell_exec, mkdir, mv, cp, config file writes)
- L3 BLOCK: Dangerous or irreversible (git push --force, git reset --hard, rm -rf, sudo, curl, wget, nc, ssh, eval, command injection patterns)

Escalation Rules:
- Sensitive paths (.env, .ssh, credentials, *.pem) -> escalate +1 level
- Config files (.github/workflows/*, package.json, pyproject.toml, Dockerfile) -> L2 minimum
- Command injection (backticks, $(), &&, ||, ;, |) -> L3
- Unknown/ambiguous -> L2

If you cannot confidently classify, default to L2."""

STRICT_SUFFIX = "\n\nIMPORTANT: Respond with ONLY valid JSON, no other text."

NO_REASON = "no reason given"

# Models like to wrap the verdict in markdown fences or thinking tags
JSON_EXTRACT = re.compile(r'\{[^{}]*"level"\s*:\s*"L[0-3]"[^{}]*\}')


class OracleError(Exception):
    """Raised when the oracle cannot produce a usable verdict."""

    pass


def _from_payload(payload: Any) -> tuple[RiskLevel, str] | None:
    if not isinstance(payload, dict):
        return None
    try:
        level = RiskLevel(payload.get("level"))
    except ValueError:
        return None
    reason = payload.get("reason")
    if not isinstance(reason, str) or not reason:
        reason = NO_REASON
    return level, reason


def parse_classification(text: str) -> tuple[RiskLevel, str] | None:
    """Extract a ``(level, reason)`` verdict from raw model output.

    Tries the whole text as JSON first, then the first embedded object that
    carries a valid ``level``.

    Args:
        text: Raw model answer

    Returns:
        tuple[RiskLevel, str] | None: The verdict, or None if nothing usable
        was found
    """
    try:
        parsed = _from_payload(json.loads(text))
    except json.JSONDecodeError:
        parsed = None
    if parsed:
        return parsed

    match = JSON_EXTRACT.search(text)
    if match:
        try:
            return _from_payload(json.loads(match.group(0)))
        except json.JSONDecodeError:
            return None

    return None


def build_prompt(tool_name: str, args: dict[str, Any]) -> str:
    """Build the user prompt describing one tool call."""
    return f"Classify: tool={tool_name}, args={json.dumps(args, default=str)}"


class OllamaRiskOracle:
    """Judgment oracle backed by an Ollama chat model.

    Each attempt sends the classifier system prompt and the tool call. An
    unparseable answer is retried with a stricter prompt until
    ``max_attempts`` is reached, after which ``OracleError`` is raised.
    """

    def __init__(
        self,
        client: OllamaClient | None = None,
        settings: Settings | None = None,
        max_attempts: int | None = None,
    ):
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or OllamaClient(settings=self.settings)
        self.max_attempts = max_attempts or self.settings.classifier_max_attempts

    async def close(self) -> None:
        """Close the Ollama client if this oracle created it."""
        if self._owns_client:
            await self.client.close()

    async def __aenter__(self) -> "OllamaRiskOracle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def __call__(self, tool_name: str, args: dict[str, Any]) -> Classification:
        prompt = build_prompt(tool_name, args)
        last_error: Exception | None = None

        for attempt in range(self.max_attempts):
            content = prompt if attempt == 0 else prompt + STRICT_SUFFIX
            try:
                response = await self.client.chat(
                    [ChatMessage.system(RISK_CLASSIFIER_PROMPT), ChatMessage.user(content)],
                    temperature=0.0,
                    json_format=True,
                )
            except Exception as e:
                logger.warning(
                    "Judgment oracle request failed",
                    tool_name=tool_name,
                    attempt=attempt + 1,
                    error=str(e),
                )
                last_error = e
                continue

            parsed = parse_classification(response.message.content)
            if parsed:
                level, reason = parsed
                return Classification(level=level, reason=reason, deterministic=False)

            logger.warning(
                "Judgment oracle returned unparseable response",
                tool_name=tool_name,
                attempt=attempt + 1,
                preview=response.message.content[:100],
            )
            last_error = None

        raise OracleError(
            f"No usable verdict for '{tool_name}' after {self.max_attempts} attempt(s)"
        ) from last_error
