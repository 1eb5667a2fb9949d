"""Risk classification for tool calls.

Deterministic rules run first; a judgment oracle handles whatever they leave
open. A failed or slow judgment never allows anything: it falls back to L2.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from tollgate.approval.models import Classification, RiskLevel
from tollgate.approval.oracle import JudgmentOracle, OllamaRiskOracle
from tollgate.approval.rules import classify_deterministic
from tollgate.config import Settings, get_settings
from tollgate.logging import AsyncTimer, get_logger

logger = get_logger("tollgate.approval.classifier")

FALLBACK_REASON = "judgment classification failed, defaulting to approval"


def fallback_classification() -> Classification:
    """The fail-safe verdict used when judgment is unavailable."""
    return Classification(level=RiskLevel.L2, reason=FALLBACK_REASON, deterministic=False)


async def classify_with_judgment(
    tool_name: str,
    args: dict[str, Any],
    oracle: JudgmentOracle,
    timeout: float,
) -> Classification:
    """Ask the judgment oracle for a verdict within ``timeout`` seconds.

    Oracle errors, timeouts and malformed results all yield an L2
    classification instead of an exception. The result is always marked
    non-deterministic.

    Args:
        tool_name: Name of the tool being invoked
        args: Tool arguments
        oracle: Async callable returning a Classification
        timeout: Upper bound for the whole oracle call in seconds

    Returns:
        Classification: The oracle's verdict or the L2 fallback
    """
    try:
        async with AsyncTimer(f"judgment classification ({tool_name})", logger):
            result = await asyncio.wait_for(oracle(tool_name, args), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Judgment classification timed out", tool_name=tool_name, timeout_s=timeout)
        return fallback_classification()
    except Exception as e:
        logger.warning(
            "Judgment classification failed",
            tool_name=tool_name,
            error=f"{type(e).__name__}: {e}",
        )
        return fallback_classification()

    if not isinstance(result, Classification):
        logger.warning(
            "Judgment oracle returned malformed result",
            tool_name=tool_name,
            result_type=type(result).__name__,
        )
        return fallback_classification()

    if result.deterministic:
        result = result.model_copy(update={"deterministic": False})

    logger.debug(
        "Judgment classification complete",
        tool_name=tool_name,
        level=result.level.value,
        reason=result.reason,
    )
    return result


class RiskClassifier(ABC):
    """Strategy that maps a tool call to a Classification.

    A strategy may decline by returning None, in which case the next strategy
    of a LayeredClassifier gets its turn.
    """

    @abstractmethod
    async def classify(self, tool_name: str, args: dict[str, Any]) -> Classification | None:
        """Classify a tool call, or return None to defer."""
        pass

    async def close(self) -> None:
        """Release resources held by the strategy."""
        pass

    async def __aenter__(self) -> "RiskClassifier":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class DeterministicClassifier(RiskClassifier):
    """Rule-based strategy; see ``tollgate.approval.rules``."""

    async def classify(self, tool_name: str, args: dict[str, Any]) -> Classification | None:
        return classify_deterministic(tool_name, args)


class JudgmentClassifier(RiskClassifier):
    """Oracle-backed strategy. Total: never returns None."""

    def __init__(
        self,
        oracle: JudgmentOracle | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
    ):
        """Initialize the judgment classifier.

        Args:
            oracle: Judgment oracle (defaults to an Ollama-backed one)
            timeout: Bound for one classification (defaults to settings)
            settings: Settings instance (uses global if not provided)
        """
        self.settings = settings or get_settings()
        self._owns_oracle = oracle is None
        self.oracle = oracle or OllamaRiskOracle(settings=self.settings)
        self.timeout = timeout or self.settings.classifier_timeout

    async def classify(self, tool_name: str, args: dict[str, Any]) -> Classification:
        return await classify_with_judgment(tool_name, args, self.oracle, self.timeout)

    async def close(self) -> None:
        """Close the oracle if this classifier created it."""
        if self._owns_oracle:
            await self.oracle.close()


class LayeredClassifier(RiskClassifier):
    """Tries each strategy in order; the first verdict wins.

    If every strategy defers, the fail-safe L2 verdict is returned, so
    ``classify`` never yields None.
    """

    def __init__(self, strategies: list[RiskClassifier]):
        if not strategies:
            raise ValueError("LayeredClassifier needs at least one strategy")
        self.strategies = list(strategies)

    @classmethod
    def default(
        cls,
        oracle: JudgmentOracle | None = None,
        settings: Settings | None = None,
    ) -> "LayeredClassifier":
        """Rules first, then the judgment oracle."""
        return cls(
            [
                DeterministicClassifier(),
                JudgmentClassifier(oracle=oracle, settings=settings),
            ]
        )

    async def classify(self, tool_name: str, args: dict[str, Any]) -> Classification:
        for strategy in self.strategies:
            result = await strategy.classify(tool_name, args)
            if result is not None:
                logger.info(
                    "Classified tool call",
                    tool_name=tool_name,
                    level=result.level.value,
                    reason=result.reason,
                    deterministic=result.deterministic,
                )
                return result

        logger.warning("No strategy classified tool call", tool_name=tool_name)
        return fallback_classification()

    async def close(self) -> None:
        for strategy in self.strategies:
            await strategy.close()


async def classify_risk(
    tool_name: str,
    args: dict[str, Any],
    classifier: RiskClassifier | None = None,
) -> Classification:
    """Classify a tool call: rules first, judgment otherwise.

    Results are never cached; identical arguments may legitimately carry a
    different risk the next time.

    Args:
        tool_name: Name of the tool being invoked
        args: Tool arguments
        classifier: Strategy to use. Without one a LayeredClassifier.default()
            is built for this call and closed afterwards.

    Returns:
        Classification: The verdict
    """
    if classifier is None:
        async with LayeredClassifier.default() as layered:
            result = await layered.classify(tool_name, args)
    else:
        result = await classifier.classify(tool_name, args)
    return result if result is not None else fallback_classification()
