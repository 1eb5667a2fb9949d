"""Ollama client used by the judgment classifier."""

from tollgate.llm.client import (
    OllamaClient,
    OllamaError,
    OllamaConnectionError,
    OllamaModelNotFoundError,
    OllamaAPIError,
)
from tollgate.llm.models import ChatMessage, ChatRequest, ChatResponse

__all__ = [
    # Client
    "OllamaClient",
    "OllamaError",
    "OllamaConnectionError",
    "OllamaModelNotFoundError",
    "OllamaAPIError",
    # Models
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
]
