"""Pydantic models for the parts of the Ollama chat API Tollgate uses.

Only non-streaming chat is needed: the judgment oracle sends one prompt and
reads one answer.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A message in a chat conversation."""

    role: Literal["system", "user", "assistant"] = Field(
        ...,
        description="Role of the message sender",
    )
    content: str = Field(default="", description="Text content of the message")

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)


class ChatRequest(BaseModel):
    """Request to the Ollama chat API."""

    model: str = Field(..., description="Model name to use")
    messages: list[ChatMessage] = Field(..., description="Conversation messages")
    stream: bool = Field(default=False, description="Enable streaming responses")
    format: Literal["json"] | None = Field(
        default=None,
        description="Ask Ollama to constrain the answer to JSON",
    )
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Model-specific options (temperature, etc.)",
    )

    def model_dump_ollama(self) -> dict[str, Any]:
        """Dump the request in Ollama API format.

        Returns:
            dict: Request formatted for Ollama API
        """
        result: dict[str, Any] = {
            "model": self.model,
            "messages": [msg.model_dump() for msg in self.messages],
            "stream": self.stream,
        }

        if self.format:
            result["format"] = self.format

        if self.options:
            result["options"] = self.options

        return result


class ChatResponse(BaseModel):
    """Response from the Ollama chat API."""

    model: str = Field(..., description="Model used for generation")
    message: ChatMessage = Field(..., description="Generated message")
    done: bool = Field(default=True, description="Whether generation is complete")
    created_at: datetime | None = Field(
        default=None,
        description="Timestamp of response creation",
    )

    # Present when done=True
    eval_count: int | None = None
    eval_duration: int | None = None

    @property
    def tokens_per_second(self) -> float | None:
        """Calculate tokens per second for generation."""
        if self.eval_count and self.eval_duration and self.eval_duration > 0:
            return (self.eval_count / self.eval_duration) * 1_000_000_000
        return None
