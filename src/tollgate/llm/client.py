"""Async client for the Ollama chat API.

Used by the judgment oracle to ask a local model for a risk verdict when the
deterministic rules have nothing to say.
"""

from typing import AsyncIterator, Any
from contextlib import asynccontextmanager

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from tollgate.config import Settings, get_settings
from tollgate.llm.models import ChatMessage, ChatRequest, ChatResponse
from tollgate.logging import get_logger, AsyncTimer

logger = get_logger("tollgate.llm.client")


# =============================================================================
# Exceptions
# =============================================================================


class OllamaError(Exception):
    """Base exception for Ollama client errors."""

    pass


class OllamaConnectionError(OllamaError):
    """Raised when connection to Ollama fails or times out."""

    pass


class OllamaModelNotFoundError(OllamaError):
    """Raised when the requested model is not available."""

    pass


class OllamaAPIError(OllamaError):
    """Raised when the Ollama API returns an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


# =============================================================================
# Ollama Client
# =============================================================================


class OllamaClient:
    """Async client for the Ollama chat endpoint.

    Attributes:
        base_url: Base URL of the Ollama server
        model: Default model name to use
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the Ollama client.

        Args:
            base_url: Ollama server URL (defaults to settings)
            model: Default model name (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            settings: Settings instance (uses global if not provided)
            transport: Optional httpx transport, mainly for tests
        """
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.ollama_base_url).rstrip("/")
        self.model = model or self.settings.ollama_model
        self.timeout = timeout or self.settings.ollama_timeout

        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @asynccontextmanager
    async def _get_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Get or create the shared HTTP client, translating httpx errors.

        Yields:
            httpx.AsyncClient: The HTTP client instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                transport=self._transport,
            )

        try:
            yield self._client
        except httpx.ConnectError as e:
            raise OllamaConnectionError(
                f"Failed to connect to Ollama at {self.base_url}: {e}"
            ) from e
        except httpx.TimeoutException as e:
            raise OllamaConnectionError(
                f"Request to Ollama timed out after {self.timeout}s: {e}"
            ) from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise OllamaModelNotFoundError(
                    f"Model '{self.model}' not found. "
                    f"Run 'ollama pull {self.model}' to download it."
                ) from e
            raise OllamaAPIError(
                f"Ollama API error: {e.response.text}",
                status_code=e.response.status_code,
            ) from e

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "OllamaClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @retry(
        retry=retry_if_exception_type(OllamaConnectionError),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        json_format: bool = False,
        **options: Any,
    ) -> ChatResponse:
        """Send a non-streaming chat completion request.

        Args:
            messages: List of chat messages
            model: Model to use (defaults to client default)
            temperature: Sampling temperature
            json_format: Constrain the answer to JSON
            **options: Additional model options

        Returns:
            ChatResponse: The model's response

        Raises:
            OllamaConnectionError: If connection fails
            OllamaModelNotFoundError: If model not found
            OllamaAPIError: If the API returns an error
        """
        model = model or self.model

        model_options = options.copy()
        if temperature is not None:
            model_options["temperature"] = temperature

        request = ChatRequest(
            model=model,
            messages=messages,
            stream=False,
            format="json" if json_format else None,
            options=model_options,
        )

        logger.debug("chat() called", model=model, message_count=len(messages))

        async with AsyncTimer(f"LLM chat request ({model})", logger) as timer:
            async with self._get_client() as client:
                response = await client.post(
                    f"{self.base_url}/api/chat",
                    json=request.model_dump_ollama(),
                )
                response.raise_for_status()
                chat_response = ChatResponse(**response.json())

        logger.debug(
            "chat() complete",
            elapsed_s=f"{timer.elapsed:.3f}",
            response_chars=len(chat_response.message.content),
            tokens_per_second=chat_response.tokens_per_second,
        )

        return chat_response
