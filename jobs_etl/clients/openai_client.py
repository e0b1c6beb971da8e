"""OpenAI-compatible LLM and embedding client.

Talks to any service exposing the OpenAI REST surface:
- ``POST /chat/completions`` for JSON analysis prompts
- ``POST /embeddings`` for text embeddings
"""

import json
from typing import Any

import httpx
import structlog

from jobs_etl.config import get_settings
from jobs_etl.utils.retry import RetryConfig, retry_with_callback

logger = structlog.get_logger()


class LLMClientError(Exception):
    """Base exception for LLM client errors."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class LLMConnectionError(LLMClientError):
    """Error connecting to the LLM service."""

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


class LLMRateLimitError(LLMClientError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, retryable=True)
        self.retry_after = retry_after


class LLMAuthenticationError(LLMClientError):
    """Authentication failed."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class LLMResponseError(LLMClientError):
    """The service answered with something we cannot use."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class RetryableLLMError(LLMClientError):
    """Marker raised internally so retries only cover transient failures."""

    def __init__(self, cause: LLMClientError):
        super().__init__(str(cause), retryable=True)
        self.cause = cause
        self.retry_after = getattr(cause, "retry_after", None)


class OpenAIClient:
    """Client for OpenAI-compatible chat and embedding endpoints."""

    def __init__(self, settings=None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or get_settings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._retry = RetryConfig(
            max_retries=self.settings.retry_attempts,
            base_delay=self.settings.retry_delay,
            backoff_factor=self.settings.retry_backoff,
            retryable_exceptions=(RetryableLLMError,),
        )

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is not None and not self._client.is_closed:
            return

        if not self.settings.openai_api_key:
            raise LLMAuthenticationError("OPENAI_API_KEY is required")

        self._client = httpx.AsyncClient(
            base_url=self.settings.openai_base_url,
            headers={
                "Authorization": f"Bearer {self.settings.openai_api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(
                connect=self.settings.connect_timeout,
                read=self.settings.ai_timeout,
                write=30.0,
                pool=30.0,
            ),
            transport=self._transport,
        )
        logger.info("openai_client_connected", base_url=self.settings.openai_base_url)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("openai_client_disconnected")

    def _handle_error_response(self, response: httpx.Response) -> None:
        """Map an error response to the LLMClientError hierarchy."""
        status_code = response.status_code

        try:
            error_message = response.json().get("error", {}).get("message", response.text)
        except (ValueError, AttributeError):
            error_message = response.text

        if status_code == 401:
            raise LLMAuthenticationError(f"Authentication failed: {error_message}")
        if status_code == 429:
            try:
                retry_after = float(response.headers.get("Retry-After", ""))
            except ValueError:
                retry_after = None
            raise LLMRateLimitError(
                f"Rate limit exceeded: {error_message}",
                retry_after=retry_after,
            )
        raise LLMClientError(
            f"API error ({status_code}): {error_message}",
            retryable=status_code >= 500,
        )

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST with retries on transient failures only."""

        async def _do_post() -> dict[str, Any]:
            if self._client is None:
                await self.connect()

            try:
                response = await self._client.post(path, json=body)
                if response.status_code != 200:
                    self._handle_error_response(response)
                return response.json()
            except httpx.TimeoutException as e:
                raise RetryableLLMError(LLMClientError(f"Request timed out: {e}", retryable=True))
            except httpx.ConnectError as e:
                raise RetryableLLMError(LLMConnectionError(f"Cannot connect: {e}"))
            except LLMClientError as e:
                if e.retryable:
                    raise RetryableLLMError(e)
                raise

        try:
            return await retry_with_callback(_do_post, config=self._retry)
        except RetryableLLMError as e:
            raise e.cause

    async def complete_json(self, system_prompt: str, content: str) -> dict[str, Any]:
        """Run a chat completion that must answer with a JSON object.

        Args:
            system_prompt: Instructions describing the expected JSON shape
            content: User content to analyze

        Returns:
            Parsed JSON object

        Raises:
            LLMResponseError: the reply is missing or not a JSON object
        """
        data = await self._post(
            "/chat/completions",
            {
                "model": self.settings.openai_model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": content},
                ],
                "temperature": self.settings.ai_temperature,
                "max_tokens": self.settings.ai_max_tokens,
                "response_format": {"type": "json_object"},
            },
        )

        try:
            message = data["choices"][0]["message"]["content"]
            parsed = json.loads(message)
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
            raise LLMResponseError(f"Invalid completion response: {e}")

        if not isinstance(parsed, dict):
            raise LLMResponseError("Completion response is not a JSON object")
        return parsed

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Get embeddings for multiple texts, in input order.

        Args:
            texts: Texts to embed (truncated to ``embedding_max_chars``)

        Returns:
            List of embedding vectors
        """
        if not texts:
            return []

        limit = self.settings.embedding_max_chars
        data = await self._post(
            "/embeddings",
            {
                "model": self.settings.embedding_model,
                "input": [text[:limit] for text in texts],
            },
        )

        items = sorted(data.get("data", []), key=lambda item: item.get("index", 0))
        embeddings = [item.get("embedding", []) for item in items]
        if len(embeddings) != len(texts):
            raise LLMResponseError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}"
            )

        logger.debug("embeddings_generated", count=len(embeddings))
        return embeddings
