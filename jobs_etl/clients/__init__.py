"""Database and service clients for the pipeline."""

from jobs_etl.clients.openai_client import (
    LLMAuthenticationError,
    LLMClientError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMResponseError,
    OpenAIClient,
)
from jobs_etl.clients.postgres_client import PostgresClient

__all__ = [
    "OpenAIClient",
    "PostgresClient",
    "LLMClientError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMAuthenticationError",
    "LLMResponseError",
]
