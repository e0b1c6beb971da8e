"""Configuration for the jobs ETL service."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
        # MAX_RECORDS= in a .env or compose file means unset
        env_ignore_empty=True,
    )

    # Service settings
    service_name: str = "jobs-etl"
    service_port: int = Field(default=8020, alias="SERVICE_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Pipeline settings
    batch_size: int = Field(default=10, ge=1, alias="BATCH_SIZE")
    max_records: int | None = Field(
        default=None,
        alias="MAX_RECORDS",
        description="Overrides any caller-supplied max_records when set",
    )
    max_concurrency: int = Field(default=5, ge=1, alias="MAX_CONCURRENCY")

    # Retry settings (collaborators only, the orchestrator never retries)
    retry_attempts: int = Field(default=3, ge=0, alias="RETRY_ATTEMPTS")
    retry_delay: float = Field(default=1.0, alias="RETRY_DELAY")
    retry_backoff: float = 2.0

    # Job source
    jobs_source_url: str = Field(
        default="https://iworkfor.nsw.gov.au/jobs/all-keywords/all-agencies/all-organisations-entities/all-categories/all-locations/all-worktypes",
        alias="NSW_JOBS_URL",
    )
    user_agent: str = Field(default="Mozilla/5.0", alias="USER_AGENT")
    fetch_documents: bool = Field(default=True, alias="FETCH_DOCUMENTS")
    document_max_bytes: int = 10 * 1024 * 1024

    # OpenAI-compatible LLM and embedding service
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_model: str = Field(default="gpt-4-turbo-preview", alias="OPENAI_MODEL")
    embedding_model: str = Field(
        default="text-embedding-3-small",
        alias="OPENAI_EMBEDDING_MODEL",
    )
    ai_temperature: float = Field(default=0.0, alias="AI_TEMPERATURE")
    ai_max_tokens: int = Field(default=2000, alias="AI_MAX_TOKENS")
    ai_timeout: float = Field(default=30.0, alias="AI_TIMEOUT")
    embedding_max_chars: int = 32000

    # PostgreSQL (staging and live schemas)
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="jobs", alias="POSTGRES_DB")
    postgres_user: str = Field(default="postgres", alias="POSTGRES_USER")
    postgres_password: str = Field(default="postgres", alias="POSTGRES_PASSWORD")
    postgres_pool_min: int = 2
    postgres_pool_max: int = 10
    staging_schema: str = Field(default="staging", alias="STAGING_SCHEMA")
    live_schema: str = Field(default="public", alias="LIVE_SCHEMA")

    @property
    def postgres_dsn(self) -> str:
        """Get PostgreSQL connection DSN."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Record provenance
    institution_id: str = Field(default="", alias="INSTITUTION_ID")
    source_id: str = Field(default="nswgov", alias="SOURCE_ID")
    processor_version: str = Field(default="1.0.0", alias="PROCESSOR_VERSION")

    # Timeouts
    connect_timeout: float = 10.0
    read_timeout: float = 60.0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
