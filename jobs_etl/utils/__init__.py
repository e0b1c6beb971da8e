"""Utility functions for the pipeline."""

from jobs_etl.utils.log_config import configure_logging
from jobs_etl.utils.retry import retry_with_callback, RetryConfig

__all__ = ["configure_logging", "retry_with_callback", "RetryConfig"]
