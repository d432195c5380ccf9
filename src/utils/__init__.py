"""Shared utilities for configuration, logging and retries."""

from src.utils.logging_config import configure_logging, get_logger
from src.utils.retry import exponential_backoff_retry

__all__ = ["configure_logging", "exponential_backoff_retry", "get_logger"]
