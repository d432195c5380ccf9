"""Configuration models for the progress sync engine."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.progress import ConflictStrategy

MAX_BATCH_SIZE_LIMIT = 500


class SyncConfig(BaseModel):
    """Configuration for a sync orchestrator instance."""

    max_batch_size: int = Field(
        default=50,
        ge=1,
        le=MAX_BATCH_SIZE_LIMIT,
        description="Maximum number of records pushed per request",
    )
    fetch_retries: int = Field(
        default=0, ge=0, le=10, description="Retries for the remote fetch before giving up"
    )
    push_retries: int = Field(
        default=0, ge=0, le=10, description="Retries for each push chunk before it is failed"
    )
    retry_base_delay: float = Field(
        default=0.5, ge=0.0, description="Initial retry delay in seconds"
    )
    retry_max_delay: float = Field(default=30.0, ge=0.0, description="Maximum retry delay in seconds")
    fetch_timeout_seconds: float | None = Field(
        default=None, gt=0.0, description="Timeout for the remote fetch, None disables it"
    )
    raise_when_empty: bool = Field(
        default=False, description="Raise NoItemsToSyncError when neither side has changes"
    )
    default_strategy: ConflictStrategy = Field(
        default=ConflictStrategy.MOST_RECENT, description="Strategy used when the caller gives none"
    )
    checkpoint_future_skew_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="How far in the future a checkpoint may be before it is rejected",
    )


class CacheConfig(BaseModel):
    """Configuration for the caller-owned progress cache."""

    ttl_seconds: float = Field(default=120.0, gt=0.0, description="Entry lifetime in seconds")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the APP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    sync: SyncConfig = Field(default_factory=SyncConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
