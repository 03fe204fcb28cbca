"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="coursefeed", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="coursefeed", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    # Completion policy
    completion_threshold_pct: float = Field(
        default=80.0, description="Required % for video, audio and text units"
    )
    image_threshold_pct: float = Field(
        default=100.0, description="Required % for image units"
    )

    # Progress store
    remote_flush_step_pct: int = Field(
        default=2, description="Watermark step that triggers a remote write"
    )
    local_cache_backend: Literal["file", "memory"] = Field(
        default="file", description="Local progress cache backend"
    )
    local_cache_dir: str = Field(
        default=".feedcache", description="Directory for the file-backed cache"
    )

    # Playback adapters
    playback_emit_step_pct: float = Field(
        default=2.0, description="Minimum reading advance before emitting"
    )
    playback_emit_interval_seconds: float = Field(
        default=2.0, description="Emit at least this often while advancing"
    )
    assignment_prompt_pct: float = Field(
        default=95.0, description="Video reading that triggers the assignment prompt"
    )
    image_dwell_seconds: float = Field(
        default=10.0, description="Minimum dwell time for a single image"
    )
    slide_settle_seconds: float = Field(
        default=0.3, description="Debounce before a carousel slide counts"
    )
    text_end_pct: float = Field(
        default=98.0, description="Scroll % that counts as end of text"
    )
    quiz_cap_pct: float = Field(
        default=99.0, description="Quiz progress cap before submission"
    )

    # Navigation gestures
    wheel_delta_threshold: float = Field(
        default=120.0, description="Accumulated wheel delta for one transition"
    )
    wheel_cooldown_seconds: float = Field(
        default=0.5, description="Lock after a wheel-driven transition"
    )
    wheel_idle_reset_seconds: float = Field(
        default=0.2, description="Idle time that resets the wheel accumulator"
    )

    # Engagement
    like_max_attempts: int = Field(
        default=5, description="Attempts for the like transaction"
    )
    like_retry_backoff_seconds: float = Field(
        default=0.05, description="Base backoff between like attempts"
    )
    comment_max_length: int = Field(
        default=2000, description="Maximum comment length"
    )
    comment_cache_ttl_seconds: int = Field(
        default=300, description="TTL of the cached comment thread"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
