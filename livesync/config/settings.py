"""Configuration models using Pydantic."""

from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from ..channels.backoff import BackoffPolicy


class BackoffConfig(BaseModel):
    """Channel establishment retry schedule."""
    
    base: float = Field(
        default=1.0,
        gt=0,
        le=300,
        description="Delay in seconds before the first retry"
    )
    maximum: float = Field(
        default=30.0,
        gt=0,
        le=3600,
        description="Upper bound for any single retry delay in seconds"
    )
    max_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries before a subscription stays on polling"
    )

    def policy(self) -> BackoffPolicy:
        """Build the backoff policy described by this config."""
        return BackoffPolicy(
            base=self.base,
            maximum=max(self.maximum, self.base),
            max_attempts=self.max_attempts,
        )


class SyncSettings(BaseSettings):
    """Global livesync configuration settings."""
    
    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log format (json, plain)"
    )
    
    # Polling fallback configuration
    poll_interval: float = Field(
        default=1200.0,
        gt=0,
        le=86400,
        description="Seconds between poll ticks of a degraded subscription"
    )
    poll_batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum records fetched per poll tick"
    )
    poll_on_start: bool = Field(
        default=True,
        description="Run one poll tick as soon as a subscription degrades"
    )
    poll_error_log_every: int = Field(
        default=5,
        ge=1,
        description="Log consecutive poll failures at error level once per N ticks"
    )
    identifier_field: str = Field(
        default="id",
        description="Field used as the unordered cursor of last resort"
    )
    
    # Channel configuration
    debounce_window: float = Field(
        default=0.5,
        gt=0,
        le=60,
        description="Quiet period in seconds before a channel status settles"
    )
    backoff: BackoffConfig = Field(
        default_factory=BackoffConfig,
        description="Channel establishment retry schedule"
    )
    promotion_interval: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds between attempts to leave permanent polling (None disables)"
    )
    
    # Diagnostics
    diagnostic_resources: List[str] = Field(
        default_factory=list,
        description="Resources reported by the live status diagnostic"
    )
    probe_timeout: float = Field(
        default=1.0,
        gt=0,
        le=30,
        description="Seconds a live support probe waits for the channel"
    )
    
    # Metrics configuration
    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics"
    )
    metrics_port: int = Field(
        default=8080,
        ge=1024,
        le=65535,
        description="Port for Prometheus metrics server"
    )
    
    # Health check configuration
    health_enabled: bool = Field(
        default=True,
        description="Serve health and stats endpoints"
    )
    health_port: int = Field(
        default=8081,
        ge=1024,
        le=65535,
        description="Port for health check endpoint"
    )
    
    class Config:
        """Pydantic configuration."""
        env_prefix = "LIVESYNC_"
        env_nested_delimiter = "__"
        case_sensitive = False
        validate_assignment = True
