"""Configuration management with Pydantic models."""

from .settings import BackoffConfig, SyncSettings

__all__ = ["SyncSettings", "BackoffConfig"]
