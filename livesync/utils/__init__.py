"""Utility functions and helpers."""

from .logging import setup_logging
from .health import start_health_server, stop_health_server, get_health_server

__all__ = ["setup_logging", "start_health_server", "stop_health_server", "get_health_server"]
