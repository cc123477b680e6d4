"""Live change channel: establishment, status debouncing and backoff."""

from .backoff import BackoffPolicy
from .client import ChangeChannel, ChannelListener, LiveChannelClient, probe_channel
from .status import ChannelStatus, StatusDebouncer

__all__ = [
    "BackoffPolicy",
    "ChangeChannel",
    "ChannelListener",
    "ChannelStatus",
    "LiveChannelClient",
    "StatusDebouncer",
    "probe_channel",
]
