"""Resilient change-notification client with live delivery and polling fallback."""

__version__ = "0.1.0"

from .channels import BackoffPolicy, ChangeChannel, ChannelStatus, StatusDebouncer
from .config import SyncSettings
from .errors import (
    ChannelOpenError,
    CursorDiscoveryError,
    InvalidTransitionError,
    LiveSyncError,
)
from .events import ChangeEvent, EventFilter, EventType
from .polling import NO_CURSOR, CursorDiscovery, CursorField, CursorKind, PollEngine
from .subscriptions import Subscription, SubscriptionRegistry, SubscriptionState

__all__ = [
    "BackoffPolicy",
    "ChangeChannel",
    "ChangeEvent",
    "ChannelOpenError",
    "ChannelStatus",
    "CursorDiscovery",
    "CursorDiscoveryError",
    "CursorField",
    "CursorKind",
    "EventFilter",
    "EventType",
    "InvalidTransitionError",
    "LiveSyncError",
    "NO_CURSOR",
    "PollEngine",
    "StatusDebouncer",
    "Subscription",
    "SubscriptionRegistry",
    "SubscriptionState",
    "SyncSettings",
    "__version__",
]
