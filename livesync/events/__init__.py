"""Change events and the callback dispatch boundary."""

from .dispatch import dispatch_event
from .models import ChangeCallback, ChangeEvent, EventFilter, EventType

__all__ = ["ChangeCallback", "ChangeEvent", "EventFilter", "EventType", "dispatch_event"]
