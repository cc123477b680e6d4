"""Dispatch boundary between delivery paths and consumer callbacks."""

import structlog

from ..metrics import CALLBACK_ERRORS, EVENTS_DELIVERED
from .models import ChangeCallback, ChangeEvent

logger = structlog.get_logger(__name__)


def dispatch_event(callback: ChangeCallback, event: ChangeEvent, source: str) -> bool:
    """Hand an event to a consumer callback.

    Exceptions raised by the callback are logged and swallowed so that one
    failing callback never blocks the rest of a batch.

    Args:
        callback: Consumer callback
        event: Event to deliver
        source: Delivery path ("live" or "poll")

    Returns:
        True if the callback returned normally
    """
    EVENTS_DELIVERED.labels(resource=event.resource, source=source).inc()
    try:
        callback(event)
        return True
    except Exception as e:
        CALLBACK_ERRORS.labels(resource=event.resource).inc()
        logger.error(
            "Subscription callback raised",
            resource=event.resource,
            event_type=event.event_type.value,
            source=source,
            error=str(e),
        )
        return False
