"""Change event types delivered to subscription callbacks."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional


class EventType(Enum):
    """Kind of mutation observed on a resource."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EventFilter(Enum):
    """Mutation kinds a subscription is interested in."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ANY = "*"

    @classmethod
    def parse(cls, value: "EventFilter | str") -> "EventFilter":
        """Accept an EventFilter, its value, or its name ("ANY" or "*")."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper()
        if normalized in ("*", "ANY"):
            return cls.ANY
        try:
            return cls[normalized]
        except KeyError:
            raise ValueError(f"Unknown event filter: {value!r}") from None

    def matches(self, event_type: EventType) -> bool:
        """Check whether an event of the given type passes this filter."""
        return self is EventFilter.ANY or self.value == event_type.value

    @property
    def accepts_polled(self) -> bool:
        """Polled rows cannot tell inserts from updates; only DELETE opts out."""
        return self is not EventFilter.DELETE


@dataclass(frozen=True)
class ChangeEvent:
    """A single change observed on a resource.

    Events built by the poll engine set ``synthesized``: they are always
    UPDATE with no ``before`` image, because a polled row cannot tell an
    insert from an update.
    """

    resource: str
    event_type: EventType
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    synthesized: bool = False
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def synthesize(cls, resource: str, record: Dict[str, Any]) -> "ChangeEvent":
        """Build the UPDATE-only event used for polled records."""
        return cls(
            resource=resource,
            event_type=EventType.UPDATE,
            before=None,
            after=record,
            synthesized=True,
        )

    @classmethod
    def from_payload(cls, resource: str, payload: Mapping[str, Any]) -> "ChangeEvent":
        """Normalize a raw transport payload into a ChangeEvent.

        Args:
            resource: Resource the channel is scoped to
            payload: Mapping carrying the event type and record images

        Returns:
            Normalized ChangeEvent

        Raises:
            ValueError: If the payload has no recognizable event type
        """
        raw_type = (
            payload.get("eventType")
            or payload.get("event_type")
            or payload.get("type")
        )
        if raw_type is None:
            raise ValueError(f"Change payload for '{resource}' has no event type")
        try:
            event_type = EventType(str(raw_type).upper())
        except ValueError:
            raise ValueError(f"Unknown event type in payload: {raw_type!r}") from None

        after = _first_present(payload, "new", "after", "record")
        before = _first_present(payload, "old", "before")

        return cls(
            resource=resource,
            event_type=event_type,
            before=before or None,
            after=after or None,
        )


def _first_present(payload: Mapping[str, Any], *keys: str) -> Optional[Dict[str, Any]]:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return dict(value)
    return None


ChangeCallback = Callable[[ChangeEvent], None]
