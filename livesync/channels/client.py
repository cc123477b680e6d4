"""Live change channel client."""

import asyncio
from typing import Any, Callable, Mapping, Protocol

import structlog

from ..errors import ChannelOpenError
from ..events.models import ChangeEvent, EventFilter
from .status import ChannelStatus

logger = structlog.get_logger(__name__)


class ChannelListener(Protocol):
    """Receiver for messages pushed by a change channel."""

    def on_event(self, payload: ChangeEvent | Mapping[str, Any]) -> None: ...

    def on_status(self, status: ChannelStatus | str) -> None: ...


class ChangeChannel(Protocol):
    """Push transport delivering change events for one resource.

    ``open`` may raise synchronously when the channel cannot be established.
    Afterwards messages are pushed to the listener from the event loop.
    """

    def open(self, resource: str, event_filter: EventFilter, listener: ChannelListener) -> Any: ...

    def close(self, handle: Any) -> None: ...


class LiveChannelClient:
    """Owns one push channel scoped to a resource and event filter."""

    def __init__(
        self,
        resource: str,
        event_filter: EventFilter,
        channel: ChangeChannel,
        on_event: Callable[[ChangeEvent], None],
        on_status: Callable[[ChannelStatus], None],
    ) -> None:
        """Initialize the client.

        Args:
            resource: Resource the channel is scoped to
            event_filter: Mutation kinds to forward
            channel: Transport used to open and close the channel
            on_event: Receives each change event, in channel order
            on_status: Receives each raw status transition
        """
        self.resource = resource
        self.event_filter = event_filter
        self.channel = channel
        self._on_event = on_event
        self._on_status = on_status
        self._handle: Any = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        """Open the push channel.

        Raises:
            ChannelOpenError: If the transport fails synchronously
        """
        if self._open:
            return
        try:
            self._handle = self.channel.open(self.resource, self.event_filter, self)
        except Exception as e:
            logger.warning(
                "Change channel establishment failed",
                resource=self.resource,
                error=str(e),
            )
            raise ChannelOpenError(self.resource, e) from e

        self._open = True
        logger.info(
            "Opened change channel",
            resource=self.resource,
            event_filter=self.event_filter.value,
        )

    def close(self) -> None:
        """Close the channel; safe to call repeatedly."""
        if not self._open:
            return
        self._open = False
        handle, self._handle = self._handle, None
        try:
            self.channel.close(handle)
            logger.info("Closed change channel", resource=self.resource)
        except Exception as e:
            logger.warning(
                "Error closing change channel",
                resource=self.resource,
                error=str(e),
            )

    def on_event(self, payload: ChangeEvent | Mapping[str, Any]) -> None:
        """Listener entry point for pushed change events."""
        if not self._open:
            return
        try:
            event = (
                payload
                if isinstance(payload, ChangeEvent)
                else ChangeEvent.from_payload(self.resource, payload)
            )
        except ValueError as e:
            logger.warning("Dropping malformed change payload", resource=self.resource, error=str(e))
            return

        if not self.event_filter.matches(event.event_type):
            return

        logger.debug(
            "Received change event",
            resource=self.resource,
            event_type=event.event_type.value,
            record_id=(event.after or event.before or {}).get("id"),
        )
        self._on_event(event)

    def on_status(self, status: ChannelStatus | str) -> None:
        """Listener entry point for channel status transitions."""
        if not self._open:
            return
        try:
            parsed = ChannelStatus.parse(status)
        except ValueError as e:
            logger.warning("Ignoring unknown channel status", resource=self.resource, error=str(e))
            return

        logger.debug("Channel status", resource=self.resource, status=parsed.value)
        self._on_status(parsed)


async def probe_channel(
    channel: ChangeChannel,
    resource: str,
    timeout: float = 1.0,
) -> bool:
    """Check whether a resource currently accepts a live channel.

    Opens a throwaway channel, waits up to ``timeout`` seconds for a LIVE
    status and closes it again.

    Returns:
        True if the channel reported LIVE within the timeout
    """
    became_live = asyncio.Event()

    def _status(status: ChannelStatus) -> None:
        if status.is_live:
            became_live.set()

    client = LiveChannelClient(resource, EventFilter.ANY, channel, lambda event: None, _status)
    try:
        client.open()
    except ChannelOpenError:
        return False

    try:
        await asyncio.wait_for(became_live.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False
    finally:
        client.close()
