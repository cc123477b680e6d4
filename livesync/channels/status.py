"""Channel status values and status debouncing."""

import asyncio
from enum import Enum
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)


class ChannelStatus(Enum):
    """Connection status reported by a change channel."""

    CONNECTING = "CONNECTING"
    LIVE = "LIVE"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    CLOSED = "CLOSED"
    TIMED_OUT = "TIMED_OUT"

    @classmethod
    def parse(cls, value: "ChannelStatus | str") -> "ChannelStatus":
        """Parse a raw transport status string.

        Raises:
            ValueError: If the status is not recognized
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper()
        normalized = _STATUS_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown channel status: {value!r}") from None

    @property
    def is_live(self) -> bool:
        return self is ChannelStatus.LIVE

    @property
    def is_error(self) -> bool:
        """Error-class statuses all mean "not live"."""
        return self in (
            ChannelStatus.CHANNEL_ERROR,
            ChannelStatus.CLOSED,
            ChannelStatus.TIMED_OUT,
        )


_STATUS_ALIASES = {
    "SUBSCRIBED": "LIVE",
    "SUBSCRIBE_ERROR": "CHANNEL_ERROR",
    "SUBSCRIBED_ERROR": "CHANNEL_ERROR",
    "ERROR": "CHANNEL_ERROR",
    "JOINING": "CONNECTING",
    "TIMEOUT": "TIMED_OUT",
}


class StatusDebouncer:
    """Coalesces bursts of channel statuses into one settled status.

    Each submitted status replaces the pending timer. When ``window``
    seconds pass without another status, ``handler`` is called once with
    the most recent value.
    """

    def __init__(
        self,
        handler: Callable[[ChannelStatus], None],
        window: float = 0.5,
        name: str = "",
    ) -> None:
        """Initialize the debouncer.

        Args:
            handler: Called with the settled status
            window: Quiet period in seconds
            name: Label used in log lines
        """
        self.handler = handler
        self.window = window
        self.name = name
        self._latest: ChannelStatus | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def latest(self) -> ChannelStatus | None:
        return self._latest

    def submit(self, status: ChannelStatus) -> None:
        """Record a raw status and restart the quiet period."""
        self._latest = status
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.window, self._fire)

    def cancel(self) -> None:
        """Drop any pending settled call."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        status = self._latest
        if status is None:
            return
        logger.debug("Channel status settled", resource=self.name, status=status.value)
        try:
            self.handler(status)
        except Exception as e:
            logger.error(
                "Settled status handler failed",
                resource=self.name,
                status=status.value,
                error=str(e),
            )
