"""A single resource subscription combining live delivery and polling fallback."""

import asyncio
from datetime import datetime, timezone
from typing import Any

import structlog

from ..channels.backoff import BackoffPolicy
from ..channels.client import ChangeChannel, LiveChannelClient
from ..channels.status import ChannelStatus, StatusDebouncer
from ..config import SyncSettings
from ..errors import ChannelOpenError
from ..events.dispatch import dispatch_event
from ..events.models import ChangeCallback, ChangeEvent, EventFilter
from ..metrics import ESTABLISH_RETRIES, MODE_TRANSITIONS
from ..polling.cursor import CursorDiscovery
from ..polling.engine import PollEngine, ResourceQuery
from .state import SubscriptionState, check_transition

logger = structlog.get_logger(__name__)


class Subscription:
    """Keeps one consumer callback fed with changes of one resource.

    The subscription owns its channel, its debounce, backoff and promotion
    timers and its poll engine. All of them are cancelled synchronously by
    ``teardown``.
    """

    def __init__(
        self,
        resource: str,
        event_filter: EventFilter,
        callback: ChangeCallback,
        channel: ChangeChannel,
        query: ResourceQuery,
        discovery: CursorDiscovery,
        settings: SyncSettings,
        enable_fallback: bool = True,
    ) -> None:
        """Initialize a subscription.

        Args:
            resource: Resource to follow
            event_filter: Mutation kinds the callback wants
            callback: Consumer callback
            channel: Push transport
            query: Resource query service used while polling
            discovery: Shared cursor discovery
            settings: Tuning for debounce, backoff and polling
            enable_fallback: Poll when the channel is unavailable
        """
        self.resource = resource
        self.event_filter = event_filter
        self.callback = callback
        self.query = query
        self.discovery = discovery
        self.settings = settings
        self.enable_fallback = enable_fallback

        self.state = SubscriptionState.ESTABLISHING
        self.is_live = False
        self.attempts = 0
        self.exhausted = False
        self.poll_engine: PollEngine | None = None
        self.created_at = datetime.now(timezone.utc)

        self.backoff: BackoffPolicy = settings.backoff.policy()
        self.live_client = LiveChannelClient(
            resource, event_filter, channel, self._on_live_event, self._on_raw_status
        )
        self.debouncer = StatusDebouncer(
            self._on_settled_status, window=settings.debounce_window, name=resource
        )
        self._retry_timer: asyncio.TimerHandle | None = None
        self._promotion_timer: asyncio.TimerHandle | None = None

    def __repr__(self) -> str:
        return f"<Subscription {self.resource} {self.event_filter.value} {self.state.value}>"

    @property
    def torn_down(self) -> bool:
        return self.state is SubscriptionState.TORN_DOWN

    @property
    def polling(self) -> bool:
        return self.poll_engine is not None and self.poll_engine.running

    @property
    def last_cursor_value(self) -> Any:
        return self.poll_engine.state.last_cursor_value if self.poll_engine else None

    def start(self) -> None:
        """Make the first establishment attempt.

        Raises:
            ChannelOpenError: If establishment fails and fallback is disabled;
                the subscription is torn down first
        """
        logger.info(
            "Starting subscription",
            resource=self.resource,
            event_filter=self.event_filter.value,
            fallback=self.enable_fallback,
        )
        try:
            self.live_client.open()
        except ChannelOpenError:
            if not self.enable_fallback:
                self.teardown()
                raise
            self._handle_establish_failure()

    def teardown(self) -> None:
        """Cancel every timer, stop polling and close the channel."""
        if self.torn_down:
            return

        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None
        self._cancel_promotion()
        self.debouncer.cancel()

        if self.poll_engine is not None:
            self.poll_engine.cancel()

        self.live_client.close()
        self.is_live = False
        self._transition(SubscriptionState.TORN_DOWN)

    def _transition(self, target: SubscriptionState) -> None:
        previous = self.state
        self.state = check_transition(previous, target)
        if previous is target:
            return
        MODE_TRANSITIONS.labels(resource=self.resource, state=target.value).inc()
        logger.info(
            "Subscription state changed",
            resource=self.resource,
            previous=previous.value,
            state=target.value,
        )

    def _handle_establish_failure(self) -> None:
        delay = self.backoff.delay(self.attempts)
        if delay is None:
            self.exhausted = True
            logger.warning(
                "Channel establishment retries exhausted, relying on polling",
                resource=self.resource,
                attempts=self.attempts,
            )
            self._transition(SubscriptionState.POLLING)
            self._engage_polling()
            self._schedule_promotion()
            return

        self.attempts += 1
        ESTABLISH_RETRIES.labels(resource=self.resource).inc()
        self._transition(SubscriptionState.ESTABLISHING)
        logger.info(
            "Retrying channel establishment",
            resource=self.resource,
            attempt=self.attempts,
            delay=delay,
        )
        self._retry_timer = asyncio.get_running_loop().call_later(delay, self._retry)

    def _retry(self) -> None:
        self._retry_timer = None
        if self.torn_down:
            return
        try:
            self.live_client.open()
        except ChannelOpenError:
            self._handle_establish_failure()

    def _schedule_promotion(self) -> None:
        interval = self.settings.promotion_interval
        if interval is None or self.torn_down:
            return
        self._promotion_timer = asyncio.get_running_loop().call_later(interval, self._promote)

    def _cancel_promotion(self) -> None:
        if self._promotion_timer is not None:
            self._promotion_timer.cancel()
            self._promotion_timer = None

    def _promote(self) -> None:
        self._promotion_timer = None
        if self.torn_down or self.live_client.is_open:
            return
        logger.info("Attempting to leave permanent polling", resource=self.resource)
        try:
            self.live_client.open()
        except ChannelOpenError:
            self._schedule_promotion()

    def _on_live_event(self, event: ChangeEvent) -> None:
        if self.torn_down:
            return
        dispatch_event(self.callback, event, "live")

    def _on_raw_status(self, status: ChannelStatus) -> None:
        if self.torn_down:
            return
        self.debouncer.submit(status)

    def _on_settled_status(self, status: ChannelStatus) -> None:
        if self.torn_down:
            return

        if status.is_live:
            self.is_live = True
            self._cancel_promotion()
            if self.state is not SubscriptionState.LIVE:
                self._transition(SubscriptionState.LIVE)
            self._disengage_polling()
        elif status.is_error:
            self.is_live = False
            if self.enable_fallback:
                if self.state is not SubscriptionState.POLLING:
                    self._transition(SubscriptionState.POLLING)
                self._engage_polling()
                if self.exhausted and self._promotion_timer is None:
                    # A promoted channel that settled in error is dropped so the
                    # next promotion reopens it.
                    self.live_client.close()
                    self._schedule_promotion()
            elif self.state is SubscriptionState.LIVE:
                self._transition(SubscriptionState.ESTABLISHING)

    def _engage_polling(self) -> None:
        if not self.enable_fallback or self.polling:
            return

        previous = self.poll_engine
        resume_from = previous.state.last_cursor_value if previous else None
        if previous is not None:
            previous.cancel()

        self.poll_engine = PollEngine(
            resource=self.resource,
            event_filter=self.event_filter,
            callback=self.callback,
            query=self.query,
            discovery=self.discovery,
            interval=self.settings.poll_interval,
            batch_size=self.settings.poll_batch_size,
            poll_on_start=self.settings.poll_on_start,
            resume_from=resume_from,
            error_log_every=self.settings.poll_error_log_every,
        )
        self.poll_engine.start()

    def _disengage_polling(self) -> None:
        # An in-flight tick is allowed to finish; no new tick is scheduled.
        if self.poll_engine is not None:
            self.poll_engine.stop()

    def get_stats(self) -> dict[str, Any]:
        """Get subscription statistics."""
        return {
            "resource": self.resource,
            "event_filter": self.event_filter.value,
            "state": self.state.value,
            "is_live": self.is_live,
            "attempts": self.attempts,
            "exhausted": self.exhausted,
            "polling": self.poll_engine.get_stats() if self.polling else None,
            "created_at": self.created_at.isoformat(),
        }
