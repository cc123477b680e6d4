"""Cursor-based polling fallback for degraded subscriptions."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import structlog

from ..errors import CursorDiscoveryError
from ..events.dispatch import dispatch_event
from ..events.models import ChangeCallback, ChangeEvent, EventFilter
from ..metrics import POLL_DURATION, POLLS_TOTAL
from .cursor import CursorDiscovery, CursorField
from .state import PollState

logger = structlog.get_logger(__name__)


class ResourceQuery(Protocol):
    """Query service returning a page of records of a resource."""

    async def query(
        self,
        resource: str,
        *,
        cursor_field: Optional[str] = None,
        cursor_value: Any = None,
        order: str = "desc",
        limit: int = 50,
    ) -> List[Dict[str, Any]]: ...


class PollEngine:
    """Periodically queries a resource and emits synthesized UPDATE events."""

    def __init__(
        self,
        resource: str,
        event_filter: EventFilter,
        callback: ChangeCallback,
        query: ResourceQuery,
        discovery: CursorDiscovery,
        interval: float = 1200.0,
        batch_size: int = 50,
        poll_on_start: bool = True,
        resume_from: Any = None,
        error_log_every: int = 5,
    ) -> None:
        """Initialize the poll engine.

        Args:
            resource: Resource to poll
            event_filter: Subscription filter; every filter but DELETE
                receives polled records as synthesized UPDATE events
            callback: Consumer callback
            query: Resource query service
            discovery: Shared cursor discovery
            interval: Seconds between ticks
            batch_size: Maximum records fetched per tick
            poll_on_start: Run one tick immediately when started
            resume_from: Cursor value to continue from
            error_log_every: Log consecutive query failures at error level
                once per this many ticks
        """
        self.resource = resource
        self.event_filter = event_filter
        self.callback = callback
        self.query = query
        self.discovery = discovery
        self.interval = interval
        self.batch_size = batch_size
        self.poll_on_start = poll_on_start
        self.error_log_every = max(1, error_log_every)

        self.state = PollState(last_cursor_value=resume_from)
        self._ticker: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def in_flight(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self._closed:
            logger.warning("Poll engine already cancelled", resource=self.resource)
            return
        if self.running:
            return

        self._ticker = asyncio.create_task(self._run())
        logger.info(
            "Started polling fallback",
            resource=self.resource,
            interval=self.interval,
            resume_from=self.state.last_cursor_value,
        )

    def stop(self) -> None:
        """Stop scheduling ticks; a tick already in flight completes."""
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
            logger.info("Stopped polling fallback", resource=self.resource)

    def cancel(self) -> None:
        """Stop ticking, abort any in-flight tick and suppress callbacks."""
        self._closed = True
        self.stop()
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    async def _run(self) -> None:
        if self.poll_on_start:
            self._schedule_tick()
        while True:
            await asyncio.sleep(self.interval)
            self._schedule_tick()

    def _schedule_tick(self) -> None:
        if self.in_flight:
            self.state.skipped_ticks += 1
            POLLS_TOTAL.labels(resource=self.resource, status="skipped").inc()
            logger.debug("Previous poll still running, skipping tick", resource=self.resource)
            return
        self._tick_task = asyncio.create_task(self.tick())

    async def tick(self) -> int:
        """Run one poll cycle.

        Returns:
            Number of events handed to the callback
        """
        if self._closed:
            return 0

        state = self.state
        state.ticks += 1

        if state.cursor_field is None:
            try:
                state.cursor_field = await self.discovery.resolve(self.resource)
            except CursorDiscoveryError:
                POLLS_TOTAL.labels(resource=self.resource, status="discovery_failed").inc()
                return 0

        cursor = state.cursor_field
        ordered = state.uses_cursor
        cursor_name = cursor.name if isinstance(cursor, CursorField) else None

        with POLL_DURATION.labels(resource=self.resource).time():
            try:
                records = await self.query.query(
                    self.resource,
                    cursor_field=cursor_name,
                    cursor_value=state.last_cursor_value if ordered else None,
                    order="desc",
                    limit=self.batch_size,
                )
            except Exception as e:
                self._record_failure(e)
                return 0

        state.consecutive_errors = 0
        state.last_polled = datetime.now(timezone.utc)
        POLLS_TOTAL.labels(resource=self.resource, status="success").inc()

        if self._closed:
            return 0

        if ordered:
            unstamped = sum(1 for r in records if r.get(cursor_name) is None)
            if unstamped:
                logger.debug(
                    "Skipping records without a cursor value",
                    resource=self.resource,
                    cursor_field=cursor_name,
                    count=unstamped,
                )
            records = [r for r in records if state.is_newer(r.get(cursor_name))]
        else:
            records = state.changed_records(records, self.discovery.identifier_field)

        emitted = 0
        if records and self.event_filter.accepts_polled:
            for record in records:
                if self._closed:
                    break
                dispatch_event(self.callback, ChangeEvent.synthesize(self.resource, record), "poll")
                emitted += 1

        if ordered and records:
            state.advance(records[0].get(cursor_name))

        logger.debug(
            "Poll tick completed",
            resource=self.resource,
            fetched=len(records),
            emitted=emitted,
            cursor=state.last_cursor_value,
        )
        return emitted

    def _record_failure(self, error: Exception) -> None:
        state = self.state
        state.consecutive_errors += 1
        POLLS_TOTAL.labels(resource=self.resource, status="error").inc()

        log = logger.error if (state.consecutive_errors - 1) % self.error_log_every == 0 else logger.warning
        log(
            "Poll query failed",
            resource=self.resource,
            consecutive_errors=state.consecutive_errors,
            cursor=state.last_cursor_value,
            error=str(error),
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get poll engine statistics."""
        state = self.state
        return {
            "cursor_field": getattr(state.cursor_field, "name", None),
            "last_cursor_value": state.last_cursor_value,
            "ticks": state.ticks,
            "skipped_ticks": state.skipped_ticks,
            "consecutive_errors": state.consecutive_errors,
            "last_polled": state.last_polled.isoformat() if state.last_polled else None,
        }
