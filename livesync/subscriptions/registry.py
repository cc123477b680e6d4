"""Registry that tracks subscriptions and owns their shared collaborators."""

import asyncio
from typing import Any, Callable, Iterable, Mapping

import structlog

from ..channels.client import ChangeChannel, probe_channel
from ..config import SyncSettings
from ..errors import ChannelOpenError
from ..events.models import ChangeCallback, EventFilter
from ..metrics import ACTIVE_SUBSCRIPTIONS
from ..polling.cursor import CursorDiscovery, SchemaIntrospection
from ..polling.engine import ResourceQuery
from .subscription import Subscription

logger = structlog.get_logger(__name__)


class SubscriptionRegistry:
    """Main entry point: creates, tracks and tears down subscriptions.

    A registry is constructed by the composing application and passed
    around explicitly; independent registries share nothing.
    """

    def __init__(
        self,
        channel: ChangeChannel,
        query: ResourceQuery,
        introspection: SchemaIntrospection,
        settings: SyncSettings | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            channel: Push transport for live channels
            query: Resource query service for polling
            introspection: Schema metadata service for cursor discovery
            settings: Tuning; defaults are read from the environment
        """
        self.channel = channel
        self.query = query
        self.settings = settings or SyncSettings()
        self.discovery = CursorDiscovery(
            introspection, identifier_field=self.settings.identifier_field
        )
        self._subscriptions: list[Subscription] = []

        logger.info(
            "Initialized SubscriptionRegistry",
            poll_interval=self.settings.poll_interval,
            debounce_window=self.settings.debounce_window,
        )

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscriptions(self, resource: str | None = None) -> list[Subscription]:
        """List tracked subscriptions, optionally for one resource."""
        return [
            sub for sub in self._subscriptions if resource is None or sub.resource == resource
        ]

    def subscribe(
        self,
        resource: str,
        event_filter: EventFilter | str,
        callback: ChangeCallback,
        enable_fallback: bool = True,
    ) -> Subscription | None:
        """Start following changes of a resource.

        Must be called from a running event loop.

        With ``enable_fallback=False`` a failed first establishment is final:
        no backoff retries are scheduled and nothing polls, so the caller is
        responsible for subscribing again later.

        Args:
            resource: Resource name
            event_filter: INSERT, UPDATE, DELETE or ANY ("*")
            callback: Called with each ChangeEvent
            enable_fallback: Poll when the live channel is unavailable

        Returns:
            The subscription handle, or None if establishment failed and
            fallback is disabled
        """
        if not resource:
            raise ValueError("resource must be a non-empty string")
        if not callable(callback):
            raise TypeError("callback must be callable")
        event_filter = EventFilter.parse(event_filter)

        subscription = Subscription(
            resource=resource,
            event_filter=event_filter,
            callback=callback,
            channel=self.channel,
            query=self.query,
            discovery=self.discovery,
            settings=self.settings,
            enable_fallback=enable_fallback,
        )

        try:
            subscription.start()
        except ChannelOpenError as e:
            logger.warning(
                "Subscription not created, channel unavailable and fallback disabled",
                resource=resource,
                error=str(e),
            )
            return None

        self._subscriptions.append(subscription)
        ACTIVE_SUBSCRIPTIONS.inc()
        logger.info(
            "Subscribed to resource",
            resource=resource,
            event_filter=event_filter.value,
            total_subscriptions=len(self._subscriptions),
        )
        return subscription

    def unsubscribe(self, handle: Subscription | None) -> None:
        """Tear down a subscription; unknown or repeated handles are ignored."""
        if handle is None:
            return

        try:
            handle.teardown()
        except Exception as e:
            logger.error("Error tearing down subscription", resource=handle.resource, error=str(e))

        if handle in self._subscriptions:
            self._subscriptions.remove(handle)
            ACTIVE_SUBSCRIPTIONS.dec()
            logger.info(
                "Unsubscribed from resource",
                resource=handle.resource,
                remaining_subscriptions=len(self._subscriptions),
            )

    def cleanup_all(self) -> int:
        """Tear down every tracked subscription; never raises.

        Returns:
            Number of subscriptions removed
        """
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                subscription.teardown()
            except Exception as e:
                logger.error(
                    "Error cleaning up subscription",
                    resource=subscription.resource,
                    error=str(e),
                )

        ACTIVE_SUBSCRIPTIONS.dec(len(subscriptions))
        logger.info("Cleaned up all subscriptions", count=len(subscriptions))
        return len(subscriptions)

    def subscribe_batch(
        self,
        bindings: Mapping[str, str],
        callbacks: Mapping[str, ChangeCallback],
        event_filter: EventFilter | str = EventFilter.ANY,
    ) -> Callable[[], None]:
        """Subscribe a set of named callbacks to a fixed set of resources.

        Args:
            bindings: Callback name -> resource name
            callbacks: Callback name -> callback; names may be omitted
            event_filter: Filter applied to every subscription

        Returns:
            One function tearing down every subscription created here

        Raises:
            ValueError: For unknown callback names or an invalid binding;
                subscriptions already created by this call are torn down
        """
        unknown = set(callbacks) - set(bindings)
        if unknown:
            raise ValueError(f"Unknown callback names: {sorted(unknown)}")

        created: list[Subscription] = []

        def teardown() -> None:
            for subscription in created:
                self.unsubscribe(subscription)
            created.clear()

        try:
            for name, resource in bindings.items():
                callback = callbacks.get(name)
                if callback is None:
                    continue
                subscription = self.subscribe(resource, event_filter, callback)
                if subscription is not None:
                    created.append(subscription)
        except Exception:
            logger.warning("Batch subscribe failed, tearing down partial batch", created=len(created))
            teardown()
            raise

        return teardown

    def live_status(self, resources: Iterable[str] | None = None) -> dict[str, bool]:
        """Report whether each resource currently has a live subscription."""
        if resources is None:
            resources = self.settings.diagnostic_resources or sorted(
                {sub.resource for sub in self._subscriptions}
            )
        return {
            resource: any(sub.is_live for sub in self.subscriptions(resource))
            for resource in resources
        }

    async def probe_live_support(
        self, resources: Iterable[str] | None = None
    ) -> dict[str, bool]:
        """Actively check which resources accept a live channel right now."""
        if resources is None:
            resources = self.settings.diagnostic_resources
        resources = list(resources)
        results = await asyncio.gather(
            *(
                probe_channel(self.channel, resource, timeout=self.settings.probe_timeout)
                for resource in resources
            )
        )
        return dict(zip(resources, results))

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics.

        Returns:
            Dictionary with registry statistics
        """
        by_state: dict[str, int] = {}
        for sub in self._subscriptions:
            by_state[sub.state.value] = by_state.get(sub.state.value, 0) + 1

        return {
            "active_subscriptions": len(self._subscriptions),
            "by_state": by_state,
            "live_status": self.live_status(),
            "subscriptions": [sub.get_stats() for sub in self._subscriptions],
            "cursor_discovery": self.discovery.get_stats(),
        }
