"""Service lifecycle: logging, metrics and health around a registry."""

import inspect
from typing import Any

from prometheus_client import start_http_server

from . import __version__
from .channels.client import ChangeChannel
from .config import SyncSettings
from .polling.cursor import SchemaIntrospection
from .polling.engine import ResourceQuery
from .subscriptions import SubscriptionRegistry
from .utils import setup_logging, start_health_server, stop_health_server

# The Prometheus exporter binds a process-wide port
_metrics_server_started = False


class LiveSyncService:
    """Owns one registry plus the metrics and health endpoints serving it.

    Usage::

        async with LiveSyncService(channel, gateway, gateway) as registry:
            registry.subscribe("widgets", "*", on_change)
    """

    def __init__(
        self,
        channel: ChangeChannel,
        query: ResourceQuery,
        introspection: SchemaIntrospection,
        settings: SyncSettings | None = None,
    ) -> None:
        self.channel = channel
        self.query = query
        self.introspection = introspection
        self.settings = settings or SyncSettings()
        self.registry: SubscriptionRegistry | None = None
        self.logger = setup_logging(self.settings.log_level, self.settings.log_format)

    async def start(self) -> SubscriptionRegistry:
        """Create the registry and start the metrics and health servers."""
        global _metrics_server_started

        if self.registry is not None:
            self.logger.warning("LiveSync service already started")
            return self.registry

        self.logger.info("Starting LiveSync service", version=__version__)

        self.registry = SubscriptionRegistry(
            self.channel, self.query, self.introspection, self.settings
        )

        if self.settings.metrics_enabled and not _metrics_server_started:
            start_http_server(self.settings.metrics_port)
            _metrics_server_started = True
            self.logger.info("Started Prometheus metrics server", port=self.settings.metrics_port)

        if self.settings.health_enabled:
            await start_health_server(self.settings.health_port, self.registry)
            self.logger.info("Started health check server", port=self.settings.health_port)

        return self.registry

    async def stop(self) -> None:
        """Tear down all subscriptions and stop the servers."""
        self.logger.info("Shutting down LiveSync service")

        if self.settings.health_enabled:
            await stop_health_server()

        if self.registry is not None:
            self.registry.cleanup_all()
            self.registry = None

        # Adapters such as GraphQLGateway hold network sessions
        for collaborator in {id(c): c for c in (self.query, self.introspection)}.values():
            await _close_quietly(collaborator, self.logger)

        self.logger.info("LiveSync service shutdown complete")

    async def __aenter__(self) -> SubscriptionRegistry:
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()


async def _close_quietly(collaborator: Any, logger: Any) -> None:
    close = getattr(collaborator, "close", None)
    if close is None:
        return
    try:
        result = close()
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error("Error closing collaborator", collaborator=type(collaborator).__name__, error=str(e))
