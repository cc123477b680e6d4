"""Health check utilities for livesync."""

import json
from typing import Optional
from datetime import datetime, timezone

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import structlog

from .. import __version__


logger = structlog.get_logger(__name__)


class HealthCheckServer:
    """HTTP server for health checks and subscription status."""
    
    def __init__(self, port: int = 8081) -> None:
        """Initialize health check server.
        
        Args:
            port: Port to listen on
        """
        self.port = port
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self._startup_time = datetime.now(timezone.utc)
        self._registry = None
        
        # Setup routes
        self.app.router.add_get('/healthz', self._health_handler)
        self.app.router.add_get('/readyz', self._readiness_handler)
        self.app.router.add_get('/stats', self._stats_handler)
        self.app.router.add_get('/live', self._live_handler)
        self.app.router.add_get('/metrics', self._metrics_handler)
        
        logger.info("Initialized HealthCheckServer", port=port)
    
    def set_registry(self, registry) -> None:
        """Set subscription registry for stats collection."""
        self._registry = registry
    
    async def start(self) -> None:
        """Start the health check server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        
        self.site = web.TCPSite(self.runner, '0.0.0.0', self.port)
        await self.site.start()
        
        logger.info("Health check server started", port=self.port)
    
    async def stop(self) -> None:
        """Stop the health check server."""
        if self.site:
            await self.site.stop()
            self.site = None
        
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        
        logger.info("Health check server stopped")
    
    def _uptime_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self._startup_time).total_seconds()
    
    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle liveness requests."""
        return web.json_response({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": self._uptime_seconds(),
            "version": __version__
        })
    
    async def _readiness_handler(self, request: web.Request) -> web.Response:
        """Handle readiness requests.

        Degraded subscriptions still deliver changes through polling, so
        they do not make the service unready.
        """
        checks = {
            "registry": "available" if self._registry is not None else "not_available"
        }
        ready = self._registry is not None
        if ready:
            checks["subscriptions"] = len(self._registry)
        
        return web.json_response(
            {
                "status": "ready" if ready else "not_ready",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "checks": checks
            },
            status=200 if ready else 503
        )
    
    async def _stats_handler(self, request: web.Request) -> web.Response:
        """Handle statistics requests."""
        stats = {
            "service": {
                "uptime_seconds": self._uptime_seconds(),
                "startup_time": self._startup_time.isoformat(),
                "version": __version__
            }
        }
        
        if self._registry is not None:
            try:
                stats["subscriptions"] = self._registry.get_stats()
            except Exception as e:
                logger.warning("Failed to get subscription stats", error=str(e))
                stats["subscriptions"] = {"error": str(e)}
        
        return web.json_response(stats, dumps=_dumps)
    
    async def _live_handler(self, request: web.Request) -> web.Response:
        """Report which resources have a live subscription.

        ``?resource=a&resource=b`` overrides the configured diagnostic list.
        """
        if self._registry is None:
            return web.json_response({"error": "registry not available"}, status=503)

        resources = request.query.getall("resource", None)
        live = self._registry.live_status(resources)
        return web.json_response({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "resources": live,
            "all_live": all(live.values()) if live else False
        })
    
    async def _metrics_handler(self, request: web.Request) -> web.Response:
        """Handle Prometheus metrics exposition."""
        try:
            return web.Response(
                body=generate_latest(),
                headers={"Content-Type": CONTENT_TYPE_LATEST}
            )
        except Exception as e:
            logger.error("Error generating metrics", error=str(e))
            return web.json_response(
                {"error": f"Failed to generate metrics: {str(e)}"},
                status=500
            )


def _dumps(value) -> str:
    # Cursor values may be datetimes
    return json.dumps(value, default=str)


# Global health check server instance
_health_server: Optional[HealthCheckServer] = None


async def start_health_server(port: int = 8081, registry=None) -> HealthCheckServer:
    """Start the global health check server.
    
    Args:
        port: Port to listen on
        registry: Subscription registry for stats
        
    Returns:
        HealthCheckServer instance
    """
    global _health_server
    
    if _health_server is not None:
        logger.warning("Health server already started")
        return _health_server
    
    _health_server = HealthCheckServer(port)
    
    if registry is not None:
        _health_server.set_registry(registry)
    
    await _health_server.start()
    return _health_server


async def stop_health_server() -> None:
    """Stop the global health check server."""
    global _health_server
    
    if _health_server is not None:
        await _health_server.stop()
        _health_server = None


def get_health_server() -> Optional[HealthCheckServer]:
    """Get the global health check server instance."""
    return _health_server
