"""
Netwatch Agent Service - main orchestration.

Wires the detectors to the event database, runs the periodic monitors
and serves the local API. Covert signal inspection runs as middleware
ahead of every API handler.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

from aiohttp import web
from pydantic import ValidationError

from ._types import Device, Severity, now_utc
from .config import AgentConfig, load_config
from .covert import covert_signal_middleware
from .discovery import ARPTableDiscovery, NetworkDiscoveryEngine, NmapPingSweep
from .errors import DiscoveryExhausted
from .event_db import EventDatabase
from .events import EventDispatcher, EventSink
from .integrity import FileIntegrityMonitor
from .resources import (
    MemoryMetrics,
    ProcessMemoryMetrics,
    ResourceAnomalyMonitor,
    StatsSampler,
)
from .scheduler import MonitorScheduler
from .utils import setup_logging

logger = logging.getLogger(__name__)

# Lookback windows accepted by GET /api/security/events?range=
EVENT_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

MAX_QUERY_LIMIT = 1000


class AgentService:
    """
    Main agent service.

    Owns the event database, the detectors and the API server.
    """

    def __init__(
        self,
        config: AgentConfig,
        discovery: Optional[NetworkDiscoveryEngine] = None,
        memory_metrics: Optional[MemoryMetrics] = None,
    ):
        """
        Initialize agent service.

        Args:
            config: Agent configuration
            discovery: Discovery engine (default: nmap sweep with ARP fallback)
            memory_metrics: Memory collaborator (default: psutil process metrics)
        """
        self.config = config
        self.db = EventDatabase(config.db_path)
        self.sink = EventSink(self.db)
        self.dispatcher = EventDispatcher(self.sink, max_pending=config.dispatch_queue_size)

        self.integrity_monitor = FileIntegrityMonitor(
            config.resolve_watched_files(),
            sink=self.sink,
        )
        self.anomaly_monitor = ResourceAnomalyMonitor(
            memory_metrics or ProcessMemoryMetrics(config.memory_limit_bytes),
            sink=self.sink,
            threshold=config.memory_threshold,
        )
        self.stats_sampler = StatsSampler(self.db)

        self.discovery = discovery or NetworkDiscoveryEngine(
            primary=NmapPingSweep(config.nmap_path),
            fallback=ARPTableDiscovery(config.arp_path),
            timeout=config.discovery_timeout,
        )
        self._discovery_tasks: set[asyncio.Task] = set()

        self.scheduler = MonitorScheduler()
        self.scheduler.add(
            "file-integrity", config.integrity_interval, self.integrity_monitor.check_integrity
        )
        self.scheduler.add(
            "memory-anomaly", config.anomaly_interval, self.anomaly_monitor.check
        )
        self.scheduler.add(
            "system-stats", config.stats_interval, self.stats_sampler.collect
        )

        self._running = False
        self._shutdown_event = asyncio.Event()
        self._api_runner: Optional[web.AppRunner] = None
        self.app = self._build_app()

    def _build_app(self) -> web.Application:
        app = web.Application(middlewares=[covert_signal_middleware(self.dispatcher)])
        app.router.add_get("/api/security/events", self._handle_list_events)
        app.router.add_post("/api/security/events", self._handle_log_event)
        app.router.add_get("/api/network/scan", self._handle_network_scan)
        app.router.add_post("/api/memory", self._handle_store_memory)
        app.router.add_get("/api/memory/search", self._handle_search_memory)
        app.router.add_get("/api/health", self._handle_health)
        return app

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, serve_api: bool = True) -> None:
        """Establish baselines and start monitors, dispatcher and API."""
        logger.info("Starting Netwatch Agent")
        self._running = True

        await asyncio.to_thread(self.integrity_monitor.start)
        self.dispatcher.start()
        self.scheduler.start()

        if serve_api:
            await self._start_api_server()

        logger.info("Security monitoring initialized")

    async def run_forever(self) -> None:
        """Start, then block until stop() is called."""
        await self.start()
        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the agent. In-flight discovery commands are killed first."""
        if not self._running:
            return
        logger.info("Stopping Netwatch Agent")
        self._running = False

        for task in list(self._discovery_tasks):
            task.cancel()
        if self._discovery_tasks:
            await asyncio.gather(*self._discovery_tasks, return_exceptions=True)

        await self.scheduler.stop()

        if self._api_runner:
            await self._api_runner.cleanup()
            self._api_runner = None

        await self.dispatcher.stop()
        self._shutdown_event.set()
        logger.info("Netwatch Agent stopped")

    async def _start_api_server(self) -> None:
        self._api_runner = web.AppRunner(self.app)
        await self._api_runner.setup()
        site = web.TCPSite(self._api_runner, self.config.api_host, self.config.api_port)
        await site.start()
        logger.info(f"API server started on {self.config.api_host}:{self.config.api_port}")

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    async def scan_network(self, subnet: Optional[str] = None) -> list[Device]:
        """
        Run discovery and keep a network_scan telemetry record.

        Runs as a tracked task so stop() can kill the command.

        Raises:
            ValueError: If subnet is not an IPv4 network
            DiscoveryExhausted: If both discovery commands failed
        """
        task = asyncio.create_task(self.discovery.discover(subnet or self.config.subnet))
        self._discovery_tasks.add(task)
        try:
            devices = await task
        finally:
            self._discovery_tasks.discard(task)

        try:
            await asyncio.to_thread(
                self.db.store_memory, "network_scan", [d.to_dict() for d in devices]
            )
        except Exception as e:
            logger.error(f"Failed to store scan results: {e}")

        return devices

    # -------------------------------------------------------------------------
    # API Handlers
    # -------------------------------------------------------------------------

    async def _handle_list_events(self, request: web.Request) -> web.Response:
        """Handle GET /api/security/events."""
        try:
            limit = int(request.query.get("limit", "100"))
        except ValueError:
            return web.json_response({"error": "limit must be an integer"}, status=400)
        if limit < 1:
            return web.json_response({"error": "limit must be positive"}, status=400)
        limit = min(limit, MAX_QUERY_LIMIT)

        kind = request.query.get("type") or None
        range_key = request.query.get("range")
        since = None
        if range_key:
            if range_key not in EVENT_RANGES:
                return web.json_response(
                    {"error": f"range must be one of {sorted(EVENT_RANGES)}"},
                    status=400,
                )
            since = now_utc() - EVENT_RANGES[range_key]

        try:
            events = await asyncio.to_thread(self.db.query, kind, since, limit)
        except Exception as e:
            logger.error(f"Failed to retrieve security events: {e}")
            return web.json_response(
                {"error": "Failed to retrieve security events"}, status=500
            )

        return web.json_response({"events": [e.to_dict() for e in events]})

    async def _handle_log_event(self, request: web.Request) -> web.Response:
        """Handle POST /api/security/events."""
        try:
            data = await request.json()
        except ValueError:
            return web.json_response({"error": "Invalid JSON body"}, status=400)
        if not isinstance(data, dict):
            return web.json_response({"error": "Expected a JSON object"}, status=400)

        kind = data.get("kind") or data.get("eventType")
        description = data.get("description")
        if not kind or not description:
            return web.json_response(
                {"error": "Event type and description are required"}, status=400
            )
        if not isinstance(kind, str) or not isinstance(description, str):
            return web.json_response(
                {"error": "Event type and description must be strings"}, status=400
            )

        details = data.get("details") or {}
        if not isinstance(details, dict):
            return web.json_response({"error": "details must be a JSON object"}, status=400)

        try:
            severity = Severity(data.get("severity", Severity.LOW.value))
        except ValueError:
            return web.json_response(
                {"error": f"severity must be one of {[s.value for s in Severity]}"},
                status=400,
            )

        try:
            event_id = await asyncio.to_thread(
                self.db.append, kind, description, details, None, severity.value
            )
        except Exception as e:
            logger.error(f"Failed to log security event: {e}")
            return web.json_response({"error": "Failed to log security event"}, status=500)

        return web.json_response({"id": event_id})

    async def _handle_network_scan(self, request: web.Request) -> web.Response:
        """Handle GET /api/network/scan."""
        subnet = request.query.get("subnet") or self.config.subnet
        try:
            devices = await self.scan_network(subnet)
        except ValueError as e:
            return web.json_response({"error": f"Invalid subnet: {e}"}, status=400)
        except DiscoveryExhausted as e:
            logger.error(str(e))
            return web.json_response({"error": "Network scan failed"}, status=500)

        return web.json_response({"devices": [d.to_dict() for d in devices]})

    async def _handle_store_memory(self, request: web.Request) -> web.Response:
        """Handle POST /api/memory."""
        try:
            data = await request.json()
        except ValueError:
            return web.json_response({"error": "Invalid JSON body"}, status=400)
        if not isinstance(data, dict):
            return web.json_response({"error": "Expected a JSON object"}, status=400)

        memory_type = data.get("type")
        payload = data.get("data")
        if not memory_type or not payload:
            return web.json_response({"error": "Type and data are required"}, status=400)

        try:
            memory_id = await asyncio.to_thread(self.db.store_memory, memory_type, payload)
        except Exception as e:
            logger.error(f"Failed to store memory: {e}")
            return web.json_response({"error": "Failed to store memory"}, status=500)

        return web.json_response({"id": memory_id})

    async def _handle_search_memory(self, request: web.Request) -> web.Response:
        """Handle GET /api/memory/search."""
        try:
            memories = await asyncio.to_thread(
                self.db.search_memories,
                request.query.get("query") or None,
                request.query.get("type") or None,
            )
        except Exception as e:
            logger.error(f"Failed to search memories: {e}")
            return web.json_response({"error": "Failed to search memories"}, status=500)

        return web.json_response({"memories": memories})

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /api/health."""
        counts = await asyncio.to_thread(self.db.count_events)
        return web.json_response({
            "status": "ok",
            "service": "netwatch-agent",
            "events": counts,
            "watched_files": len(self.integrity_monitor.store),
            "pending_events": self.dispatcher.pending,
            "dropped_events": self.dispatcher.dropped,
            "monitors": [
                {"name": t.name, "interval": t.interval, "cycles": t.cycles, "failures": t.failures}
                for t in self.scheduler.tasks
            ],
        })


def main():
    """Entry point for the netwatch agent."""
    import argparse

    parser = argparse.ArgumentParser(description="Netwatch security telemetry agent")
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("--host", type=str, help="API host")
    parser.add_argument("--port", type=int, help="API port")
    parser.add_argument("--log-level", type=str, help="Log level")
    args = parser.parse_args()

    try:
        if args.config:
            config = AgentConfig.from_yaml(Path(args.config))
        else:
            config = load_config()

        # Override with CLI args
        if args.host:
            config.api_host = args.host
        if args.port:
            config.api_port = args.port
        if args.log_level:
            config.log_level = args.log_level
    except ValidationError as e:
        setup_logging()
        logger.error(f"Config error: {e}")
        sys.exit(1)

    setup_logging(config.log_level)

    service = AgentService(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.ensure_future(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(service.run_forever())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        loop.run_until_complete(service.stop())
        loop.close()


if __name__ == "__main__":
    main()
