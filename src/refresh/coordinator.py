"""
Refresh Coordinator - Keeps the gateway routes synchronized with the backend services.

Features:
- Concurrent schema fetch across services (bounded)
- Per-host checksum diffing between refresh cycles
- Routes file cache, primed checksums on cached startup
- Self-rescheduling refresh timer guarded by a refresh lock
- Restart requests with a restart-in-progress flag
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from config import GatewayConfig
from src.schema.models import RefreshRecord, RefreshResult, RouteDescriptor, ServiceEntry
from .checksum import routes_checksum
from .route_cache import RouteCacheError, RouteCacheFile
from .schema_fetcher import SchemaFetcher

logger = logging.getLogger(__name__)

Restarter = Callable[[RefreshResult], Awaitable[None]]


class RefreshState(str, Enum):
    """Coordinator lifecycle states"""
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    RESTARTING = "restarting"


class RefreshCoordinator:
    """
    Orchestrates schema fetch, compile, resolve, diff and cache per service

    Usage:
    ```python
    coordinator = RefreshCoordinator(config, restarter=supervisor.restart)
    result = await coordinator.load()
    coordinator.start()  # periodic refresh when config.refresh_interval is set
    ...
    await coordinator.close()
    ```
    """

    def __init__(
        self,
        config: GatewayConfig,
        fetcher: Optional[SchemaFetcher] = None,
        restarter: Optional[Restarter] = None,
        cache: Optional[RouteCacheFile] = None,
    ):
        """
        Initialize Refresh Coordinator

        Args:
            config: Gateway configuration (services, tags, refresh interval, routes file)
            fetcher: Schema fetcher (built from config when omitted)
            restarter: Awaitable called when a refresh detects changed routes
            cache: Routes cache file (built from config.routes_file when omitted)
        """
        self.config = config
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or SchemaFetcher(timeout=config.timeout, verify_tls=config.verify_tls)
        self.restarter = restarter
        if cache is None and config.routes_file:
            cache = RouteCacheFile(config.routes_file)
        self.cache = cache

        self.checksums: Dict[str, str] = {}
        self.refresh_lock = False
        self.restarting = False
        self.state = RefreshState.IDLE
        self.records: List[RefreshRecord] = []

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def services_to_routes(self, reload: bool = False) -> RefreshResult:
        """
        Run one refresh cycle over every configured service

        Args:
            reload: True for periodic refreshes; enables change detection and
                skips the routes file on the way in

        Returns:
            RefreshResult with records in service declaration order
        """
        if not reload and self.cache is not None:
            cached = await self._load_cache()
            if cached is not None:
                for record in cached:
                    self.checksums[record.service.host] = routes_checksum(record.routes_to_list())
                logger.info(f"Loaded routes of {len(cached)} services from {self.cache.path}")
                return RefreshResult(reload=False, records=cached, from_cache=True)

        try:
            self.state = RefreshState.FETCHING
            services = list(self.config.services)
            all_routes = await self._fetch_all(services)

            self.state = RefreshState.DIFFING
            reload_services = False
            records = []
            for service, routes in zip(services, all_routes):
                record = RefreshRecord(service=service, routes=routes)
                checksum = routes_checksum(record.routes_to_list())
                if reload and self.checksums.get(service.host) != checksum:
                    logger.info(f"Routes changed for {service.host}")
                    reload_services = True
                self.checksums[service.host] = checksum
                records.append(record)

            if self.cache is not None:
                await self._save_cache(records)
        finally:
            self.state = RefreshState.IDLE

        return RefreshResult(reload=reload_services, records=records)

    async def _fetch_all(self, services: List[ServiceEntry]) -> List[Optional[List[RouteDescriptor]]]:
        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def fetch_one(service: ServiceEntry) -> Optional[List[RouteDescriptor]]:
            async with semaphore:
                try:
                    return await asyncio.to_thread(
                        self.fetcher.fetch_routes,
                        service,
                        gw_tag=self.config.gw_tag,
                        gw_hidden_tag=self.config.gw_hidden_tag,
                        hidden_marker=self.config.hidden_marker,
                        expose_docs=self.config.expose_docs,
                        ignore_hidden=self.config.ignore_hidden,
                    )
                except Exception as e:
                    # a failing service falls back to the wildcard route
                    logger.warning(f"Error discovering routes of {service.host}: {e}")
                    return None

        # gather keeps declaration order whatever the completion order
        return await asyncio.gather(*(fetch_one(service) for service in services))

    async def _load_cache(self) -> Optional[List[RefreshRecord]]:
        if not self.cache.exists():
            return None
        try:
            return await asyncio.to_thread(self.cache.load)
        except RouteCacheError as e:
            logger.warning(f"{e}; fetching services instead")
            return None

    async def _save_cache(self, records: List[RefreshRecord]) -> None:
        try:
            await asyncio.to_thread(self.cache.save, records)
        except OSError as e:
            logger.warning(f"Error writing routes file {self.cache.path}: {e}")

    # ------------------------------------------------------------------
    # Load / refresh / restart
    # ------------------------------------------------------------------

    async def load(self) -> RefreshResult:
        """Initial cycle: routes file when present, else live fetch"""
        result = await self.services_to_routes(reload=False)
        self.records = result.records
        return result

    async def refresh(self) -> bool:
        """
        Run one guarded refresh cycle

        Returns:
            True when the cycle detected a change and a restart was requested
        """
        if self.refresh_lock or self.restarting:
            logger.debug("Refresh skipped: cycle or restart already in progress")
            return False

        self.refresh_lock = True
        previous = dict(self.checksums)
        try:
            result = await self.services_to_routes(reload=True)
            if not result.reload:
                logger.debug("No route changes detected")
                self.records = result.records
                return False
            await self._restart(result, previous)
            return True
        finally:
            self.refresh_lock = False

    async def _restart(self, result: RefreshResult, previous: Dict[str, str]) -> None:
        self.restarting = True
        self.state = RefreshState.RESTARTING
        logger.info("Route changes detected, requesting restart")
        try:
            if self.restarter is not None:
                await self.restarter(result)
        except Exception:
            logger.exception("Restart failed, retrying on next refresh")
            # the change must be detected again on the next cycle
            self.checksums = previous
        else:
            self.records = result.records
        finally:
            self.restarting = False
            self.state = RefreshState.IDLE

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Arm the refresh timer (no-op without refresh_interval). Needs a running loop."""
        self._loop = asyncio.get_running_loop()
        self._closed = False
        self._schedule()

    @property
    def scheduled(self) -> bool:
        return self._timer is not None

    def _schedule(self) -> None:
        if self._closed or self.restarting or self._loop is None or not self.config.refresh_interval:
            return
        self._timer = self._loop.call_later(self.config.refresh_interval, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._tick_task = self._loop.create_task(self._tick())

    async def _tick(self) -> None:
        try:
            await self.refresh()
        except Exception:
            logger.exception("Refresh cycle failed")
        finally:
            self._tick_task = None
            self._schedule()

    async def close(self) -> None:
        """Stop the timer, let an in-flight cycle finish, and drop an owned routes file"""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        task = self._tick_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            await task

        if self.cache is not None and self.config.delete_cache_on_close:
            await asyncio.to_thread(self.cache.delete)

        if self._owns_fetcher:
            self.fetcher.close()
