"""
Dependency graph service - the load/refresh surface used by the API layer.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple, TypeVar

from pymongo.database import Database

from config import RunGhostConfig
from models.graph import GraphResult, RefreshSummary
from repositories.audit_log import AuditLogRepository
from repositories.cache import CacheStore
from services.audit_logger import AuditLogger
from services.graph_builder import GraphBuilder
from services.npm_client import NpmRegistryClient
from services.rate_limiter import TokenBucket
from services.refresh_orchestrator import RefreshOrchestrator
from services.workspace_scanner import WorkspaceScanner

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """
    Collapses concurrent calls with the same key into one execution.

    The first caller starts the work; callers arriving while it runs await the
    same future and observe the same result or exception. Each execution
    carries a tag (the force flag for graph builds) that callers can inspect
    through `current()` before deciding to join.
    """

    def __init__(self):
        self._in_flight: Dict[Hashable, Tuple[asyncio.Future, Any]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._in_flight

    def current(self, key: Hashable) -> Optional[Tuple[asyncio.Future, Any]]:
        """(future, tag) of the execution running under `key`, if any."""
        return self._in_flight.get(key)

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]], tag: Any = None) -> T:
        entry = self._in_flight.get(key)
        if entry is None:
            future = asyncio.ensure_future(fn())
            self._in_flight[key] = (future, tag)
            future.add_done_callback(lambda done: self._forget(key, done))
        else:
            future = entry[0]
            logger.debug("Joining in-flight build %s", key)
        return await asyncio.shield(future)

    def _forget(self, key: Hashable, future: asyncio.Future) -> None:
        entry = self._in_flight.get(key)
        if entry is not None and entry[0] is future:
            del self._in_flight[key]


class DependencyGraphService:
    """
    Exposes `load_graph()` and `refresh_graph()` for the configured workspace.

    Both go through one single-flight slot keyed on (workspace path, scopes),
    so at most one build runs per workspace. A plain load joins whatever build
    is running. A forced refresh joins a running forced build; if the running
    build is not forced, it waits for it to finish and then starts its own.
    """

    def __init__(
        self,
        config: RunGhostConfig,
        orchestrator: RefreshOrchestrator,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.config = config
        self.orchestrator = orchestrator
        self.audit_logger = audit_logger
        self.identities = config.to_identities()
        self._single_flight = SingleFlight()
        self._cancel_event: Optional[asyncio.Event] = None
        self._active_builds = 0

    def _flight_key(self) -> tuple:
        return (self.config.workspace_path, tuple(self.config.configured_scopes()))

    async def load_graph(self, force_refresh: bool = False) -> GraphResult:
        """
        Return the current graph, cached when fresh.

        Args:
            force_refresh: Rebuild ignoring cache TTLs
        """
        key = self._flight_key()
        running = self._single_flight.current(key)
        while force_refresh and running is not None and not running[1]:
            logger.info("Forced refresh waiting for the running build to finish")
            await asyncio.wait([running[0]])
            running = self._single_flight.current(key)

        return await self._single_flight.do(
            key, lambda: self._build(force_refresh), tag=force_refresh
        )

    async def refresh_graph(self) -> RefreshSummary:
        """Force a rebuild and return counts plus the graph."""
        result = await self.load_graph(force_refresh=True)
        return RefreshSummary(
            stats=result.graph.summary(),
            graph=result.graph,
            warnings=result.warnings,
        )

    def cancel(self) -> bool:
        """
        Cancel the builds currently in flight.

        Returns:
            True if a build was signalled
        """
        if not self._active_builds or self._cancel_event is None or self._cancel_event.is_set():
            return False
        self._cancel_event.set()
        logger.info("Cancelling in-flight graph builds")
        return True

    async def _build(self, force_refresh: bool) -> GraphResult:
        if self._cancel_event is None or self._cancel_event.is_set():
            self._cancel_event = asyncio.Event()
        cancel_event = self._cancel_event
        self._active_builds += 1

        try:
            return await self.orchestrator.get_graph(
                self.config.workspace_path,
                self.identities,
                force_refresh=force_refresh,
                cancel_event=cancel_event,
            )
        finally:
            self._active_builds -= 1
            if self.audit_logger is not None:
                await self.audit_logger.flush()


def create_dependency_service(
    config: RunGhostConfig,
    database: Database,
    cache: Optional[CacheStore] = None,
) -> DependencyGraphService:
    """Wire the cache store, registry client, scanner and builder for `config`."""
    audit_logger = AuditLogger(AuditLogRepository(database))
    registry = NpmRegistryClient.from_config(
        config.registry,
        audit_logger=audit_logger,
        rate_limiter=TokenBucket(rate=config.registry.requests_per_second),
    )
    orchestrator = RefreshOrchestrator(
        cache=cache or CacheStore(database),
        registry=registry,
        scanner=WorkspaceScanner(max_depth=config.scan_max_depth),
        builder=GraphBuilder(),
        ttl=config.cache_ttl,
        max_workers=config.registry.max_workers,
        timeout_seconds=config.refresh_timeout_seconds,
    )
    return DependencyGraphService(config, orchestrator, audit_logger=audit_logger)
