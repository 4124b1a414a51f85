"""
Refresh orchestrator - decides per input whether to reuse cached artifacts or
recompute, then builds and persists the dependency graph.
"""

import asyncio
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from config import CacheTtlConfig
from errors import CacheError, Cancelled, RefreshTimeoutError, RegistryError
from models.graph import DependencyGraph, GraphResult
from models.identity import Identity
from models.registry_package import RegistryPackage
from models.repository import ScanResult
from models.warning import GraphWarning
from repositories.cache import CacheStore, graph_key, listing_key, package_key, scan_key
from services.graph_builder import GraphBuilder, workspace_fingerprint
from services.npm_client import NpmRegistryClient
from services.workspace_scanner import WorkspaceScanner

logger = logging.getLogger(__name__)

_DONE = object()


class _RefreshRun:
    """Per-call state: warnings, input expiry times and the cancellation signal."""

    def __init__(self, cache: CacheStore, cancel_event: Optional[asyncio.Event]):
        self.cache = cache
        self.cancel_event = cancel_event
        self.warnings: List[GraphWarning] = []
        self.expiries: List[int] = []
        self.stopped = threading.Event()

    def is_cancelled(self) -> bool:
        if self.stopped.is_set():
            return True
        return self.cancel_event is not None and self.cancel_event.is_set()

    def stop(self) -> None:
        """Stop work still running in threads (the overall timeout expired)."""
        self.stopped.set()

    def check_cancelled(self) -> None:
        if self.is_cancelled():
            raise Cancelled("Graph refresh cancelled")

    def warn(self, kind: str, subject: str, message: str) -> None:
        self.warnings.append(GraphWarning(kind=kind, subject=subject, message=message))

    def expire_at(self, stored_at: int, ttl_seconds: int) -> None:
        self.expiries.append(stored_at + ttl_seconds)

    def expire_now(self) -> None:
        """Mark the result as not reusable (an input is missing or degraded)."""
        self.expiries.append(self.cache.now())


class RefreshOrchestrator:
    """
    Coordinates scanner, registry client, cache store and graph builder.

    Without force, a cached scan (within its TTL) yields the workspace
    fingerprint and a fresh `graph:<fingerprint>` row is returned as is. A
    forced refresh bypasses every TTL: the scanner and the scope listings run
    concurrently, then package descriptions go through a bounded worker pool
    whose results are funneled to a single collector.

    Registry and cache failures become warnings; scan failures of the
    workspace root, cancellation and the overall timeout are raised.
    """

    def __init__(
        self,
        cache: CacheStore,
        registry: NpmRegistryClient,
        scanner: Optional[WorkspaceScanner] = None,
        builder: Optional[GraphBuilder] = None,
        ttl: Optional[CacheTtlConfig] = None,
        max_workers: int = 8,
        timeout_seconds: float = 600.0,
    ):
        self.cache = cache
        self.registry = registry
        self.scanner = scanner or WorkspaceScanner()
        self.builder = builder or GraphBuilder()
        self.ttl = ttl or CacheTtlConfig()
        self.max_workers = max_workers
        self.timeout_seconds = timeout_seconds

    async def get_graph(
        self,
        workspace_path: str,
        identities: Sequence[Identity],
        force_refresh: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GraphResult:
        """
        Return the current graph for a workspace.

        Args:
            workspace_path: Workspace directory
            identities: Configured identities (their scopes drive the registry)
            force_refresh: Ignore every cache TTL and rebuild
            cancel_event: Set to cancel; no graph row is written afterwards

        Raises:
            ScanError: if the workspace root is unreadable
            Cancelled: if cancel_event was set
            RefreshTimeoutError: if the whole refresh took too long
        """
        run = _RefreshRun(self.cache, cancel_event)
        try:
            return await asyncio.wait_for(
                self._get_graph(workspace_path, identities, force_refresh, run),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            run.stop()
            raise RefreshTimeoutError(
                f"Graph refresh exceeded {self.timeout_seconds:.0f}s"
            ) from e
        except asyncio.CancelledError:
            run.stop()
            raise

    async def _get_graph(
        self,
        workspace_path: str,
        identities: Sequence[Identity],
        force_refresh: bool,
        run: _RefreshRun,
    ) -> GraphResult:
        run.check_cancelled()

        workspace_path = os.path.abspath(os.path.expanduser(workspace_path))
        scopes = sorted({scope for identity in identities for scope in identity.scopes})

        if force_refresh:
            logger.info("Forced refresh of %s (%d scopes)", workspace_path, len(scopes))
            scan_result, listings = await _gather_or_cancel(
                self._scan(workspace_path, identities, run, use_cache=False),
                self._list_scopes(scopes, run, use_cache=False),
            )
            run.check_cancelled()
            fingerprint = workspace_fingerprint(scan_result.repositories, scopes)
        else:
            scan_result = await self._scan(workspace_path, identities, run, use_cache=True)
            run.check_cancelled()
            fingerprint = workspace_fingerprint(scan_result.repositories, scopes)

            cached = await self._cached_graph(fingerprint, run)
            if cached is not None:
                return cached

            listings = await self._list_scopes(scopes, run, use_cache=True)
            run.check_cancelled()

        names = sorted({name for scope in scopes for name in listings.get(scope, [])})
        packages = await self._describe_packages(names, run, use_cache=not force_refresh)
        run.check_cancelled()

        graph, build_warnings = self.builder.build(
            scan_result.repositories, [packages[name] for name in sorted(packages)], identities
        )
        warnings = sorted(
            [*scan_result.warnings, *run.warnings, *build_warnings],
            key=lambda w: (w.kind, w.subject, w.message),
        )
        built_at = datetime.now(timezone.utc)

        run.check_cancelled()
        stored_warnings = len(run.warnings)
        await self._store_graph(fingerprint, graph, warnings, built_at, run)

        return GraphResult(
            graph=graph,
            warnings=warnings + run.warnings[stored_warnings:],
            fingerprint=fingerprint,
            from_cache=False,
            built_at=built_at,
        )

    # Workspace

    async def _scan(
        self,
        workspace_path: str,
        identities: Sequence[Identity],
        run: _RefreshRun,
        use_cache: bool,
    ) -> ScanResult:
        key = scan_key(workspace_path)
        if use_cache:
            hit = await self._cache_get(key, run)
            if hit is not None:
                data, stored_at = hit
                if self.cache.is_fresh(stored_at, self.ttl.scan_seconds):
                    try:
                        result = ScanResult.model_validate(data)
                    except ValidationError as e:
                        logger.warning("Discarding unreadable scan cache %s: %s", key, e)
                    else:
                        run.expire_at(stored_at, self.ttl.scan_seconds)
                        return result

        result = await asyncio.to_thread(
            self.scanner.scan, workspace_path, identities, run.is_cancelled
        )
        stored_at = await self._cache_put(key, result.model_dump(mode="json", by_alias=True), run)
        run.expire_at(stored_at, self.ttl.scan_seconds)
        return result

    # Registry

    async def _list_scopes(
        self, scopes: Iterable[str], run: _RefreshRun, use_cache: bool
    ) -> Dict[str, List[str]]:
        """Scope listings, one scope at a time."""
        listings: Dict[str, List[str]] = {}
        for scope in scopes:
            run.check_cancelled()
            key = listing_key(scope)

            if use_cache:
                hit = await self._cache_get(key, run)
                if hit is not None:
                    data, stored_at = hit
                    if isinstance(data, list) and self.cache.is_fresh(
                        stored_at, self.ttl.registry_listing_seconds
                    ):
                        listings[scope] = [str(name) for name in data]
                        run.expire_at(stored_at, self.ttl.registry_listing_seconds)
                        continue

            try:
                names = await self.registry.list_scope(scope)
            except RegistryError as e:
                logger.warning("Listing for scope %s failed: %s", scope, e)
                run.warn("registry", scope, f"scope listing failed: {e}")
                run.expire_now()
                listings[scope] = []
                continue

            stored_at = await self._cache_put(key, names, run)
            run.expire_at(stored_at, self.ttl.registry_listing_seconds)
            listings[scope] = names
        return listings

    async def _describe_packages(
        self, names: List[str], run: _RefreshRun, use_cache: bool
    ) -> Dict[str, RegistryPackage]:
        packages: Dict[str, RegistryPackage] = {}
        pending: List[str] = []

        for name in names:
            if use_cache:
                hit = await self._cache_get(package_key(name), run)
                if hit is not None:
                    data, stored_at = hit
                    if self.cache.is_fresh(stored_at, self.ttl.registry_package_seconds):
                        try:
                            packages[name] = RegistryPackage.model_validate(data)
                        except ValidationError as e:
                            logger.warning("Discarding unreadable package cache %s: %s", name, e)
                        else:
                            run.expire_at(stored_at, self.ttl.registry_package_seconds)
                            continue
            pending.append(name)

        if pending:
            logger.info(
                "Describing %d packages (%d from cache)", len(pending), len(packages)
            )
            packages.update(await self._run_workers(pending, run))
        return packages

    async def _run_workers(self, names: List[str], run: _RefreshRun) -> Dict[str, RegistryPackage]:
        """Bounded worker pool; workers observe cancellation between requests."""
        work: asyncio.Queue = asyncio.Queue()
        for name in names:
            work.put_nowait(name)
        results: asyncio.Queue = asyncio.Queue()

        async def worker() -> None:
            while not run.is_cancelled():
                try:
                    name = work.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    package = await self.registry.describe(name)
                except RegistryError as e:
                    await results.put((name, None, e))
                else:
                    await results.put((name, package, None))

        collector = asyncio.ensure_future(self._collect(results, run))
        workers = [
            asyncio.ensure_future(worker())
            for _ in range(min(self.max_workers, len(names)))
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in [*workers, collector]:
                task.cancel()
            raise

        results.put_nowait(_DONE)
        return await collector

    async def _collect(self, results: asyncio.Queue, run: _RefreshRun) -> Dict[str, RegistryPackage]:
        """Single consumer of worker results; the only writer of the package map."""
        packages: Dict[str, RegistryPackage] = {}
        while True:
            item = await results.get()
            if item is _DONE:
                return packages

            name, package, error = item
            if error is not None:
                logger.warning("Describe %s failed: %s", name, error)
                run.warn("registry", name, f"package dropped: {error}")
                run.expire_now()
            elif package is None:
                run.warn("registry", name, "listed package not found on registry")
            else:
                packages[name] = package
                stored_at = await self._cache_put(
                    package_key(name), package.model_dump(mode="json", by_alias=True), run
                )
                run.expire_at(stored_at, self.ttl.registry_package_seconds)

    # Graph

    async def _cached_graph(self, fingerprint: str, run: _RefreshRun) -> Optional[GraphResult]:
        key = graph_key(fingerprint)
        hit = await self._cache_get(key, run)
        if hit is None:
            return None

        data, _ = hit
        if not isinstance(data, dict) or self.cache.now() >= int(data.get("expiresAt", 0)):
            return None

        try:
            result = GraphResult(
                graph=DependencyGraph.model_validate(data["graph"]),
                warnings=[GraphWarning.model_validate(w) for w in data.get("warnings", [])],
                fingerprint=fingerprint,
                from_cache=True,
                built_at=data["builtAt"],
            )
        except (KeyError, ValidationError) as e:
            logger.warning("Discarding unreadable graph cache %s: %s", key, e)
            return None

        logger.info("Serving cached graph %s", fingerprint[:12])
        if run.warnings:
            result = result.model_copy(update={"warnings": result.warnings + run.warnings})
        return result

    async def _store_graph(
        self,
        fingerprint: str,
        graph: DependencyGraph,
        warnings: List[GraphWarning],
        built_at: datetime,
        run: _RefreshRun,
    ) -> None:
        expires_at = min(run.expiries) if run.expiries else self.cache.now()
        envelope = {
            "graph": graph.model_dump(mode="json", by_alias=True),
            "warnings": [w.model_dump(mode="json") for w in warnings],
            "builtAt": built_at.isoformat(),
            "expiresAt": expires_at,
        }
        await self._cache_put(graph_key(fingerprint), envelope, run)

    # Cache degradation

    async def _cache_get(self, key: str, run: _RefreshRun) -> Optional[Tuple[Any, int]]:
        try:
            return await self.cache.get(key)
        except CacheError as e:
            logger.warning("Cache read failed, treating as miss: %s", e)
            run.warn("cache", key, f"read failed: {e}")
            return None

    async def _cache_put(self, key: str, value: Any, run: _RefreshRun) -> int:
        try:
            return await self.cache.put(key, value)
        except CacheError as e:
            logger.warning("Cache write failed, continuing uncached: %s", e)
            run.warn("cache", key, f"write failed: {e}")
            return self.cache.now()


async def _gather_or_cancel(*coroutines):
    """gather() that cancels the siblings when one fails."""
    tasks = [asyncio.ensure_future(c) for c in coroutines]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
