"""
Audit logger - records every outbound HTTP call made by the API clients.
"""

import logging
import re
import uuid
from collections import Counter, deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from pymongo.errors import PyMongoError

from models.audit import AuditLogEntry, AuditLogStats, EndpointStats
from repositories.audit_log import AuditLogRepository

logger = logging.getLogger(__name__)


def normalize_endpoint(url: str) -> str:
    """Strip query strings and collapse ids/hashes so endpoints group together."""
    path = url.split("?", 1)[0]
    path = re.sub(r"/[a-f0-9]{40}(?=/|$)", "/:hash", path)
    path = re.sub(r"/\d+(?=/|$)", "/:id", path)
    return path


class AuditLogger:
    """
    Buffered audit trail of outbound requests.

    Entries are kept in a bounded in-memory history and buffered for the
    repository; the buffer is flushed when it reaches `buffer_size` entries or
    when `flush()` is called. Without a repository the history is the only
    store.
    """

    BUFFER_SIZE = 100
    HISTORY_SIZE = 1000
    STATS_SAMPLE_SIZE = 10000

    def __init__(
        self,
        repository: Optional[AuditLogRepository] = None,
        buffer_size: int = BUFFER_SIZE,
        history_size: int = HISTORY_SIZE,
    ):
        self._repository = repository
        self._buffer_size = buffer_size
        self._buffer: List[AuditLogEntry] = []
        self._history: Deque[AuditLogEntry] = deque(maxlen=history_size)

    async def log_request(
        self,
        service: str,
        method: str,
        url: str,
        status: Optional[int],
        started_at: datetime,
        ended_at: datetime,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """
        Record one outbound call.

        Args:
            service: Calling service ('registry', 'github', ...)
            method: HTTP method
            url: Full request URL
            status: HTTP status, or None when the call failed in transport
            started_at: When the request was issued
            ended_at: When the response (or error) arrived
            error: Transport error message, if any
            metadata: Free-form context (scope, package name, attempt)

        Returns:
            The recorded entry
        """
        entry = AuditLogEntry(
            service=service,
            method=method,
            url=url,
            status=status,
            duration_ms=max(0.0, (ended_at - started_at).total_seconds() * 1000),
            started_at=started_at,
            ended_at=ended_at,
            error=error,
            metadata=metadata or {},
        )
        self._history.append(entry)
        self._buffer.append(entry)

        if len(self._buffer) >= self._buffer_size:
            await self.flush()
        return entry

    async def flush(self) -> int:
        """
        Persist buffered entries.

        Returns:
            Number of entries written (0 without a repository or on failure)
        """
        if self._repository is None:
            self._buffer.clear()
            return 0
        if not self._buffer:
            return 0

        entries, self._buffer = self._buffer, []
        try:
            return await self._repository.upsert_many(
                (uuid.uuid4().hex, entry) for entry in entries
            )
        except PyMongoError as e:
            logger.error("Failed to flush %d audit entries: %s", len(entries), e)
            # Put entries back for the next flush
            self._buffer[:0] = entries
            return 0

    def recent(self, service: Optional[str] = None) -> List[AuditLogEntry]:
        """In-memory history, oldest first."""
        return [e for e in self._history if service is None or e.service == service]

    async def get_logs(
        self,
        service: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogEntry]:
        """
        Query entries newest first.

        Args:
            service: Optional service filter
            status: 'success' or 'error'
            limit: Maximum entries
            offset: Entries to skip
        """
        await self.flush()
        if self._repository is not None:
            return await self._repository.find_filtered(
                service=service, status=status, skip=offset, limit=limit
            )

        entries = [e for e in reversed(self._history) if service is None or e.service == service]
        if status == "success":
            entries = [e for e in entries if not e.is_error]
        elif status == "error":
            entries = [e for e in entries if e.is_error]
        return entries[offset:offset + limit]

    async def get_stats(self, service: Optional[str] = None) -> AuditLogStats:
        """Aggregate counts, durations and top endpoints."""
        entries = await self.get_logs(service=service, limit=self.STATS_SAMPLE_SIZE)
        if not entries:
            return AuditLogStats()

        failed = sum(1 for e in entries if e.is_error)
        by_endpoint: Dict[str, List[float]] = {}
        for entry in entries:
            by_endpoint.setdefault(normalize_endpoint(entry.url), []).append(entry.duration_ms)

        top_endpoints = sorted(
            (
                EndpointStats(url=url, count=len(durations), average_duration_ms=sum(durations) / len(durations))
                for url, durations in by_endpoint.items()
            ),
            key=lambda s: (-s.count, s.url),
        )[:10]

        return AuditLogStats(
            total_requests=len(entries),
            successful_requests=len(entries) - failed,
            failed_requests=failed,
            average_duration_ms=sum(e.duration_ms for e in entries) / len(entries),
            requests_by_service=dict(Counter(e.service for e in entries)),
            requests_by_method=dict(Counter(e.method for e in entries)),
            top_endpoints=top_endpoints,
        )
