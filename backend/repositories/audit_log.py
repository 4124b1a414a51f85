"""
Audit log repository implementation.
"""

from typing import List, Optional

from pymongo.database import Database

from models.audit import AuditLogEntry
from repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLogEntry]):
    """Repository for outbound HTTP call records."""

    def __init__(self, database: Database):
        super().__init__(database, "audit_logs", AuditLogEntry)

    async def find_filtered(
        self,
        service: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditLogEntry]:
        """
        Find entries newest first.

        Args:
            service: Optional service filter (e.g. 'registry')
            status: 'success' or 'error'
            skip: Number to skip
            limit: Maximum results

        Returns:
            List of audit entries
        """
        filter_dict: dict = {}
        if service:
            filter_dict["service"] = service
        if status == "success":
            filter_dict["error"] = None
            filter_dict["status"] = {"$lt": 400}
        elif status == "error":
            filter_dict["$or"] = [{"error": {"$ne": None}}, {"status": {"$gte": 400}}]

        return await self.find_many(
            filter_dict, skip=skip, limit=limit, sort=[("startedAt", -1)]
        )
