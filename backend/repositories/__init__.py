"""
Repository layer for database operations.
"""

from .audit_log import AuditLogRepository
from .cache import CacheStore, graph_key, listing_key, package_key, scan_key

__all__ = [
    "AuditLogRepository",
    "CacheStore",
    "graph_key",
    "listing_key",
    "package_key",
    "scan_key",
]
