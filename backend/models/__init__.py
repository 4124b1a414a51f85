"""
Data models for RunGhost.
"""

from .audit import AuditLogEntry, AuditLogStats, EndpointStats
from .cache import CacheEntry
from .dependency import DependencyEdge
from .graph import DependencyGraph, GraphResult, GraphSummary, RefreshSummary, Scope
from .identity import Identity
from .registry_package import RegistryPackage
from .repository import LocalRepository, ScanResult
from .warning import GraphWarning

__all__ = [
    "AuditLogEntry",
    "AuditLogStats",
    "EndpointStats",
    "CacheEntry",
    "DependencyEdge",
    "DependencyGraph",
    "GraphResult",
    "GraphSummary",
    "RefreshSummary",
    "Scope",
    "Identity",
    "RegistryPackage",
    "LocalRepository",
    "ScanResult",
    "GraphWarning",
]
