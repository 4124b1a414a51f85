"""
Services layer for RunGhost.
"""

from .manifest_parser import ParsedManifest, parse_manifest_text, read_manifest
from .workspace_scanner import WorkspaceScanner
from .rate_limiter import TokenBucket
from .audit_logger import AuditLogger
from .npm_client import NpmRegistryClient
from .graph_builder import GraphBuilder, workspace_fingerprint
from .refresh_orchestrator import RefreshOrchestrator
from .dependency_service import DependencyGraphService, SingleFlight, create_dependency_service
from .scheduler import GraphRefreshScheduler

__all__ = [
    "ParsedManifest",
    "parse_manifest_text",
    "read_manifest",
    "WorkspaceScanner",
    "TokenBucket",
    "AuditLogger",
    "NpmRegistryClient",
    "GraphBuilder",
    "workspace_fingerprint",
    "RefreshOrchestrator",
    "DependencyGraphService",
    "SingleFlight",
    "create_dependency_service",
    "GraphRefreshScheduler",
]
