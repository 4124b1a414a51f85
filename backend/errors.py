"""
Error hierarchy for the dependency graph backend.

Fatal errors short-circuit a request. Registry and cache failures are caught
by the refresh orchestrator and downgraded to warnings on the result.
"""

from typing import Optional


class RunGhostError(Exception):
    """Base class for all RunGhost errors."""


class ConfigError(RunGhostError):
    """Workspace path missing or identities malformed."""


class ScanError(RunGhostError):
    """Workspace root could not be read."""


class RegistryError(RunGhostError):
    """Registry transport or protocol failure after retries."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class RegistryPayloadError(RegistryError):
    """Registry answered, but the payload had the wrong shape."""


class CacheError(RunGhostError):
    """Storage I/O failure in the cache store."""


class Cancelled(RunGhostError):
    """A refresh was cancelled by its caller."""


class RefreshTimeoutError(RunGhostError):
    """The whole refresh exceeded its time budget."""
