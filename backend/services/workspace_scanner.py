"""
Workspace scanner - discovers locally cloned repositories and their manifests.
"""

import logging
import os
from typing import Callable, Dict, Iterable, List, Optional, Set

from errors import Cancelled, ScanError
from models.identity import Identity
from models.repository import LocalRepository, ScanResult
from models.warning import GraphWarning
from services.manifest_parser import MANIFEST_FILE_NAME, ManifestError, read_manifest

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 4

# Directories that never hold a clone's root manifest
EXCLUDED_DIRECTORIES = frozenset({"node_modules", "bower_components", "dist", "build", "coverage"})


class WorkspaceScanner:
    """
    Walks a workspace directory and records one LocalRepository per manifest.

    Depth is counted from the workspace root (depth 0); a manifest at exactly
    `max_depth` is included. Hidden and vendored directories are skipped.
    Symlinked directories are followed only when they resolve inside the
    workspace, and each real directory is visited once.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth

    def scan(
        self,
        workspace_path: str,
        identities: Iterable[Identity] = (),
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> ScanResult:
        """
        Scan a workspace.

        Args:
            workspace_path: Directory holding the clones
            identities: Configured identities, used to tag repositories that sit
                under an identity-owned subtree (workspace/<username>/...)
            should_stop: Polled between directories; returning True cancels

        Returns:
            ScanResult with repositories sorted by (manifestName, path)

        Raises:
            ScanError: if the workspace root is unreadable
            Cancelled: if should_stop() returned True
        """
        root = os.path.abspath(os.path.expanduser(workspace_path))
        if not os.path.isdir(root):
            raise ScanError(f"Workspace path is not a directory: {root}")

        try:
            root_real = os.path.realpath(root)
            root_entries = list(os.scandir(root))
        except OSError as e:
            raise ScanError(f"Workspace path is unreadable: {root}: {e}") from e

        owners = self._subtree_owners(identities)
        repositories: List[LocalRepository] = []
        warnings: List[GraphWarning] = []
        visited: Set[str] = {root_real}

        def check_stop() -> None:
            if should_stop is not None and should_stop():
                raise Cancelled("Workspace scan cancelled")

        def visit(directory: str, entries: List[os.DirEntry], depth: int) -> None:
            check_stop()

            if any(entry.name == MANIFEST_FILE_NAME and _is_file(entry) for entry in entries):
                repository = self._load_repository(root, directory, owners, warnings)
                if repository is not None:
                    repositories.append(repository)

            if depth >= self.max_depth:
                return

            for entry in sorted(entries, key=lambda e: e.name):
                if entry.name.startswith(".") or entry.name in EXCLUDED_DIRECTORIES:
                    continue
                if not _is_dir(entry):
                    continue

                child = os.path.join(directory, entry.name)
                try:
                    child_real = os.path.realpath(child)
                except OSError as e:
                    warnings.append(_scan_warning(child, f"cannot resolve path: {e}"))
                    continue

                if entry.is_symlink() and not _is_within(child_real, root_real):
                    logger.debug("Skipping symlink leaving the workspace: %s", child)
                    continue
                if child_real in visited:
                    continue
                visited.add(child_real)

                try:
                    child_entries = list(os.scandir(child))
                except OSError as e:
                    logger.warning("Cannot read directory %s: %s", child, e)
                    warnings.append(_scan_warning(child, f"unreadable directory: {e}"))
                    continue

                visit(child, child_entries, depth + 1)

        visit(root, root_entries, 0)

        repositories.sort(key=lambda r: (r.manifest_name, r.path))
        logger.info(
            "Scanned %s: %d repositories, %d warnings", root, len(repositories), len(warnings)
        )
        return ScanResult(workspace_path=root, repositories=repositories, warnings=warnings)

    def _load_repository(
        self,
        root: str,
        directory: str,
        owners: Dict[str, str],
        warnings: List[GraphWarning],
    ) -> Optional[LocalRepository]:
        manifest_path = os.path.join(directory, MANIFEST_FILE_NAME)
        try:
            manifest = read_manifest(manifest_path)
        except (OSError, UnicodeDecodeError, ManifestError) as e:
            logger.warning("Skipping manifest %s: %s", manifest_path, e)
            warnings.append(_scan_warning(directory, f"unusable manifest: {e}"))
            return None

        for key in manifest.rejected_keys:
            warnings.append(_scan_warning(directory, f"rejected non-string entry {key}"))

        return LocalRepository(
            path=directory,
            manifest_name=manifest.name,
            manifest_version=manifest.version,
            description=manifest.description,
            declared_dependencies=manifest.dependencies,
            declared_dev_dependencies=manifest.dev_dependencies,
            private=manifest.private,
            identity_id=self._owner_for(root, directory, owners),
        )

    @staticmethod
    def _subtree_owners(identities: Iterable[Identity]) -> Dict[str, str]:
        """Map lower-cased directory names (username and id) to identity ids."""
        owners: Dict[str, str] = {}
        for identity in identities:
            owners.setdefault(identity.username.lower(), identity.id)
            owners.setdefault(identity.id.lower(), identity.id)
        return owners

    @staticmethod
    def _owner_for(root: str, directory: str, owners: Dict[str, str]) -> Optional[str]:
        relative = os.path.relpath(directory, root)
        if relative == os.curdir:
            return None
        top = relative.split(os.sep, 1)[0].lower()
        return owners.get(top)


def _is_file(entry: os.DirEntry) -> bool:
    try:
        return entry.is_file()
    except OSError:
        return False


def _is_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


def _is_within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def _scan_warning(subject: str, message: str) -> GraphWarning:
    return GraphWarning(kind="scan", subject=subject, message=message)
