"""
Graph builder - fuses local manifests and registry packages into one graph.
"""

import hashlib
import json
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from models.dependency import (
    DependencyEdge,
    DependencyKind,
    Resolution,
    package_scope,
    registry_node_id,
)
from models.graph import DependencyGraph, Scope
from models.identity import Identity
from models.registry_package import RegistryPackage
from models.repository import LocalRepository
from models.warning import GraphWarning

logger = logging.getLogger(__name__)


def workspace_fingerprint(repositories: Iterable[LocalRepository], scopes: Iterable[str]) -> str:
    """
    Stable hash over the inputs of a build.

    Covers each repository's path, name, version and both dependency maps,
    plus the configured scopes, so editing a manifest's dependencies yields a
    new fingerprint.
    """
    payload = {
        "repositories": sorted(
            [
                repo.path,
                repo.manifest_name,
                repo.manifest_version,
                sorted(repo.declared_dependencies.items()),
                sorted(repo.declared_dev_dependencies.items()),
            ]
            for repo in repositories
        ),
        "scopes": sorted(set(scopes)),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class GraphBuilder:
    """
    Pure, synchronous graph assembly.

    All lookups go through dicts keyed on manifest name and package name, so
    a build is linear in repositories times declared dependencies plus
    registry packages. Output arrays are sorted: nodes by id, edges by
    (from, to, kind).
    """

    def build(
        self,
        repositories: Iterable[LocalRepository],
        registry_packages: Iterable[RegistryPackage],
        identities: Iterable[Identity],
    ) -> Tuple[DependencyGraph, List[GraphWarning]]:
        """
        Build a dependency graph.

        Args:
            repositories: Scanner output, in scanner order
            registry_packages: Described packages for the configured scopes
            identities: Configured identities

        Returns:
            (graph, warnings) - warnings cover duplicate manifest names and
            unresolved dependencies under a configured scope
        """
        warnings: List[GraphWarning] = []
        scope_owner = self._scope_owners(identities)

        locals_by_name = self._index_repositories(repositories, scope_owner, warnings)
        packages_by_name: Dict[str, RegistryPackage] = {}
        for package in registry_packages:
            packages_by_name.setdefault(package.name, package)

        edges: Dict[Tuple[str, str], DependencyEdge] = {}
        unresolved_names: Dict[Tuple[str, str], Tuple[str, str]] = {}

        for repo in locals_by_name.values():
            for kind, declared in (
                ("runtime", repo.declared_dependencies),
                ("dev", repo.declared_dev_dependencies),
            ):
                for name, constraint in sorted(declared.items()):
                    target = self._resolve(name, locals_by_name, packages_by_name, scope_owner)
                    if target is None:
                        continue
                    to, resolution = target
                    if resolution == "unresolved":
                        unresolved_names[(repo.node_id, to)] = (repo.manifest_name, name)
                    self._add_edge(edges, repo.node_id, to, kind, constraint, resolution)

        # Reverse edges from published manifests back into the workspace
        for package in packages_by_name.values():
            for name, constraint in sorted(package.declared_dependencies.items()):
                target_repo = locals_by_name.get(name)
                if target_repo is not None:
                    self._add_edge(edges, package.node_id, target_repo.node_id, "runtime", constraint, "local")

        interdependencies: List[DependencyEdge] = []
        cross_dependencies: List[DependencyEdge] = []
        unresolved: List[DependencyEdge] = []
        for edge in sorted(edges.values(), key=lambda e: e.sort_key()):
            if edge.resolution == "unresolved":
                unresolved.append(edge)
                manifest_name, name = unresolved_names[(edge.from_, edge.to)]
                warnings.append(GraphWarning(
                    kind="unresolved",
                    subject=name,
                    message=f"{manifest_name} depends on {name}@{edge.constraint}, "
                            f"which is neither in the workspace nor published",
                ))
            elif edge.is_interdependency:
                interdependencies.append(edge)
            else:
                cross_dependencies.append(edge)

        local_repositories = sorted(locals_by_name.values(), key=lambda r: r.node_id)
        npm_packages = sorted(packages_by_name.values(), key=lambda p: p.node_id)

        graph = DependencyGraph(
            repositories=local_repositories,
            npm_packages=npm_packages,
            npm_scopes=self._scopes(local_repositories, npm_packages, scope_owner),
            interdependencies=interdependencies,
            cross_dependencies=cross_dependencies,
            unresolved_dependencies=unresolved,
            organizations=_group_names((r.scope, r.manifest_name) for r in local_repositories),
            npm_organizations=_group_names((p.scope, p.name) for p in npm_packages),
        )

        logger.info(
            "Built graph: %d repositories, %d packages, %d scopes, "
            "%d interdependencies, %d cross dependencies, %d unresolved",
            len(graph.repositories), len(graph.npm_packages), len(graph.npm_scopes),
            len(graph.interdependencies), len(graph.cross_dependencies),
            len(graph.unresolved_dependencies),
        )
        warnings.sort(key=lambda w: (w.kind, w.subject, w.message))
        return graph, warnings

    @staticmethod
    def _scope_owners(identities: Iterable[Identity]) -> Dict[str, str]:
        owners: Dict[str, str] = {}
        for identity in sorted(identities, key=lambda i: i.id):
            for scope in identity.scopes:
                owners.setdefault(scope, identity.id)
        return owners

    @staticmethod
    def _index_repositories(
        repositories: Iterable[LocalRepository],
        scope_owner: Dict[str, str],
        warnings: List[GraphWarning],
    ) -> Dict[str, LocalRepository]:
        """Index by manifest name, reconciling identities; first duplicate wins."""
        by_name: Dict[str, LocalRepository] = {}
        for repo in repositories:
            kept = by_name.get(repo.manifest_name)
            if kept is not None:
                logger.warning(
                    "Duplicate manifest name %s at %s (keeping %s)",
                    repo.manifest_name, repo.path, kept.path,
                )
                warnings.append(GraphWarning(
                    kind="scan",
                    subject=repo.path,
                    message=f"duplicate manifest name {repo.manifest_name}, already found at {kept.path}",
                ))
                continue

            owner = scope_owner.get(repo.scope) if repo.scope else None
            if owner is not None and owner != repo.identity_id:
                repo = repo.model_copy(update={"identity_id": owner})
            by_name[repo.manifest_name] = repo
        return by_name

    @staticmethod
    def _resolve(
        name: str,
        locals_by_name: Dict[str, LocalRepository],
        packages_by_name: Dict[str, RegistryPackage],
        scope_owner: Dict[str, str],
    ) -> Optional[Tuple[str, Resolution]]:
        local = locals_by_name.get(name)
        if local is not None:
            return local.node_id, "local"

        package = packages_by_name.get(name)
        if package is not None and package.scope in scope_owner:
            return package.node_id, "registry"

        if package_scope(name) in scope_owner:
            return registry_node_id(name), "unresolved"

        # External dependency, not part of the graph
        return None

    @staticmethod
    def _add_edge(
        edges: Dict[Tuple[str, str], DependencyEdge],
        from_: str,
        to: str,
        kind: DependencyKind,
        constraint: str,
        resolution: Resolution,
    ) -> None:
        existing = edges.get((from_, to))
        if existing is not None and (existing.kind == "runtime" or kind == "dev"):
            return
        edges[(from_, to)] = DependencyEdge(
            from_=from_, to=to, kind=kind, constraint=constraint, resolution=resolution
        )

    @staticmethod
    def _scopes(
        repositories: List[LocalRepository],
        packages: List[RegistryPackage],
        scope_owner: Dict[str, str],
    ) -> List[Scope]:
        counts: Dict[str, int] = {}
        for package in packages:
            counts[package.scope] = counts.get(package.scope, 0) + 1

        # Identity scopes without packages are kept only when the workspace uses them
        referenced: Set[str] = set()
        for repo in repositories:
            names = [repo.manifest_name, *repo.declared_dependencies, *repo.declared_dev_dependencies]
            referenced.update(s for s in map(package_scope, names) if s is not None)
        for scope in scope_owner:
            if scope in referenced:
                counts.setdefault(scope, 0)

        return [
            Scope(name=name, identity_id=scope_owner.get(name), package_count=count)
            for name, count in sorted(counts.items())
        ]


def _group_names(pairs: Iterable[Tuple[Optional[str], str]]) -> Dict[str, List[str]]:
    groups: Dict[str, Set[str]] = {}
    for scope, name in pairs:
        if scope:
            groups.setdefault(scope, set()).add(name)
    return {scope: sorted(names) for scope, names in sorted(groups.items())}
