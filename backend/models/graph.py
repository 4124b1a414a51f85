"""
Dependency graph model - the value handed to the presentation layer.
"""

import json
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .dependency import DependencyEdge
from .registry_package import RegistryPackage
from .repository import LocalRepository
from .warning import GraphWarning


class Scope(BaseModel):
    """An npm scope observed in the graph, derived on every build."""

    name: str
    identity_id: Optional[str] = Field(default=None, alias="identityId")
    package_count: int = Field(default=0, ge=0, alias="packageCount")

    class Config:
        populate_by_name = True
        frozen = True


class GraphSummary(BaseModel):
    """Counts reported by the refresh endpoint."""

    local_repositories: int = Field(..., alias="localRepositories")
    npm_packages: int = Field(..., alias="npmPackages")
    npm_scopes: int = Field(..., alias="npmScopes")
    interdependencies: int
    cross_dependencies: int = Field(..., alias="crossDependencies")

    class Config:
        populate_by_name = True


class DependencyGraph(BaseModel):
    """
    Fused graph of local repositories and registry packages.

    Produced atomically by the graph builder and stored as a single cache
    blob. Every array is sorted, so two builds over identical inputs serialize
    to identical bytes.
    """

    repositories: List[LocalRepository] = Field(default_factory=list)
    npm_packages: List[RegistryPackage] = Field(default_factory=list, alias="npmPackages")
    npm_scopes: List[Scope] = Field(default_factory=list, alias="npmScopes")
    interdependencies: List[DependencyEdge] = Field(default_factory=list)
    cross_dependencies: List[DependencyEdge] = Field(
        default_factory=list, alias="crossDependencies"
    )
    unresolved_dependencies: List[DependencyEdge] = Field(
        default_factory=list, alias="unresolvedDependencies"
    )
    organizations: Dict[str, List[str]] = Field(
        default_factory=dict, description="Local scope -> manifest names"
    )
    npm_organizations: Dict[str, List[str]] = Field(
        default_factory=dict, alias="npmOrganizations", description="Registry scope -> package names"
    )

    class Config:
        populate_by_name = True

    def summary(self) -> GraphSummary:
        return GraphSummary(
            local_repositories=len(self.repositories),
            npm_packages=len(self.npm_packages),
            npm_scopes=len(self.npm_scopes),
            interdependencies=len(self.interdependencies),
            cross_dependencies=len(self.cross_dependencies),
        )

    def to_json(self) -> str:
        """Canonical serialization (sorted keys, no whitespace)."""
        return json.dumps(
            self.model_dump(mode="json", by_alias=True),
            sort_keys=True,
            separators=(",", ":"),
        )


class GraphResult(BaseModel):
    """A graph plus the warnings collected while producing it."""

    graph: DependencyGraph
    warnings: List[GraphWarning] = Field(default_factory=list)
    fingerprint: str
    from_cache: bool = Field(default=False, alias="fromCache")
    built_at: datetime = Field(..., alias="builtAt")

    class Config:
        populate_by_name = True


class RefreshSummary(BaseModel):
    """Result of a forced rebuild: counts plus the graph itself."""

    stats: GraphSummary
    graph: DependencyGraph
    warnings: List[GraphWarning] = Field(default_factory=list)

    class Config:
        populate_by_name = True
