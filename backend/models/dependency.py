"""
Dependency model - graph edges between local repositories and registry packages.
"""

from typing import Literal, Optional, Tuple

from pydantic import BaseModel, Field

DependencyKind = Literal["runtime", "dev"]
Resolution = Literal["local", "registry", "unresolved"]

LOCAL_PREFIX = "local:"
REGISTRY_PREFIX = "registry:"


def local_node_id(path: str) -> str:
    return f"{LOCAL_PREFIX}{path}"


def registry_node_id(package_name: str) -> str:
    """Node id for a registry package; scoped names already carry '<scope>/'."""
    return f"{REGISTRY_PREFIX}{package_name}"


def is_local_node(node_id: str) -> bool:
    return node_id.startswith(LOCAL_PREFIX)


def package_scope(package_name: str) -> Optional[str]:
    """
    Extract the npm scope from a package name.

    Args:
        package_name: e.g. '@acme/widgets' or 'lodash'

    Returns:
        '@acme' for scoped names, None otherwise
    """
    if package_name.startswith("@") and "/" in package_name:
        return package_name.split("/", 1)[0]
    return None


class DependencyEdge(BaseModel):
    """A single declared dependency, after resolution against known nodes."""

    from_: str = Field(..., alias="from", description="Dependent node id")
    to: str = Field(..., description="Dependency node id")
    kind: DependencyKind = Field(..., description="runtime or dev")
    constraint: str = Field(..., description="Version constraint like '^1.0.0'")
    resolution: Resolution = Field(..., description="How the target was resolved")

    class Config:
        populate_by_name = True
        frozen = True
        json_schema_extra = {
            "example": {
                "from": "local:/home/me/work/acme/a",
                "to": "registry:@acme/b",
                "kind": "runtime",
                "constraint": "^1.2.0",
                "resolution": "registry",
            }
        }

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.from_, self.to, self.kind)

    @property
    def is_interdependency(self) -> bool:
        """Both ends are local repositories."""
        return is_local_node(self.from_) and is_local_node(self.to)
