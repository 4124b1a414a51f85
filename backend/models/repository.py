"""
LocalRepository model - a cloned workspace entry with a package manifest.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .dependency import local_node_id, package_scope
from .warning import GraphWarning


class LocalRepository(BaseModel):
    """
    A discovered workspace entry.

    Created by the workspace scanner per scan and replaced wholesale on
    refresh; never mutated in place.
    """

    path: str = Field(..., description="Absolute directory path of the clone")
    manifest_name: str = Field(..., alias="manifestName")
    manifest_version: str = Field(default="0.0.0", alias="manifestVersion")
    description: Optional[str] = Field(default=None)
    declared_dependencies: Dict[str, str] = Field(
        default_factory=dict, alias="declaredDependencies"
    )
    declared_dev_dependencies: Dict[str, str] = Field(
        default_factory=dict, alias="declaredDevDependencies"
    )
    private: bool = Field(default=False)
    identity_id: Optional[str] = Field(default=None, alias="identityId")

    class Config:
        populate_by_name = True
        frozen = True
        json_schema_extra = {
            "example": {
                "path": "/home/me/work/acme/a",
                "manifestName": "@acme/a",
                "manifestVersion": "1.0.0",
                "declaredDependencies": {"@acme/b": "^1"},
                "declaredDevDependencies": {"vitest": "^3.0.0"},
                "private": False,
                "identityId": "acme",
            }
        }

    @property
    def node_id(self) -> str:
        return local_node_id(self.path)

    @property
    def scope(self) -> Optional[str]:
        return package_scope(self.manifest_name)


class ScanResult(BaseModel):
    """Output of one workspace scan, cached under `scan:<workspacePath>`."""

    workspace_path: str = Field(..., alias="workspacePath")
    repositories: List[LocalRepository] = Field(default_factory=list)
    warnings: List[GraphWarning] = Field(default_factory=list)

    class Config:
        populate_by_name = True
