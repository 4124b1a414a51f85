"""
RegistryPackage model - a package published under a configured npm scope.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .dependency import registry_node_id


class RegistryPackage(BaseModel):
    """Published package metadata projected from an npm packument."""

    name: str = Field(..., description="Full package name, e.g. '@acme/b'")
    scope: str = Field(..., description="npm scope, e.g. '@acme'")
    latest_version: str = Field(..., alias="latestVersion")
    description: Optional[str] = Field(default=None)
    published_at: Optional[datetime] = Field(default=None, alias="publishedAt")
    maintainers: List[str] = Field(default_factory=list)
    declared_dependencies: Dict[str, str] = Field(
        default_factory=dict, alias="declaredDependencies"
    )
    license: Optional[str] = Field(default=None)
    repository_url: Optional[str] = Field(default=None, alias="repositoryUrl")

    class Config:
        populate_by_name = True
        frozen = True
        json_schema_extra = {
            "example": {
                "name": "@acme/b",
                "scope": "@acme",
                "latestVersion": "1.2.3",
                "description": "Shared widgets",
                "publishedAt": "2024-01-10T12:00:00Z",
                "maintainers": ["acme-bot"],
                "declaredDependencies": {"lodash": "^4.17.21"},
            }
        }

    @property
    def node_id(self) -> str:
        return registry_node_id(self.name)
