"""
Identity model - configured GitHub accounts/organizations and their npm scopes.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def normalize_scope(scope: str) -> str:
    """Normalize an npm scope to the '@name' form."""
    scope = scope.strip().rstrip("/")
    return scope if scope.startswith("@") else f"@{scope}"


class Identity(BaseModel):
    """
    A configured actor (GitHub user or organization).

    Identities are immutable for the lifetime of a request. `scopes` lists the
    npm registry namespaces whose packages belong to this identity.
    """

    id: str = Field(..., description="Identity key from configuration")
    username: str = Field(..., description="GitHub username or organization login")
    scopes: List[str] = Field(default_factory=list, description="npm scopes, e.g. '@acme'")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "acme",
                "username": "acme-corp",
                "scopes": ["@acme"],
            }
        }

    @field_validator("scopes")
    @classmethod
    def _normalize_scopes(cls, value: List[str]) -> List[str]:
        normalized: List[str] = []
        for scope in value:
            scope = normalize_scope(scope)
            if scope != "@" and scope not in normalized:
                normalized.append(scope)
        return normalized

    @property
    def scope(self) -> Optional[str]:
        """Primary scope, if any."""
        return self.scopes[0] if self.scopes else None
