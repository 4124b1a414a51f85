"""
Non-fatal problems collected while building a graph.
"""

from typing import Literal

from pydantic import BaseModel, Field


class GraphWarning(BaseModel):
    """A warning attached to a scan or graph result; never changes response shape."""

    kind: Literal["scan", "registry", "cache", "unresolved"]
    subject: str = Field(..., description="Path, package name, scope or cache key concerned")
    message: str

    class Config:
        frozen = True
