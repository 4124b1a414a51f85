from typing import List, Optional

from pydantic import BaseModel, Field

from models.graph import GraphSummary
from models.warning import GraphWarning


class RefreshResponse(BaseModel):
    """Response for a forced graph rebuild."""
    success: bool = True
    message: str
    stats: GraphSummary
    warnings: List[GraphWarning] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Dependency graph refreshed",
                "stats": {
                    "localRepositories": 2,
                    "npmPackages": 1,
                    "npmScopes": 1,
                    "interdependencies": 1,
                    "crossDependencies": 1,
                },
                "warnings": [],
            }
        }


class ErrorResponse(BaseModel):
    """Body returned with HTTP 500 when a build fails."""
    success: bool = False
    error: str
    details: Optional[str] = None


class CancelResponse(BaseModel):
    success: bool
    message: str


class SchedulerStatusResponse(BaseModel):
    """Graph refresh scheduler status."""
    is_running: bool
    last_run: Optional[str]
    next_run: Optional[str]
    last_result: Optional[dict]
    run_count: int
    error_count: int
