"""
Audit log entry model - one outbound HTTP call.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AuditLogEntry(BaseModel):
    """Record of an outbound request made by one of the API clients."""

    service: str = Field(..., description="Service name, e.g. 'registry'")
    method: str
    url: str
    status: Optional[int] = Field(default=None, description="HTTP status, None on transport error")
    duration_ms: float = Field(..., ge=0, alias="durationMs")
    started_at: datetime = Field(..., alias="startedAt")
    ended_at: datetime = Field(..., alias="endedAt")
    error: Optional[str] = Field(default=None)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "service": "registry",
                "method": "GET",
                "url": "https://registry.npmjs.org/@acme%2Fb",
                "status": 200,
                "durationMs": 84.2,
                "startedAt": "2024-01-10T12:00:00Z",
                "endedAt": "2024-01-10T12:00:00.084Z",
            }
        }

    @property
    def is_error(self) -> bool:
        return self.error is not None or (self.status is not None and self.status >= 400)


class EndpointStats(BaseModel):
    url: str
    count: int
    average_duration_ms: float = Field(..., alias="averageDurationMs")

    class Config:
        populate_by_name = True


class AuditLogStats(BaseModel):
    """Aggregate view over audit entries."""

    total_requests: int = Field(default=0, alias="totalRequests")
    successful_requests: int = Field(default=0, alias="successfulRequests")
    failed_requests: int = Field(default=0, alias="failedRequests")
    average_duration_ms: float = Field(default=0.0, alias="averageDurationMs")
    requests_by_service: Dict[str, int] = Field(default_factory=dict, alias="requestsByService")
    requests_by_method: Dict[str, int] = Field(default_factory=dict, alias="requestsByMethod")
    top_endpoints: List[EndpointStats] = Field(default_factory=list, alias="topEndpoints")

    class Config:
        populate_by_name = True
