"""
API endpoints for the outbound request audit trail.
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from models.audit import AuditLogEntry, AuditLogStats
from services.audit_logger import AuditLogger

router = APIRouter(
    prefix="/api/audit",
    tags=["audit"],
)

# Singleton audit logger (initialized on app startup)
_audit_logger: Optional[AuditLogger] = None


def init_audit_logger(audit_logger: AuditLogger) -> AuditLogger:
    """Register the audit logger (called from main.py startup)."""
    global _audit_logger
    _audit_logger = audit_logger
    return _audit_logger


def get_audit_logger() -> AuditLogger:
    if _audit_logger is None:
        raise HTTPException(status_code=503, detail="Audit logger not initialized")
    return _audit_logger


class AuditLogsResponse(BaseModel):
    logs: List[AuditLogEntry]
    limit: int
    offset: int


@router.get("/logs", response_model=AuditLogsResponse)
async def get_audit_logs(
    service: Optional[str] = Query(default=None, description="Filter by service, e.g. 'registry'"),
    status: Optional[Literal["success", "error"]] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    audit_logger: AuditLogger = Depends(get_audit_logger),
):
    """
    List outbound requests, newest first.

    Example:
        GET /api/audit/logs?service=registry&status=error&limit=20
    """
    logs = await audit_logger.get_logs(service=service, status=status, limit=limit, offset=offset)
    return AuditLogsResponse(logs=logs, limit=limit, offset=offset)


@router.get("/stats", response_model=AuditLogStats)
async def get_audit_stats(
    service: Optional[str] = Query(default=None),
    audit_logger: AuditLogger = Depends(get_audit_logger),
):
    """Aggregate request counts, durations and the busiest endpoints."""
    return await audit_logger.get_stats(service=service)
