"""
API endpoints for the enhanced dependency graph.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from api.dependencies.schemas import (
    CancelResponse,
    ErrorResponse,
    RefreshResponse,
    SchedulerStatusResponse,
)
from errors import RunGhostError
from models.graph import GraphResult
from services.dependency_service import DependencyGraphService
from services.scheduler import GraphRefreshScheduler

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/dependencies",
    tags=["dependencies"],
)

# Singletons (initialized on app startup)
_service: Optional[DependencyGraphService] = None
_scheduler: Optional[GraphRefreshScheduler] = None


def init_dependency_service(
    service: DependencyGraphService,
    scheduler: Optional[GraphRefreshScheduler] = None,
) -> DependencyGraphService:
    """Register the service (and optionally its scheduler); called from main.py startup."""
    global _service, _scheduler
    _service = service
    _scheduler = scheduler
    return _service


def get_dependency_service() -> DependencyGraphService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Dependency graph service not initialized")
    return _service


def get_graph_scheduler() -> GraphRefreshScheduler:
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Graph refresh scheduler not initialized")
    return _scheduler


def get_scheduler_instance() -> Optional[GraphRefreshScheduler]:
    """Raw scheduler instance (for shutdown)."""
    return _scheduler


def _error_response(error: str, exc: Exception) -> JSONResponse:
    body = ErrorResponse(error=error, details=f"{type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content=body.model_dump())


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    responses={500: {"model": ErrorResponse}},
)
async def refresh_dependencies(service: DependencyGraphService = Depends(get_dependency_service)):
    """
    Force a rebuild of the dependency graph, bypassing every cache TTL.

    Example:
        POST /api/dependencies/refresh

        Response:
        {
            "success": true,
            "message": "Dependency graph refreshed",
            "stats": {"localRepositories": 2, "npmPackages": 1, ...}
        }
    """
    try:
        summary = await service.refresh_graph()
    except RunGhostError as e:
        logger.error("Dependency graph refresh failed: %s", e)
        return _error_response("Failed to refresh dependency graph", e)
    except Exception as e:
        logger.exception("Unexpected error refreshing dependency graph")
        return _error_response("Failed to refresh dependency graph", e)

    return RefreshResponse(
        message="Dependency graph refreshed",
        stats=summary.stats,
        warnings=summary.warnings,
    )


@router.get(
    "/graph",
    response_model=GraphResult,
    responses={500: {"model": ErrorResponse}},
)
async def get_graph(
    force: bool = Query(default=False, description="Rebuild ignoring cache TTLs"),
    service: DependencyGraphService = Depends(get_dependency_service),
):
    """
    Get the current dependency graph (cached while its inputs are fresh).

    Example:
        GET /api/dependencies/graph?force=false
    """
    try:
        return await service.load_graph(force_refresh=force)
    except RunGhostError as e:
        logger.error("Cannot load dependency graph: %s", e)
        return _error_response("Failed to load dependency graph", e)
    except Exception as e:
        logger.exception("Unexpected error loading dependency graph")
        return _error_response("Failed to load dependency graph", e)


@router.post("/refresh/cancel", response_model=CancelResponse)
async def cancel_refresh(service: DependencyGraphService = Depends(get_dependency_service)):
    """Cancel graph builds currently in flight; nothing is persisted for them."""
    if service.cancel():
        return CancelResponse(success=True, message="Cancellation requested")
    return CancelResponse(success=False, message="No build in flight")


@router.get("/scheduler", response_model=SchedulerStatusResponse)
async def get_scheduler_status(scheduler: GraphRefreshScheduler = Depends(get_graph_scheduler)):
    """Get the graph refresh scheduler status."""
    return scheduler.get_status()
