import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

import env
from api.audit.router import init_audit_logger, router as audit_router
from api.dependencies.router import (
    get_scheduler_instance,
    init_dependency_service,
    router as dependencies_router,
)
from config import load_config_from_directory
from database import get_database_manager
from repositories.cache import CacheStore
from services.dependency_service import create_dependency_service
from services.scheduler import GraphRefreshScheduler

logging.basicConfig(
    level=getattr(logging, env.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="RunGhost API",
    description="Dependency graph of local workspaces and their published npm packages",
    version="1.0.0",
)

# Include routers
app.include_router(dependencies_router)
app.include_router(audit_router)

# Initialize database manager
db_manager = get_database_manager()

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Connect to MongoDB, wire the dependency graph service and start the refresh scheduler."""
    try:
        config = load_config_from_directory()

        db_manager.connect()
        db_manager.ping()
        logger.info("MongoDB connection successful")

        cache = CacheStore(db_manager.database)
        await cache.initialize()

        service = create_dependency_service(config, db_manager.database, cache=cache)
        scheduler = GraphRefreshScheduler(service)
        init_dependency_service(service, scheduler)
        init_audit_logger(service.audit_logger)

        scheduler.start(interval_seconds=config.refresh_interval_seconds)
        logger.info(
            "Dependency graph service ready for %s (%d identities)",
            config.workspace_path, len(service.identities),
        )
    except Exception as e:
        logger.error("Startup failed: %s", e)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the scheduler, flush audit entries and close the database connection."""
    scheduler = get_scheduler_instance()
    if scheduler is not None:
        scheduler.stop()
        if scheduler.service.audit_logger is not None:
            await scheduler.service.audit_logger.flush()

    db_manager.disconnect()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to RunGhost API",
        "version": "1.0.0",
        "description": "Enhanced dependency graph for local workspaces and npm scopes",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        db_status = "connected" if db_manager.ping() else "disconnected"
    except PyMongoError:
        db_status = "disconnected"

    return {"status": "healthy", "database": db_status, "timestamp": datetime.now(timezone.utc)}
