"""tasksync - Employee task tracking with recurring tasks, points and rewards."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from tasksync.core.backend import SupabaseClient
from tasksync.core.config import settings
from tasksync.core.logging import configure_logfire, instrument_fastapi
from tasksync.core.module import Module
from tasksync.core.scheduler import scheduler, start_scheduler, stop_scheduler
from tasksync.core.storage import RemoteStorage, SqliteStorage, StoragePort
from tasksync.interface.functions import router as functions_router
from tasksync.modules.tasks import TasksModule
from tasksync.modules.tasks.store import TaskStore


logger = logging.getLogger(__name__)


def build_storage() -> StoragePort:
    """Relational store when Supabase is configured, otherwise the local SQLite cache."""
    if settings.has_remote_store:
        api_key = settings.require_credential("supabase_anon_key", "Supabase anon key")
        client = SupabaseClient(
            url=settings.supabase_url or "",
            api_key=api_key,
            service_role_key=settings.supabase_service_role_key,
        )
        logger.info("startup_validation", extra={"storage": "remote", "status": "ok"})
        return RemoteStorage(client)

    logger.info("startup_validation", extra={"storage": "local", "path": settings.local_cache_path})
    return SqliteStorage(settings.local_cache_path)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so startup logs are captured
    configure_logfire()

    storage = build_storage()
    store = TaskStore(storage, default_monthly_target=settings.default_monthly_target)
    await store.load()
    app.state.task_store = store

    tasks_module: Module = TasksModule(store)
    logger.info("Registering module jobs", extra={"module": tasks_module.name})
    start_scheduler(tasks_module.get_scheduled_jobs())
    yield
    # Shutdown
    stop_scheduler()
    if isinstance(storage, SqliteStorage):
        await storage.close()


app = FastAPI(
    title="tasksync",
    description="Employee task tracking with recurring tasks, points and rewards",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(functions_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduled jobs and their next run times."""
    jobs = {
        job.id: job.next_run_time.isoformat() if job.next_run_time else None for job in scheduler.get_jobs()
    }
    status = "healthy" if scheduler.running else "stopped"
    return JSONResponse(content={"status": status, "jobs": jobs}, status_code=200 if scheduler.running else 503)
