import os
import logging
from contextlib import asynccontextmanager

import portalocker
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vorleser.config import settings
from vorleser.core.exceptions import InvalidTargetError
from vorleser.logging import log_config
from vorleser.services.scheduler import scheduler_service
from vorleser.services.watcher import library_watcher

# API Routes
from vorleser.api import libraries, audiobooks, playstates

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    # --- 1. GLOBAL SETUP (Run on ALL Uvicorn Workers) ---
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    log = log_config.setup_logging(settings.log_level)

    worker_pid = os.getpid()
    log.info(f"Worker process PID:{worker_pid} startup (Log Level: {settings.log_level})")

    # --- 2. SINGLETON SETUP (Run ONLY on one process) ---
    # Scheduled scans and the watcher must not run once per worker.
    lock_file_path = settings.log_dir / "scheduler.lock"
    lock_file_path.parent.mkdir(parents=True, exist_ok=True)

    lock_file = open(lock_file_path, "w")
    is_manager = False

    try:
        # LOCK_EX = Exclusive, LOCK_NB = Non-Blocking
        portalocker.lock(lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)
        is_manager = True
        log.info(f"Worker {worker_pid} acquired Manager Lock. Starting Scheduler...")

        scheduler_service.start()
        if settings.watch_enabled:
            library_watcher.start()
    except portalocker.LockException:
        log.info(f"Worker {worker_pid} could not acquire lock. Skipping singletons.")

    yield

    # --- SHUTDOWN ---
    log.info(f"Worker {worker_pid} shutting down...")

    if is_manager:
        library_watcher.stop()
        scheduler_service.stop()
        portalocker.unlock(lock_file)
    lock_file.close()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidTargetError)
async def invalid_target_handler(request: Request, exc: InvalidTargetError):
    # Client error: the audiobook is missing or was removed from disk
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


# --- ROUTER REGISTRATION ---
app.include_router(libraries.router, prefix="/api/libraries", tags=["libraries"])
app.include_router(audiobooks.router, prefix="/api/audiobooks", tags=["audiobooks"])
app.include_router(playstates.router, prefix="/api/playstates", tags=["playstates"])


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "vorleser"}
