#!/usr/bin/env python3
"""
waitingflow - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the API server and the admission scheduler

All business logic is in the modules, following black box principles.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from waitingflow.exceptions import ApplicationError
from waitingflow.logging_config import configure_logging, get_logging_config

# Import modules through their black box interfaces
from waitingflow.modules.api import ErrorResponse, router
from waitingflow.modules.config import get_config
from waitingflow.modules.queue import QueueManager
from waitingflow.modules.scheduler import AdmissionScheduler
from waitingflow.modules.storage import StorageModule
from waitingflow.modules.token import TokenCache, TokenIssuer

# Get configuration
config = get_config()

# Configure logging with health-check and rank-poll access lines suppressed
configure_logging(config.get("log_level"))
logger = logging.getLogger("waitingflow.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    logger.info("Starting waitingflow API...")

    # Fails fast if sha256 is unavailable
    token_issuer = TokenIssuer(TokenCache(config.get("token_cache_size")))

    storage = StorageModule.from_config(config)
    redis_client = await storage.connect()
    store = await storage.queue_store()

    queue_manager = QueueManager(store, token_issuer)
    scheduler = AdmissionScheduler(
        queue_manager,
        store,
        enabled=config.get("scheduler_enabled"),
        batch_size=config.get("scheduler_batch_size"),
        initial_delay=config.get("scheduler_initial_delay"),
        interval=config.get("scheduler_interval"),
        scan_hint=config.get("scheduler_scan_hint"),
    )

    app.state.storage = storage
    app.state.redis_client = redis_client
    app.state.token_issuer = token_issuer
    app.state.queue_manager = queue_manager
    app.state.scheduler = scheduler
    app.state.token_cookie_max_age = config.get("token_cookie_max_age")

    await scheduler.start()
    logger.info("waitingflow API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down waitingflow API...")
    await scheduler.stop()
    await storage.disconnect()
    app.state.queue_manager = None
    logger.info("waitingflow API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="waitingflow API",
    description="waitingflow - Virtual waiting room with batched admission",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router, tags=["queue"])


# Health/Monitoring Endpoints


@app.get("/healthz")
async def healthz():
    """
    Minimal health check endpoint for readiness/liveness probes.

    Returns:
        200: Service is running
    """
    return {"status": "ok"}


@app.get("/health")
async def health_check(request: Request):
    """
    Health check with store connectivity and module status.

    Returns:
        200: Service healthy
        503: Service unhealthy
    """
    redis_client = getattr(request.app.state, "redis_client", None)
    scheduler = getattr(request.app.state, "scheduler", None)
    modules_ready = getattr(request.app.state, "queue_manager", None) is not None

    try:
        if redis_client:
            await redis_client.ping()
            redis_status = "connected"
        else:
            redis_status = "disconnected"
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": str(e)})

    body = {
        "redis": redis_status,
        "modules": "initialized" if modules_ready else "not initialized",
        "scheduler": {
            "enabled": bool(scheduler and scheduler.enabled),
            "running": bool(scheduler and scheduler.running),
        },
        "version": "1.0.0",
    }
    if redis_status == "connected" and modules_ready:
        return {"status": "healthy", **body}
    return JSONResponse(status_code=503, content={"status": "unhealthy", **body})


@app.get("/metrics")
async def metrics(request: Request):
    """
    Prometheus-compatible metrics endpoint.

    Returns admission counters from the scheduler and token cache size.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    token_issuer = getattr(request.app.state, "token_issuer", None)
    if not scheduler or not token_issuer:
        return Response(content="", status_code=503)

    report = scheduler.last_report
    last_queues = len(report.queues) if report else 0
    last_promoted = report.total_promoted if report else 0

    metrics_text = f"""# HELP waitingflow_scheduler_enabled Whether admission sweeps are enabled
# TYPE waitingflow_scheduler_enabled gauge
waitingflow_scheduler_enabled {int(scheduler.enabled)}
# HELP waitingflow_promoted_total Users admitted by the scheduler
# TYPE waitingflow_promoted_total counter
waitingflow_promoted_total {scheduler.total_promoted}
# HELP waitingflow_sweeps_total Completed admission sweeps
# TYPE waitingflow_sweeps_total counter
waitingflow_sweeps_total {scheduler.sweep_count}
# HELP waitingflow_last_sweep_queues Queues visited by the last sweep
# TYPE waitingflow_last_sweep_queues gauge
waitingflow_last_sweep_queues {last_queues}
# HELP waitingflow_last_sweep_promoted Users admitted by the last sweep
# TYPE waitingflow_last_sweep_promoted gauge
waitingflow_last_sweep_promoted {last_promoted}
# HELP waitingflow_token_cache_entries Cached admission tokens
# TYPE waitingflow_token_cache_entries gauge
waitingflow_token_cache_entries {len(token_issuer.cache)}
"""

    return Response(content=metrics_text, media_type="text/plain")


# Error handlers


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    """Render application errors with their status and code."""
    if exc.http_status >= 500:
        logger.error(f"{exc.code}: {exc}")
    body = ErrorResponse(**exc.to_dict())
    return JSONResponse(status_code=exc.http_status, content=body.model_dump(exclude_none=True))


@app.exception_handler(ValueError)
async def validation_error_handler(request, exc):
    """Handle validation errors."""
    logger.error(f"Validation error: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


if __name__ == "__main__":
    uvicorn.run(
        "waitingflow.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        reload=config.get("debug"),
        log_config=get_logging_config(config.get("log_level")),
    )
