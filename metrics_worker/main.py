"""Metrics Worker: FastAPI Application Entry Point.

Pulls Application Insights telemetry and GitHub repository activity on two
independent schedules, derives rollup metrics and appends everything to the
metrics store.
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException

from metrics_worker.config import Settings, settings as default_settings
from metrics_worker.core.logging import get_logger
from metrics_worker.scheduler.cycle import SchedulerStatus
from metrics_worker.scheduler.jobs import (
    WorkerRuntime,
    build_runtime,
    scheduler_by_name,
)
from metrics_worker.sink import MetricSink, SQLModelSink

logger = get_logger("main")

VERSION = "1.0.0"


def create_app(
    settings: Optional[Settings] = None,
    sink: Optional[MetricSink] = None,
    runtime: Optional[WorkerRuntime] = None,
) -> FastAPI:
    """Build the app; collaborators default to ones built from settings."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle."""
        logger.info("🚀 Metrics Worker starting up...")
        app_sink = sink or SQLModelSink(settings.effective_database_url)
        # Raises SinkInitializationError: the worker must not start without a sink
        app_sink.initialize()

        app_runtime = runtime or build_runtime(settings, app_sink)
        app.state.sink = app_sink
        app.state.runtime = app_runtime

        if settings.scheduler_enabled:
            app_runtime.start()
        else:
            logger.info("Scheduler disabled via config")
        yield
        await app_runtime.stop()
        app_sink.close()
        logger.info("Metrics Worker shut down")

    app = FastAPI(
        title="Metrics Worker",
        description="Collects telemetry and repository activity metrics on a schedule.",
        version=VERSION,
        lifespan=lifespan,
    )

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint."""
        app_runtime: WorkerRuntime = app.state.runtime
        return {
            "status": "healthy",
            "service": "metrics-worker",
            "version": VERSION,
            "schedulers_running": app_runtime.running,
        }

    @app.get("/status", response_model=List[SchedulerStatus], tags=["System"])
    async def scheduler_status():
        """Per-source cycle counters."""
        app_runtime: WorkerRuntime = app.state.runtime
        return [s.status for s in app_runtime.schedulers]

    @app.get("/status/{name}", response_model=SchedulerStatus, tags=["System"])
    async def single_scheduler_status(name: str):
        """Cycle counters for one source (telemetry | github)."""
        scheduler = scheduler_by_name(app.state.runtime, name)
        if scheduler is None:
            raise HTTPException(status_code=404, detail=f"Unknown scheduler: {name}")
        return scheduler.status

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "metrics_worker.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
