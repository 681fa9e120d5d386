"""
FastAPI application entry point.
ThreatLens - Hybrid Security Log Analysis
"""

import logging
import math
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from threatlens import __version__
from threatlens.analysis import AnalysisPipeline, AnalysisWorker, RecoveryScheduler
from threatlens.api.rate_limit import AdmissionGuard
from threatlens.api.routes import router
from threatlens.config import get_settings
from threatlens.database.db import init_database
from threatlens.detection import RuleEngine
from threatlens.detection.patterns import load_default_library
from threatlens.errors import PipelineError, RateLimitedError, ThreatLensError
from threatlens.llm import LLMOrchestrator
from threatlens.storage import LocalLogStorage


logger = logging.getLogger(__name__)


def configure_logging():
    """Configure root logging once from settings."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()

    # Startup: database, services, background work
    await init_database()

    library = load_default_library()
    engine = RuleEngine(library=library)
    orchestrator = LLMOrchestrator(settings=settings, techniques=library.mitre_vocabulary().values())
    storage = LocalLogStorage(settings.upload_dir)
    worker = AnalysisWorker(concurrency=settings.analysis_workers)
    pipeline = AnalysisPipeline(
        engine=engine,
        orchestrator=orchestrator,
        storage=storage,
        submit=worker.submit,
        library=library,
        settings=settings,
    )
    scheduler = RecoveryScheduler(
        pipeline.resume,
        interval_seconds=settings.recovery_interval_seconds,
        stall_threshold_seconds=settings.stall_threshold_seconds,
    )

    app.state.engine = engine
    app.state.orchestrator = orchestrator
    app.state.storage = storage
    app.state.worker = worker
    app.state.pipeline = pipeline
    app.state.scheduler = scheduler
    app.state.admission_guard = AdmissionGuard(
        window_ms=settings.analyze_rate_limit_window_ms,
        max_requests=settings.analyze_rate_limit_max,
    )

    await worker.start()
    await scheduler.start()
    logger.info("%s %s started", settings.app_name, __version__)
    yield
    # Shutdown: stop scheduling before the worker goes away
    await scheduler.stop()
    await worker.stop()


async def threatlens_error_handler(request: Request, exc: ThreatLensError):
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after_ms / 1000)))}
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part not in ("query", "body")),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "validation", "message": "Invalid request", "details": details},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = PipelineError("Internal server error")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Hybrid security log analysis. "
                    "Combines a deterministic rule engine with LLM reasoning over uploaded logs.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_exception_handler(ThreatLensError, threatlens_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Include API routes
    app.include_router(router)
    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "threatlens.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
