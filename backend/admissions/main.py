"""
Admission Decision Engine - Main Application Entry Point

Review workflow service for course applications:
- One approved admission per student per institution, enforced under concurrency
- Approval cascades rejections to competing applications atomically
- Transition events streamed to Redis for notification and statistics consumers
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from admissions.core.config import get_settings
from admissions.core.exceptions import AdmissionError
from admissions.core.logging import setup_logging, get_logger
from admissions.core.metrics import metrics_endpoint
from admissions.api.router import api_router
from admissions.api.middleware import RequestLoggingMiddleware
from admissions.infrastructure.redis_client import close_redis, get_redis_status
from admissions.services.engine_factory import get_decision_engine, reset_decision_engine

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    # Wire store and event sink up front so the first request doesn't pay for it
    engine = await get_decision_engine()
    logger.info("decision_engine_ready", sink=type(engine.sink).__name__)

    yield

    # Cleanup
    reset_decision_engine()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Application review workflow with one-admission-per-institution enforcement",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.exception_handler(AdmissionError)
async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "event_stream": await get_redis_status(),
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
