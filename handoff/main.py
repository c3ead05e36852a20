"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

from handoff.api.middleware import RequestContextMiddleware
from handoff.api.routes import api_router
from handoff.core.errors import InvalidStateError, NotFoundError, OperatorAtCapacityError, ValidationError
from handoff.domain.services.trigger_detector import TriggerConfig, TriggerDetector
from handoff.infrastructure.notifications import NotificationPublisher
from handoff.infrastructure.redis import redis_client
from handoff.logging_config import setup_logging
from handoff.settings import settings

# Setup logging
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    await redis_client.connect()
    yield
    # Shutdown
    await redis_client.disconnect()


# Create FastAPI app
app = FastAPI(
    title="Handoff API",
    description="Escalation, routing and operator capacity for human handoff",
    version="0.1.0",
    lifespan=lifespan,
)

# Shared, stateless collaborators
app.state.trigger_detector = TriggerDetector(TriggerConfig.from_settings(settings))
app.state.publisher = NotificationPublisher(redis_client)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request context middleware
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    content = {"detail": str(exc)}
    if isinstance(exc, OperatorAtCapacityError):
        content["operator_id"] = exc.operator_id
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=content)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(DBAPIError)
async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage temporarily unavailable, retry the request"},
    )


# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
