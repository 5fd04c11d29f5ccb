from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import time
import uuid

from . import __version__
from .config import settings
from .database import create_tables
from .errors import PersistenceError, ValidationError
from .services.sweep_scheduler import start_sweep_scheduler, stop_sweep_scheduler
from .utils.logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from .utils.metrics import record_http_request
from .utils.rate_limiter import limiter

from .routers import availability, reservations, capacity, pricing, hours, trial, health, metrics

logger = get_logger("kennel.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(settings.log_level, json_format=settings.log_json or settings.is_production)

    logger.info(f"Starting kennel booking API ({settings.environment})")
    logger.info(f"CORS origins: {settings.cors_origins}")

    create_tables()

    if settings.sweep_enabled:
        start_sweep_scheduler()
    else:
        logger.warning("Reservation sweep disabled, expired holds will not be reclaimed")

    yield

    logger.info("Shutting down kennel booking API")
    stop_sweep_scheduler()


app = FastAPI(
    title="Kennel Booking API",
    description="Capacity, reservation holds and pricing for daycare, boarding and trial days",
    version=__version__,
    lifespan=lifespan
)

# Rate limiter state
app.state.limiter = limiter


# ================================
# CORS MIDDLEWARE - MUST BE FIRST!
# ================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Request id for log correlation, plus request count/duration metrics"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - start

            route = request.scope.get("route")
            path = route.path if route is not None else "unmatched"
            record_http_request(request.method, path, response.status_code, duration)
            logger.api_request(request.method, path, response.status_code, round(duration * 1000, 2))
        finally:
            clear_request_context()

        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


# ================================
# EXCEPTION HANDLERS
# ================================

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, please try again shortly"}
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": {"code": "VALIDATION_ERROR", "field": exc.field, "message": exc.message}}
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    # Context was logged where the failure happened
    return JSONResponse(
        status_code=503,
        content={"detail": {"code": "UNAVAILABLE", "message": "Service temporarily unavailable, please retry"}}
    )


# Include routers
app.include_router(availability.router)
app.include_router(reservations.router)
app.include_router(capacity.router)
app.include_router(capacity.admin_router)
app.include_router(pricing.router)
app.include_router(hours.router)
app.include_router(trial.router)
app.include_router(health.router)
app.include_router(metrics.router)


@app.get("/")
async def root():
    return {
        "message": "Kennel booking API",
        "version": __version__,
        "docs": "/docs",
        "status": "running"
    }
