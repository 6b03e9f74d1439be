import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import structlog
from prometheus_fastapi_instrumentator import Instrumentator

from journeyline.api import database, journeys
from journeyline.core.errors import TimelineError
from journeyline.core.settings import Settings
from journeyline.db.session import db_manager
from journeyline.middleware.logging import RequestLoggingMiddleware

settings = Settings()

_BEARER_RE = re.compile(r'(Bearer\s+)[A-Za-z0-9\-_.=+/]+', re.IGNORECASE)
_JWT_RE = re.compile(r'eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*')

# Redaction processor to scrub bearer tokens and JWTs from any string values in the event dict
def redact_tokens(logger, method_name, event_dict):
    def scrub(v):
        if isinstance(v, str):
            v = _BEARER_RE.sub(r'\1REDACTED', v)
            v = _JWT_RE.sub('REDACTED', v)
            return v
        if isinstance(v, list):
            return [scrub(x) for x in v]
        if isinstance(v, dict):
            return {k: scrub(vv) for k, vv in v.items()}
        return v

    for k, v in list(event_dict.items()):
        event_dict[k] = scrub(v)
    return event_dict

# Configure structured logging with JSON output; redaction runs before rendering
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_tokens,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Configure standard library logging to output to file and console
handlers = [logging.StreamHandler()]
if settings.LOG_FILE:
    handlers.append(logging.FileHandler(settings.LOG_FILE))
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(message)s',  # structlog handles formatting
    handlers=handlers
)

logger = structlog.get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting application...", civil_timezone=settings.CIVIL_TIMEZONE)
    try:
        await db_manager.initialize()
    except Exception:
        logger.exception("Failed to initialize database manager")
        raise

    yield

    # Shutdown
    logger.info("Shutting down application...")
    try:
        await db_manager.close()
    except Exception as e:
        logger.error(f"Error during database cleanup: {e}")

app = FastAPI(
    title="Journeyline API",
    description="Journey timeline materialization and rescheduling service",
    version="1.0.0",
    lifespan=lifespan
)

# Add rate limiter to app state
app.state.limiter = journeys.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize Prometheus metrics instrumentation
Instrumentator().instrument(app).expose(app, endpoint="/metrics")

@app.exception_handler(TimelineError)
async def timeline_exception_handler(request: Request, exc: TimelineError):
    request_id = structlog.contextvars.get_contextvars().get("request_id")
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "timeline_error",
        error=exc.code,
        message=exc.message,
        path=request.url.path,
        **exc.context
    )
    return JSONResponse(
        status_code=exc.http_status,
        content={
            "status": "error",
            "code": exc.http_status,
            **exc.to_dict(),
            "request_id": request_id,
        }
    )

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

# Health check endpoint
@app.get("/")
def health_check():
    return {"status": "API active", "version": "1.0.0"}

@app.get("/health")
async def health_check_detailed():
    """Detailed health check endpoint"""
    db_health = await db_manager.health_check()
    db_status = db_health["status"]

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "version": "1.0.0",
        "components": {
            "database": db_status,
            "api": "healthy"
        },
        "civil_timezone": settings.CIVIL_TIMEZONE,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

prefix = "/api/v1"

# Include API routers
app.include_router(journeys.router, prefix=prefix)
app.include_router(database.router, prefix=f"{prefix}/database", tags=["database"])
