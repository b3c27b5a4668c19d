"""
Main application entry point for the Contacts API.

This module initializes the FastAPI application, configures logging,
CORS and request logging middleware, registers the error handlers that
render every failure as ``{success: false, error}``, initializes the
rate limiter with a Redis backend, and includes the routers for
contacts, groups and analytics.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis.asyncio as redis
from redis.exceptions import RedisError
from fakeredis import FakeAsyncRedis
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_limiter import FastAPILimiter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import analytics, contacts, groups, models
from app.core import get_settings
from app.database import engine, get_db
from app.errors import ContactsError

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("contacts")

STARTED_AT = time.monotonic()

# Create tables (for development only)
models.Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Initialize the rate limiter with a Redis backend. Falls back to
    an in-process fake Redis if Redis is unavailable or not configured.
    """
    if settings.REDIS_URL:
        redis_client = redis.from_url(
            settings.REDIS_URL, encoding="utf-8", decode_responses=True
        )
        try:
            await FastAPILimiter.init(redis_client)
        except (RedisError, OSError):
            logger.warning("Redis unavailable at %s, using in-memory limiter", settings.REDIS_URL)
            await FastAPILimiter.init(FakeAsyncRedis(decode_responses=True))
    else:
        await FastAPILimiter.init(FakeAsyncRedis(decode_responses=True))
    yield
    await FastAPILimiter.close()


# Initialize FastAPI application
app = FastAPI(title="Contacts API", lifespan=lifespan)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s %s %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


def error_body(message: str, errors: list | None = None) -> dict:
    body = {"success": False, "error": message}
    if errors:
        body["errors"] = errors
    return body


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report invalid bodies and query parameters as 400 with per-field detail."""
    logger.warning("Validation error for %s: %s", request.url.path, exc.errors())
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Validation failed", errors))


@app.exception_handler(ContactsError)
async def contacts_exception_handler(request: Request, exc: ContactsError):
    return JSONResponse(
        status_code=exc.status_code, content=error_body(exc.message, exc.errors)
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Hide internals from clients in production; the traceback goes to the log."""
    logger.exception("Unhandled error for %s %s", request.method, request.url.path)
    message = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(status_code=500, content=error_body(message))


# Include routers for application areas
app.include_router(contacts.router, prefix=settings.API_PREFIX)
app.include_router(groups.router, prefix=settings.API_PREFIX)
app.include_router(analytics.router, prefix=settings.API_PREFIX)


@app.get(f"{settings.API_PREFIX}/health", tags=["health"])
def health(db: Session = Depends(get_db)):
    """
    Health check endpoint for monitoring.

    Returns:
        dict: Service status, current time, database connectivity and
        process uptime in seconds.
    """
    try:
        db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        database = "disconnected"
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": database,
        "uptime": round(time.monotonic() - STARTED_AT, 3),
    }


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns a simple JSON message directing users to the Swagger UI.

    Returns:
        dict: JSON message with information about the API
    """
    return {"msg": "Contacts API. Visit /docs for Swagger UI"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
