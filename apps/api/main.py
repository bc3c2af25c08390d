"""
FastAPI application entry point.

Opens the storage handle for the lifetime of the process and mounts the
Whoop, daily-summary and cron routers.
"""
from contextlib import asynccontextmanager
from typing import List
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers import whoop, daily_summary, cron
from core.config import settings
from core.database import StorageClient, get_storage
from core.logging import setup_logging
from core.exceptions import APIException
import logging
import time

setup_logging()
logger = logging.getLogger(__name__)

# Probed every few seconds by the load balancer; not worth a log line each.
QUIET_PATHS = {"/health"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    storage = StorageClient.open()
    storage.create_all()
    app.state.storage = storage
    logger.info(f"API started (environment={settings.ENVIRONMENT})")
    try:
        yield
    finally:
        storage.close()


app = FastAPI(
    title="Daily Health API",
    description="Nutrition, training and Whoop recovery tracking with daily summaries",
    version="1.0.0",
    lifespan=lifespan,
)


def cors_origins() -> List[str]:
    """CORS_ORIGINS (comma-separated) when set, else the web app itself; DEBUG opens it up."""
    if settings.DEBUG:
        return ["*"]
    if settings.CORS_ORIGINS:
        return [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    return [settings.WEB_APP_BASE_URL.rstrip("/")]


app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    One log line per request with timing.

    Only the path is logged: the OAuth callback's query string carries the
    authorization code.
    """
    started = time.perf_counter()
    path = request.url.path

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"Request failed: {request.method} {path}",
            exc_info=True,
            extra={"extra_fields": {"method": request.method, "path": path, "error": str(e)}},
        )
        raise

    elapsed = time.perf_counter() - started
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    if path in QUIET_PATHS and response.status_code < 400:
        return response

    level = logging.WARNING if response.status_code >= 500 else logging.INFO
    logger.log(
        level,
        f"{request.method} {path} - {response.status_code}",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "process_time_ms": round(elapsed * 1000, 2),
                "client_ip": request.client.host if request.client else None,
            }
        },
    )
    return response


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    """`{detail, error_code}` body for the API's own errors."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc.detail} ({request.method} {request.url.path})")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={"extra_fields": {"method": request.method, "path": request.url.path}},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
def health(storage: StorageClient = Depends(get_storage)):
    """200 when the database answers, 503 otherwise."""
    if not storage.check_connection():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "unavailable"},
        )
    return {"status": "healthy", "timestamp": time.time()}


app.include_router(whoop.router)
app.include_router(daily_summary.router)
app.include_router(cron.router)
