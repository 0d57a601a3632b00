# haatbazaar/main.py
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

# --- Core Imports ---
from haatbazaar.core.config import settings
from haatbazaar.core.exceptions import (
    AuthenticationError, IntegrationError, NotFoundError, PermissionDeniedError, RepositoryError,
    StateConflictError, ValidationFailedError,
)
from haatbazaar.core.logging_setup import logger, setup_logging, trace_id_middleware
from haatbazaar.core.rate_limit import limiter
from haatbazaar.core.redis_client import close_redis, connect_redis
from haatbazaar.db.mongo_client import close_mongo_connection, connect_to_mongo, ensure_indexes, get_database
from haatbazaar.db.repository import DuplicateRecordError
from haatbazaar.api.v1.api import api_router
from haatbazaar.modules.notifications.outbox import start_outbox_dispatcher, stop_outbox_dispatcher
from haatbazaar.modules.payments.service import esewa_client

# --- Configure Logging ---
setup_logging()


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "N/A")


# --- Custom Exception Handlers ---
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.bind(trace_id=_trace_id(request)).warning(f"HTTP Exception: Status={exc.status_code}, Detail={exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", [])), "msg": e.get("msg", ""), "type": e.get("type", "validation_error")}
        for e in exc.errors()
    ]
    logger.bind(trace_id=_trace_id(request)).warning(f"Validation Error: Path={request.url.path}, Errors={errors}")
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message, "error": errors})


async def generic_domain_exception_handler(request: Request, exc: Exception, status_code: int, log_level: str = "warning"):
    """Handles common domain logic exceptions."""
    log_method = getattr(logger.bind(trace_id=_trace_id(request)), log_level)
    log_method(f"Domain Exception: Type={type(exc).__name__}, Detail={exc}")
    return JSONResponse(status_code=status_code, content={"message": str(exc), "error": type(exc).__name__})


async def repository_error_handler(request: Request, exc: RepositoryError):
    logger.bind(trace_id=_trace_id(request)).error(f"Repository/Database Error: {exc}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"message": "Database operation failed."})


async def integration_error_handler(request: Request, exc: IntegrationError):
    logger.bind(trace_id=_trace_id(request)).error(f"Integration Error: {exc}")
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"message": str(exc), "error": type(exc).__name__})


async def generic_unhandled_exception_handler(request: Request, exc: Exception):
    trace_id = _trace_id(request)
    logger.bind(trace_id=trace_id).exception(f"Unhandled Exception: Path={request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal Server Error"},
        headers={"X-Trace-ID": trace_id},
    )


# --- Application Lifespan ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connects MongoDB and Redis, ensures indexes and runs the outbox dispatcher."""
    logger.info(f"Starting up {settings.APP_NAME}...")
    try:
        await connect_to_mongo()
        await connect_redis()
        await ensure_indexes(get_database())
        await start_outbox_dispatcher()
        logger.info("Startup sequence complete.")
    except Exception as e:
        logger.critical(f"Application startup failed: {e}")
        await stop_outbox_dispatcher()
        await close_mongo_connection()
        await close_redis()
        raise RuntimeError(f"Startup error: {e}") from e

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await stop_outbox_dispatcher()
    await esewa_client.aclose()
    await close_mongo_connection()
    await close_redis()
    logger.info("Shutdown complete.")


# --- FastAPI App ---
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    exception_handlers={
        StarletteHTTPException: http_exception_handler,
        RequestValidationError: validation_exception_handler,
        RateLimitExceeded: _rate_limit_exceeded_handler,
        ValidationFailedError: partial(generic_domain_exception_handler, status_code=status.HTTP_400_BAD_REQUEST),
        StateConflictError: partial(generic_domain_exception_handler, status_code=status.HTTP_400_BAD_REQUEST),
        DuplicateRecordError: partial(generic_domain_exception_handler, status_code=status.HTTP_400_BAD_REQUEST),
        AuthenticationError: partial(generic_domain_exception_handler, status_code=status.HTTP_401_UNAUTHORIZED),
        PermissionDeniedError: partial(generic_domain_exception_handler, status_code=status.HTTP_403_FORBIDDEN),
        NotFoundError: partial(generic_domain_exception_handler, status_code=status.HTTP_404_NOT_FOUND, log_level="info"),
        RepositoryError: repository_error_handler,
        IntegrationError: integration_error_handler,
        Exception: generic_unhandled_exception_handler,
    },
)

# --- Apply Middlewares ---
# Order matters: the trace id must exist before anything logs.
app.add_middleware(BaseHTTPMiddleware, dispatch=trace_id_middleware)

if settings.CORS_ORIGINS:
    logger.info(f"Configuring CORS for origins: {settings.CORS_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials="*" not in settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*", "Authorization", "X-Trace-ID"],
        expose_headers=["X-Trace-ID"],
    )

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# --- Include API Routers ---
app.include_router(api_router, prefix=settings.API_PREFIX)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "haatbazaar.main:app",
        host=settings.HOST, port=settings.PORT,
        reload=settings.RELOAD, log_level=settings.LOG_LEVEL.lower(),
    )
