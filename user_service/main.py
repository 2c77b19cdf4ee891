import time
import uuid

import sentry_sdk
import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from user_service.api.v1 import auth, users
from user_service.core.celery_app import celery_app
from user_service.core.config import settings
from user_service.core.exceptions import APIError
from user_service.core.logging_config import configure_logging
from user_service.db.session import engine
from user_service.services.events import EventPublisher
from user_service.utils.response import error

API_VERSION = "1.0.0"

# --------------------------------------------------
# CONFIGURE LOGGING (FIRST)
# --------------------------------------------------
configure_logging()
logger = structlog.get_logger()

# --------------------------------------------------
# INITIALIZE SENTRY (ONLY IN PRODUCTION)
# --------------------------------------------------
if settings.ENVIRONMENT == "production" and settings.SENTRY_DSN:
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=0.1,
            integrations=[
                FastApiIntegration(),
                SqlalchemyIntegration(),
            ],
        )
        logger.info("sentry_initialized")
    except Exception as e:
        logger.warning("sentry_init_failed", error=str(e))

# --------------------------------------------------
# CREATE FASTAPI APP
# --------------------------------------------------
app = FastAPI(title=settings.PROJECT_NAME, version=API_VERSION)


@app.on_event("startup")
def start_event_publisher():
    """Build the shared event publisher once per process."""
    publisher = EventPublisher(celery=celery_app)
    publisher.start()
    app.state.event_publisher = publisher


@app.on_event("shutdown")
def stop_event_publisher():
    publisher = getattr(app.state, "event_publisher", None)
    if publisher is not None:
        publisher.close()
    engine.dispose()

# --------------------------------------------------
# CORS MIDDLEWARE
# --------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.BACKEND_CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Process-Time", "X-Correlation-ID"],
    max_age=3600,
)

# --------------------------------------------------
# REQUEST TIMING MIDDLEWARE
# --------------------------------------------------
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = str(time.time() - start_time)
    return response


# --------------------------------------------------
# REQUEST LOGGING MIDDLEWARE
# --------------------------------------------------
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
    )

    response = await call_next(request)

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
    )
    return response


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())

    request.state.correlation_id = correlation_id
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.unbind_contextvars("correlation_id")

    response.headers["X-Correlation-ID"] = correlation_id
    return response

# --------------------------------------------------
# INCLUDE ROUTERS
# --------------------------------------------------
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/user", tags=["Users"])

# --------------------------------------------------
# HEALTH CHECK ENDPOINTS
# --------------------------------------------------
@app.get("/")
def root():
    return {"message": f"{settings.SERVICE_NAME} is running", "version": API_VERSION}


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "environment": settings.ENVIRONMENT,
        "version": API_VERSION,
    }


@app.get("/health/database")
def database_health_check():
    try:
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
        return {"status": "healthy"}
    except Exception as exc:
        return {"status": "unhealthy", "reason": f"Database connectivity check failed: {exc}"}

# --------------------------------------------------
# EXCEPTION HANDLERS
# --------------------------------------------------
@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return error(message=exc.message, errors=exc.errors, status_code=exc.status_code)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail

    if isinstance(detail, str):
        message = detail
        errors = []
    elif isinstance(detail, dict):
        message = detail.get("message", "Request failed")
        errors = detail.get("errors", [])
    else:
        message = "Request failed"
        errors = detail if isinstance(detail, list) else []

    return error(message=message, errors=errors, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error(
        message="Validation failed",
        errors=exc.errors(),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    # Unexpected exceptions: log and return controlled response
    logger.exception("unhandled_exception", error_type=type(exc).__name__, detail=str(exc))

    if settings.DEBUG and settings.ENVIRONMENT != "production":
        return error(
            message=f"Internal server error: {exc}",
            errors=[{"type": type(exc).__name__}],
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return error(message="Internal server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
