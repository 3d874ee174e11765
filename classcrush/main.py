from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time
import structlog

from classcrush.config import settings
from classcrush.api.v1.router import api_router
from classcrush.core.errors import ClassCrushError
from classcrush.core.firebase import FirebaseIdentityProvider, FirebaseRecordStore, init_firebase
from classcrush.core.logging import configure_logging
from classcrush.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from classcrush.db.redis import close_redis, get_redis, init_redis
from classcrush.db.store import InMemoryRecordStore
from classcrush.services.media import CloudinaryBlobStore


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    configure_logging(settings.ENVIRONMENT, settings.LOG_LEVEL)
    await init_redis()
    firebase_app = init_firebase()

    if firebase_app is not None:
        app.state.store = FirebaseRecordStore(firebase_app)
    else:
        logger.warning("using_in_memory_store")
        app.state.store = InMemoryRecordStore()
    app.state.identity = FirebaseIdentityProvider(firebase_app)
    app.state.blob_store = CloudinaryBlobStore() if settings.CLOUDINARY_CLOUD_NAME else None

    logger.info("app_started", app=settings.APP_NAME, environment=settings.ENVIRONMENT)

    yield

    # Shutdown
    await close_redis()
    logger.info("app_shutting_down", app=settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description="Campus dating backend: discovery, swipes, matches and chat",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS middleware - Restricted to allowed origins only
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept", "Origin"],
    expose_headers=["X-Request-ID"],
    max_age=600,  # Cache preflight requests for 10 minutes
)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Request size limit middleware
app.add_middleware(RequestSizeLimitMiddleware)


@app.exception_handler(ClassCrushError)
async def classcrush_error_handler(request: Request, exc: ClassCrushError) -> JSONResponse:
    """Map domain failures to HTTP responses."""
    if exc.status_code >= 500:
        logger.error("request_failed", error_type=type(exc).__name__, error=exc.message, path=request.url.path)
    else:
        logger.info("request_rejected", error_type=type(exc).__name__, error=exc.message, path=request.url.path)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
        headers=headers,
    )


# Include API routes
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/health")
async def health_check(request: Request):
    """
    Detailed health check.
    Returns status of the record store, Redis and Firebase.
    """
    store = getattr(request.app.state, "store", None)
    health_status = {
        "status": "healthy",
        "services": {
            "store": {"type": type(store).__name__ if store is not None else None},
            "redis": {"status": "unknown", "latency_ms": None},
            "firebase": {"status": "unknown"},
        },
    }

    # Check Redis
    try:
        start = time.time()
        redis = get_redis()
        redis.ping()
        latency = round((time.time() - start) * 1000, 2)
        health_status["services"]["redis"] = {
            "status": "healthy",
            "latency_ms": latency,
        }
    except RuntimeError:
        health_status["services"]["redis"] = {"status": "not_configured"}
    except Exception as e:
        health_status["services"]["redis"] = {
            "status": "unhealthy",
            "error": str(e)[:100],
        }
        health_status["status"] = "degraded"

    # Check Firebase (just check if initialized)
    if isinstance(store, FirebaseRecordStore):
        health_status["services"]["firebase"] = {"status": "initialized"}
    else:
        health_status["services"]["firebase"] = {"status": "not_configured"}

    return health_status
