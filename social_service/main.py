"""
FastAPI application for Social Service
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging

from .config import settings
from .database import db
from .cache import cache
from .kafka_producer import kafka_producer
from .exceptions import SocialServiceError
from .infrastructure import create_repositories
from .api import messages_router, users_router
from .schemas import ErrorResponse, HealthResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Social Service...")

    if settings.STORAGE_BACKEND == "postgres":
        await db.connect()
        if settings.DB_CREATE_SCHEMA:
            await db.create_schema()
        logger.info("Database connected")
    app.state.repositories = create_repositories(settings.STORAGE_BACKEND, db)
    logger.info(f"Using {settings.STORAGE_BACKEND} storage backend")

    # Connect to Redis
    await cache.connect()
    logger.info("Redis cache initialized")

    # Start Kafka producer
    await kafka_producer.start()
    logger.info("Kafka producer started")

    logger.info(f"Social Service started successfully on port {settings.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down Social Service...")

    await kafka_producer.stop()
    await cache.disconnect()
    await db.disconnect()

    logger.info("Social Service shut down successfully")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Follow requests, follow graph and direct messaging with unread counters",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error bodies use {"error", "code"}; the client shows "error" verbatim
@app.exception_handler(SocialServiceError)
async def social_error_handler(request: Request, exc: SocialServiceError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.detail, code=exc.code).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail), code="HTTPError").model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error=f"{location}: {message}" if location else message,
            code="ValidationError",
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
    )


app.include_router(users_router)
app.include_router(messages_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "social_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
