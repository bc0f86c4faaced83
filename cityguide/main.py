"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cityguide import __version__
from cityguide.config import settings
from cityguide.database import init_models
from cityguide.dependencies import close_planner
from cityguide.errors import (
    AuthorizationError,
    CityGuideError,
    ConcurrencyConflictError,
    DestinationUnresolvedError,
    IndexOutOfRangeError,
    InvalidArgumentError,
    MalformedGenerationError,
    TripNotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)
from cityguide.routers import auth, maps, planning, trips
from cityguide.services.redis_client import redis_client

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidArgumentError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    IndexOutOfRangeError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DestinationUnresolvedError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    MalformedGenerationError: status.HTTP_502_BAD_GATEWAY,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    TripNotFoundError: status.HTTP_404_NOT_FOUND,
    ConcurrencyConflictError: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    yield
    await close_planner()
    await redis_client.aclose()


# Create FastAPI app
app = FastAPI(
    title="Smart City Tourist Guide API",
    description="AI-generated travel itineraries with conversational refinement and maps",
    version=__version__,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip() for origin in settings.frontend_url.split(",") if origin.strip()
    ] + ["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CityGuideError)
async def handle_cityguide_error(request: Request, exc: CityGuideError):
    """Translate core errors into HTTP responses."""
    body = {"detail": exc.message, "error": type(exc).__name__}

    if isinstance(exc, UpstreamUnavailableError):
        body["service"] = exc.service
        body["upstream_status"] = exc.status_code
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE if exc.transient else status.HTTP_502_BAD_GATEWAY
    else:
        status_code = next(
            (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=body)


# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(planning.router, prefix="/api/v1")
app.include_router(trips.router, prefix="/api/v1")
app.include_router(maps.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to the Smart City Tourist Guide API",
        "version": __version__,
        "docs": "/docs" if settings.environment == "development" else "disabled",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cityguide.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
