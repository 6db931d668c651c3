# powindex/api/main.py
"""
FastAPI server exposing Proof-of-Work profile generation, stored profiles and
per-subject progress.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from powindex.api.schemas import ErrorResponse, ProfileRequest
from powindex.core.errors import AuthenticationError, ConfigurationError, ValidationError
from powindex.core.pipeline import ProfilePipeline
from powindex.core.settings import PowIndexSettings
from powindex.shared.progress_tracker import InMemoryProgressStore, ProgressStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global components
pipeline: Optional[ProfilePipeline] = None
progress_store: Optional[ProgressStore] = None
settings: Optional[PowIndexSettings] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown."""
    global pipeline, progress_store, settings

    # Startup
    try:
        logger.info("Initializing PoW profile API server...")

        settings = PowIndexSettings()
        logging.getLogger().setLevel(settings.log_level.upper())

        validation = settings.validate_environment()
        if not validation['valid']:
            logger.warning(f"Missing environment variables: {validation['missing']}")

        progress_store = InMemoryProgressStore(ttl_seconds=settings.config.progress.ttl_seconds)
        pipeline = ProfilePipeline.from_settings(settings, progress=progress_store)

        logger.info(f"Default months back: {settings.months_back}")
        logger.info(f"Profile store: {settings.get_storage_dir()}")
        logger.info("PoW profile API server startup complete")

    except Exception as e:
        logger.error(f"Failed to initialize PoW profile API server: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down PoW profile API server...")
    if pipeline is not None:
        pipeline.ingestion.client.close()


# Create FastAPI app
app = FastAPI(
    title="Proof-of-Work Profile API",
    description="Developer skill profiles derived from verifiable GitHub activity",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_pipeline() -> ProfilePipeline:
    """Dependency to get the profile pipeline."""
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return pipeline


def get_progress_store() -> ProgressStore:
    """Dependency to get the progress store."""
    if progress_store is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return progress_store


def get_default_months_back() -> int:
    return settings.months_back if settings is not None else 12


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with detailed logging."""
    logger.warning(f"Validation error on {request.method} {request.url.path}")
    logger.warning(f"Validation details: {exc.errors()}")
    return _error(400, "validation_error", str(exc))


@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
    return _error(400, "validation_error", str(exc))


@app.exception_handler(AuthenticationError)
async def authentication_exception_handler(request: Request, exc: AuthenticationError):
    logger.error(f"Activity source authentication failed: {exc}")
    return _error(401, "authentication_error", str(exc))


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Service misconfigured: {exc}")
    return _error(503, "configuration_error", str(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error(500, "internal_error", "An unexpected error occurred")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "powindex-api",
        "version": "0.1.0",
        "initialized": pipeline is not None,
        "classifier_configured": bool(pipeline and pipeline.classifier.is_configured),
        "missing_credentials": settings.validate_environment()["missing"] if settings else [],
    }


@app.post("/profiles/{subject}")
async def generate_profile(
    subject: str,
    request: Optional[ProfileRequest] = None,
    profile_pipeline: ProfilePipeline = Depends(get_pipeline),
    default_months_back: int = Depends(get_default_months_back)
):
    """
    Generate and store a PoW profile for a GitHub user.

    Args:
        subject: GitHub login
        request: Optional mode and window

    Returns:
        Profile, artifact hash and per-skill scores
    """
    request = request or ProfileRequest()
    months_back = request.months_back or default_months_back

    logger.info(f"Processing profile generation: {subject} mode={request.mode} months_back={months_back}")
    result = await run_in_threadpool(profile_pipeline.run, subject, request.mode, months_back)
    logger.info(f"Profile generation complete: {subject} overall={result.profile.overall_index}")
    return result.to_dict()


@app.get("/profiles/{subject}")
async def get_profile(
    subject: str,
    profile_pipeline: ProfilePipeline = Depends(get_pipeline)
):
    """Return the stored profile for a subject."""
    stored = profile_pipeline.store.get_profile(subject)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"No profile stored for {subject}")

    response = stored.to_dict()
    response["needsRefresh"] = profile_pipeline.store.should_refresh_profile(subject)
    return response


@app.get("/progress/{subject}")
async def get_progress(
    subject: str,
    store: ProgressStore = Depends(get_progress_store)
):
    """Return the current pipeline stage for a subject, if any run is recent."""
    state = store.get_progress(subject)
    if state is None:
        raise HTTPException(status_code=404, detail=f"No recent progress for {subject}")
    return state.to_dict()


if __name__ == "__main__":
    # For development only
    uvicorn.run(
        "powindex.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
