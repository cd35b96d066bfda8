"""
app.py - FastAPI service exposing the annotation pipelines
"""
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
import asyncio

from fastapi import FastAPI, HTTPException, Request, Depends, status, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, validator

# Prometheus metrics
from prometheus_client import CONTENT_TYPE_LATEST

# Internal imports
from config import settings
from logger import get_logger
from metrics import get_metrics
from nlp_pipeline import (
    Language,
    NlpStage,
    PipelineError,
    PipelineRegistry,
    UnsupportedLanguageError,
    load_pipeline_definitions,
)
from nlp_pipeline.models import LocalArtifactCache, create_remote_artifacts

logger = get_logger(__name__)

# Lazy initialization for the registry with proper cleanup
_registry: Optional[PipelineRegistry] = None
_executor: Optional[ThreadPoolExecutor] = None
_registry_lock = asyncio.Lock()


def build_registry() -> PipelineRegistry:
    """Create the pipeline registry from settings"""
    global _executor
    _executor = ThreadPoolExecutor(
        max_workers=settings.get('annotation_workers', 4),
        thread_name_prefix="annotation"
    )
    return PipelineRegistry(
        load_pipeline_definitions(
            settings.get('pipelines_config'),
            default_version=settings.get('model_version', '1-5')
        ),
        LocalArtifactCache(settings.get('models_dir')),
        remote=create_remote_artifacts(
            settings.get('remote_models_url'),
            timeout=settings.get('remote_fetch_timeout', 60)
        ),
        retain_after_use=settings.get('model_caching', True),
        purge_corrupt=settings.get('purge_corrupt_artifacts', True),
        executor=_executor
    )


async def get_pipeline_registry() -> PipelineRegistry:
    """Get or initialize the pipeline registry"""
    global _registry

    if _registry is None:
        async with _registry_lock:
            if _registry is None:  # Double-check pattern
                _registry = build_registry()
                logger.info(f"Pipeline registry initialized: {_registry.list_pipelines()}")

    return _registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    global _registry, _executor

    logger.info(
        f"Application {settings.get('app_name')} v{settings.get('version')} "
        f"started in {settings.get('environment')} mode"
    )

    yield

    logger.info("Application shutting down gracefully...")

    if _registry is not None:
        try:
            await _registry.close_all()
        except Exception as e:
            logger.error(f"Error closing pipelines: {e}")
        _registry = None

    if _executor is not None:
        _executor.shutdown(wait=False)
        _executor = None

    logger.info("Shutdown complete")


# Initialize FastAPI app
app = FastAPI(
    title=settings.get('app_name'),
    version=settings.get('version'),
    lifespan=lifespan,
    docs_url="/api/docs" if settings.get('debug') else None,
    redoc_url="/api/redoc" if settings.get('debug') else None,
    openapi_url="/openapi.json" if settings.get('debug') else None
)


# Request/Response Models
class AnnotateRequest(BaseModel):
    text: str
    language: str = Field(..., min_length=1, max_length=32)
    stages: Optional[List[str]] = None
    pipeline: Optional[str] = Field(default=None, pattern="^[a-zA-Z0-9_-]+$", max_length=50)

    @validator('stages')
    def validate_stages(cls, v):
        if v is not None and len(v) > len(NlpStage):
            raise ValueError("Too many stages requested")
        return v


class AnnotationResponse(BaseModel):
    pipeline: str
    language: str
    document_hash: str
    stages: List[str]
    spans: Dict[str, List[Dict[str, Any]]]
    tagset: Optional[str] = None
    processing_time: float


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str
    environment: str
    pipelines: List[str]


def create_error_response(status_code: int, detail: str) -> JSONResponse:
    """Create standardized error response"""
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _get_runner(registry: PipelineRegistry, name: str):
    try:
        return registry.get(name)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown pipeline: {name}. Available: {registry.list_pipelines()}"
        )


# API Routes
@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(registry: PipelineRegistry = Depends(get_pipeline_registry)):
    """Health check endpoint"""
    pipelines = registry.list_pipelines()
    return HealthResponse(
        status="healthy" if pipelines else "degraded",
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.utcnow().isoformat(),
        pipelines=pipelines
    )


@app.get("/metrics", tags=["System"])
async def metrics():
    """Prometheus metrics endpoint"""
    if not settings.get('enable_metrics', True):
        raise HTTPException(status_code=404)
    return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)


@app.get("/pipelines", tags=["Configuration"])
async def list_pipelines(registry: PipelineRegistry = Depends(get_pipeline_registry)):
    """List registered pipelines"""
    return {
        "pipelines": [
            {
                "name": name,
                "version": registry.get_definition(name).version,
                "description": registry.get_definition(name).description
            }
            for name in registry.list_pipelines()
        ],
        "default": settings.get('default_pipeline', 'default')
    }


@app.get("/pipelines/{name}/languages", tags=["Configuration"])
async def get_pipeline_languages(name: str, registry: PipelineRegistry = Depends(get_pipeline_registry)):
    """Supported-stage matrix of a pipeline"""
    runner = _get_runner(registry, name)
    return registry.get_definition(runner.name).to_dict()


@app.get("/pipelines/{name}/languages/{language}", tags=["Configuration"])
async def get_pipeline_language(
    name: str,
    language: str,
    registry: PipelineRegistry = Depends(get_pipeline_registry)
):
    """Stages and tagset a pipeline offers for one language"""
    runner = _get_runner(registry, name)
    try:
        parsed = Language.parse(language)
        stages = runner.supported_stages(parsed)
    except UnsupportedLanguageError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Pipeline {name} has no models for language: {language}"
        )
    return {
        "pipeline": runner.name,
        "language": parsed.code,
        "stages": [stage.value for stage in runner.stage_graph.order(stages)],
        "tagset": runner.tag_label_set(parsed)
    }


@app.post("/annotate", response_model=AnnotationResponse, tags=["Processing"])
async def annotate(
    request: AnnotateRequest,
    registry: PipelineRegistry = Depends(get_pipeline_registry)
):
    """Annotate text with the requested stages"""
    start_time = time.time()

    max_length = settings.get('max_text_length', 1000000)
    if len(request.text) > max_length:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Text exceeds maximum length of {max_length} characters"
        )

    runner = _get_runner(registry, request.pipeline or settings.get('default_pipeline', 'default'))

    try:
        stages = None if request.stages is None else [NlpStage.parse(s) for s in request.stages]
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    annotation = await runner.run(request.text, request.language, stages)
    data = annotation.to_dict()

    return AnnotationResponse(
        pipeline=data["pipeline"],
        language=data["language"],
        document_hash=data["document_hash"],
        stages=data["stages"],
        spans=data["spans"],
        tagset=runner.tag_label_set(annotation.language),
        processing_time=time.time() - start_time
    )


# Error handlers
@app.exception_handler(UnsupportedLanguageError)
async def unsupported_language_handler(request: Request, exc: UnsupportedLanguageError):
    logger.warning(f"Rejected request for {request.url.path}: {exc}")
    return create_error_response(status.HTTP_400_BAD_REQUEST, exc.message)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.error(f"Pipeline error in {request.url.path}: {exc}")
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc) if settings.debug else "Annotation failed"
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception in {request.url.path}: {str(exc)}", exc_info=settings.debug)
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc) if settings.debug else "An unexpected error occurred"
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=(settings.environment == "development"),
    )
