"""
Scribe Transcriber - FastAPI Main Application
"""

import asyncio
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Depends, status, UploadFile, File, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from scribe_transcriber.config import settings
from scribe_transcriber.core.exceptions import (
    ConfigurationError,
    TranscriptionError,
    TranscriptionTimeout,
)
from scribe_transcriber.core.logging import setup_logging, get_logger, audit_logger
from scribe_transcriber.core.security import get_current_user, security_manager
from scribe_transcriber.models.responses import (
    ErrorResponse, HealthCheckResponse, RateLimitResponse, TranscriptionResponse
)
from scribe_transcriber.models.transcript import AudioAsset
from scribe_transcriber.services.audio_normalizer import detect_content_type, probe_duration
from scribe_transcriber.services.job_orchestrator import JobOrchestrator
from scribe_transcriber.services.transcription_client import TranscriptionClient

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Prometheus metrics
request_count = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
request_duration = Histogram('http_request_duration_seconds', 'HTTP request duration')
transcription_duration = Histogram('transcription_duration_seconds', 'End-to-end transcription duration')
transcription_outcomes = Counter('transcriptions_total', 'Transcription requests by outcome', ['outcome'])

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

# Service instances
transcription_client = TranscriptionClient()
orchestrator = JobOrchestrator(transcription_client)

started_at = time.time()


def get_orchestrator() -> JobOrchestrator:
    """Dependency returning the shared orchestrator (stateless between requests)."""
    return orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Scribe Transcriber starting...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"API Version: {settings.api_version}")
    if not transcription_client.is_configured:
        logger.warning("SONIOX_API_KEY is not configured; transcription requests will fail")

    yield

    logger.info("Scribe Transcriber shutting down...")
    await transcription_client.aclose()


app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Rate limiting
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    return response


@app.middleware("http")
async def track_requests(request: Request, call_next):
    """Request tracking and Prometheus metrics"""

    start_time = time.time()
    request_id = security_manager.generate_request_id()
    request.state.request_id = request_id
    request.state.start_time = start_time

    try:
        response = await call_next(request)
    except Exception as e:
        request_count.labels(method=request.method, endpoint=request.url.path, status=500).inc()
        logger.error(f"Request {request_id} failed: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": "internal_server_error",
                "message": "An internal error occurred",
                "request_id": request_id,
                "timestamp": datetime.utcnow().isoformat()
            },
            headers={"X-Request-ID": request_id}
        )

    duration = time.time() - start_time
    request_count.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()
    request_duration.observe(duration)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Processing-Time"] = f"{duration:.3f}s"
    return response


@app.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Service health check"""
    return HealthCheckResponse(
        status="healthy",
        timestamp=datetime.utcnow(),
        version=settings.api_version,
        uptime_seconds=int(time.time() - started_at)
    )


@app.get("/ready")
async def readiness_check(orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    """
    Checks if the service and its dependencies are ready to accept traffic.
    Returns 200 OK if all checks pass, otherwise 503 Service Unavailable.
    """
    checks = {
        "speech_provider": orchestrator.client.check_reachable(),
    }
    results = await asyncio.gather(*checks.values())

    details = {}
    all_ok = True
    for name, (check_status, message) in zip(checks.keys(), results):
        details[name] = {"status": check_status, "message": message}
        if check_status != "ok":
            all_ok = False

    response_data = {
        "status": "ready" if all_ok else "unavailable",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.api_version,
        "details": details
    }

    if all_ok:
        return JSONResponse(status_code=status.HTTP_200_OK, content=response_data)
    logger.warning(f"Readiness check failed: {details}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response_data)


@app.get("/metrics")
async def metrics():
    """Prometheus metrics"""
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post(
    "/v1/transcribe",
    response_model=TranscriptionResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    }
)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def transcribe_audio(
    request: Request,
    user_info: dict = Depends(get_current_user),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    audio_file: UploadFile = File(..., alias="file"),
    filename: Optional[str] = Form(None),
):
    """
    Transcribes an uploaded recording and returns the speaker-labeled transcript.
    The call blocks until the provider has finished (up to the polling budget).
    """
    request_id = getattr(request.state, "request_id", None) or security_manager.generate_request_id()
    started = time.time()

    audio_data = await audio_file.read()
    if not audio_data:
        return _rejected_upload(request_id, status.HTTP_400_BAD_REQUEST, "EmptyUpload", "No audio data received.")
    if len(audio_data) > settings.max_file_size_mb * 1024 * 1024:
        return _rejected_upload(
            request_id,
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            "FileTooLarge",
            f"Audio file exceeds {settings.max_file_size_mb} MB.",
        )

    source_filename = filename or audio_file.filename or "audio.webm"
    content_type = audio_file.content_type
    if not content_type or content_type == "application/octet-stream":
        content_type = detect_content_type(audio_data, source_filename)
    if content_type.split(";")[0].strip() not in settings.supported_audio_formats:
        logger.warning(f"Unsupported audio format: {content_type}")
        return _rejected_upload(
            request_id,
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            "UnsupportedMediaType",
            f"Unsupported audio format: {content_type}",
        )

    audit_logger.log_api_request(
        request_id=request_id,
        endpoint="/v1/transcribe",
        method="POST",
        api_key_hash=user_info.get("api_key_hash"),
        user_agent=request.headers.get("user-agent"),
        audio_size_bytes=len(audio_data),
    )

    asset = AudioAsset(
        data=audio_data,
        content_type=content_type,
        source_filename=source_filename,
        duration_seconds=await asyncio.to_thread(probe_duration, audio_data),
    )
    logger.info(f"[{request_id}] Read audio, size: {asset.size_bytes} bytes, type: {content_type}")

    with transcription_duration.time():
        transcript = await orchestrator.transcribe(asset, request_id=request_id)
    transcription_outcomes.labels(outcome="empty" if transcript.token_count == 0 else "success").inc()

    return TranscriptionResponse(
        request_id=request_id,
        transcript=transcript.full_text,
        segments=transcript.segments,
        token_count=transcript.token_count,
        processing_time_ms=int((time.time() - started) * 1000),
    )


def _rejected_upload(request_id: str, status_code: int, error: str, message: str) -> JSONResponse:
    response = ErrorResponse(
        error=error,
        message=message,
        retryable=False,
        request_id=request_id,
        timestamp=datetime.utcnow(),
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


def _error_status(exc: TranscriptionError) -> int:
    if isinstance(exc, ConfigurationError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, TranscriptionTimeout):
        return status.HTTP_504_GATEWAY_TIMEOUT
    return status.HTTP_502_BAD_GATEWAY


@app.exception_handler(TranscriptionError)
async def transcription_error_handler(request: Request, exc: TranscriptionError):
    """Maps pipeline errors to responses without echoing provider messages."""
    request_id = getattr(request.state, 'request_id', None)
    error_type = type(exc).__name__
    transcription_outcomes.labels(outcome=error_type).inc()

    logger.error(f"Transcription failed for request {request_id}: {exc}")
    audit_logger.log_error(request_id=request_id, error_type=error_type, error_message=str(exc))

    if isinstance(exc, ConfigurationError):
        message = "Transcription service is not configured."
    else:
        message = "The recording could not be transcribed. Please retry."

    response = ErrorResponse(
        error=error_type,
        message=message,
        retryable=exc.retryable,
        request_id=request_id,
        timestamp=datetime.utcnow(),
    )
    return JSONResponse(status_code=_error_status(exc), content=response.model_dump(mode="json"))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Custom rate limit error handler"""
    response = RateLimitResponse(
        message="Too many requests. Please try again later.",
        limit=settings.rate_limit_requests,
        window=settings.rate_limit_window,
        timestamp=datetime.utcnow()
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=response.model_dump(mode="json"),
        headers={"Retry-After": str(settings.rate_limit_window)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    request_id = getattr(request.state, 'request_id', 'unknown')

    logger.error(f"Unhandled error in request {request_id}: {exc}")
    logger.error(f"Stacktrace: {traceback.format_exc()}")

    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "request_id": request_id,
            "timestamp": datetime.utcnow().isoformat()
        },
        headers={"X-Request-ID": request_id}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "scribe_transcriber.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development"
    )
