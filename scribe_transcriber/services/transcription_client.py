"""
Speech-to-Text Provider Client
Async REST client for the Soniox transcription API (files, transcriptions, transcripts).
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from scribe_transcriber.config import settings
from scribe_transcriber.core.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderRequestFailed,
    ProviderUnavailable,
)
from scribe_transcriber.core.logging import get_logger, audit_logger
from scribe_transcriber.models.transcript import RemoteFileHandle, RemoteJobHandle, Token

logger = get_logger(__name__)

PROVIDER_NAME = "soniox"


def is_transient(exception: BaseException) -> bool:
    """Return True for provider errors worth retrying (transport, deadline, 5xx, 429)."""
    return isinstance(exception, ProviderError) and exception.retryable


def _log_retry(retry_state):
    logger.warning(f"Retrying {PROVIDER_NAME} API call, attempt {retry_state.attempt_number}...")


# Only idempotent reads are retried here; uploads and job creation are retried by the caller
read_retry = retry(
    wait=wait_exponential(multiplier=1, min=2, max=10),
    stop=stop_after_attempt(settings.stt_max_retries),
    retry=retry_if_exception(is_transient),
    before_sleep=_log_retry,
    reraise=True,
)


def build_domain_context(
    domain: Optional[str] = None,
    topic: Optional[str] = None,
    text: Optional[str] = None,
) -> Dict[str, Any]:
    """Recognition context biasing the model towards clinical vocabulary."""
    return {
        "general": [
            {"key": "domain", "value": domain or settings.transcription_context_domain},
            {"key": "topic", "value": topic or settings.transcription_context_topic},
        ],
        "text": text or settings.transcription_context_text,
    }


class TranscriptionClient:
    """Client for the asynchronous speech-to-text provider API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        request_timeout: Optional[float] = None,
        upload_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.soniox_api_key
        self.base_url = (base_url or settings.soniox_api_base_url).rstrip("/")
        self.model = model or settings.default_stt_model
        self.request_timeout = request_timeout or settings.stt_request_timeout
        self.upload_timeout = upload_timeout or settings.stt_upload_timeout
        self._http = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def aclose(self):
        await self._http.aclose()

    async def __aenter__(self) -> "TranscriptionClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> Optional[Dict[str, Any]]:
        """
        Sends one request with a hard deadline.

        The whole exchange (connect, upload, response) is cancelled once the
        deadline passes. Returns the decoded JSON body, or None for DELETE.
        """
        if not self.api_key:
            raise ConfigurationError("SONIOX_API_KEY is not configured")

        timeout = timeout or self.request_timeout
        headers = {"Authorization": f"Bearer {self.api_key}"}
        started = time.monotonic()
        response = None
        try:
            response = await asyncio.wait_for(
                self._http.request(method, endpoint, headers=headers, timeout=timeout, **kwargs),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TransportError) as e:
            raise ProviderUnavailable(operation, e) from e
        finally:
            audit_logger.log_external_api_call(
                service=PROVIDER_NAME,
                endpoint=f"{method} {endpoint}",
                response_status=response.status_code if response is not None else None,
                response_time_ms=int((time.monotonic() - started) * 1000),
                operation=operation,
            )

        if not response.is_success:
            raise ProviderRequestFailed(operation, response.status_code, response.text)
        if method == "DELETE" or not response.content:
            return None
        try:
            result = response.json()
        except ValueError as e:
            raise ProviderRequestFailed(operation, response.status_code, f"invalid JSON body: {e}") from e
        if not isinstance(result, dict):
            raise ProviderRequestFailed(
                operation, response.status_code, f"malformed body: expected object, got {type(result).__name__}"
            )
        return result

    async def upload_file(
        self,
        data: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        timeout: Optional[float] = None,
    ) -> RemoteFileHandle:
        """Uploads an audio file (multipart). Uses the long upload timeout by default."""
        size_mb = len(data) / (1024 * 1024)
        logger.info(f"Uploading {size_mb:.2f} MB audio to {PROVIDER_NAME}...")
        started = time.monotonic()

        result = await self._request(
            "upload_file",
            "POST",
            "/v1/files",
            timeout=timeout or self.upload_timeout,
            files={"file": (filename, data, content_type)},
        )
        file_id = self._require_id("upload_file", result)
        logger.info(f"Uploaded audio in {time.monotonic() - started:.1f}s, file_id: {file_id}")
        return RemoteFileHandle(file_id=file_id)

    async def create_transcription_job(
        self,
        file: RemoteFileHandle,
        language_hints: Optional[Sequence[str]] = None,
        diarization_enabled: Optional[bool] = None,
        domain_context: Optional[Dict[str, Any]] = None,
    ) -> RemoteJobHandle:
        """Creates an asynchronous transcription job for an uploaded file."""
        config = {
            "model": self.model,
            "language_hints": list(
                settings.transcription_language_hints if language_hints is None else language_hints
            ),
            "enable_speaker_diarization": (
                settings.transcription_diarization if diarization_enabled is None else diarization_enabled
            ),
            "context": domain_context if domain_context is not None else build_domain_context(),
            "file_id": file.file_id,
        }
        result = await self._request("create_transcription", "POST", "/v1/transcriptions", json=config)
        job = RemoteJobHandle(
            transcription_id=self._require_id("create_transcription", result),
            status=result.get("status") or "queued",
        )
        logger.info(f"Created transcription job, transcription_id: {job.transcription_id}")
        return job

    @read_retry
    async def get_job_status(self, job: RemoteJobHandle) -> RemoteJobHandle:
        """Polls the job once and returns a handle with the current status."""
        result = await self._request(
            "get_transcription_status", "GET", f"/v1/transcriptions/{job.transcription_id}"
        ) or {}
        return job.model_copy(
            update={"status": result.get("status") or job.status, "error_message": result.get("error_message")}
        )

    @read_retry
    async def get_transcript(self, job: RemoteJobHandle) -> List[Token]:
        """Fetches the word-level tokens of a completed job."""
        result = await self._request(
            "get_transcript", "GET", f"/v1/transcriptions/{job.transcription_id}/transcript"
        ) or {}
        tokens = result.get("tokens")
        if not isinstance(tokens, list):
            return []
        try:
            return [Token.model_validate(token) for token in tokens]
        except ValidationError as e:
            raise ProviderRequestFailed(
                "get_transcript", 200, f"malformed body: {e.error_count()} invalid token field(s)"
            ) from e

    async def delete_job(self, job: RemoteJobHandle):
        await self._request("delete_transcription", "DELETE", f"/v1/transcriptions/{job.transcription_id}")
        logger.info(f"Deleted transcription {job.transcription_id}")

    async def delete_file(self, file: RemoteFileHandle):
        await self._request("delete_file", "DELETE", f"/v1/files/{file.file_id}")
        logger.info(f"Deleted file {file.file_id}")

    async def check_reachable(self) -> Tuple[str, str]:
        """Checks that the provider API answers with the configured credential."""
        if not self.is_configured:
            return "error", "SONIOX_API_KEY is not configured."
        try:
            await self._request("check_reachable", "GET", "/v1/files", params={"limit": 1})
            return "ok", "Speech provider API is reachable."
        except ProviderRequestFailed as e:
            return "error", f"Speech provider API returned status {e.status_code}."
        except ProviderUnavailable as e:
            return "error", f"Failed to connect to speech provider API: {e.cause!r}"

    @staticmethod
    def _require_id(operation: str, result: Optional[Dict[str, Any]]) -> str:
        if not result or not result.get("id"):
            raise ProviderRequestFailed(operation, 200, f"response without id: {result!r}")
        return str(result["id"])
