"""
Transcription Job Orchestrator

Runs one recording through the provider job lifecycle:

    normalize -> upload -> create job -> poll -> fetch tokens -> cleanup -> segment

Remote resources created along the way are deleted in a single ``finally``
scope, so success, provider errors, timeouts and cancellation all release
them exactly once.
"""

import asyncio
import time
from typing import List, Optional

from scribe_transcriber.config import settings
from scribe_transcriber.core.exceptions import (
    CleanupFailure,
    ConfigurationError,
    ConversionFailure,
    JobCreationFailed,
    JobStatusFailed,
    ProviderError,
    TranscriptFetchFailed,
    TranscriptionFailed,
    TranscriptionTimeout,
    UploadFailed,
)
from scribe_transcriber.core.logging import get_logger, audit_logger
from scribe_transcriber.models.transcript import (
    AudioAsset,
    ConversionResult,
    RemoteFileHandle,
    RemoteJobHandle,
    Token,
    Transcript,
)
from scribe_transcriber.services.audio_normalizer import AudioNormalizer, passthrough
from scribe_transcriber.services.diarization import DiarizationSegmenter
from scribe_transcriber.services.transcription_client import PROVIDER_NAME, TranscriptionClient

logger = get_logger(__name__)


class JobOrchestrator:
    """Transcribes recordings end-to-end against the speech provider."""

    def __init__(
        self,
        client: TranscriptionClient,
        normalizer: Optional[AudioNormalizer] = None,
        segmenter: Optional[DiarizationSegmenter] = None,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
        conversion_enabled: Optional[bool] = None,
    ):
        self.client = client
        self.normalizer = normalizer or AudioNormalizer()
        self.segmenter = segmenter or DiarizationSegmenter()
        self.poll_interval = settings.poll_interval_seconds if poll_interval is None else poll_interval
        self.max_poll_attempts = settings.poll_max_attempts if max_poll_attempts is None else max_poll_attempts
        self.conversion_enabled = (
            settings.conversion_enabled if conversion_enabled is None else conversion_enabled
        )

    async def transcribe(self, asset: AudioAsset, request_id: Optional[str] = None) -> Transcript:
        """
        Transcribes a recording and returns the speaker-labeled transcript.

        A completed job without tokens (silence) yields an empty Transcript.

        Raises:
            ConfigurationError: The provider credential is missing. Nothing was sent.
            UploadFailed / JobCreationFailed: The job could not be submitted (retryable).
            JobStatusFailed: The status of a submitted job could not be read.
            TranscriptionFailed: The provider reported the job as failed.
            TranscriptionTimeout: The job did not finish within the polling budget.
            TranscriptFetchFailed: The finished transcript could not be retrieved.
        """
        if not self.client.is_configured:
            raise ConfigurationError("SONIOX_API_KEY is not configured")

        started = time.monotonic()
        prepared = await self._prepare_audio(asset)

        audit_logger.log_transcription_request(
            request_id=request_id,
            provider=PROVIDER_NAME,
            model=self.client.model,
            diarization=settings.transcription_diarization,
            language_hints=settings.transcription_language_hints,
            audio_size_bytes=len(prepared.data),
            converted=prepared.converted,
        )

        file_handle: Optional[RemoteFileHandle] = None
        job_handle: Optional[RemoteJobHandle] = None
        try:
            try:
                file_handle = await self.client.upload_file(
                    prepared.data, prepared.filename, prepared.content_type
                )
            except ProviderError as e:
                raise UploadFailed(e, len(prepared.data), time.monotonic() - started) from e

            try:
                job_handle = await self.client.create_transcription_job(file_handle)
            except ProviderError as e:
                raise JobCreationFailed(e, len(prepared.data), time.monotonic() - started) from e

            await self._wait_for_completion(job_handle, len(prepared.data))

            try:
                tokens = await self.client.get_transcript(job_handle)
            except ProviderError as e:
                raise TranscriptFetchFailed(e, len(prepared.data), time.monotonic() - started) from e
        finally:
            # Shielded so an aborted caller still releases the provider resources
            await asyncio.shield(self._release(job_handle, file_handle))

        transcript = self._build_transcript(tokens)
        processing_time_ms = int((time.monotonic() - started) * 1000)
        audit_logger.log_audio_processing(
            request_id=request_id,
            audio_duration=asset.duration_seconds,
            audio_size_bytes=asset.size_bytes,
            model_used=self.client.model,
            processing_time_ms=processing_time_ms,
            segment_count=len(transcript.segments),
            token_count=transcript.token_count,
        )
        logger.info(
            f"Transcription complete, segments: {len(transcript.segments)}, "
            f"text length: {len(transcript.full_text)}"
        )
        return transcript

    async def _prepare_audio(self, asset: AudioAsset) -> ConversionResult:
        """Converted audio when possible, otherwise the original bytes unchanged."""
        if not self.conversion_enabled:
            return passthrough(asset)
        try:
            return await self.normalizer.normalize(asset)
        except ConversionFailure as e:
            logger.warning(f"Audio conversion failed, sending original audio ({asset.content_type}): {e}")
            return passthrough(asset)

    async def _wait_for_completion(self, job: RemoteJobHandle, file_size_bytes: int):
        started = time.monotonic()
        for attempt in range(self.max_poll_attempts):
            try:
                current = await self.client.get_job_status(job)
            except ProviderError as e:
                raise JobStatusFailed(e, file_size_bytes, time.monotonic() - started) from e

            if current.is_completed:
                logger.info(
                    f"Transcription completed after {attempt} attempts "
                    f"(~{round((time.monotonic() - started) / 60)} minutes)"
                )
                return
            if current.is_failed:
                raise TranscriptionFailed(job.transcription_id, current.error_message)

            if attempt > 0 and attempt % settings.poll_progress_log_every == 0:
                logger.info(
                    f"Transcription in progress... status: {current.status}, "
                    f"elapsed: {round((time.monotonic() - started) / 60)} minutes"
                )
            await asyncio.sleep(self.poll_interval)

        raise TranscriptionTimeout(
            job.transcription_id, self.max_poll_attempts, time.monotonic() - started, file_size_bytes
        )

    async def _release(self, job: Optional[RemoteJobHandle], file: Optional[RemoteFileHandle]):
        """Deletes the job, then the file. Failures are logged and swallowed."""
        if job is not None:
            try:
                await self.client.delete_job(job)
            except Exception as e:
                self._log_cleanup_failure(CleanupFailure("transcription", job.transcription_id, e))
        if file is not None:
            try:
                await self.client.delete_file(file)
            except Exception as e:
                self._log_cleanup_failure(CleanupFailure("file", file.file_id, e))

    @staticmethod
    def _log_cleanup_failure(failure: CleanupFailure):
        logger.warning(str(failure))
        audit_logger.log_error(
            request_id=None,
            error_type=type(failure).__name__,
            error_message=str(failure),
            resource=failure.resource,
            resource_id=failure.resource_id,
        )

    def _build_transcript(self, tokens: List[Token]) -> Transcript:
        if not tokens:
            logger.info("Provider returned no tokens, returning empty transcript")
            return Transcript.empty()
        return self.segmenter.build_transcript(tokens)
