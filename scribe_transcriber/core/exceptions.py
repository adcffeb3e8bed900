"""
Fehlertypen der Transkriptions-Pipeline.

Every error carries a ``retryable`` flag so callers can decide whether a new
submission makes sense. Conversion failures never leave the orchestrator;
they switch it to the original audio.
"""

from typing import Optional


class TranscriptionError(Exception):
    """Base class for all transcription pipeline errors."""

    retryable = False


class ConfigurationError(TranscriptionError):
    """Raised when the service is missing required configuration (e.g. the provider key)."""


# --- Audio conversion ---

class ConversionFailure(TranscriptionError):
    """Raised when audio conversion fails. Callers fall back to the original audio."""

    def __init__(self, message: str, input_size_bytes: int, elapsed_seconds: float):
        self.input_size_bytes = input_size_bytes
        self.elapsed_seconds = elapsed_seconds
        super().__init__(message)


class ConversionTimeout(ConversionFailure):
    """Raised when the converter exceeds its wall-clock budget and is killed."""

    def __init__(self, timeout_seconds: float, input_size_bytes: int, elapsed_seconds: float):
        self.timeout_seconds = timeout_seconds
        size_mb = input_size_bytes / (1024 * 1024)
        super().__init__(
            f"Audio conversion timeout after {timeout_seconds:g} seconds "
            f"for {size_mb:.2f} MB file (elapsed {elapsed_seconds:.1f}s)",
            input_size_bytes,
            elapsed_seconds,
        )


class ConversionProcessError(ConversionFailure):
    """Raised when the converter exits non-zero or produces no output."""

    def __init__(self, returncode: Optional[int], stderr: str, input_size_bytes: int, elapsed_seconds: float):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Audio converter exited with code {returncode}: {stderr}",
            input_size_bytes,
            elapsed_seconds,
        )


class ConversionUnavailable(ConversionFailure):
    """Raised when the converter binary cannot be spawned."""

    def __init__(self, command: str, cause: Exception, input_size_bytes: int):
        self.command = command
        self.cause = cause
        super().__init__(f"Audio converter '{command}' could not be started: {cause}", input_size_bytes, 0.0)


# --- Provider HTTP errors ---

class ProviderError(TranscriptionError):
    """Raised by the provider client when a request cannot be completed."""

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.operation = operation
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ProviderUnavailable(ProviderError):
    """Raised on transport errors or when a request exceeds its deadline."""

    retryable = True

    def __init__(self, operation: str, cause: Exception):
        self.cause = cause
        super().__init__(operation, f"Speech provider unavailable during {operation}: {cause!r}")


class ProviderRequestFailed(ProviderError):
    """Raised when the provider answers with a non-2xx status."""

    def __init__(self, operation: str, status_code: int, body: str):
        super().__init__(
            operation,
            f"Speech provider rejected {operation} with status {status_code}: {body}",
            status_code=status_code,
            body=body,
        )

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500 or self.status_code == 429


# --- Orchestration stages ---

class TranscriptionStageError(TranscriptionError):
    """A provider failure attributed to one step of the job lifecycle."""

    stage = "unknown"

    def __init__(self, cause: ProviderError, file_size_bytes: int, elapsed_seconds: float):
        self.cause = cause
        self.status_code = cause.status_code
        self.body = cause.body
        self.file_size_bytes = file_size_bytes
        self.elapsed_seconds = elapsed_seconds
        super().__init__(f"{self.stage} failed after {elapsed_seconds:.1f}s: {cause}")


class UploadFailed(TranscriptionStageError):
    stage = "upload"
    retryable = True


class JobCreationFailed(TranscriptionStageError):
    stage = "job_creation"
    retryable = True


class JobStatusFailed(TranscriptionStageError):
    stage = "status_poll"


class TranscriptFetchFailed(TranscriptionStageError):
    stage = "transcript_fetch"
    retryable = True


class TranscriptionFailed(TranscriptionError):
    """Raised when the provider reports the job itself as failed."""

    def __init__(self, transcription_id: str, provider_message: Optional[str]):
        self.transcription_id = transcription_id
        self.provider_message = provider_message or "Unknown error"
        super().__init__(f"Transcription {transcription_id} failed: {self.provider_message}")


class TranscriptionTimeout(TranscriptionError):
    """Raised when the provider does not finish within the polling budget."""

    retryable = True

    def __init__(self, transcription_id: str, attempts: int, elapsed_seconds: float, file_size_bytes: int):
        self.transcription_id = transcription_id
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds
        self.file_size_bytes = file_size_bytes
        super().__init__(
            f"Transcription {transcription_id} timeout after {attempts} polls "
            f"(~{round(elapsed_seconds / 60)} minutes) for {file_size_bytes} bytes"
        )


class CleanupFailure(TranscriptionError):
    """Describes a failed remote deletion. Logged, never raised to callers."""

    def __init__(self, resource: str, resource_id: str, cause: Exception):
        self.resource = resource
        self.resource_id = resource_id
        self.cause = cause
        super().__init__(f"Failed to delete {resource} {resource_id}: {cause}")
