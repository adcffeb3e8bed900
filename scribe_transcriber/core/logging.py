"""
Strukturiertes Logging Setup für Scribe Transcriber
"""

import logging
import structlog
from datetime import datetime
from typing import Optional
from scribe_transcriber.config import settings


def setup_logging():
    """Konfiguriert strukturiertes Logging"""

    # Timestamper für konsistente Zeitstempel
    timestamper = structlog.processors.TimeStamper(fmt="ISO")

    # Processor-Chain definieren
    processors = [
        structlog.processors.add_log_level,
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.environment == "development":
        # Development: Colored console output
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True)
        ])
    else:
        # Production: JSON output
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ])

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Erstellt einen konfigurierten Logger"""
    return structlog.get_logger(name or __name__)


class AuditLogger:
    """Spezieller Logger für Audit-Events"""

    def __init__(self):
        self.logger = get_logger("audit")

    def _emit(self, event: str, **fields):
        if not settings.audit_log_enabled:
            return
        self.logger.info(event, timestamp=datetime.utcnow().isoformat(), **fields)

    def log_api_request(
        self,
        request_id: str,
        endpoint: str,
        method: str,
        api_key_hash: str = None,
        user_agent: str = None,
        ip_address: str = None,
        **kwargs
    ):
        """Loggt API-Anfragen für Audit-Zwecke"""
        self._emit(
            "api_request",
            request_id=request_id,
            endpoint=endpoint,
            method=method,
            api_key_hash=api_key_hash,
            user_agent=user_agent,
            ip_address=ip_address,
            **kwargs
        )

    def log_transcription_request(
        self,
        request_id: Optional[str],
        provider: str,
        model: str,
        diarization: bool,
        language_hints: list,
        audio_size_bytes: int,
        converted: bool,
        **kwargs
    ):
        """Loggt die Übergabe einer Aufnahme an den STT-Provider"""
        self._emit(
            "transcription_request",
            request_id=request_id,
            provider=provider,
            model=model,
            diarization=diarization,
            language_hints=language_hints,
            audio_size_bytes=audio_size_bytes,
            converted=converted,
            **kwargs
        )

    def log_audio_processing(
        self,
        request_id: Optional[str],
        audio_duration: Optional[float],
        audio_size_bytes: int,
        model_used: str,
        processing_time_ms: int,
        **kwargs
    ):
        """Loggt Audio-Verarbeitungsevents"""
        self._emit(
            "audio_processing",
            request_id=request_id,
            audio_duration=audio_duration,
            audio_size_bytes=audio_size_bytes,
            model_used=model_used,
            processing_time_ms=processing_time_ms,
            **kwargs
        )

    def log_external_api_call(
        self,
        service: str,
        endpoint: str,
        response_status: Optional[int],
        response_time_ms: int,
        request_id: Optional[str] = None,
        **kwargs
    ):
        """Loggt Calls zu externen APIs"""
        self._emit(
            "external_api_call",
            request_id=request_id,
            service=service,
            endpoint=endpoint,
            response_status=response_status,
            response_time_ms=response_time_ms,
            **kwargs
        )

    def log_error(
        self,
        request_id: Optional[str],
        error_type: str,
        error_message: str,
        stack_trace: str = None,
        **kwargs
    ):
        """Loggt Fehler-Events"""
        self.logger.error(
            "error_event",
            request_id=request_id,
            error_type=error_type,
            error_message=error_message,
            stack_trace=stack_trace,
            timestamp=datetime.utcnow().isoformat(),
            **kwargs
        )


# Global audit logger instance
audit_logger = AuditLogger()
