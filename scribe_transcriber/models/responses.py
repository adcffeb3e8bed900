"""
Pydantic Models für API Responses
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field

from scribe_transcriber.models.transcript import TranscriptSegment


class TranscriptionResponse(BaseModel):
    """Antwort auf einen Transkriptions-Request"""
    ok: bool = Field(default=True)
    request_id: str = Field(description="Eindeutige Request-ID")
    transcript: str = Field(description="Beschriftetes Transkript ([Doctor] ...)")
    segments: List[TranscriptSegment] = Field(default=[], description="Sprecher-Segmente")
    token_count: int = Field(description="Anzahl der vom Provider gelieferten Tokens")
    processing_time_ms: int = Field(description="Verarbeitungszeit in Millisekunden")


class HealthCheckResponse(BaseModel):
    """Health Check Response"""
    status: str = Field(description="Service Status (healthy/unhealthy)")
    timestamp: datetime = Field(description="Check-Zeitpunkt")
    version: str = Field(description="Service-Version")
    uptime_seconds: int = Field(description="Uptime in Sekunden")
    details: Optional[Dict[str, Any]] = Field(default=None)


class ErrorResponse(BaseModel):
    """Standardisierte Fehlerantwort"""
    ok: bool = Field(default=False)
    error: str = Field(description="Fehlertyp")
    message: str = Field(description="Fehlerbeschreibung")
    retryable: bool = Field(default=False, description="Ob eine erneute Einreichung sinnvoll ist")
    request_id: Optional[str] = Field(default=None, description="Request-ID für Debugging")
    timestamp: datetime = Field(description="Fehlerzeitpunkt")


class RateLimitResponse(BaseModel):
    """Rate Limit Exceeded Response"""
    error: str = Field(default="rate_limit_exceeded")
    message: str = Field(description="Rate Limit Fehlermeldung")
    limit: int = Field(description="Request-Limit")
    window: int = Field(description="Zeitfenster in Sekunden")
    timestamp: datetime = Field(description="Fehlerzeitpunkt")
