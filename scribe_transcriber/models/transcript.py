"""
Domain Models für Audio, Provider-Ressourcen und Transkripte
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class AudioAsset(BaseModel):
    """Eine Aufnahme, wie sie vom Aufrufer übergeben wird"""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(description="Rohe Audiodaten")
    content_type: str = Field(description="MIME-Typ der Audiodaten")
    source_filename: str = Field(description="Ursprünglicher Dateiname")
    duration_seconds: Optional[float] = Field(default=None, description="Audio-Dauer in Sekunden")

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class ConversionResult(BaseModel):
    """Ergebnis der Audio-Normalisierung"""
    model_config = ConfigDict(frozen=True)

    data: bytes
    content_type: str
    filename: str
    converted: bool = Field(description="False, wenn die Originaldaten unverändert verwendet werden")


class RemoteFileHandle(BaseModel):
    """Hochgeladene Datei beim STT-Provider"""
    model_config = ConfigDict(frozen=True)

    file_id: str


class RemoteJobHandle(BaseModel):
    """Transkriptions-Job beim STT-Provider"""
    model_config = ConfigDict(frozen=True)

    transcription_id: str
    status: str = "queued"
    error_message: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_failed(self) -> bool:
        return self.status == "error"


class Token(BaseModel):
    """Vom Provider erkannte Einheit mit Text und Zeitstempel"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    text: str = ""
    speaker: Optional[str] = None
    start_ms: float = 0
    duration_ms: float = 0

    @field_validator("text", mode="before")
    @classmethod
    def _none_text_is_empty(cls, value: Any) -> str:
        return "" if value is None else value

    @field_validator("speaker", mode="before")
    @classmethod
    def _speaker_as_string(cls, value: Any) -> Optional[str]:
        # Providers send speaker indices as "1" or 1
        return None if value is None else str(value)

    @field_validator("start_ms", "duration_ms", mode="before")
    @classmethod
    def _missing_time_is_zero(cls, value: Any) -> float:
        return 0 if value is None else value


class TranscriptSegment(BaseModel):
    """Zusammenhängender Redebeitrag eines Sprechers"""
    model_config = ConfigDict(frozen=True)

    speaker: str = Field(description="Sprecher-Index des Providers")
    speaker_label: Optional[str] = Field(default=None, description="Anzeigename (z.B. Doctor/Patient)")
    start_seconds: float = Field(description="Startzeit in Sekunden")
    end_seconds: float = Field(description="Endzeit in Sekunden")
    text: str = Field(description="Transkribierter Text")


class Transcript(BaseModel):
    """Vollständiges Transkriptionsergebnis"""
    model_config = ConfigDict(frozen=True)

    segments: List[TranscriptSegment] = Field(default_factory=list)
    full_text: str = ""
    token_count: int = 0

    @classmethod
    def empty(cls) -> "Transcript":
        return cls(segments=[], full_text="", token_count=0)
