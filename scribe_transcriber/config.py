"""
Central configuration for the Scribe Transcriber Service
"""

from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    # Environment
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # API Configuration
    api_title: str = Field(default="Scribe Transcriber API")
    api_description: str = Field(default="Clinical Audio Transcription and Diarization Service")
    api_version: str = Field(default="1.0.0")
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3001)
    api_secret_key: str = Field(...)

    # Speech provider
    # Optional at load time: a missing key fails the transcription call, not the import
    soniox_api_key: Optional[str] = Field(default=None)
    soniox_api_base_url: str = Field(default="https://api.soniox.com")
    default_stt_model: str = Field(default="stt-async-v3")
    transcription_language_hints: List[str] = Field(default=["en"])
    transcription_diarization: bool = Field(default=True)
    transcription_context_domain: str = Field(default="Healthcare")
    transcription_context_topic: str = Field(default="Medical consultation")
    transcription_context_text: str = Field(
        default=(
            "Medical consultation between healthcare provider and patient discussing "
            "symptoms, diagnosis, treatment, medications, and follow-up care."
        )
    )

    # Timeouts and Retries (seconds)
    stt_request_timeout: float = Field(default=60.0)
    stt_upload_timeout: float = Field(default=600.0)
    stt_max_retries: int = Field(default=3)

    # Polling: poll_max_attempts * poll_interval_seconds is the provider wait budget (90 min)
    poll_interval_seconds: float = Field(default=3.0)
    poll_max_attempts: int = Field(default=1800)
    poll_progress_log_every: int = Field(default=20)

    # Audio conversion
    conversion_enabled: bool = Field(default=True)
    conversion_timeout: float = Field(default=300.0)
    ffmpeg_binary: str = Field(default="ffmpeg")
    conversion_sample_rate: int = Field(default=16000)
    conversion_channels: int = Field(default=1)

    # Speaker labeling
    speaker_role_labels: List[str] = Field(default=["Doctor", "Patient"])
    speaker_label_map: Dict[str, str] = Field(default={})
    speaker_generic_label: str = Field(default="Speaker {speaker}")

    # Audio limits
    max_file_size_mb: int = Field(default=500)
    supported_audio_formats: List[str] = Field(
        default=[
            "audio/mpeg", "audio/wav", "audio/x-wav", "audio/mp4", "audio/m4a",
            "audio/ogg", "audio/webm", "video/webm", "application/octet-stream",
        ]
    )

    # Rate Limiting
    rate_limit_requests: int = Field(default=10)
    rate_limit_window: int = Field(default=60)  # seconds

    # CORS Configuration
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://localhost:8080"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(default=["GET", "POST"])
    cors_allow_headers: List[str] = Field(default=["*"])

    # Security
    token_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30)
    token_audience: str = Field(default="scribe-transcriber")

    # Monitoring
    enable_metrics: bool = Field(default=True)

    # Audit Logging
    audit_log_enabled: bool = Field(default=True)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


# Global settings instance
settings = Settings()
