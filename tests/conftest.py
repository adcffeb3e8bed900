import os
import sys
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest

# Settings are read at import time
os.environ.setdefault("API_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SONIOX_API_KEY", "test-provider-key")
os.environ.setdefault("RATE_LIMIT_REQUESTS", "1000")
os.environ.setdefault("ENVIRONMENT", "staging")

from scribe_transcriber.models.transcript import (  # noqa: E402
    RemoteFileHandle,
    RemoteJobHandle,
    Token,
)


def make_tokens(*specs: Dict[str, Any]) -> List[Token]:
    """Builds tokens from provider-shaped dicts."""
    return [Token.model_validate(spec) for spec in specs]


@pytest.fixture
def example_tokens() -> List[Token]:
    return make_tokens(
        {"text": "Hello ", "speaker": "1", "start_ms": 0, "duration_ms": 500},
        {"text": "there", "speaker": "1", "start_ms": 500, "duration_ms": 400},
        {"text": "Hi", "speaker": "2", "start_ms": 1000, "duration_ms": 300},
    )


@pytest.fixture
def fake_client(example_tokens):
    """Provider client double whose job completes on the first poll."""
    client = AsyncMock()
    client.is_configured = True
    client.model = "stt-async-v3"
    client.upload_file = AsyncMock(return_value=RemoteFileHandle(file_id="file-1"))
    client.create_transcription_job = AsyncMock(
        return_value=RemoteJobHandle(transcription_id="tr-1", status="queued")
    )
    client.get_job_status = AsyncMock(
        return_value=RemoteJobHandle(transcription_id="tr-1", status="completed")
    )
    client.get_transcript = AsyncMock(return_value=example_tokens)
    client.delete_job = AsyncMock(return_value=None)
    client.delete_file = AsyncMock(return_value=None)
    client.check_reachable = AsyncMock(return_value=("ok", "Speech provider API is reachable."))
    return client


def python_command(source: str) -> List[str]:
    """A converter stand-in running the given Python source."""
    return [sys.executable, "-c", source]
