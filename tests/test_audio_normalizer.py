import time

import pytest

from scribe_transcriber.core.exceptions import (
    ConversionFailure,
    ConversionProcessError,
    ConversionTimeout,
    ConversionUnavailable,
)
from scribe_transcriber.models.transcript import AudioAsset
from scribe_transcriber.services.audio_normalizer import (
    AudioNormalizer,
    build_ffmpeg_command,
    detect_content_type,
    passthrough,
    probe_duration,
)

from conftest import python_command

WEBM_HEADER = b"\x1a\x45\xdf\xa3" + b"\x00" * 64


@pytest.fixture
def asset():
    return AudioAsset(data=WEBM_HEADER, content_type="audio/webm", source_filename="visit-42.webm")


class TestAudioNormalizer:

    @pytest.mark.asyncio
    async def test_converted_output_is_returned(self, asset):
        normalizer = AudioNormalizer(
            command=python_command(
                "import sys; data = sys.stdin.buffer.read(); sys.stdout.buffer.write(b'RIFF' + data)"
            )
        )

        result = await normalizer.normalize(asset, timeout=30)

        assert result.converted is True
        assert result.data == b"RIFF" + asset.data
        assert result.content_type == "audio/wav"
        assert result.filename == "visit-42.wav"

    @pytest.mark.asyncio
    async def test_large_input_does_not_deadlock(self):
        payload = b"\x01" * (4 * 1024 * 1024)
        large = AudioAsset(data=payload, content_type="audio/webm", source_filename="long.webm")
        normalizer = AudioNormalizer(
            command=python_command(
                "import sys; data = sys.stdin.buffer.read(); "
                "sys.stderr.write('x' * 200000); sys.stdout.buffer.write(data)"
            )
        )

        result = await normalizer.normalize(large, timeout=60)

        assert result.data == payload

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_process_error(self, asset):
        normalizer = AudioNormalizer(
            command=python_command(
                "import sys; sys.stdin.buffer.read(); sys.stderr.write('Invalid data found'); sys.exit(3)"
            )
        )

        with pytest.raises(ConversionProcessError) as exc_info:
            await normalizer.normalize(asset, timeout=30)

        assert exc_info.value.returncode == 3
        assert "Invalid data found" in exc_info.value.stderr
        assert exc_info.value.input_size_bytes == len(asset.data)

    @pytest.mark.asyncio
    async def test_empty_output_is_not_success(self, asset):
        normalizer = AudioNormalizer(command=python_command("import sys; sys.stdin.buffer.read()"))

        with pytest.raises(ConversionProcessError):
            await normalizer.normalize(asset, timeout=30)

    @pytest.mark.asyncio
    async def test_stuck_process_is_killed_at_timeout(self, asset):
        normalizer = AudioNormalizer(command=python_command("import time; time.sleep(60)"))

        started = time.monotonic()
        with pytest.raises(ConversionTimeout) as exc_info:
            await normalizer.normalize(asset, timeout=0.5)
        elapsed = time.monotonic() - started

        assert elapsed < 10
        assert exc_info.value.timeout_seconds == 0.5
        assert exc_info.value.input_size_bytes == len(asset.data)
        assert exc_info.value.elapsed_seconds >= 0.4

    @pytest.mark.asyncio
    async def test_missing_binary_raises_unavailable(self, asset):
        normalizer = AudioNormalizer(command=["/nonexistent/bin/ffmpeg", "-i", "pipe:0", "pipe:1"])

        with pytest.raises(ConversionUnavailable) as exc_info:
            await normalizer.normalize(asset, timeout=5)

        assert isinstance(exc_info.value, ConversionFailure)

    def test_default_command_targets_mono_16khz_pcm(self):
        command = build_ffmpeg_command(binary="ffmpeg", sample_rate=16000, channels=1)

        assert command[0] == "ffmpeg"
        assert command[command.index("-i") + 1] == "pipe:0"
        assert command[command.index("-acodec") + 1] == "pcm_s16le"
        assert command[command.index("-ar") + 1] == "16000"
        assert command[command.index("-ac") + 1] == "1"
        assert command[-1] == "pipe:1"

    def test_passthrough_keeps_original(self, asset):
        result = passthrough(asset)

        assert result.converted is False
        assert result.data == asset.data
        assert result.content_type == "audio/webm"
        assert result.filename == "visit-42.webm"


class TestFormatHelpers:

    @pytest.mark.parametrize(
        "data, filename, expected",
        [
            (WEBM_HEADER, None, "audio/webm"),
            (b"RIFF\x00\x00\x00\x00WAVEfmt ", None, "audio/wav"),
            (b"ID3\x04\x00", None, "audio/mpeg"),
            (b"OggS\x00\x02", None, "audio/ogg"),
            (b"\x00\x00\x00\x20ftypM4A ", None, "audio/mp4"),
            (b"\x00\x01\x02\x03", "recording.m4a", "audio/mp4"),
            (b"\x00\x01\x02\x03", "notes.txt", "application/octet-stream"),
        ],
    )
    def test_detect_content_type(self, data, filename, expected):
        assert detect_content_type(data, filename) == expected

    def test_probe_duration_of_unknown_data(self):
        assert probe_duration(b"not audio at all") is None
