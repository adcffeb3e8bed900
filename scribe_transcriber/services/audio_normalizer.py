"""
Audio-Normalisierung und Format-Erkennung
"""

import asyncio
import io
import os
import time
from typing import List, Optional, Sequence

from mutagen import File as MutagenFile

from scribe_transcriber.config import settings
from scribe_transcriber.core.exceptions import (
    ConversionProcessError,
    ConversionTimeout,
    ConversionUnavailable,
)
from scribe_transcriber.core.logging import get_logger
from scribe_transcriber.models.transcript import AudioAsset, ConversionResult

logger = get_logger(__name__)

STDERR_TAIL_CHARS = 500


def build_ffmpeg_command(
    binary: Optional[str] = None,
    sample_rate: Optional[int] = None,
    channels: Optional[int] = None,
) -> List[str]:
    """ffmpeg invocation reading any container from stdin and writing PCM WAV to stdout."""
    return [
        binary or settings.ffmpeg_binary,
        "-hide_banner",
        "-loglevel", "error",
        "-i", "pipe:0",                 # Read from stdin
        "-vn",
        "-f", "wav",                    # Output format
        "-acodec", "pcm_s16le",         # PCM 16-bit little-endian
        "-ar", str(sample_rate or settings.conversion_sample_rate),
        "-ac", str(channels or settings.conversion_channels),
        "pipe:1",                       # Write to stdout
    ]


class AudioNormalizer:
    """Converts recordings to 16 kHz mono PCM WAV through an external converter process."""

    output_content_type = "audio/wav"
    output_extension = ".wav"

    def __init__(self, command: Optional[Sequence[str]] = None, timeout: Optional[float] = None):
        self.command = list(command) if command else build_ffmpeg_command()
        self.timeout = timeout if timeout is not None else settings.conversion_timeout

    async def normalize(self, asset: AudioAsset, timeout: Optional[float] = None) -> ConversionResult:
        """
        Pipes the asset through the converter and returns the converted audio.

        Raises:
            ConversionTimeout: The converter did not finish within the timeout and was killed.
            ConversionProcessError: The converter exited non-zero or produced no output.
            ConversionUnavailable: The converter could not be started.
        """
        timeout = self.timeout if timeout is None else timeout
        input_size = asset.size_bytes
        logger.info(f"Starting audio conversion for {input_size / (1024 * 1024):.2f} MB audio file...")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ConversionUnavailable(self.command[0], e, input_size) from e

        try:
            # communicate() feeds stdin while draining stdout and stderr
            stdout, stderr = await asyncio.wait_for(
                process.communicate(input=asset.data),
                timeout=max(deadline - loop.time(), 0),
            )
        except asyncio.TimeoutError:
            elapsed = time.monotonic() - started
            logger.error(f"Audio conversion killed after {elapsed:.1f}s (timeout {timeout:g}s)")
            raise ConversionTimeout(timeout, input_size, elapsed) from None
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        elapsed = time.monotonic() - started
        error_output = stderr.decode(errors="replace")[-STDERR_TAIL_CHARS:]

        if process.returncode != 0:
            logger.error(f"Audio conversion failed after {elapsed:.1f}s: {error_output}")
            raise ConversionProcessError(process.returncode, error_output, input_size, elapsed)
        if not stdout:
            raise ConversionProcessError(process.returncode, "converter produced no output", input_size, elapsed)

        logger.info(
            f"Audio conversion complete: {input_size / (1024 * 1024):.2f} MB -> "
            f"{len(stdout) / (1024 * 1024):.2f} MB in {elapsed:.1f}s"
        )
        return ConversionResult(
            data=stdout,
            content_type=self.output_content_type,
            filename=self._output_filename(asset.source_filename),
            converted=True,
        )

    def _output_filename(self, source_filename: str) -> str:
        stem, _ = os.path.splitext(os.path.basename(source_filename or "audio"))
        return f"{stem or 'audio'}{self.output_extension}"


def passthrough(asset: AudioAsset) -> ConversionResult:
    """The asset as-is, used when conversion is disabled or has failed."""
    return ConversionResult(
        data=asset.data,
        content_type=asset.content_type,
        filename=asset.source_filename,
        converted=False,
    )


def detect_content_type(audio_data: bytes, filename: Optional[str] = None) -> str:
    """Detects Content-Type based on file signature or filename."""
    # Check for MP4/M4A first, as 'ftyp' can be a few bytes in
    if b'ftyp' in audio_data[4:12]:
        return "audio/mp4"

    signatures = {
        b'ID3': "audio/mpeg",           # MP3 with ID3 Tag
        b'\xff\xfb': "audio/mpeg",      # MP3 frame
        b'\xff\xf3': "audio/mpeg",      # MP3 frame
        b'\xff\xf2': "audio/mpeg",      # MP3 frame
        b'RIFF': "audio/wav",           # WAV
        b'OggS': "audio/ogg",           # OGG
        b'\x1a\x45\xdf\xa3': "audio/webm",  # EBML (WebM/Matroska)
    }

    for signature, detected_type in signatures.items():
        if audio_data.startswith(signature):
            return detected_type

    # Fallback to filename extension if detection fails
    if filename:
        ext_map = {
            '.mp3': 'audio/mpeg',
            '.wav': 'audio/wav',
            '.m4a': 'audio/mp4',
            '.mp4': 'audio/mp4',
            '.ogg': 'audio/ogg',
            '.webm': 'audio/webm',
        }
        _, ext = os.path.splitext(filename)
        if ext.lower() in ext_map:
            return ext_map[ext.lower()]

    logger.warning("Could not detect specific audio type. Falling back to 'application/octet-stream'.")
    return "application/octet-stream"


def probe_duration(audio_data: bytes) -> Optional[float]:
    """Audio duration in seconds via mutagen, None if the container is not understood."""
    try:
        audio = MutagenFile(io.BytesIO(audio_data))
        if audio is None or not hasattr(audio.info, "length"):
            return None
        return float(audio.info.length)
    except Exception as e:
        logger.warning(f"Could not extract duration using mutagen: {e}")
        return None
