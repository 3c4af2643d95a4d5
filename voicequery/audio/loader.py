"""
voicequery/audio/loader.py
===========================
Audio File Loader — VoiceQuery

Responsibility:
    - Decode a pre-recorded audio file (path or raw bytes)
    - Convert it to mono, resample to 16 kHz
    - Return normalized float32 PCM in [-1.0, 1.0]

Every call decodes from scratch; the result is a finite buffer, never a
resumable stream.

This module does NOT:
    - Capture live audio (see voicequery.audio.recorder)
    - Transcribe audio
"""

import io
import logging
import os
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from voicequery.errors import AudioDecodeError

logger = logging.getLogger("voicequery.audio.loader")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TARGET_SAMPLE_RATE = 16000  # Hz
TARGET_CHANNELS = 1  # mono
MAX_DURATION_SECONDS = 1800  # 30 minutes


@dataclass(frozen=True)
class AudioInfo:
    """Metadata of a decoded audio file."""

    duration_seconds: float
    sample_rate: int
    channels: int
    format: str
    file_size: int

    def to_dict(self) -> dict:
        return {
            "duration_seconds": self.duration_seconds,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "format": self.format,
            "file_size": self.file_size,
        }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_pcm(
    source: Union[str, bytes],
    filename: Optional[str] = None,
) -> np.ndarray:
    """
    Decode audio into 16 kHz mono float32 PCM.

    Args:
        source:   Filesystem path or raw file bytes.
        filename: Original name when ``source`` is bytes (format hint).

    Returns:
        1-D float32 array normalized to [-1.0, 1.0].

    Raises:
        AudioDecodeError: If the input is empty, undecodable or too long.
    """
    audio = _decode(source, filename)

    if audio.channels != TARGET_CHANNELS:
        audio = audio.set_channels(TARGET_CHANNELS)
    if audio.frame_rate != TARGET_SAMPLE_RATE:
        audio = audio.set_frame_rate(TARGET_SAMPLE_RATE)

    samples = np.array(audio.get_array_of_samples(), dtype=np.float32)
    full_scale = float(1 << (8 * audio.sample_width - 1))
    pcm = samples / full_scale

    logger.debug(
        "Decoded %d samples (%.2fs) at %d Hz.",
        pcm.size, pcm.size / TARGET_SAMPLE_RATE, TARGET_SAMPLE_RATE,
    )
    return pcm


def audio_info(source: Union[str, bytes], filename: Optional[str] = None) -> AudioInfo:
    """Return duration, rate, channel count, format and size of a file."""
    audio = _decode(source, filename)
    if isinstance(source, bytes):
        size = len(source)
    else:
        size = os.path.getsize(source)
    ext = _extract_extension(filename or ("" if isinstance(source, bytes) else source))
    return AudioInfo(
        duration_seconds=len(audio) / 1000.0,
        sample_rate=audio.frame_rate,
        channels=audio.channels,
        format=ext.lstrip(".") or "unknown",
        file_size=size,
    )


def check_audio(source: Union[str, bytes], filename: Optional[str] = None) -> str:
    """Return "OK" when the file decodes, otherwise "Error: <reason>"."""
    try:
        _decode(source, filename)
    except AudioDecodeError as exc:
        return f"Error: {exc}"
    return "OK"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _decode(source: Union[str, bytes], filename: Optional[str]) -> AudioSegment:
    if isinstance(source, bytes):
        if not source:
            raise AudioDecodeError("Audio file is empty.")
        fmt = _extract_extension(filename or "").lstrip(".") or None
        handle = io.BytesIO(source)
    else:
        if not os.path.isfile(source):
            raise AudioDecodeError(f"Audio file not found: {source}")
        fmt = _extract_extension(source).lstrip(".") or None
        handle = source

    try:
        audio = AudioSegment.from_file(handle, format=fmt)
    except CouldntDecodeError as exc:
        raise AudioDecodeError("Audio file is corrupt or could not be decoded.") from exc
    except Exception as exc:
        raise AudioDecodeError(f"Unexpected error decoding audio: {exc}") from exc

    duration_seconds = len(audio) / 1000.0
    if duration_seconds == 0:
        raise AudioDecodeError("Audio file has zero duration.")
    if duration_seconds > MAX_DURATION_SECONDS:
        raise AudioDecodeError(
            f"Audio duration ({duration_seconds:.1f}s) exceeds the "
            f"maximum allowed ({MAX_DURATION_SECONDS}s)."
        )
    return audio


def _extract_extension(filename: str) -> str:
    """Return lowercase file extension including the dot, e.g. '.wav'."""
    dot_index = filename.rfind(".")
    if dot_index == -1:
        return ""
    return filename[dot_index:].lower()
