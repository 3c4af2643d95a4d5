"""
voicequery/stt/whisper_api.py
==============================
OpenAI Whisper Inference Client — VoiceQuery

Responsibility:
    - Transcribe PCM using the OpenAI Whisper API (whisper-1)
    - Translate PCM to English using the Whisper translations endpoint
    - Return time-aligned segments with confidence and detected language

This module does NOT:
    - Capture or decode audio
    - Cache anything (the API is stateless)
"""

import io
import logging
import math
import os
import wave

import numpy as np
from dotenv import load_dotenv
from openai import OpenAI

from voicequery.config import VoiceQueryConfig
from voicequery.errors import InferenceError, ModelUnavailable
from voicequery.stt.base import InferenceClient
from voicequery.stt.types import TranscriptionResult, build_segments

load_dotenv()

logger = logging.getLogger("voicequery.stt.whisper_api")

API_MODEL = "whisper-1"
SAMPLE_RATE = 16000


class OpenAIWhisperClient(InferenceClient):
    """Whisper over the OpenAI audio API."""

    name = "openai"

    def __init__(self, client=None) -> None:
        self._client = client

    def transcribe(self, pcm: np.ndarray, config: VoiceQueryConfig) -> TranscriptionResult:
        if pcm is None or len(pcm) == 0:
            raise InferenceError("Empty audio data")

        client = self._get_client()
        audio_file = io.BytesIO(pcm_to_wav_bytes(pcm))
        audio_file.name = "audio.wav"

        try:
            if config.translate:
                response = client.audio.translations.create(
                    model=API_MODEL,
                    file=audio_file,
                    response_format="verbose_json",
                )
            else:
                kwargs = {}
                if not config.auto_language:
                    kwargs["language"] = config.language
                response = client.audio.transcriptions.create(
                    model=API_MODEL,
                    file=audio_file,
                    response_format="verbose_json",
                    timestamp_granularities=["segment"],
                    **kwargs,
                )
        except Exception as exc:
            raise InferenceError(f"Whisper API call failed: {exc}") from exc

        detected = _field(response, "language", None) or (
            "en" if config.translate else "unknown"
        )
        raw = []
        for seg in _field(response, "segments", None) or []:
            raw.append(
                (
                    _field(seg, "start", 0.0),
                    _field(seg, "end", 0.0),
                    _field(seg, "text", ""),
                    _confidence(_field(seg, "avg_logprob", None)),
                )
            )
        language = _normalize_language(detected)
        segments = build_segments(raw, language)

        logger.info(
            "Whisper API %s: %d segments, language=%s.",
            "translation" if config.translate else "transcription",
            len(segments), language,
        )
        return TranscriptionResult(segments=segments, detected_language=language)

    def _get_client(self):
        if self._client is not None:
            return self._client
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ModelUnavailable("OPENAI_API_KEY environment variable is not set.")
        self._client = OpenAI(api_key=api_key)
        return self._client


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def pcm_to_wav_bytes(pcm: np.ndarray, sample_rate: int = SAMPLE_RATE) -> bytes:
    """Encode float PCM in [-1, 1] as 16-bit mono WAV bytes."""
    clipped = np.clip(np.asarray(pcm, dtype=np.float32), -1.0, 1.0)
    int16 = (clipped * 32767.0).astype(np.int16)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(int16.tobytes())
    return buf.getvalue()


def _field(obj, name, default):
    # Handle both dict and object attribute access patterns
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _confidence(avg_logprob) -> float:
    if avg_logprob is None:
        return 0.0
    return min(max(math.exp(float(avg_logprob)), 0.0), 1.0)


# The API reports full language names ("english"); segments use ISO codes.
_LANGUAGE_NAMES = {
    "english": "en",
    "german": "de",
    "french": "fr",
    "spanish": "es",
    "italian": "it",
    "portuguese": "pt",
    "dutch": "nl",
    "russian": "ru",
    "chinese": "zh",
    "japanese": "ja",
    "korean": "ko",
    "hindi": "hi",
}


def _normalize_language(value: str) -> str:
    lowered = (value or "").strip().lower()
    return _LANGUAGE_NAMES.get(lowered, lowered or "unknown")
