"""
voicequery/stt/whisper_local.py
================================
Local Whisper Inference Client — VoiceQuery

Responsibility:
    - Transcribe or translate in-memory PCM with faster-whisper (CTranslate2)
    - Load each model at most once through the shared ModelCache
    - Reject translate requests on English-only models before inference
    - Map engine results to TranscriptSegments with confidence and language

This module does NOT:
    - Capture or decode audio
    - Download or manage model files beyond what the engine does on load
"""

import logging
import math
import os

import numpy as np

from voicequery.config import VoiceQueryConfig
from voicequery.errors import InferenceError, ModelUnavailable, UnsupportedOperation
from voicequery.stt.base import InferenceClient
from voicequery.stt.models import ModelCache, is_multilingual, model_dir
from voicequery.stt.types import TranscriptionResult, build_segments

logger = logging.getLogger("voicequery.stt.whisper_local")

MAX_AUTO_THREADS = 8

_TRANSLATE_UNSUPPORTED = (
    "Translation requires a multilingual model. English-only models (.en) do not "
    "support translation. Please use a multilingual model like 'tiny', 'base', "
    "'small', 'medium', or 'large-v3'."
)


class LocalWhisperClient(InferenceClient):
    """faster-whisper backend with an explicit, process-owned model cache."""

    name = "local"

    def __init__(self, cache: ModelCache) -> None:
        self._cache = cache

    def transcribe(self, pcm: np.ndarray, config: VoiceQueryConfig) -> TranscriptionResult:
        if pcm is None or len(pcm) == 0:
            raise InferenceError("Empty audio data")

        # Name-based check first so an English-only model is never loaded
        # just to be rejected.
        if config.translate and not is_multilingual(config.model):
            raise UnsupportedOperation(_TRANSLATE_UNSUPPORTED)

        model = self._load(config)

        if config.translate and not getattr(getattr(model, "model", None), "is_multilingual", True):
            raise UnsupportedOperation(_TRANSLATE_UNSUPPORTED)

        language = None if config.auto_language else config.language
        task = "translate" if config.translate else "transcribe"

        try:
            raw_segments, info = model.transcribe(
                np.asarray(pcm, dtype=np.float32),
                language=language,
                task=task,
                beam_size=1,
                condition_on_previous_text=False,
            )
            # Segments are generated lazily; drain inside the try block.
            raw = [
                (seg.start, seg.end, seg.text, _confidence(seg.avg_logprob))
                for seg in raw_segments
            ]
        except Exception as exc:
            raise InferenceError(str(exc)) from exc

        detected = getattr(info, "language", None) or "unknown"
        segments = build_segments(raw, detected)

        logger.info(
            "Local transcription: %d segments, language=%s, task=%s.",
            len(segments), detected, task,
        )
        return TranscriptionResult(segments=segments, detected_language=detected)

    def supports_translation(self, config: VoiceQueryConfig) -> bool:
        return is_multilingual(config.model)

    # ---- helpers ---------------------------------------------------------

    def _load(self, config: VoiceQueryConfig):
        local_dir = model_dir(config.model, config.model_path)
        source = local_dir if os.path.isdir(local_dir) else config.model
        device = "cuda" if config.use_gpu else "cpu"
        key = f"{source}:{device}"

        def _loader():
            try:
                from faster_whisper import WhisperModel
            except ImportError as exc:
                raise ModelUnavailable(
                    "faster-whisper is required. Install with: pip install faster-whisper"
                ) from exc
            try:
                return WhisperModel(
                    source,
                    device=device,
                    compute_type="default",
                    cpu_threads=_thread_budget(config.threads),
                    download_root=os.path.expanduser(config.model_path),
                )
            except Exception as exc:
                raise ModelUnavailable(
                    f"Failed to load whisper model from: {source} ({exc})"
                ) from exc

        return self._cache.get_or_load(key, _loader)


def _thread_budget(threads: int) -> int:
    if threads > 0:
        return threads
    return min(MAX_AUTO_THREADS, os.cpu_count() or 1)


def _confidence(avg_logprob) -> float:
    """Mean token probability (geometric) from the segment's mean log-prob."""
    if avg_logprob is None:
        return 0.0
    return min(max(math.exp(avg_logprob), 0.0), 1.0)
