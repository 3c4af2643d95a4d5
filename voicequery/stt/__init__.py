# voicequery/stt/__init__.py
# ===========================
# Speech-to-Text Layer — VoiceQuery
#
# Backends:
#   local   → faster-whisper, models held in the shared ModelCache
#   openai  → OpenAI Whisper API
#
# Public API:
#   get_inference_client(config) → InferenceClient
#   InferenceClient.transcribe(pcm, config) → TranscriptionResult

from voicequery.stt.base import InferenceClient  # noqa: F401
from voicequery.stt.router import InferenceRouter, get_inference_client  # noqa: F401
from voicequery.stt.types import TranscriptionResult, TranscriptSegment  # noqa: F401

__all__ = [
    "InferenceClient",
    "InferenceRouter",
    "TranscriptionResult",
    "TranscriptSegment",
    "get_inference_client",
]
