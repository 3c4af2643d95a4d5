# voicequery/__init__.py
# =======================
# VoiceQuery — speak a question, get SQL back.
#
# Layers:
#   voicequery.audio    capture, endpointing, file decoding
#   voicequery.stt      speech-to-text backends and model cache
#   voicequery.sql      schema, text-to-SQL client, data engine
#   voicequery.api      HTTP surface
#
# Public API:
#   VoiceQueryPipeline, PipelineRequest, VoiceQueryConfig

from voicequery.config import PipelineRequest, VoiceQueryConfig  # noqa: F401
from voicequery.pipeline import QueryResult, VoiceQueryPipeline  # noqa: F401

__all__ = [
    "PipelineRequest",
    "QueryResult",
    "VoiceQueryConfig",
    "VoiceQueryPipeline",
]
