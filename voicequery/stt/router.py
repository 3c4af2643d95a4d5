"""
voicequery/stt/router.py
=========================
Inference Router — VoiceQuery

Responsibility:
    - Pick the inference backend named by the effective configuration
        local  → faster-whisper on this machine (default)
        openai → OpenAI Whisper API
    - Share one ModelCache across every local client it builds
    - Provide the single transcribe entry point used by the pipeline
"""

import logging

import numpy as np

from voicequery.config import VoiceQueryConfig
from voicequery.errors import ConfigError
from voicequery.stt.base import InferenceClient
from voicequery.stt.models import ModelCache
from voicequery.stt.types import TranscriptionResult

logger = logging.getLogger("voicequery.stt.router")


class InferenceRouter(InferenceClient):
    """Dispatches each request to the backend its config selects."""

    name = "router"

    def __init__(self, cache: ModelCache | None = None) -> None:
        self.cache = cache or ModelCache()
        self._clients: dict[str, InferenceClient] = {}

    def client_for(self, config: VoiceQueryConfig) -> InferenceClient:
        backend = config.inference_backend
        client = self._clients.get(backend)
        if client is not None:
            return client

        if backend == "local":
            from voicequery.stt.whisper_local import LocalWhisperClient

            client = LocalWhisperClient(self.cache)
        elif backend == "openai":
            from voicequery.stt.whisper_api import OpenAIWhisperClient

            client = OpenAIWhisperClient()
        else:
            raise ConfigError(f"Unknown inference backend: {backend}")

        self._clients[backend] = client
        return client

    def transcribe(self, pcm: np.ndarray, config: VoiceQueryConfig) -> TranscriptionResult:
        client = self.client_for(config)
        logger.info(
            "Inference backend selected: %s (model: %s, language: %s, translate: %s)",
            client.name, config.model, config.language, config.translate,
        )
        return client.transcribe(pcm, config)

    def supports_translation(self, config: VoiceQueryConfig) -> bool:
        return self.client_for(config).supports_translation(config)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_inference_client(
    config: VoiceQueryConfig,
    cache: ModelCache | None = None,
) -> InferenceClient:
    """
    Build the concrete client for ``config.inference_backend``.

    Raises:
        ConfigError: If the backend name is unknown.
    """
    return InferenceRouter(cache).client_for(config)
