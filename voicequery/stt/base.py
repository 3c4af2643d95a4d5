"""Abstract inference boundary shared by all speech-recognition backends."""

from abc import ABC, abstractmethod

import numpy as np

from voicequery.config import VoiceQueryConfig
from voicequery.stt.types import TranscriptionResult


class InferenceClient(ABC):
    """Speech-recognition engine behind a request/response contract."""

    name: str = "abstract"

    @abstractmethod
    def transcribe(self, pcm: np.ndarray, config: VoiceQueryConfig) -> TranscriptionResult:
        """
        Transcribe (or translate) a PCM buffer.

        Args:
            pcm:    1-D float32 samples at 16 kHz, mono, in [-1.0, 1.0].
            config: Effective configuration (model, language, translate,
                    thread budget).

        Returns:
            TranscriptionResult with ordered segments and detected language.

        Raises:
            ModelUnavailable:     Model not found or failed to load.
            UnsupportedOperation: Translate requested on an English-only model.
            InferenceError:       Any engine failure.
        """

    def supports_translation(self, config: VoiceQueryConfig) -> bool:  # noqa: ARG002
        return True
