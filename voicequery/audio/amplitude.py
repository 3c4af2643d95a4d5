"""
voicequery/audio/amplitude.py
==============================
Amplitude Estimator — VoiceQuery

Responsibility:
    - Compute the RMS loudness of a chunk of normalized samples
    - Summarize a finished capture into a microphone level diagnostic

RMS is the only signal the endpointing state machine consumes. There is no
frequency-domain analysis and no voice-activity model here.
"""

from dataclasses import dataclass

import numpy as np


# Suggested silence threshold is half the measured RMS level.
SUGGESTED_THRESHOLD_RATIO: float = 0.5


def rms(samples) -> float:
    """
    Root-mean-square amplitude of a chunk: sqrt(mean(sample ** 2)).

    Args:
        samples: Sequence or array of floats in [-1.0, 1.0].

    Returns:
        RMS as a float. An empty chunk yields 0.0.
    """
    data = np.asarray(samples, dtype=np.float64).ravel()
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data))))


def peak(samples) -> float:
    """Largest absolute sample value, 0.0 for an empty chunk."""
    data = np.asarray(samples, dtype=np.float64).ravel()
    if data.size == 0:
        return 0.0
    return float(np.max(np.abs(data)))


@dataclass(frozen=True)
class MicLevel:
    """Peak and RMS of a short test capture plus a threshold hint."""

    peak: float
    rms: float
    suggested_threshold: float
    sample_count: int

    @property
    def has_audio(self) -> bool:
        return self.sample_count > 0

    def __str__(self) -> str:
        if not self.has_audio:
            return "No audio captured"
        return (
            f"Peak: {self.peak:.6f}, RMS: {self.rms:.6f} "
            f"(suggested threshold: {self.suggested_threshold:.6f})"
        )

    def to_dict(self) -> dict:
        return {
            "peak": self.peak,
            "rms": self.rms,
            "suggested_threshold": self.suggested_threshold,
            "sample_count": self.sample_count,
            "summary": str(self),
        }


def measure_level(samples) -> MicLevel:
    """Build a MicLevel from an entire captured buffer."""
    data = np.asarray(samples, dtype=np.float64).ravel()
    level = rms(data)
    return MicLevel(
        peak=peak(data),
        rms=level,
        suggested_threshold=level * SUGGESTED_THRESHOLD_RATIO,
        sample_count=int(data.size),
    )
