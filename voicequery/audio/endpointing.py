"""
voicequery/audio/endpointing.py
================================
Endpointing State Machine — VoiceQuery

Responsibility:
    - Decide, from a stream of (amplitude, elapsed) polls, when a spoken
      utterance has ended
    - Enforce the hard max-duration ceiling independently of speech state

State transitions:
    NOT_STARTED  → HAS_SOUND       first poll above the threshold
    HAS_SOUND    → SILENCE_TIMER   first quiet poll after sound
    SILENCE_TIMER→ HAS_SOUND       any loud poll clears the timer
    SILENCE_TIMER→ ENDPOINTED      quiet for at least silence_duration

NOT_STARTED never moves straight to SILENCE_TIMER: quiet before the first
loud frame is the user taking a moment to start talking, not the end of an
utterance. An all-quiet trace is therefore bounded only by max_duration.

This module does NOT:
    - Touch any audio device
    - Sleep or poll on its own (the recorder drives it)
"""

from enum import Enum
from typing import Optional


class EndpointingState(str, Enum):
    NOT_STARTED = "not_started"
    HAS_SOUND = "has_sound"
    SILENCE_TIMER = "silence_timer"
    ENDPOINTED = "endpointed"


class StopReason(str, Enum):
    """Why a record-until-silence loop exited."""

    ENDPOINTED = "endpointed"
    MAX_DURATION = "max_duration"
    CANCELLED = "cancelled"


class Endpointer:
    """
    Pure silence-endpointing state machine.

    Feed it one ``update(amplitude, elapsed)`` per poll; it reports a
    StopReason once polling should end, otherwise None.
    """

    def __init__(
        self,
        silence_threshold: float,
        silence_duration: float,
        max_duration: float,
    ) -> None:
        self.silence_threshold = silence_threshold
        self.silence_duration = silence_duration
        self.max_duration = max_duration
        self.state = EndpointingState.NOT_STARTED
        self.had_sound = False
        self.silence_started_at: Optional[float] = None
        self.polls = 0

    def update(self, amplitude: float, elapsed: float) -> Optional[StopReason]:
        """
        Apply one poll.

        Args:
            amplitude: Most recently published RMS amplitude.
            elapsed:   Seconds since capture started.

        Returns:
            StopReason when the loop must stop, None to keep polling.
        """
        self.polls += 1

        # Hard ceiling wins regardless of speech state.
        if elapsed >= self.max_duration:
            return StopReason.MAX_DURATION

        if amplitude > self.silence_threshold:
            self.had_sound = True
            self.silence_started_at = None
            self.state = EndpointingState.HAS_SOUND
            return None

        if not self.had_sound:
            return None

        if self.silence_started_at is None:
            self.silence_started_at = elapsed
            self.state = EndpointingState.SILENCE_TIMER
            return None

        if elapsed - self.silence_started_at >= self.silence_duration:
            self.state = EndpointingState.ENDPOINTED
            return StopReason.ENDPOINTED

        return None
