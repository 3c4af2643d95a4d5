"""
voicequery/audio/recorder.py
=============================
Silence-Gated Recorder — VoiceQuery

Responsibility:
    - Own a live capture device for the lifetime of one capture session
    - Accumulate 16 kHz mono float samples delivered by the capture backend
    - Publish the RMS of every delivered chunk as the "current amplitude"
    - Run the endpointing state machine until the utterance ends, the
      max-duration ceiling is hit, or the caller cancels

Threading:
    The capture backend calls ``_CaptureSession.on_chunk`` from its own
    thread. The only state it touches is the append-only chunk list and the
    single-slot amplitude cell; neither blocks the writer. The polling loop
    runs on the caller's thread and only ever sleeps between polls.

This module does NOT:
    - Decode audio files (see voicequery.audio.loader)
    - Transcribe audio (see voicequery.stt)
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from voicequery.audio.amplitude import MicLevel, measure_level, rms
from voicequery.audio.endpointing import Endpointer, EndpointingState, StopReason
from voicequery.errors import (
    AlreadyActiveError,
    DeviceError,
    EmptyCaptureError,
    NotRecordingError,
)

logger = logging.getLogger("voicequery.audio.recorder")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SAMPLE_RATE = 16000          # Hz, required by the speech model
CHANNELS = 1                 # mono
BLOCK_SIZE = 1024            # samples per delivered chunk
POLL_INTERVAL_SEC = 0.05     # endpointing poll period


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AudioDevice:
    """An available audio input device."""

    id: int
    name: str

    def to_dict(self) -> dict:
        return {"device_id": self.id, "device_name": self.name}


class AmplitudeCell:
    """
    Single-slot, last-value-wins amplitude published across threads.

    The capture thread overwrites the value on every chunk; the poller reads
    whatever is there. Intermediate values may be lost to a slow poller,
    which is fine because endpointing only follows the trend.
    """

    __slots__ = ("_value",)

    def __init__(self) -> None:
        self._value = 0.0

    def publish(self, value: float) -> None:
        self._value = float(value)

    def read(self) -> float:
        return self._value


# ---------------------------------------------------------------------------
# Capture backends
# ---------------------------------------------------------------------------


class CaptureStream(ABC):
    """Handle to an opened capture device."""

    @abstractmethod
    def start(self) -> None:
        """Begin asynchronous chunk delivery."""

    @abstractmethod
    def stop(self) -> None:
        """Halt chunk delivery."""

    @abstractmethod
    def close(self) -> None:
        """Release the device."""


class CaptureBackend(ABC):
    """Source of capture devices and streams."""

    @abstractmethod
    def list_devices(self) -> List[AudioDevice]:
        """Return available input devices."""

    @abstractmethod
    def open_stream(
        self,
        device: Optional[int],
        sample_rate: int,
        on_chunk: Callable[[np.ndarray], None],
    ) -> CaptureStream:
        """
        Open ``device`` (None for the system default) for mono float capture.

        Raises:
            DeviceError: If no device matches or it cannot be opened.
        """


class _SoundDeviceStream(CaptureStream):
    def __init__(self, stream) -> None:
        self._stream = stream

    def start(self) -> None:
        self._stream.start()

    def stop(self) -> None:
        self._stream.stop()

    def close(self) -> None:
        self._stream.close()


class SoundDeviceBackend(CaptureBackend):
    """PortAudio capture through the sounddevice package."""

    def _module(self):
        try:
            import sounddevice as sd
        except (ImportError, OSError) as exc:
            raise DeviceError(
                f"Audio capture is unavailable (sounddevice/PortAudio): {exc}"
            ) from exc
        return sd

    def list_devices(self) -> List[AudioDevice]:
        sd = self._module()
        devices: List[AudioDevice] = []
        for index, info in enumerate(sd.query_devices()):
            if info.get("max_input_channels", 0) > 0:
                devices.append(AudioDevice(id=index, name=str(info.get("name", ""))))
        return devices

    def open_stream(
        self,
        device: Optional[int],
        sample_rate: int,
        on_chunk: Callable[[np.ndarray], None],
    ) -> CaptureStream:
        sd = self._module()

        if device is not None:
            try:
                sd.query_devices(device, "input")
            except (ValueError, sd.PortAudioError) as exc:
                raise DeviceError(f"No capture device matches id {device}: {exc}") from exc

        def _callback(indata, frames, time_info, status):
            if status:
                logger.debug("Capture status: %s", status)
            on_chunk(indata[:, 0].copy())

        try:
            stream = sd.InputStream(
                samplerate=sample_rate,
                channels=CHANNELS,
                dtype="float32",
                blocksize=BLOCK_SIZE,
                device=device,
                callback=_callback,
            )
        except (ValueError, sd.PortAudioError) as exc:
            raise DeviceError(f"Failed to open audio device: {exc}") from exc

        return _SoundDeviceStream(stream)


# ---------------------------------------------------------------------------
# Capture session
# ---------------------------------------------------------------------------


class _CaptureSession:
    """Ephemeral state of one capture, created on start, dropped on stop."""

    def __init__(self, device: Optional[int], started_at: float) -> None:
        self.device = device
        self.started_at = started_at
        self.stream: Optional[CaptureStream] = None
        self.capturing = False
        self.amplitude = AmplitudeCell()
        self.state = EndpointingState.NOT_STARTED
        self._chunks: List[np.ndarray] = []
        self._sample_count = 0

    def on_chunk(self, chunk: np.ndarray) -> None:
        """Capture-thread callback: append and publish the chunk RMS."""
        if not self.capturing:
            return
        samples = np.asarray(chunk, dtype=np.float32).ravel()
        self._chunks.append(samples)
        self._sample_count += samples.size
        if samples.size:
            self.amplitude.publish(rms(samples))

    @property
    def sample_count(self) -> int:
        return self._sample_count

    def take_samples(self) -> np.ndarray:
        """Move the accumulated samples out, leaving the session empty."""
        chunks, self._chunks = self._chunks, []
        self._sample_count = 0
        if not chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(chunks)


# ---------------------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------------------


class SilenceGatedRecorder:
    """
    Live microphone recorder with silence endpointing.

    At most one capture session is active per instance; starting a second
    is rejected, not queued.
    """

    def __init__(
        self,
        backend: Optional[CaptureBackend] = None,
        *,
        sample_rate: int = SAMPLE_RATE,
        poll_interval: float = POLL_INTERVAL_SEC,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend or SoundDeviceBackend()
        self.sample_rate = sample_rate
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._session: Optional[_CaptureSession] = None

    # ---- status ----------------------------------------------------------

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    @property
    def current_amplitude(self) -> float:
        session = self._session
        return session.amplitude.read() if session else 0.0

    @property
    def endpointing_state(self) -> EndpointingState:
        session = self._session
        return session.state if session else EndpointingState.NOT_STARTED

    @property
    def recording_duration(self) -> float:
        """Seconds of audio captured so far in the active session."""
        session = self._session
        if session is None or self.sample_rate <= 0:
            return 0.0
        return session.sample_count / self.sample_rate

    def list_devices(self) -> List[AudioDevice]:
        return self.backend.list_devices()

    # ---- lifecycle -------------------------------------------------------

    def start_recording(self, device: Optional[int] = None) -> _CaptureSession:
        """
        Open the capture device and begin accumulating samples.

        Args:
            device: Input device index, None for the system default.

        Returns:
            The active capture session.

        Raises:
            AlreadyActiveError: If a session is already running.
            DeviceError:        If the device is missing or cannot be opened.
            NotRecordingError:  If stop_recording ran while the device was
                                opening; the new stream is closed again.
        """
        with self._lock:
            if self._session is not None:
                raise AlreadyActiveError()
            # Reserve the slot; the device is opened outside the lock.
            session = _CaptureSession(device, self._clock())
            self._session = session

        try:
            stream = self.backend.open_stream(device, self.sample_rate, session.on_chunk)
        except BaseException:
            self._release_reservation(session)
            raise

        session.stream = stream
        session.capturing = True
        try:
            stream.start()
        except Exception as exc:
            session.capturing = False
            stream.close()
            self._release_reservation(session)
            raise DeviceError(f"Failed to start audio device: {exc}") from exc

        with self._lock:
            still_owner = self._session is session
        if not still_owner:
            session.capturing = False
            _shutdown_stream(stream)
            raise NotRecordingError("Recording was stopped while the device was opening")

        logger.debug(
            "Recording started on %s.",
            "default device" if device is None else f"device {device}",
        )
        return session

    def stop_recording(self) -> np.ndarray:
        """
        Halt capture, close the device and hand over the samples.

        Returns:
            1-D float32 array of all captured samples (ownership moves to
            the caller; the recorder keeps no reference).

        Raises:
            NotRecordingError: If no session is active.
            EmptyCaptureError: If the session captured zero samples.
        """
        return self._finish(self._close_session())

    def _finish(self, pcm: np.ndarray) -> np.ndarray:
        if pcm.size == 0:
            raise EmptyCaptureError("No audio data recorded")
        logger.debug(
            "Recording stopped: %d samples (%.2fs).",
            pcm.size, pcm.size / self.sample_rate,
        )
        return pcm

    def _close_session(self, owner: Optional[_CaptureSession] = None) -> np.ndarray:
        """
        Detach and close the active session.

        With ``owner`` set, only that session is closed; if another caller
        already stopped it, NotRecordingError is raised and whatever session
        is active now is left alone.
        """
        with self._lock:
            session = self._session
            if session is None or (owner is not None and session is not owner):
                raise NotRecordingError()
            self._session = None

        session.capturing = False
        if session.stream is not None:
            _shutdown_stream(session.stream)
        return session.take_samples()

    def _abandon(self, owner: _CaptureSession) -> None:
        """Close ``owner`` on an error path if it is still the active session."""
        try:
            self._close_session(owner)
        except NotRecordingError:
            logger.debug("Session was already stopped by another caller.")

    def _release_reservation(self, session: _CaptureSession) -> None:
        with self._lock:
            if self._session is session:
                self._session = None

    # ---- composite operations -------------------------------------------

    def record_until_silence(
        self,
        max_duration: float,
        silence_duration: float,
        silence_threshold: float,
        device: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> np.ndarray:
        """
        Record until the utterance ends, max_duration elapses, or the caller
        sets ``cancel_event``.

        The device is always closed on the way out, and the result of
        ``stop_recording`` (including EmptyCaptureError) is what the caller
        gets back.

        Raises:
            AlreadyActiveError, DeviceError: From start_recording; no polling
                                             happens in that case.
            EmptyCaptureError:               If nothing was captured.
            NotRecordingError:               If another caller stopped this
                                             session first; a newer session
                                             is left running.
        """
        session = self.start_recording(device)
        endpointer = Endpointer(silence_threshold, silence_duration, max_duration)

        try:
            reason = self._poll(session, endpointer, cancel_event)
        except BaseException:
            self._abandon(session)
            raise

        logger.debug(
            "Endpointing finished: %s after %d polls (%.2fs captured).",
            reason.value, endpointer.polls, self.recording_duration,
        )
        return self._finish(self._close_session(session))

    def record_for(
        self,
        duration: float,
        device: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> np.ndarray:
        """Record for a fixed duration, ignoring amplitude."""
        session = self.start_recording(device)
        started = self._clock()
        try:
            while self._clock() - started < duration:
                if cancel_event is not None and cancel_event.is_set():
                    break
                self._sleep(self.poll_interval)
        except BaseException:
            self._abandon(session)
            raise
        return self._finish(self._close_session(session))

    def mic_level(self, duration: float, device: Optional[int] = None) -> MicLevel:
        """Capture for ``duration`` seconds and report peak/RMS levels."""
        try:
            pcm = self.record_for(duration, device)
        except EmptyCaptureError:
            return measure_level(np.zeros(0, dtype=np.float32))
        return measure_level(pcm)

    def _poll(
        self,
        session: _CaptureSession,
        endpointer: Endpointer,
        cancel_event: Optional[threading.Event],
    ) -> StopReason:
        started = self._clock()
        while True:
            self._sleep(self.poll_interval)
            if cancel_event is not None and cancel_event.is_set():
                return StopReason.CANCELLED

            elapsed = self._clock() - started
            reason = endpointer.update(session.amplitude.read(), elapsed)
            session.state = endpointer.state
            if reason is not None:
                return reason


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _shutdown_stream(stream: CaptureStream) -> None:
    try:
        stream.stop()
    except Exception as exc:
        logger.warning("Failed to stop capture stream cleanly: %s", exc)
    finally:
        try:
            stream.close()
        except Exception as exc:
            logger.warning("Failed to close capture device: %s", exc)
