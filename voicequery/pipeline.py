"""
voicequery/pipeline.py
=======================
Voice Query Orchestrator — VoiceQuery

Responsibility:
    1. Resolve the effective configuration once per invocation
    2. Read the dataset schema on the caller's thread
    3. Run capture → transcribe → text-to-SQL as ONE unit of work on a
       dedicated worker, bounded by VOICE_QUERY_TIMEOUT
    4. Prepare the generated SQL against the data engine before any row is
       returned (with or without provenance columns)
    5. Expose the recording / transcription helpers built on the same parts

Stage order inside the bounded unit:
    Stage 1: Capture          → PCM (silence endpointed)
    Stage 2: Transcription    → utterance text
    Stage 3: Text-to-SQL      → generated SQL

Failure policy:
    Every failure is terminal for the invocation; nothing is retried and no
    partial result (e.g. a transcript whose translation failed) is
    returned. On timeout the unit of work is detached, not joined: the
    capture device is released at the next poll, but a network call already
    in flight may still complete in the background. Its outcome is logged
    and discarded.

This module does NOT:
    - Decide when speech ends (see voicequery.audio.endpointing)
    - Talk HTTP itself (see voicequery.sql.translation_client)
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from typing import Callable, Iterator, List, Optional, Tuple, TypeVar, Union

import numpy as np

from voicequery.audio.amplitude import MicLevel
from voicequery.audio.loader import AudioInfo, audio_info, check_audio, load_pcm
from voicequery.audio.recorder import AudioDevice, SilenceGatedRecorder
from voicequery.config import (
    PipelineRequest,
    VoiceQueryConfig,
    load_defaults,
    resolve_config,
)
from voicequery.errors import EmptyCaptureError, PipelineTimeout
from voicequery.sql.engine import Column, DataEngine, PreparedQuery
from voicequery.sql.translation_client import TextToSqlClient
from voicequery.stt.base import InferenceClient
from voicequery.stt.models import ModelCache, ModelInfo, list_models
from voicequery.stt.router import InferenceRouter
from voicequery.stt.types import TranscriptSegment

logger = logging.getLogger("voicequery.pipeline")
status_logger = logging.getLogger("voicequery.status")

T = TypeVar("T")

AudioSource = Union[str, bytes]


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class QueryResult:
    """Generated SQL, the utterance it came from, and its prepared result."""

    sql: str
    transcript: str
    prepared: PreparedQuery

    @property
    def columns(self) -> List[Column]:
        return self.prepared.columns

    def rows(self, batch_size: Optional[int] = None) -> Iterator[tuple]:
        if batch_size is None:
            return self.prepared.rows()
        return self.prepared.rows(batch_size)

    def to_dict(self) -> dict:
        """Materialize every row; used by the HTTP layer."""
        rows = [list(row) for row in self.rows()]
        return {
            "sql": self.sql,
            "transcript": self.transcript,
            "columns": [c.to_dict() for c in self.columns],
            "rows": rows,
            "row_count": len(rows),
        }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class VoiceQueryPipeline:
    """
    Construction root for one process: owns the model cache, the recorder,
    the inference and text-to-SQL clients and the data engine.
    """

    def __init__(
        self,
        defaults: Optional[VoiceQueryConfig] = None,
        *,
        recorder: Optional[SilenceGatedRecorder] = None,
        inference: Optional[InferenceClient] = None,
        translator: Optional[TextToSqlClient] = None,
        engine: Optional[DataEngine] = None,
        cache: Optional[ModelCache] = None,
    ) -> None:
        self.defaults = defaults or load_defaults()
        self.cache = cache or ModelCache()
        self.recorder = recorder or SilenceGatedRecorder()
        self.inference = inference or InferenceRouter(self.cache)
        self.translator = translator or TextToSqlClient(
            connect_timeout=self.defaults.text_to_sql_connect_timeout
        )
        self.engine = engine or DataEngine(self.defaults.database)

    # ==================================================================
    # Voice → SQL
    # ==================================================================

    def voice_to_sql(self, request: Optional[PipelineRequest] = None) -> str:
        """
        Listen for one utterance and return the SQL generated from it.

        Raises:
            PipelineTimeout:    VOICE_QUERY_TIMEOUT elapsed.
            CaptureError:       Device problems or nothing was said.
            TranscriptionError: Inference failed.
            TranslationError:   The text-to-SQL service failed.
        """
        config = resolve_config(request, self.defaults)
        sql, _ = self._listen_and_translate(config)
        return sql

    def voice_query(
        self,
        request: Optional[PipelineRequest] = None,
        provenance: bool = False,
    ) -> QueryResult:
        """
        Listen, generate SQL and prepare it against the data engine.

        With ``provenance`` the result gains two leading VARCHAR columns,
        ``_generated_sql`` and ``_transcription``.

        Raises:
            QueryPreparationError: The generated SQL does not bind. The
                                   error carries the SQL.
            Anything voice_to_sql raises.
        """
        config = resolve_config(request, self.defaults)
        sql, transcript = self._listen_and_translate(config)

        self._status(config, "Preparing SQL...")
        prepared = self.engine.prepare(sql)
        self._status(config, "SQL prepared")

        if provenance:
            prepared = prepared.with_provenance(transcript)

        logger.info(
            "Voice query ready: %d columns%s.",
            len(prepared.columns), " (with provenance)" if provenance else "",
        )
        return QueryResult(sql=sql, transcript=transcript, prepared=prepared)

    def voice_query_with_sql(self, request: Optional[PipelineRequest] = None) -> QueryResult:
        return self.voice_query(request, provenance=True)

    # ==================================================================
    # Recording & transcription helpers
    # ==================================================================

    def record(
        self,
        duration: float,
        request: Optional[PipelineRequest] = None,
    ) -> str:
        """Record for a fixed ``duration`` and return the transcript."""
        config = resolve_config(request, self.defaults)
        self._status(config, "Listening...")
        pcm = self.recorder.record_for(duration, config.capture_device)
        self._status(config, "Stopped")
        return self._transcribe(pcm, config)

    def record_translate(
        self,
        duration: float,
        request: Optional[PipelineRequest] = None,
    ) -> str:
        """Same as ``record`` with translation to English forced on."""
        request = _with_translate(request)
        return self.record(duration, request)

    def record_auto(self, request: Optional[PipelineRequest] = None) -> Optional[str]:
        """
        Record until silence and return the transcript.

        Returns None when no audio was captured at all.
        """
        config = resolve_config(request, self.defaults)
        self._status(config, "Listening...")
        try:
            pcm = self._record_until_silence(config)
        except EmptyCaptureError:
            self._status(config, "Stopped")
            return None
        self._status(config, "Stopped")
        return self._transcribe(pcm, config)

    def mic_level(self, duration: float = 1.0, device_id: Optional[int] = None) -> MicLevel:
        """Peak / RMS diagnostic for tuning the silence threshold."""
        device = device_id if device_id is not None and device_id >= 0 else None
        level = self.recorder.mic_level(duration, device)
        logger.info("Mic level: %s", level)
        return level

    def transcribe_file(
        self,
        source: AudioSource,
        request: Optional[PipelineRequest] = None,
        filename: Optional[str] = None,
    ) -> str:
        config = resolve_config(request, self.defaults)
        return self._transcribe(load_pcm(source, filename), config)

    def transcribe_segments(
        self,
        source: AudioSource,
        request: Optional[PipelineRequest] = None,
        filename: Optional[str] = None,
    ) -> List[TranscriptSegment]:
        """Decode an audio file and return its time-aligned segments."""
        config = resolve_config(request, self.defaults)
        pcm = load_pcm(source, filename)
        result = self.inference.transcribe(pcm, config)
        logger.info(
            "Transcribed %d segments (language=%s).",
            len(result.segments), result.detected_language,
        )
        return list(result.segments)

    def audio_info(self, source: AudioSource, filename: Optional[str] = None) -> AudioInfo:
        return audio_info(source, filename)

    def check_audio(self, source: AudioSource, filename: Optional[str] = None) -> str:
        """"OK" when the file decodes, otherwise "Error: <reason>"."""
        return check_audio(source, filename)

    def list_devices(self) -> List[AudioDevice]:
        return self.recorder.list_devices()

    def list_models(self) -> List[ModelInfo]:
        return list_models(self.defaults.model_path)

    # ==================================================================
    # Internals
    # ==================================================================

    def _listen_and_translate(self, config: VoiceQueryConfig) -> Tuple[str, str]:
        # The engine is read here, outside the worker, and the read does not
        # count against the budget.
        self._status(config, "Reading schema...")
        schema = self.engine.extract_schema()
        self._status(config, "Schema read")

        return run_with_deadline(
            lambda cancel: self._capture_and_translate(config, schema, cancel),
            config.voice_query_timeout,
        )

    def _capture_and_translate(
        self,
        config: VoiceQueryConfig,
        schema: str,
        cancel: threading.Event,
    ) -> Tuple[str, str]:
        # ---- Stage 1: capture ----
        self._status(config, "Listening...")
        pcm = self._record_until_silence(config, cancel)
        self._status(config, "Stopped")
        _check_cancelled(cancel, config)

        # ---- Stage 2: transcription ----
        self._status(config, "Transcribing...")
        question = self._transcribe(pcm, config)
        if not question:
            raise EmptyCaptureError()
        self._status(config, "Transcribed: '%s'", question)
        _check_cancelled(cancel, config)

        # ---- Stage 3: text-to-SQL ----
        self._status(config, "Text-to-SQL request sent...")
        sql = self.translator.generate_sql(
            config.text_to_sql_url, schema, question, config.text_to_sql_timeout
        )
        self._status(config, "Text-to-SQL response received")

        if config.voice_query_show_sql or config.verbose:
            status_logger.info("SQL: %s", sql)
        else:
            status_logger.debug("SQL: %s", sql)
        return sql, question

    def _record_until_silence(
        self,
        config: VoiceQueryConfig,
        cancel: Optional[threading.Event] = None,
    ) -> np.ndarray:
        try:
            return self.recorder.record_until_silence(
                config.max_duration,
                config.silence_duration,
                config.silence_threshold,
                config.capture_device,
                cancel_event=cancel,
            )
        except EmptyCaptureError as exc:
            logger.info("Nothing captured: %s", exc)
            raise EmptyCaptureError() from exc

    def _transcribe(self, pcm: np.ndarray, config: VoiceQueryConfig) -> str:
        result = self.inference.transcribe(pcm, config)
        return result.text.strip()

    def _status(self, config: VoiceQueryConfig, message: str, *args) -> None:
        level = logging.INFO if config.verbose else logging.DEBUG
        status_logger.log(level, message, *args)


# ---------------------------------------------------------------------------
# Bounded execution
# ---------------------------------------------------------------------------


def run_with_deadline(
    work: Callable[[threading.Event], T],
    budget_seconds: float,
) -> T:
    """
    Run ``work`` on a dedicated worker thread and wait at most
    ``budget_seconds`` for it.

    ``work`` receives a cancel event that is set when the deadline passes;
    cooperative stages (the capture poll loop) stop on it. Nothing else is
    interrupted.

    Returns:
        Whatever ``work`` returns.

    Raises:
        PipelineTimeout: Deadline elapsed. The worker is detached and its
                         eventual outcome discarded.
        Exception:       The first failure raised by ``work``, unchanged.
    """
    cancel = threading.Event()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="voicequery-unit")
    future = executor.submit(work, cancel)

    try:
        return future.result(timeout=budget_seconds)
    except FutureTimeoutError:
        cancel.set()
        future.add_done_callback(_discard_late_outcome)
        logger.warning(
            "Voice query exceeded %gs budget; abandoning in-flight work.",
            budget_seconds,
        )
        raise PipelineTimeout(budget_seconds) from None
    finally:
        # Never join: a timed-out worker may still be blocked on I/O.
        executor.shutdown(wait=False, cancel_futures=True)


def _discard_late_outcome(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.info("Abandoned voice query finished with %s: %s", type(exc).__name__, exc)
    else:
        logger.info("Abandoned voice query finished; result discarded.")


def _check_cancelled(cancel: threading.Event, config: VoiceQueryConfig) -> None:
    # The caller has already been told about the timeout; stop before the
    # next stage starts new I/O.
    if cancel.is_set():
        raise PipelineTimeout(config.voice_query_timeout)


def _with_translate(request: Optional[PipelineRequest]) -> PipelineRequest:
    if request is None:
        return PipelineRequest(translate=True)
    return replace(request, translate=True)
