"""
Recording session orchestration.

The coordinator owns at most one session at a time and walks it through
IDLE -> RECORDING -> PROCESSING -> IDLE. Transcription and formatting run on
a single background worker; every notification for a session is published
while holding the coordinator lock, so subscribers always see RECORDING,
PROCESSING, the result, then IDLE.
"""

import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional, Union

import numpy as np
from scipy.io import wavfile

from ...utils.logger import get_logger
from ..asr.transcriber import SpeechEngine, TranscribeOptions
from ..errors import DictationError, EngineBusy
from ..formatting.extractor import FormatResult
from ..formatting.providers import (
    FormatRequest,
    FormattingProvider,
    create_formatting_provider,
)
from ..formatting.vocabulary import apply_vocabulary_replacements
from ..settings import (
    FormattingSettings,
    Settings,
    TranscriptionRecord,
    add_history_record,
    get_recordings_dir,
    get_settings,
)
from .models import RecordingSession, SessionState
from .notifications import (
    NotificationChannel,
    SessionCancelled,
    SessionFailed,
    StateChanged,
    Subscription,
    TranscriptReady,
)

logger = get_logger(__name__)

NO_SPEECH_REASON = "No speech detected"

FormatterFactory = Callable[[FormattingSettings], Optional[FormattingProvider]]
HistorySink = Callable[[TranscriptionRecord], None]
SessionOutcome = Union[TranscriptReady, SessionFailed]


class SessionCoordinator:
    """
    Drives recording sessions from UI start/stop events to a final transcript.

    Example:
        coordinator = SessionCoordinator(engine)
        events = coordinator.subscribe()
        session_id = coordinator.start()
        coordinator.append_audio(pcm_chunk, session_id)
        coordinator.stop()
    """

    def __init__(
        self,
        engine: SpeechEngine,
        channel: Optional[NotificationChannel] = None,
        settings_provider: Callable[[], Settings] = get_settings,
        formatter_factory: FormatterFactory = create_formatting_provider,
        history: Optional[HistorySink] = None,
        executor: Optional[Executor] = None,
    ):
        self._engine = engine
        self.channel = channel or NotificationChannel()
        self._settings_provider = settings_provider
        self._formatter_factory = formatter_factory
        self._history = history if history is not None else add_history_record

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="dictaflow-session"
        )

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._session: Optional[RecordingSession] = None
        self._snapshot: Optional[Settings] = None
        self._closed = False

    @property
    def state(self) -> SessionState:
        with self._lock:
            if self._session is None:
                return SessionState.IDLE
            return self._session.state

    @property
    def current_session_id(self) -> Optional[str]:
        with self._lock:
            return self._session.id if self._session is not None else None

    def subscribe(self) -> Subscription:
        return self.channel.subscribe()

    def start(self) -> Optional[str]:
        """
        Begin a new session.

        Returns:
            The new session id, or None if a session is already active.
        """
        with self._lock:
            if self._closed:
                logger.warning("Start ignored: coordinator is shut down")
                return None
            if self._session is not None:
                logger.warning(
                    f"Start rejected: session {self._session.id} is "
                    f"{self._session.state.value}"
                )
                return None

            snapshot = self._settings_provider().model_copy(deep=True)
            session = RecordingSession()
            self._session = session
            self._snapshot = snapshot
            self.channel.publish(StateChanged(SessionState.RECORDING, session.id))
            logger.info(f"Session {session.id} started")
            return session.id

    def append_audio(self, chunk: bytes, session_id: Optional[str] = None) -> bool:
        with self._lock:
            session = self._session
            if session is None or session.state != SessionState.RECORDING:
                return False
            if session_id is not None and session_id != session.id:
                logger.debug(f"Dropping audio for stale session {session_id}")
                return False
            return session.append(chunk)

    def stop(self) -> Optional[str]:
        """
        Seal the recording and hand it to the background worker.

        Returns:
            The stopped session id, or None if nothing was recording.
        """
        with self._lock:
            session = self._session
            if session is None or session.state != SessionState.RECORDING:
                logger.debug("Stop ignored: no session is recording")
                return None

            session.seal()
            snapshot = self._snapshot
            self.channel.publish(StateChanged(SessionState.PROCESSING, session.id))
            logger.info(
                f"Session {session.id} stopped after {session.duration_s:.2f}s, "
                f"{len(session.audio)} bytes captured"
            )

            try:
                self._executor.submit(self._process, session, snapshot)
            except RuntimeError as e:
                logger.error(f"Could not schedule session {session.id}: {e}")
                self._complete(session, SessionFailed(session.id, str(e)))
            return session.id

    def cancel(self) -> Optional[str]:
        """Discard the recording session without transcribing it."""
        with self._lock:
            session = self._session
            if session is None or session.state != SessionState.RECORDING:
                return None

            session.finish()
            self._session = None
            self._snapshot = None
            self.channel.publish(SessionCancelled(session.id))
            self.channel.publish(StateChanged(SessionState.IDLE, session.id))
            self._idle.notify_all()
            logger.info(f"Session {session.id} cancelled")
            return session.id

    def release_engine(self) -> None:
        """
        Free the speech engine.

        Raises:
            EngineBusy: If a session is being processed.
        """
        with self._lock:
            if self._session is not None and self._session.state == SessionState.PROCESSING:
                raise EngineBusy(
                    f"Cannot release the engine while session {self._session.id} "
                    "is processing"
                )
            self._engine.release()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._session is None, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        logger.info("Session coordinator shut down")

    def _process(self, session: RecordingSession, snapshot: Settings) -> None:
        outcome: SessionOutcome = SessionFailed(session.id, "Processing aborted")
        try:
            audio_file = None
            if snapshot.keep_audio:
                audio_file = self._save_audio(session, snapshot.sample_rate)

            try:
                outcome = self._transcribe_and_format(session, snapshot)
            except DictationError as e:
                logger.error(f"Session {session.id} failed: {e}")
                outcome = SessionFailed(session.id, str(e) or type(e).__name__)
            except Exception as e:
                logger.error(
                    f"Session {session.id} failed unexpectedly: {e}", exc_info=True
                )
                outcome = SessionFailed(session.id, str(e) or type(e).__name__)

            self._record_history(outcome, audio_file)
        finally:
            # always back to IDLE, even if history or audio saving blew up
            self._complete(session, outcome)

    def _transcribe_and_format(
        self, session: RecordingSession, snapshot: Settings
    ) -> SessionOutcome:
        options = TranscribeOptions(
            sample_rate=snapshot.sample_rate,
            no_speech_threshold=snapshot.transcription.no_speech_threshold,
            min_duration_s=snapshot.transcription.min_duration_s,
        )
        raw_text = self._engine.transcribe(session.audio, options)
        if not raw_text or not raw_text.strip():
            logger.info(f"Session {session.id}: {NO_SPEECH_REASON.lower()}")
            return SessionFailed(session.id, NO_SPEECH_REASON)

        session.transcript = raw_text
        text = apply_vocabulary_replacements(raw_text, snapshot.vocabulary_replacements)

        result = self._format(session, text, snapshot)
        session.formatted_text = result.formatted_text

        binding = self._engine.binding_info() or {}
        logger.info(
            f"Session {session.id} complete on {binding.get('name', 'unknown')} "
            f"({binding.get('type', 'unknown')}): "
            f"'{result.formatted_text[:50]}{'...' if len(result.formatted_text) > 50 else ''}'"
        )
        return TranscriptReady(
            session_id=session.id,
            text=result.formatted_text,
            raw_text=raw_text,
            used_fallback=result.used_fallback,
            fallback_reason=(
                result.fallback_reason.value if result.fallback_reason else None
            ),
        )

    def _format(
        self, session: RecordingSession, text: str, snapshot: Settings
    ) -> FormatResult:
        if not snapshot.formatting.enabled:
            return FormatResult(formatted_text=text)

        try:
            provider = self._formatter_factory(snapshot.formatting)
        except Exception as e:
            logger.error(f"Could not create formatting provider: {e}", exc_info=True)
            return FormatResult(formatted_text=text)

        if provider is None:
            return FormatResult(formatted_text=text)
        if not provider.is_configured():
            logger.warning(
                f"Formatting provider {provider.name} not configured, skipping formatting"
            )
            return FormatResult(formatted_text=text)

        request = FormatRequest(
            text=text,
            context_hints={
                "session_id": session.id,
                "language": snapshot.transcription.language,
            },
        )
        return provider.format_text(request)

    def _save_audio(self, session: RecordingSession, sample_rate: int) -> Optional[str]:
        audio = session.audio
        if len(audio) < 2:
            return None
        samples = np.frombuffer(audio[: len(audio) - len(audio) % 2], dtype="<i2")
        path = None
        try:
            path = get_recordings_dir() / f"{session.id}.wav"
            wavfile.write(path, sample_rate, samples)
        except OSError as e:
            logger.warning(f"Could not save audio for session {session.id}: {e}")
            return None
        logger.debug(f"Saved session audio to {path}")
        return str(path)

    def _record_history(self, outcome: SessionOutcome, audio_file: Optional[str]) -> None:
        timestamp = datetime.now().isoformat()
        if isinstance(outcome, TranscriptReady):
            record = TranscriptionRecord(
                timestamp=timestamp,
                session_id=outcome.session_id,
                raw_text=outcome.raw_text,
                formatted_text=outcome.text,
                used_fallback=outcome.used_fallback,
                fallback_reason=outcome.fallback_reason,
                status="completed",
                audio_file=audio_file,
            )
        else:
            record = TranscriptionRecord(
                timestamp=timestamp,
                session_id=outcome.session_id,
                status="failed",
                failure_reason=outcome.reason,
                audio_file=audio_file,
            )

        try:
            self._history(record)
        except Exception as e:
            logger.error(f"Could not record history: {e}", exc_info=True)
            return
        logger.debug(f"Recorded session {outcome.session_id} to history ({record.status})")

    def _complete(self, session: RecordingSession, outcome: SessionOutcome) -> None:
        with self._lock:
            self.channel.publish(outcome)
            session.finish()
            if self._session is session:
                self._session = None
                self._snapshot = None
            self.channel.publish(StateChanged(SessionState.IDLE, session.id))
            self._idle.notify_all()
