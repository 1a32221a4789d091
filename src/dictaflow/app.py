"""Application runtime."""

import signal
import sys
from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal
from PySide6.QtWidgets import QApplication

from dictaflow import __app_name__, __version__
from dictaflow.core.asr import BindingResolver, EngineState, SpeechEngine
from dictaflow.core.audio import AudioRecorder
from dictaflow.core.errors import NoEngineAvailable
from dictaflow.core.session import (
    SessionCancelled,
    SessionCoordinator,
    SessionFailed,
    SessionState,
    StateChanged,
    TranscriptReady,
)
from dictaflow.core.settings import get_settings
from dictaflow.utils.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


class DictationBridge(QObject):
    """
    Bridges coordinator notifications onto the Qt event loop.

    Notifications are produced on the session worker thread; a QTimer drains
    them on the GUI thread and re-emits them as Qt signals.
    """

    state_changed = Signal(str, object)  # state, session_id
    transcript_ready = Signal(str, str)  # session_id, text
    session_failed = Signal(str, str)  # session_id, reason

    def __init__(
        self,
        coordinator: SessionCoordinator,
        recorder: Optional[AudioRecorder] = None,
        poll_interval_ms: int = 50,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._coordinator = coordinator
        self._recorder = recorder
        self._subscription = coordinator.subscribe()

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(poll_interval_ms)
        self._poll_timer.timeout.connect(self.drain)
        self._poll_timer.start()

    def toggle(self) -> Optional[str]:
        """Start a session when idle, stop it when recording."""
        state = self._coordinator.state
        if state == SessionState.IDLE:
            return self.start_recording()
        if state == SessionState.RECORDING:
            return self.stop_recording()
        logger.info("Toggle ignored: previous session still processing")
        return None

    def start_recording(self) -> Optional[str]:
        session_id = self._coordinator.start()
        if session_id is None:
            return None

        if self._recorder is not None:
            self._recorder.on_chunk = lambda chunk: self._coordinator.append_audio(
                chunk, session_id
            )
            if not self._recorder.start():
                error_msg = self._recorder.last_error or "Failed to start recording"
                logger.error(f"Recording error: {error_msg}")
                self._coordinator.cancel()
                self.session_failed.emit(session_id, error_msg)
                return None

        logger.info("Recording started")
        return session_id

    def stop_recording(self) -> Optional[str]:
        if self._recorder is not None:
            self._recorder.stop()
        return self._coordinator.stop()

    def drain(self) -> None:
        for message in self._subscription.drain():
            if isinstance(message, StateChanged):
                self.state_changed.emit(message.state.value, message.session_id)
            elif isinstance(message, TranscriptReady):
                self.transcript_ready.emit(message.session_id, message.text)
            elif isinstance(message, SessionFailed):
                self.session_failed.emit(message.session_id, message.reason)
            elif isinstance(message, SessionCancelled):
                logger.debug(f"Session {message.session_id} cancelled")

    def close(self) -> None:
        self._poll_timer.stop()
        if self._recorder is not None and self._recorder.is_recording:
            self._recorder.stop()
        self._subscription.close()


def _on_engine_state_change(state: EngineState, message: str) -> None:
    logger.info(f"Engine {state.name}: {message}")


def _print_transcript(session_id: str, text: str) -> None:
    print(text, flush=True)


def main() -> int:
    app = QApplication(sys.argv)
    app.setApplicationName(__app_name__)
    app.setQuitOnLastWindowClosed(False)
    signal.signal(signal.SIGINT, lambda *args: QApplication.quit())

    settings = get_settings()
    logger.info(f"Starting {__app_name__} v{__version__}")
    logger.info(
        f"Settings: model={settings.model_path}, sample_rate={settings.sample_rate}, "
        f"formatting={'on' if settings.formatting.enabled else 'off'}"
    )

    resolver = BindingResolver(settings.engine.resolve_candidates())
    engine = SpeechEngine(resolver, on_state_change=_on_engine_state_change)
    try:
        engine.load(
            settings.model_path,
            accelerator=settings.use_gpu,
            language=settings.transcription.language,
        )
    except NoEngineAvailable as e:
        logger.error(f"No speech engine could be loaded: {e}")
        shutdown_logging()
        return 1
    except RuntimeError as e:
        logger.error(f"Model loading failed: {e}")
        engine.release()
        shutdown_logging()
        return 1

    coordinator = SessionCoordinator(engine)
    recorder = AudioRecorder(
        sample_rate=settings.sample_rate, device=settings.input_device
    )
    bridge = DictationBridge(coordinator, recorder=recorder)
    bridge.transcript_ready.connect(_print_transcript)
    bridge.session_failed.connect(
        lambda session_id, reason: logger.warning(f"Session {session_id}: {reason}")
    )

    if hasattr(signal, "SIGUSR1"):
        # `kill -USR1 <pid>` toggles recording
        signal.signal(signal.SIGUSR1, lambda *args: QTimer.singleShot(0, bridge.toggle))

    logger.info("Application initialization complete")
    exit_code = app.exec()

    logger.info("Shutting down application")
    bridge.close()
    coordinator.shutdown()
    engine.release()
    logger.info("Application shutdown complete")
    shutdown_logging()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
