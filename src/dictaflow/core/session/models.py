import time
import uuid
from enum import Enum
from typing import List, Optional


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"


class RecordingSession:
    """
    One press-to-talk cycle: ordered audio chunks plus its results.

    Chunks are accepted only while recording. The transcript and the
    formatted text can each be set once.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex
        self.state = SessionState.RECORDING
        self.started_at = time.time()
        self.stopped_at: Optional[float] = None
        self._chunks: List[bytes] = []
        self._transcript: Optional[str] = None
        self._formatted_text: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"RecordingSession(id={self.id!r}, state={self.state.value}, "
            f"chunks={len(self._chunks)})"
        )

    @property
    def chunks(self) -> List[bytes]:
        return list(self._chunks)

    @property
    def audio(self) -> bytes:
        return b"".join(self._chunks)

    @property
    def duration_s(self) -> Optional[float]:
        if self.stopped_at is None:
            return None
        return self.stopped_at - self.started_at

    def append(self, chunk: bytes) -> bool:
        if self.state != SessionState.RECORDING:
            return False
        self._chunks.append(bytes(chunk))
        return True

    def seal(self) -> None:
        """Stop accepting audio and stamp the stop time."""
        if self.state != SessionState.RECORDING:
            raise ValueError(f"Cannot seal session in state {self.state.value}")
        self.state = SessionState.PROCESSING
        self.stopped_at = time.time()

    def finish(self) -> None:
        self.state = SessionState.IDLE

    @property
    def transcript(self) -> Optional[str]:
        return self._transcript

    @transcript.setter
    def transcript(self, value: str) -> None:
        if self._transcript is not None:
            raise ValueError("transcript is already set")
        self._transcript = value

    @property
    def formatted_text(self) -> Optional[str]:
        return self._formatted_text

    @formatted_text.setter
    def formatted_text(self, value: str) -> None:
        if self._formatted_text is not None:
            raise ValueError("formatted_text is already set")
        self._formatted_text = value
