"""Session notifications and a small fan-out channel for subscribers."""

import queue
import threading
from dataclasses import dataclass
from typing import List, Optional, Union

from ...utils.logger import get_logger
from .models import SessionState

logger = get_logger(__name__)


@dataclass(frozen=True)
class StateChanged:
    state: SessionState
    session_id: str


@dataclass(frozen=True)
class TranscriptReady:
    session_id: str
    text: str
    raw_text: str
    used_fallback: bool = False
    fallback_reason: Optional[str] = None


@dataclass(frozen=True)
class SessionFailed:
    session_id: str
    reason: str


@dataclass(frozen=True)
class SessionCancelled:
    session_id: str


Notification = Union[StateChanged, TranscriptReady, SessionFailed, SessionCancelled]


class Subscription:
    """A subscriber's private queue. Messages arrive in publish order."""

    def __init__(self, channel: "NotificationChannel"):
        self._channel = channel
        self._queue: "queue.Queue[Notification]" = queue.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, message: Notification) -> None:
        if not self._closed:
            self._queue.put(message)

    def get(self, timeout: Optional[float] = None) -> Notification:
        """Block for the next message. Raises queue.Empty on timeout."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> List[Notification]:
        messages = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except queue.Empty:
                return messages

    def close(self) -> None:
        """Unsubscribe. Work already in flight is unaffected."""
        self._closed = True
        self._channel._remove(self)


class NotificationChannel:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, message: Notification) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug(f"Publishing {message} to {len(subscribers)} subscriber(s)")
        for subscription in subscribers:
            subscription._put(message)
