from .coordinator import SessionCoordinator
from .models import RecordingSession, SessionState
from .notifications import (
    Notification,
    NotificationChannel,
    SessionCancelled,
    SessionFailed,
    StateChanged,
    Subscription,
    TranscriptReady,
)

__all__ = [
    "Notification",
    "NotificationChannel",
    "RecordingSession",
    "SessionCancelled",
    "SessionCoordinator",
    "SessionFailed",
    "SessionState",
    "StateChanged",
    "Subscription",
    "TranscriptReady",
]
