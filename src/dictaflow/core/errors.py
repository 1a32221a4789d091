"""
Error taxonomy for the dictation pipeline.

Engine resolution failures are recovered per candidate and only become fatal
when no candidate loads. Transcription failures end the current session but
never the process. Formatting failures never leave the formatting provider.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .asr.bindings import EngineCandidate


class DictationError(Exception):
    """Base class for all pipeline errors."""


class LoadFailureKind(str, Enum):
    MISSING_DEPENDENCY = "missing_dependency"
    INCOMPATIBLE_ACCELERATOR = "incompatible_accelerator"
    CORRUPT_ARTIFACT = "corrupt_artifact"
    UNKNOWN = "unknown"


class EngineLoadFailure(DictationError):
    def __init__(
        self,
        candidate: "EngineCandidate",
        kind: LoadFailureKind,
        detail: str = "",
    ):
        self.candidate = candidate
        self.kind = kind
        self.detail = detail
        super().__init__(f"{candidate.name} [{kind.value}]: {detail}")


class NoEngineAvailable(DictationError):
    """Every engine candidate failed to load. No transcription is possible."""

    def __init__(self, failures: Optional[List[EngineLoadFailure]] = None):
        self.failures = list(failures or [])
        if self.failures:
            summary = "; ".join(str(f) for f in self.failures)
            message = f"No speech engine usable ({summary})"
        else:
            message = "No speech engine usable (no candidates configured)"
        super().__init__(message)


class EngineNotLoaded(DictationError):
    pass


class EngineBusy(DictationError):
    pass


class TranscriptionFailure(DictationError):
    pass


class FormattingTransportFailure(DictationError):
    pass


class FormattingMalformedOutput(DictationError):
    pass
