from .backends import RecognizerInitError, SherpaOnnxBackend, TranscriptionResult
from .bindings import (
    EngineCandidate,
    LoadedEngine,
    NativeBinding,
    import_binding,
    load_engine_candidates,
    parse_engine_candidates,
)
from .resolver import BindingResolver
from .transcriber import EngineState, SpeechEngine, TranscribeOptions, load_audio

__all__ = [
    "BindingResolver",
    "EngineCandidate",
    "EngineState",
    "LoadedEngine",
    "NativeBinding",
    "RecognizerInitError",
    "SherpaOnnxBackend",
    "SpeechEngine",
    "TranscribeOptions",
    "TranscriptionResult",
    "import_binding",
    "load_audio",
    "load_engine_candidates",
    "parse_engine_candidates",
]
