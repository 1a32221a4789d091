"""
Speech engine facade over the resolved native binding.

Handles model loading and transcription on top of the engine variant chosen
by the BindingResolver. The native recognizer is not reentrant, so every
transcription holds an exclusive lock for its whole duration.
"""

import io
import os
import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

import numpy as np
from scipy.io import wavfile

from ...utils.logger import get_logger
from ..errors import (
    EngineBusy,
    EngineLoadFailure,
    EngineNotLoaded,
    LoadFailureKind,
    TranscriptionFailure,
)
from .backends import RecognizerInitError, SherpaOnnxBackend
from .bindings import LoadedEngine, NativeBinding
from .resolver import BindingResolver
from .speech_filter import is_known_hallucination, pad_to_min_duration, rms_level

logger = get_logger(__name__)

AudioSource = Union[np.ndarray, bytes, bytearray, str, os.PathLike]
BackendFactory = Callable[[NativeBinding], SherpaOnnxBackend]


class EngineState(Enum):
    NOT_LOADED = auto()
    LOADING = auto()
    READY = auto()
    PROCESSING = auto()
    ERROR = auto()


@dataclass
class TranscribeOptions:
    sample_rate: int = 16000
    no_speech_threshold: float = 0.0
    # 1 second plus a short tail; shorter clips confuse the decoder
    min_duration_s: float = 1.25
    filter_hallucinations: bool = True
    hallucination_rms: float = 0.01
    wait_timeout: Optional[float] = None


def _to_float32(data: np.ndarray) -> np.ndarray:
    if data.dtype == np.int16:
        audio = data.astype(np.float32) / 32768.0
    elif data.dtype == np.int32:
        audio = data.astype(np.float32) / 2147483648.0
    elif data.dtype == np.uint8:
        audio = (data.astype(np.float32) - 128.0) / 128.0
    else:
        audio = data.astype(np.float32)

    if audio.ndim > 1:
        audio = audio.mean(axis=1)
    return audio


def load_audio(source: AudioSource, sample_rate: int = 16000) -> Tuple[np.ndarray, int]:
    """
    Decode an audio source into mono float32 samples.

    Accepts a numpy array, raw little-endian PCM16 bytes, WAV-encoded bytes,
    or the path of a WAV file.

    Raises:
        TranscriptionFailure: If the audio cannot be read.
    """
    if isinstance(source, np.ndarray):
        return _to_float32(source), sample_rate

    if isinstance(source, (bytes, bytearray)):
        raw = bytes(source)
        if raw[:4] == b"RIFF":
            try:
                rate, data = wavfile.read(io.BytesIO(raw))
            except ValueError as e:
                raise TranscriptionFailure(f"Unreadable WAV buffer: {e}") from e
            return _to_float32(data), int(rate)
        if len(raw) % 2:
            raise TranscriptionFailure(
                f"PCM16 buffer has an odd length ({len(raw)} bytes)"
            )
        return _to_float32(np.frombuffer(raw, dtype="<i2")), sample_rate

    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        if not path.is_file():
            raise TranscriptionFailure(f"Audio file not found: {path}")
        try:
            rate, data = wavfile.read(path)
        except ValueError as e:
            raise TranscriptionFailure(f"Unreadable audio file {path}: {e}") from e
        return _to_float32(data), int(rate)

    raise TranscriptionFailure(f"Unsupported audio source: {type(source).__name__}")


class SpeechEngine:
    """
    Loads one speech model on the resolved engine variant and transcribes audio.

    Example:
        engine = SpeechEngine(BindingResolver(load_engine_candidates()))
        engine.load("sherpa-onnx-whisper-base.en")
        text = engine.transcribe(pcm_bytes)
    """

    def __init__(
        self,
        resolver: BindingResolver,
        backend_factory: BackendFactory = SherpaOnnxBackend,
        on_state_change: Optional[Callable[[EngineState, str], None]] = None,
    ):
        self._resolver = resolver
        self._backend_factory = backend_factory
        self.on_state_change = on_state_change

        self._backend: Optional[SherpaOnnxBackend] = None
        self._model_path: Optional[str] = None
        self._state = EngineState.NOT_LOADED
        self._load_lock = threading.RLock()
        self._transcribe_lock = threading.Lock()

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._backend is not None and self._backend.is_loaded

    @property
    def model_path(self) -> Optional[str]:
        return self._model_path

    @property
    def device(self) -> str:
        if self._backend is not None:
            return self._backend.device
        return "none"

    def binding_info(self) -> Optional[dict]:
        return self._resolver.binding_info()

    def _set_state(self, state: EngineState, message: str = "") -> None:
        self._state = state
        if self.on_state_change:
            self.on_state_change(state, message)

    def load(self, model_path: str, accelerator: bool = True, language: str = "") -> None:
        """
        Load the speech model. A second call while loaded is a no-op.

        If an accelerated variant cannot build the recognizer, it is rejected
        and the next candidate is tried.

        Raises:
            NoEngineAvailable: If no engine variant could be loaded.
            RuntimeError: If the model directory is missing or invalid.
        """
        with self._load_lock:
            if self.is_loaded:
                if model_path != self._model_path:
                    logger.warning(
                        f"Engine already loaded with '{self._model_path}', "
                        f"ignoring load of '{model_path}'; release() first"
                    )
                return

            self._set_state(EngineState.LOADING, f"Loading model: {model_path}...")
            try:
                loaded, backend = self._load_backend(model_path, accelerator, language)
            except Exception as e:
                self._set_state(EngineState.ERROR, f"Failed to load model: {e}")
                raise

            self._backend = backend
            self._model_path = model_path
            self._set_state(
                EngineState.READY,
                f"Model loaded on {backend.device.upper()} ({loaded.candidate.name})",
            )

    def _load_backend(
        self, model_path: str, accelerator: bool, language: str
    ) -> Tuple[LoadedEngine, SherpaOnnxBackend]:
        while True:
            loaded = self._resolver.resolve(allow_accelerated=accelerator)
            backend = self._backend_factory(loaded.handle)
            try:
                backend.load(model_path, language=language)
            except RecognizerInitError as e:
                if not loaded.candidate.is_accelerated:
                    raise
                # driver or provider mismatch, try the next variant
                self._resolver.reject(
                    EngineLoadFailure(
                        loaded.candidate,
                        LoadFailureKind.INCOMPATIBLE_ACCELERATOR,
                        str(e),
                    )
                )
                continue
            return loaded, backend

    def transcribe(
        self, audio_source: AudioSource, options: Optional[TranscribeOptions] = None
    ) -> str:
        """
        Transcribe audio to text. Blocks until the engine is free.

        Returns:
            The transcript, or an empty string when no speech was detected.

        Raises:
            EngineNotLoaded: If load() has not succeeded.
            EngineBusy: If options.wait_timeout elapsed while another
                transcription held the engine.
            TranscriptionFailure: If the audio is unreadable or decoding failed.
        """
        options = options or TranscribeOptions()
        if not self.is_loaded:
            raise EngineNotLoaded("Speech engine is not loaded. Call load() first.")

        timeout = -1 if options.wait_timeout is None else options.wait_timeout
        if not self._transcribe_lock.acquire(timeout=timeout):
            raise EngineBusy("Another transcription is in progress")

        try:
            backend = self._backend
            if backend is None:
                raise EngineNotLoaded("Speech engine was released")
            return self._transcribe_locked(backend, audio_source, options)
        finally:
            self._transcribe_lock.release()

    def _transcribe_locked(
        self,
        backend: SherpaOnnxBackend,
        audio_source: AudioSource,
        options: TranscribeOptions,
    ) -> str:
        audio, sample_rate = load_audio(audio_source, options.sample_rate)
        if audio.size == 0:
            raise TranscriptionFailure("No audio samples to transcribe")

        level = rms_level(audio)
        if level < options.no_speech_threshold:
            logger.info(
                f"Skipping transcription: level {level:.4f} below "
                f"no-speech threshold {options.no_speech_threshold:.4f}"
            )
            return ""

        audio = pad_to_min_duration(audio, sample_rate, options.min_duration_s)

        self._set_state(EngineState.PROCESSING, "Transcribing...")
        start_time = time.time()
        try:
            result = backend.transcribe(audio_data=audio, sample_rate=sample_rate)
        except Exception as e:
            self._set_state(EngineState.ERROR, f"Transcription failed: {e}")
            raise TranscriptionFailure(f"Transcription failed: {e}") from e

        processing_time = time.time() - start_time
        audio_duration = len(audio) / sample_rate
        if processing_time > 0:
            logger.debug(
                f"Transcription finished: audio_len={audio_duration:.2f}s, "
                f"time={processing_time:.2f}s, speed={audio_duration / processing_time:.2f}x"
            )

        text = (result.text or "").strip()
        if (
            options.filter_hallucinations
            and level < options.hallucination_rms
            and is_known_hallucination(text)
        ):
            logger.info(f"Dropping likely hallucination on quiet audio: '{text}'")
            text = ""

        self._set_state(EngineState.READY, "Ready")
        return text

    def release(self) -> None:
        """Free the model and the engine binding. Safe to call repeatedly."""
        with self._load_lock, self._transcribe_lock:
            if self._backend is not None:
                self._backend.unload()
                self._backend = None
                self._model_path = None
            self._resolver.release()
            if self._state != EngineState.NOT_LOADED:
                self._set_state(EngineState.NOT_LOADED, "Model unloaded")
