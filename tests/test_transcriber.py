"""
Tests for SpeechEngine and audio decoding.

Uses a fake backend to avoid loading real models.
"""

import io
import threading
import time

import numpy as np
import pytest
from scipy.io import wavfile

from dictaflow.core.asr.backends import RecognizerInitError, TranscriptionResult
from dictaflow.core.asr.resolver import BindingResolver
from dictaflow.core.asr.transcriber import (
    EngineState,
    SpeechEngine,
    TranscribeOptions,
    load_audio,
)
from dictaflow.core.errors import (
    EngineBusy,
    EngineLoadFailure,
    EngineNotLoaded,
    LoadFailureKind,
    NoEngineAvailable,
    TranscriptionFailure,
)


class FakeBackend:
    def __init__(
        self, binding, text="hello world", error=None, delay=0.0, load_error=None
    ):
        self.binding = binding
        self.text = text
        self.error = error
        self.delay = delay
        self.load_error = load_error
        self.loaded_path = None
        self.calls = []
        self.unload_count = 0
        self.active = 0
        self.max_active = 0
        self._counter_lock = threading.Lock()

    def load(self, model_path, language=""):
        if self.load_error is not None:
            raise self.load_error
        self.loaded_path = model_path

    def transcribe(self, audio_data, sample_rate=16000):
        with self._counter_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.calls.append((audio_data, sample_rate))
            if self.delay:
                time.sleep(self.delay)
            if self.error:
                raise self.error
            return TranscriptionResult(text=self.text)
        finally:
            with self._counter_lock:
                self.active -= 1

    def unload(self):
        self.unload_count += 1
        self.loaded_path = None

    @property
    def is_loaded(self):
        return self.loaded_path is not None

    @property
    def device(self):
        return self.binding.provider


@pytest.fixture
def backends():
    return []


@pytest.fixture
def make_engine(cpu_candidate, fake_loader, backends):
    def factory(states=None, **backend_kwargs):
        def backend_factory(binding):
            backend = FakeBackend(binding, **backend_kwargs)
            backends.append(backend)
            return backend

        on_state = (lambda s, m: states.append(s)) if states is not None else None
        resolver = BindingResolver([cpu_candidate], loader=fake_loader)
        return SpeechEngine(resolver, backend_factory=backend_factory, on_state_change=on_state)

    return factory


def pcm16(samples: np.ndarray) -> bytes:
    return (samples * 32767).astype("<i2").tobytes()


def tone(seconds=1.0, amplitude=0.5, rate=16000) -> np.ndarray:
    t = np.arange(int(seconds * rate)) / rate
    return (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


class TestLoadAudio:
    def test_int16_array_scaled(self):
        audio, rate = load_audio(np.array([0, 16384, -32768], dtype=np.int16))
        assert audio.dtype == np.float32
        assert audio[1] == pytest.approx(0.5)
        assert audio[2] == pytest.approx(-1.0)
        assert rate == 16000

    def test_stereo_downmixed(self):
        stereo = np.array([[0.2, 0.4], [0.6, 0.8]], dtype=np.float32)
        audio, _ = load_audio(stereo)
        assert audio.shape == (2,)
        assert audio[0] == pytest.approx(0.3)

    def test_raw_pcm_bytes(self):
        audio, rate = load_audio(pcm16(tone(0.1)), sample_rate=8000)
        assert len(audio) == 1600
        assert rate == 8000

    def test_odd_length_pcm(self):
        with pytest.raises(TranscriptionFailure):
            load_audio(b"\x00\x01\x02")

    def test_wav_bytes(self):
        buffer = io.BytesIO()
        wavfile.write(buffer, 8000, (tone(0.5, rate=8000) * 32767).astype(np.int16))
        audio, rate = load_audio(buffer.getvalue())
        assert rate == 8000
        assert len(audio) == 4000

    def test_wav_path(self, tmp_path):
        path = tmp_path / "clip.wav"
        wavfile.write(path, 16000, tone(0.25))
        audio, rate = load_audio(path)
        assert rate == 16000
        assert len(audio) == 4000

    def test_missing_file(self, tmp_path):
        with pytest.raises(TranscriptionFailure):
            load_audio(tmp_path / "missing.wav")

    def test_unsupported_type(self):
        with pytest.raises(TranscriptionFailure):
            load_audio(12345)


class TestEngineLoading:
    def test_initial_state_not_loaded(self, make_engine):
        engine = make_engine()
        assert engine.state == EngineState.NOT_LOADED
        assert engine.is_loaded is False
        assert engine.device == "none"

    def test_load_transitions(self, make_engine):
        states = []
        engine = make_engine(states=states)

        engine.load("whisper-base")

        assert states == [EngineState.LOADING, EngineState.READY]
        assert engine.is_loaded
        assert engine.model_path == "whisper-base"
        assert engine.device == "cpu"

    def test_second_load_is_noop(self, make_engine, backends):
        engine = make_engine()
        engine.load("whisper-base")
        engine.load("whisper-base")
        assert len(backends) == 1

    def test_load_failure_sets_error(self, cpu_candidate):
        def failing_loader(candidate):
            raise EngineLoadFailure(candidate, LoadFailureKind.MISSING_DEPENDENCY, "gone")

        states = []
        engine = SpeechEngine(
            BindingResolver([cpu_candidate], loader=failing_loader),
            backend_factory=FakeBackend,
            on_state_change=lambda s, m: states.append(s),
        )

        with pytest.raises(NoEngineAvailable):
            engine.load("whisper-base")

        assert states[-1] == EngineState.ERROR
        assert engine.is_loaded is False

    def test_accelerator_init_failure_falls_back_to_cpu(
        self, cuda_candidate, cpu_candidate, fake_loader
    ):
        created = []

        def backend_factory(binding):
            error = None
            if binding.candidate.is_accelerated:
                error = RecognizerInitError("CUDA driver version is insufficient")
            backend = FakeBackend(binding, load_error=error)
            created.append(backend)
            return backend

        resolver = BindingResolver([cuda_candidate, cpu_candidate], loader=fake_loader)
        engine = SpeechEngine(resolver, backend_factory=backend_factory)

        engine.load("whisper-base")

        assert engine.state == EngineState.READY
        assert engine.device == "cpu"
        assert engine.binding_info()["name"] == "sherpa-onnx-cpu"
        assert created[0].binding.is_released
        failures = resolver.last_failures
        assert [f.candidate.name for f in failures] == ["sherpa-onnx-cuda"]
        assert failures[0].kind == LoadFailureKind.INCOMPATIBLE_ACCELERATOR

    def test_cpu_init_failure_is_not_retried(self, cpu_candidate, fake_loader):
        states = []
        engine = SpeechEngine(
            BindingResolver([cpu_candidate], loader=fake_loader),
            backend_factory=lambda binding: FakeBackend(
                binding, load_error=RecognizerInitError("bad onnx")
            ),
            on_state_change=lambda s, m: states.append(s),
        )

        with pytest.raises(RuntimeError, match="bad onnx"):
            engine.load("whisper-base")

        assert states[-1] == EngineState.ERROR

    def test_every_accelerator_rejected(self, cuda_candidate, fake_loader):
        engine = SpeechEngine(
            BindingResolver([cuda_candidate], loader=fake_loader),
            backend_factory=lambda binding: FakeBackend(
                binding, load_error=RecognizerInitError("no device")
            ),
        )

        with pytest.raises(NoEngineAvailable) as exc_info:
            engine.load("whisper-base")

        assert exc_info.value.failures[0].kind == LoadFailureKind.INCOMPATIBLE_ACCELERATOR

    def test_binding_info(self, make_engine):
        engine = make_engine()
        assert engine.binding_info() is None
        engine.load("whisper-base")
        assert engine.binding_info()["type"] == "cpu"


class TestTranscribe:
    def test_not_loaded(self, make_engine):
        with pytest.raises(EngineNotLoaded):
            make_engine().transcribe(pcm16(tone()))

    def test_returns_stripped_text(self, make_engine):
        engine = make_engine(text="  hello world \n")
        engine.load("whisper-base")
        assert engine.transcribe(pcm16(tone())) == "hello world"

    def test_short_audio_padded(self, make_engine, backends):
        engine = make_engine()
        engine.load("whisper-base")

        engine.transcribe(pcm16(tone(0.5)), TranscribeOptions(min_duration_s=1.25))

        audio, rate = backends[0].calls[0]
        assert rate == 16000
        assert len(audio) == 20000

    def test_empty_audio(self, make_engine):
        engine = make_engine()
        engine.load("whisper-base")
        with pytest.raises(TranscriptionFailure):
            engine.transcribe(b"")

    def test_below_no_speech_threshold(self, make_engine, backends):
        engine = make_engine()
        engine.load("whisper-base")

        text = engine.transcribe(
            pcm16(np.zeros(16000, dtype=np.float32)),
            TranscribeOptions(no_speech_threshold=0.01),
        )

        assert text == ""
        assert backends[0].calls == []

    def test_hallucination_on_quiet_audio_dropped(self, make_engine):
        engine = make_engine(text="Thank you.")
        engine.load("whisper-base")
        assert engine.transcribe(pcm16(np.zeros(16000, dtype=np.float32))) == ""

    def test_hallucination_phrase_kept_on_speech(self, make_engine):
        engine = make_engine(text="Thank you.")
        engine.load("whisper-base")
        assert engine.transcribe(pcm16(tone())) == "Thank you."

    def test_backend_error_wrapped(self, make_engine):
        states = []
        engine = make_engine(states=states, error=RuntimeError("decoder crashed"))
        engine.load("whisper-base")

        with pytest.raises(TranscriptionFailure, match="decoder crashed"):
            engine.transcribe(pcm16(tone()))

        assert states[-1] == EngineState.ERROR

    def test_busy_with_wait_timeout(self, make_engine):
        engine = make_engine()
        engine.load("whisper-base")

        engine._transcribe_lock.acquire()
        try:
            with pytest.raises(EngineBusy):
                engine.transcribe(pcm16(tone()), TranscribeOptions(wait_timeout=0.01))
        finally:
            engine._transcribe_lock.release()

    def test_calls_are_serialized(self, make_engine, backends):
        engine = make_engine(delay=0.05)
        engine.load("whisper-base")
        audio = pcm16(tone(0.2))

        threads = [
            threading.Thread(target=engine.transcribe, args=(audio,)) for _ in range(3)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert len(backends[0].calls) == 3
        assert backends[0].max_active == 1


class TestRelease:
    def test_release_once(self, make_engine, backends):
        engine = make_engine()
        engine.load("whisper-base")
        binding = backends[0].binding

        engine.release()
        engine.release()

        assert backends[0].unload_count == 1
        assert binding.is_released
        assert engine.state == EngineState.NOT_LOADED

    def test_transcribe_after_release(self, make_engine):
        engine = make_engine()
        engine.load("whisper-base")
        engine.release()
        with pytest.raises(EngineNotLoaded):
            engine.transcribe(pcm16(tone()))
