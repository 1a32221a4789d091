import os
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from ...utils.logger import get_logger
from .bindings import NativeBinding
from .file_utils import WHISPER, detect_model_type, locate_model_files, resolve_model_path

logger = get_logger(__name__)


class RecognizerInitError(RuntimeError):
    """The native recognizer could not be built on the binding's provider."""


@dataclass
class TranscriptionResult:
    text: str
    timestamps: Optional[list] = None
    tokens: Optional[list] = None


class SherpaOnnxBackend:
    """Offline recognizer built from one resolved engine binding."""

    def __init__(self, binding: NativeBinding, num_threads: int = 4):
        self._binding = binding
        self._num_threads = num_threads
        self._recognizer = None
        self._model_type: Optional[str] = None

    def load(self, model_path: str, language: str = "") -> None:
        full_model_path = resolve_model_path(model_path)

        if not os.path.isdir(full_model_path):
            raise RuntimeError(
                f"Model directory not found: {full_model_path}. "
                f"Please download the model first."
            )

        model_type = detect_model_type(full_model_path)
        files = locate_model_files(full_model_path, model_type) if model_type else None
        if files is None:
            raise RuntimeError(
                f"Unrecognized model layout in {full_model_path}: expected "
                f"Whisper (*-encoder.onnx, *-decoder.onnx, *tokens.txt) or "
                f"Transducer (encoder/decoder/joiner.onnx, tokens.txt) files"
            )

        logger.info(
            f"Loading {model_type} model from '{full_model_path}' "
            f"with provider '{self._binding.provider}'"
        )

        sherpa_onnx = self._binding.module
        try:
            if model_type == WHISPER:
                self._load_whisper_model(sherpa_onnx, files, language)
            else:
                self._load_transducer_model(sherpa_onnx, files)
        except Exception as e:
            self._recognizer = None
            raise RecognizerInitError(
                f"Failed to load model from '{full_model_path}': {e}"
            ) from e

        self._model_type = model_type

    def _load_whisper_model(self, sherpa_onnx, files: Dict[str, str], language: str) -> None:
        logger.debug(f"Whisper model files: {files}")

        self._recognizer = sherpa_onnx.OfflineRecognizer.from_whisper(
            encoder=files["encoder"],
            decoder=files["decoder"],
            tokens=files["tokens"],
            language=language,
            task="transcribe",
            num_threads=self._num_threads,
            provider=self._binding.provider,
            debug=False,
            decoding_method="greedy_search",
        )

    def _load_transducer_model(self, sherpa_onnx, files: Dict[str, str]) -> None:
        logger.debug(f"Transducer model files: {files}")

        self._recognizer = sherpa_onnx.OfflineRecognizer.from_transducer(
            encoder=files["encoder"],
            decoder=files["decoder"],
            joiner=files["joiner"],
            tokens=files["tokens"],
            num_threads=self._num_threads,
            provider=self._binding.provider,
            debug=False,
            decoding_method="greedy_search",
            model_type="nemo_transducer",
        )

    def transcribe(
        self, audio_data: np.ndarray, sample_rate: int = 16000
    ) -> TranscriptionResult:
        if self._recognizer is None:
            raise RuntimeError("Model not loaded. Call load() first.")

        if audio_data.dtype == np.int16:
            audio_float = audio_data.astype(np.float32) / 32768.0
        else:
            audio_float = audio_data.astype(np.float32)

        if audio_float.ndim > 1:
            audio_float = (
                audio_float[:, 0] if audio_float.shape[1] > 1 else audio_float.flatten()
            )

        stream = self._recognizer.create_stream()
        stream.accept_waveform(sample_rate, audio_float)
        self._recognizer.decode_stream(stream)

        result = stream.result

        timestamps = None
        tokens = None
        if hasattr(result, "timestamps") and hasattr(result, "tokens"):
            timestamps = list(result.timestamps) if result.timestamps else None
            tokens = list(result.tokens) if result.tokens else None

        return TranscriptionResult(text=result.text, timestamps=timestamps, tokens=tokens)

    def unload(self) -> None:
        if self._recognizer is not None:
            del self._recognizer
            self._recognizer = None
        self._model_type = None

    @property
    def is_loaded(self) -> bool:
        return self._recognizer is not None

    @property
    def model_type(self) -> Optional[str]:
        return self._model_type

    @property
    def device(self) -> str:
        return self._binding.provider
