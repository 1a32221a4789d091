from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np
import sounddevice as sd

from ...utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AudioDevice:
    name: str
    index: int
    channels: int
    default_sample_rate: float


def to_pcm16(frames: np.ndarray) -> bytes:
    """Convert float frames in [-1, 1] to mono little-endian PCM16 bytes."""
    mono = frames.mean(axis=1) if frames.ndim > 1 else frames.flatten()
    clipped = np.clip(mono, -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


class AudioRecorder:
    """
    Microphone capture delivering PCM16 chunks as they arrive.

    Each PortAudio callback block is converted and passed to on_chunk, so a
    consumer sees the audio in capture order while recording is still running.
The recorder keeps no copy of the audio.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[str] = None,
        on_chunk: Optional[Callable[[bytes], None]] = None,
        on_audio_level: Optional[Callable[[float], None]] = None,
    ):

        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self.on_chunk = on_chunk
        self.on_audio_level = on_audio_level

        self._stream: Optional[sd.InputStream] = None
        self._bytes_captured = 0
        self._is_recording = False
        self._last_error: Optional[str] = None

    @property
    def is_recording(self) -> bool:
        return self._is_recording

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def start(self) -> bool:
        if self._is_recording:
            return True

        self._bytes_captured = 0
        self._last_error = None

        try:
            self._stream = sd.InputStream(
                samplerate=float(self.sample_rate),
                channels=self.channels,
                dtype="float32",
                device=self._get_device_index(),
                callback=self._audio_callback,
            )
            self._stream.start()
            self._is_recording = True
            return True

        except sd.PortAudioError as e:
            self._last_error = f"Audio device error: {e}"
            self._is_recording = False
            logger.error(self._last_error)
            return False
        except Exception as e:
            self._last_error = f"Failed to start recording: {e}"
            self._is_recording = False
            logger.error(self._last_error, exc_info=True)
            return False

    def stop(self) -> None:
        """Stop capture. The audio itself has already gone out through on_chunk."""
        if not self._is_recording:
            return

        self._is_recording = False

        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None

        logger.debug(f"Recording stopped, {self._bytes_captured} bytes delivered")

    def _audio_callback(self, indata: np.ndarray, frames: int, time, status) -> None:
        if not self._is_recording:
            return

        if status:
            logger.debug(f"Audio callback status: {status}")

        chunk = to_pcm16(indata)
        self._bytes_captured += len(chunk)

        if self.on_chunk is not None:
            self.on_chunk(chunk)

        if self.on_audio_level is not None:
            level = float(np.abs(indata).mean())
            self.on_audio_level(min(1.0, level * 10))

    def _get_device_index(self) -> Optional[int]:
        if self.device is None:
            return None

        for device in self.list_devices():
            if device.name == self.device:
                return device.index

        logger.warning(f"Input device '{self.device}' not found, using default")
        return None

    @staticmethod
    def list_devices() -> List[AudioDevice]:
        devices = []

        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                devices.append(
                    AudioDevice(
                        name=device["name"],
                        index=i,
                        channels=device["max_input_channels"],
                        default_sample_rate=device["default_samplerate"],
                    )
                )

        return devices
