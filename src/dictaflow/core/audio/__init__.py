from .recorder import AudioDevice, AudioRecorder, to_pcm16

__all__ = ["AudioDevice", "AudioRecorder", "to_pcm16"]
