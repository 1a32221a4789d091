"""
Tests for AudioRecorder and device enumeration.

Uses mocking to avoid requiring actual audio hardware.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import sounddevice as sd

from dictaflow.core.audio.recorder import AudioDevice, AudioRecorder, to_pcm16


class TestPcmConversion:
    """Tests for float frame to PCM16 conversion."""

    def test_scales_and_packs_little_endian(self):
        pcm = to_pcm16(np.array([[0.0], [1.0], [-1.0]], dtype=np.float32))
        samples = np.frombuffer(pcm, dtype="<i2")
        assert list(samples) == [0, 32767, -32767]

    def test_clips_out_of_range(self):
        samples = np.frombuffer(to_pcm16(np.array([2.0, -3.0])), dtype="<i2")
        assert list(samples) == [32767, -32767]

    def test_stereo_downmixed(self):
        pcm = to_pcm16(np.array([[0.5, -0.5], [1.0, 0.0]], dtype=np.float32))
        samples = np.frombuffer(pcm, dtype="<i2")
        assert len(samples) == 2
        assert samples[0] == 0


class TestAudioRecorderDeviceEnumeration:
    """Tests for device enumeration."""

    @patch("dictaflow.core.audio.recorder.sd.query_devices")
    def test_list_devices_returns_input_devices(self, mock_query):
        """Test list_devices filters to input devices only."""
        mock_query.return_value = [
            {"name": "Mic 1", "max_input_channels": 2, "max_output_channels": 0, "default_samplerate": 44100},
            {"name": "Speakers", "max_input_channels": 0, "max_output_channels": 2, "default_samplerate": 48000},
            {"name": "Mic 2", "max_input_channels": 1, "max_output_channels": 0, "default_samplerate": 16000},
        ]

        devices = AudioRecorder.list_devices()

        assert devices == [
            AudioDevice(name="Mic 1", index=0, channels=2, default_sample_rate=44100),
            AudioDevice(name="Mic 2", index=2, channels=1, default_sample_rate=16000),
        ]

    @patch("dictaflow.core.audio.recorder.sd.query_devices")
    def test_named_device_resolved_to_index(self, mock_query):
        mock_query.return_value = [
            {"name": "Speakers", "max_input_channels": 0, "default_samplerate": 48000},
            {"name": "USB Mic", "max_input_channels": 1, "default_samplerate": 16000},
        ]

        assert AudioRecorder(device="USB Mic")._get_device_index() == 1
        assert AudioRecorder(device="Missing")._get_device_index() is None


class TestAudioRecorderState:
    """Tests for recorder start/stop state."""

    def test_initial_state_not_recording(self):
        recorder = AudioRecorder()
        assert recorder.is_recording is False
        assert recorder.last_error is None

    @patch("dictaflow.core.audio.recorder.sd.InputStream")
    def test_start_sets_recording(self, mock_stream_class):
        mock_stream = MagicMock()
        mock_stream_class.return_value = mock_stream

        recorder = AudioRecorder()

        assert recorder.start() is True
        assert recorder.is_recording is True
        mock_stream.start.assert_called_once()
        assert mock_stream_class.call_args.kwargs["dtype"] == "float32"

    @patch("dictaflow.core.audio.recorder.sd.InputStream")
    def test_start_twice_is_idempotent(self, mock_stream_class):
        recorder = AudioRecorder()
        recorder.start()
        recorder.start()

        assert mock_stream_class.call_count == 1

    @patch("dictaflow.core.audio.recorder.sd.InputStream")
    def test_start_failure_reports_error(self, mock_stream_class):
        mock_stream_class.side_effect = sd.PortAudioError("Invalid device")

        recorder = AudioRecorder()

        assert recorder.start() is False
        assert recorder.is_recording is False
        assert "Invalid device" in recorder.last_error

    @patch("dictaflow.core.audio.recorder.sd.InputStream")
    def test_stop_closes_stream_and_keeps_no_audio(self, mock_stream_class):
        mock_stream = MagicMock()
        mock_stream_class.return_value = mock_stream
        chunks = []

        recorder = AudioRecorder(on_chunk=chunks.append)
        recorder.start()
        recorder._audio_callback(np.array([[0.5], [0.5]], dtype=np.float32), 2, None, None)
        recorder._audio_callback(np.array([[0.25]], dtype=np.float32), 1, None, None)

        assert recorder.stop() is None
        assert recorder.is_recording is False
        assert sum(len(c) for c in chunks) == 6
        mock_stream.stop.assert_called_once()
        mock_stream.close.assert_called_once()

    def test_stop_without_start_is_noop(self):
        recorder = AudioRecorder()
        recorder.stop()
        assert recorder.is_recording is False


class TestAudioCallback:
    """Tests for chunk and level callbacks."""

    @patch("dictaflow.core.audio.recorder.sd.InputStream")
    def test_chunks_delivered_in_order(self, mock_stream_class):
        chunks = []
        recorder = AudioRecorder(on_chunk=chunks.append)
        recorder.start()

        recorder._audio_callback(np.array([[0.1]], dtype=np.float32), 1, None, None)
        recorder._audio_callback(np.array([[0.2]], dtype=np.float32), 1, None, None)

        assert chunks == [
            to_pcm16(np.array([[0.1]], dtype=np.float32)),
            to_pcm16(np.array([[0.2]], dtype=np.float32)),
        ]

    @patch("dictaflow.core.audio.recorder.sd.InputStream")
    def test_audio_level_callback(self, mock_stream_class):
        levels = []
        recorder = AudioRecorder(on_audio_level=levels.append)
        recorder.start()

        recorder._audio_callback(np.array([[0.05], [0.05]], dtype=np.float32), 2, None, None)

        assert levels == [pytest.approx(0.5)]

    def test_callback_ignored_when_not_recording(self):
        chunks = []
        recorder = AudioRecorder(on_chunk=chunks.append)
        recorder._audio_callback(np.array([[0.1]], dtype=np.float32), 1, None, None)
        assert chunks == []