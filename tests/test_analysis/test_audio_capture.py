"""Tests for the PyAudio capture device and PCM helpers."""

import io
import wave
from pathlib import Path
from unittest.mock import Mock, patch

import numpy as np
import pytest
from scipy.io import wavfile

from audio_insight.analysis.audio_capture import (
    PyAudioCaptureDevice,
    bytes_to_samples,
    encode_wav,
    load_wav,
    samples_to_bytes,
)
from audio_insight.analysis.exceptions import (
    AudioCaptureError,
    MicrophoneNotFoundError,
    MicrophonePermissionError,
)


def open_device(mock_pyaudio: Mock, **kwargs) -> tuple[PyAudioCaptureDevice, Mock, Mock]:
    mock_pa_instance = Mock()
    mock_pyaudio.return_value = mock_pa_instance
    mock_stream = Mock()
    mock_pa_instance.open.return_value = mock_stream

    device = PyAudioCaptureDevice(**kwargs)
    device.open()
    return device, mock_pa_instance, mock_stream


class TestPyAudioCaptureDevice:
    """Test cases for PyAudioCaptureDevice."""

    def test_initialization_defaults(self) -> None:
        """Defaults match the engine block size."""
        device = PyAudioCaptureDevice()

        assert device.sample_rate == 44100
        assert device.chunk_size == 256
        assert device.mime_type == "audio/wav"
        assert device.is_capturing() is False

    def test_invalid_parameters(self) -> None:
        """Non-positive rates and sizes are rejected."""
        with pytest.raises(ValueError, match="Sample rate must be positive"):
            PyAudioCaptureDevice(sample_rate=0)

        with pytest.raises(ValueError, match="Chunk size must be positive"):
            PyAudioCaptureDevice(chunk_size=0)

    @patch("pyaudio.PyAudio")
    def test_open_success(self, mock_pyaudio: Mock) -> None:
        """Opening starts a mono 16-bit input stream."""
        device, mock_pa_instance, mock_stream = open_device(mock_pyaudio, sample_rate=16000)

        assert device.is_capturing() is True
        kwargs = mock_pa_instance.open.call_args.kwargs
        assert kwargs["rate"] == 16000
        assert kwargs["channels"] == 1
        assert kwargs["input"] is True
        mock_stream.start_stream.assert_called_once()

    @patch("pyaudio.PyAudio")
    def test_open_already_capturing(self, mock_pyaudio: Mock) -> None:
        """A second open is an error."""
        device, _, _ = open_device(mock_pyaudio)

        with pytest.raises(AudioCaptureError, match="Already capturing"):
            device.open()

    @patch("pyaudio.PyAudio")
    def test_open_no_microphone(self, mock_pyaudio: Mock) -> None:
        """Missing default input device maps to MicrophoneNotFoundError."""
        mock_pa_instance = Mock()
        mock_pyaudio.return_value = mock_pa_instance
        mock_pa_instance.get_default_input_device_info.side_effect = OSError("No input device")

        device = PyAudioCaptureDevice()

        with pytest.raises(MicrophoneNotFoundError, match="No microphone found"):
            device.open()
        assert device.is_capturing() is False
        mock_pa_instance.terminate.assert_called_once()

    @patch("pyaudio.PyAudio")
    def test_open_permission_denied(self, mock_pyaudio: Mock) -> None:
        """Permission errors from the stream map to MicrophonePermissionError."""
        mock_pa_instance = Mock()
        mock_pyaudio.return_value = mock_pa_instance
        mock_pa_instance.open.side_effect = OSError("Permission denied")

        device = PyAudioCaptureDevice()

        with pytest.raises(MicrophonePermissionError, match="Permission denied"):
            device.open()
        assert device.is_capturing() is False

    @patch("pyaudio.PyAudio")
    def test_open_other_stream_error(self, mock_pyaudio: Mock) -> None:
        """Other stream errors become AudioCaptureError."""
        mock_pa_instance = Mock()
        mock_pyaudio.return_value = mock_pa_instance
        mock_pa_instance.open.side_effect = OSError("Invalid sample rate")

        with pytest.raises(AudioCaptureError, match="Failed to open audio stream"):
            PyAudioCaptureDevice().open()

    @patch("pyaudio.PyAudio")
    def test_read_chunk(self, mock_pyaudio: Mock) -> None:
        """Chunks are read with overflow tolerance."""
        device, _, mock_stream = open_device(mock_pyaudio, chunk_size=2)
        mock_stream.read.return_value = b"\x00\x40\x00\xc0"

        assert device.read_chunk() == b"\x00\x40\x00\xc0"
        mock_stream.read.assert_called_once_with(2, exception_on_overflow=False)
        np.testing.assert_allclose(device.read_block(), [0.5, -0.5])
        assert device.get_debug_stats()["chunks_received"] == 2

    def test_read_chunk_when_not_capturing(self) -> None:
        """Nothing is read before open()."""
        assert PyAudioCaptureDevice().read_chunk() is None

    @patch("pyaudio.PyAudio")
    def test_pause_and_resume(self, mock_pyaudio: Mock) -> None:
        """Pausing stops the stream without releasing it."""
        device, _, mock_stream = open_device(mock_pyaudio)

        device.pause()
        assert device.read_chunk() is None
        assert device.is_capturing() is True
        mock_stream.stop_stream.assert_called_once()

        device.resume()
        assert mock_stream.start_stream.call_count == 2

    @patch("pyaudio.PyAudio")
    def test_read_error(self, mock_pyaudio: Mock) -> None:
        """Stream read failures become AudioCaptureError."""
        device, _, mock_stream = open_device(mock_pyaudio)
        mock_stream.read.side_effect = OSError("Input overflowed")

        with pytest.raises(AudioCaptureError, match="Failed to read audio"):
            device.read_chunk()

    @patch("pyaudio.PyAudio")
    def test_close_releases_resources(self, mock_pyaudio: Mock) -> None:
        """Closing stops the stream and terminates PyAudio."""
        device, mock_pa_instance, mock_stream = open_device(mock_pyaudio)

        device.close()
        device.close()

        assert device.is_capturing() is False
        mock_stream.close.assert_called_once()
        mock_pa_instance.terminate.assert_called_once()

    def test_encode_produces_wav(self) -> None:
        """Recorded chunks are wrapped in a WAV container."""
        device = PyAudioCaptureDevice(sample_rate=8000)

        data = device.encode([b"\x01\x00", b"\x02\x00"])

        with wave.open(io.BytesIO(data), "rb") as wav_file:
            assert wav_file.getframerate() == 8000
            assert wav_file.getnframes() == 2


class TestPcmHelpers:
    """Conversions between PCM bytes and float samples."""

    def test_bytes_to_samples(self) -> None:
        samples = bytes_to_samples(b"\x00\x80\x00\x00\x00\x40")

        assert samples.dtype == np.float32
        np.testing.assert_allclose(samples, [-1.0, 0.0, 0.5])

    def test_samples_to_bytes_clips(self) -> None:
        data = samples_to_bytes(np.array([2.0, -2.0, 0.0]))

        np.testing.assert_array_equal(np.frombuffer(data, dtype="<i2"), [32767, -32767, 0])

    def test_encode_wav_header(self) -> None:
        data = encode_wav(b"\x00\x00" * 10, 16000)

        assert data[:4] == b"RIFF"
        assert data[8:12] == b"WAVE"

    def test_load_int16_wav(self, tmp_path: Path) -> None:
        path = tmp_path / "tone.wav"
        wavfile.write(str(path), 16000, np.array([0, 16384, -32768], dtype=np.int16))

        samples, sample_rate = load_wav(path)

        assert sample_rate == 16000
        np.testing.assert_allclose(samples, [0.0, 0.5, -1.0])

    def test_load_stereo_wav_is_averaged(self, tmp_path: Path) -> None:
        path = tmp_path / "stereo.wav"
        stereo = np.array([[0.5, -0.5], [1.0, 0.0]], dtype=np.float32)
        wavfile.write(str(path), 22050, stereo)

        samples, sample_rate = load_wav(path)

        assert sample_rate == 22050
        np.testing.assert_allclose(samples, [0.0, 0.5])

    def test_load_uint8_wav(self, tmp_path: Path) -> None:
        path = tmp_path / "bytes.wav"
        wavfile.write(str(path), 8000, np.array([128, 192, 64], dtype=np.uint8))

        samples, _ = load_wav(path)

        np.testing.assert_allclose(samples, [0.0, 0.5, -0.5])
