"""Microphone capture device and PCM helpers."""

import io
import time
import wave
from pathlib import Path
from typing import Any

import numpy as np
import pyaudio
from scipy.io import wavfile

from .config import (
    AUDIO_SAMPLE_NORMALIZATION,
    CAPTURE_CHANNELS_MONO,
    CAPTURE_SAMPLE_WIDTH,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SAMPLE_RATE,
    PCM_MIME_TYPE,
)
from .exceptions import AudioCaptureError, MicrophoneNotFoundError, MicrophonePermissionError
from .interfaces import CaptureDevice
from .logging_utils import get_logger

logger = get_logger(__name__)


def bytes_to_samples(data: bytes) -> np.ndarray:
    """Convert 16-bit little-endian PCM to float32 samples in [-1, 1)."""
    return np.frombuffer(data, dtype="<i2").astype(np.float32) / AUDIO_SAMPLE_NORMALIZATION


def samples_to_bytes(samples: np.ndarray) -> bytes:
    """Convert float samples in [-1, 1] to 16-bit little-endian PCM."""
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    return (clipped * (AUDIO_SAMPLE_NORMALIZATION - 1)).astype("<i2").tobytes()


def encode_wav(pcm: bytes, sample_rate: int) -> bytes:
    """Wrap raw 16-bit mono PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(CAPTURE_CHANNELS_MONO)
        wav_file.setsampwidth(CAPTURE_SAMPLE_WIDTH)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


def load_wav(path: str | Path) -> tuple[np.ndarray, int]:
    """
    Read a WAV file as mono float32 samples.

    Integer formats are scaled to [-1, 1]; multi-channel audio is averaged.

    Returns:
        (samples, sample_rate)
    """
    sample_rate, data = wavfile.read(str(path))

    if data.dtype == np.uint8:
        samples = (data.astype(np.float32) - 128.0) / 128.0
    elif np.issubdtype(data.dtype, np.integer):
        samples = data.astype(np.float32) / float(np.iinfo(data.dtype).max + 1)
    else:
        samples = data.astype(np.float32)

    if samples.ndim > 1:
        samples = samples.mean(axis=1)

    logger.debug(f"Loaded {path}: {samples.size} samples at {sample_rate}Hz")
    return samples, int(sample_rate)


class PyAudioCaptureDevice(CaptureDevice):
    """Microphone input through PyAudio, delivering 16-bit mono PCM chunks."""

    def __init__(
        self,
        sample_rate: int | None = None,
        chunk_size: int | None = None,
        name: str = "microphone",
    ) -> None:
        """
        Initialize the capture device.

        Args:
            sample_rate: Audio sample rate in Hz
            chunk_size: Number of samples per chunk
            name: Name of the audio source this device feeds
        """
        self._sample_rate = sample_rate if sample_rate is not None else DEFAULT_SAMPLE_RATE
        self.chunk_size = chunk_size if chunk_size is not None else DEFAULT_CHUNK_SIZE

        if self._sample_rate <= 0:
            raise ValueError("Sample rate must be positive")
        if self.chunk_size <= 0:
            raise ValueError("Chunk size must be positive")

        self.name = name
        self._capturing = False
        self._paused = False
        self._pyaudio = None
        self._stream = None

        # Debug tracking
        self._chunks_received = 0
        self._last_level_log = 0.0
        self._level_log_interval = 5.0  # Log audio levels every 5 seconds

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def mime_type(self) -> str:
        return PCM_MIME_TYPE

    def open(self) -> None:
        """Open the default input device and start streaming."""
        if self._capturing:
            raise AudioCaptureError("Already capturing")

        try:
            self._pyaudio = pyaudio.PyAudio()
            logger.debug("PyAudio initialized successfully")
            self._log_audio_devices()

            try:
                device_info = self._pyaudio.get_default_input_device_info()
                logger.debug(f"🎤 Default input device found: {device_info.get('name', 'Unknown')}")
            except OSError as e:
                logger.error("❌ No default input device found")
                raise MicrophoneNotFoundError("No microphone found") from e

            try:
                self._stream = self._pyaudio.open(
                    format=pyaudio.paInt16,
                    channels=CAPTURE_CHANNELS_MONO,
                    rate=self._sample_rate,
                    input=True,
                    frames_per_buffer=self.chunk_size,
                )
                self._stream.start_stream()
            except OSError as e:
                if "Permission denied" in str(e):
                    logger.error("❌ Microphone permission denied")
                    raise MicrophonePermissionError("Permission denied") from e
                logger.error(f"❌ Failed to open audio stream: {e}")
                raise AudioCaptureError(f"Failed to open audio stream: {e}") from e

            self._capturing = True
            self._paused = False
            self._chunks_received = 0
            self._last_level_log = time.time()
            logger.debug(
                f"✅ Audio stream started (sample_rate: {self._sample_rate}, chunk_size: {self.chunk_size})"
            )

        except Exception:
            self._release()
            raise

    def close(self) -> None:
        """Stop streaming and release PyAudio."""
        if not self._capturing:
            return
        self._capturing = False
        self._paused = False
        self._release()
        logger.debug(f"🎤 Audio stream closed after {self._chunks_received} chunks")

    def _release(self) -> None:
        if self._stream:
            if self._stream.is_active():
                self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        if self._pyaudio:
            self._pyaudio.terminate()
            self._pyaudio = None

    def pause(self) -> None:
        if self._capturing and not self._paused and self._stream:
            self._stream.stop_stream()
            self._paused = True

    def resume(self) -> None:
        if self._capturing and self._paused and self._stream:
            self._stream.start_stream()
            self._paused = False

    def is_capturing(self) -> bool:
        return self._capturing

    def read_chunk(self) -> bytes | None:
        """
        Read the next chunk from the stream (blocks for one chunk duration).

        Returns:
            Raw 16-bit PCM, or None when not capturing or paused
        """
        if not self._capturing or self._paused or not self._stream:
            return None

        try:
            data = self._stream.read(self.chunk_size, exception_on_overflow=False)
        except OSError as e:
            logger.error(f"❌ Failed to read audio from stream: {e}")
            raise AudioCaptureError("Failed to read audio") from e

        if not data:
            return None

        self._chunks_received += 1
        current_time = time.time()
        if current_time - self._last_level_log >= self._level_log_interval:
            logger.trace(
                f"🔊 Chunks: {self._chunks_received}, "
                f"current level: {self._calculate_audio_level(data):.3f}"
            )
            self._last_level_log = current_time
        return data

    def read_block(self) -> np.ndarray | None:
        """Read the next chunk as float32 samples."""
        data = self.read_chunk()
        if data is None:
            return None
        return bytes_to_samples(data)

    def encode(self, chunks: list[bytes]) -> bytes:
        return encode_wav(b"".join(chunks), self._sample_rate)

    def _log_audio_devices(self) -> None:
        """Log available audio input devices for debugging."""
        try:
            device_count = self._pyaudio.get_device_count()
            logger.trace(f"🎤 Found {device_count} audio devices")
            for i in range(device_count):
                device_info = self._pyaudio.get_device_info_by_index(i)
                if device_info.get("maxInputChannels", 0) > 0:
                    logger.trace(
                        f"  [{i}] {device_info.get('name', f'Device {i}')} "
                        f"(in: {device_info.get('maxInputChannels')}, "
                        f"rate: {device_info.get('defaultSampleRate')})"
                    )
        except Exception as e:
            logger.error(f"❌ Error listing audio devices: {e}")

    def _calculate_audio_level(self, audio_data: bytes) -> float:
        """RMS level of a chunk between 0.0 and 1.0."""
        samples = bytes_to_samples(audio_data)
        if samples.size == 0:
            return 0.0
        return min(float(np.sqrt(np.mean(samples.astype(np.float64) ** 2))), 1.0)

    def get_debug_stats(self) -> dict[str, Any]:
        return {
            "capturing": self._capturing,
            "paused": self._paused,
            "sample_rate": self._sample_rate,
            "chunk_size": self.chunk_size,
            "chunks_received": self._chunks_received,
            "stream_active": self._stream.is_active() if self._stream else False,
            "pyaudio_initialized": self._pyaudio is not None,
        }
