"""Per-frame spectral and cepstral feature extraction from a sample stream."""

from collections.abc import Iterable, Iterator

import numpy as np
from scipy.fft import dct
from scipy.signal import get_window

from .config import (
    FRAME_BUFFER_SIZE,
    FRAME_HOP_SIZE,
    MEL_BANDS,
    MEL_LOG_FLOOR,
    MFCC_COEFFICIENTS,
)
from .logging_utils import get_logger
from .models import FeatureFrame

logger = get_logger(__name__)


def _hz_to_mel(hz: float) -> float:
    return 2595 * np.log10(1 + hz / 700)


def _mel_to_hz(mel: np.ndarray) -> np.ndarray:
    return 700 * (10 ** (mel / 2595) - 1)


def mel_filterbank(
    n_mels: int,
    n_fft: int,
    sample_rate: float,
    fmin: float = 0.0,
    fmax: float | None = None,
) -> np.ndarray:
    """Build a triangular mel filterbank matrix of shape (n_mels, n_fft // 2 + 1)."""
    if fmax is None:
        fmax = sample_rate / 2
    mel_points = np.linspace(_hz_to_mel(fmin), _hz_to_mel(fmax), n_mels + 2)
    hz_points = _mel_to_hz(mel_points)
    bin_points = np.floor((n_fft + 1) * hz_points / sample_rate).astype(int)
    bin_points = np.clip(bin_points, 0, n_fft // 2)

    filters = np.zeros((n_mels, n_fft // 2 + 1))
    for i in range(n_mels):
        left, center, right = bin_points[i], bin_points[i + 1], bin_points[i + 2]
        if center > left:
            filters[i, left:center] = (np.arange(left, center) - left) / (center - left)
        if right > center:
            filters[i, center:right] = (right - np.arange(center, right)) / (right - center)
    return filters


def _finite_or_zero(value: float) -> float:
    value = float(value)
    return value if np.isfinite(value) else 0.0


class FrameExtractor:
    """
    Turns a continuous sample stream into hop-spaced FeatureFrames.

    Samples are accumulated across calls until a full frame is available at
    the current hop offset, so the number of frames produced for a stream of
    L samples is floor((L - buffer_size) / hop_size) + 1 regardless of how
    the stream is split into blocks.
    """

    def __init__(
        self,
        sample_rate: int,
        buffer_size: int = FRAME_BUFFER_SIZE,
        hop_size: int = FRAME_HOP_SIZE,
        n_mfcc: int = MFCC_COEFFICIENTS,
        n_mel_bands: int = MEL_BANDS,
    ) -> None:
        """
        Initialize the extractor.

        Args:
            sample_rate: Sample rate of the stream in Hz
            buffer_size: Frame length in samples
            hop_size: Samples advanced between frames (at most buffer_size)
            n_mfcc: Number of cepstral coefficients per frame
            n_mel_bands: Number of mel filters feeding the DCT
        """
        if sample_rate <= 0:
            raise ValueError("Sample rate must be positive")
        if buffer_size <= 1:
            raise ValueError("Buffer size must be greater than 1")
        if hop_size <= 0 or hop_size > buffer_size:
            raise ValueError("Hop size must be positive and no larger than the buffer size")
        if n_mfcc <= 0 or n_mfcc > n_mel_bands:
            raise ValueError("MFCC count must be positive and no larger than the mel band count")

        self.sample_rate = sample_rate
        self.buffer_size = buffer_size
        self.hop_size = hop_size
        self.n_mfcc = n_mfcc

        # Pre-compute everything that depends only on the frame geometry
        self._window = get_window("hann", buffer_size, fftbins=True)
        self._freqs = np.fft.rfftfreq(buffer_size, d=1.0 / sample_rate)
        self._mel_filters = mel_filterbank(n_mel_bands, buffer_size, float(sample_rate))

        self._pending = np.zeros(0, dtype=np.float32)
        self._frame_index = 0

    @property
    def frames_emitted(self) -> int:
        return self._frame_index

    def process(self, samples: np.ndarray) -> list[FeatureFrame]:
        """
        Feed one engine block and return the frames it completed.

        Blocks no larger than the hop size complete zero or one frame.

        Args:
            samples: Mono sample block

        Returns:
            Completed frames in hop order
        """
        block = np.asarray(samples, dtype=np.float32).ravel()
        if block.size:
            self._pending = np.concatenate((self._pending, block))

        frames: list[FeatureFrame] = []
        while self._pending.size >= self.buffer_size:
            frames.append(self.compute(self._pending[: self.buffer_size], self._frame_index))
            self._frame_index += 1
            self._pending = self._pending[self.hop_size :]

        if frames:
            logger.trace(f"Extracted {len(frames)} frame(s), next index {self._frame_index}")
        return frames

    def frames(self, blocks: Iterable[np.ndarray]) -> Iterator[FeatureFrame]:
        """Lazily yield frames while blocks keep arriving; ends when the blocks end."""
        for block in blocks:
            yield from self.process(block)

    def extract_all(self, samples: np.ndarray) -> list[FeatureFrame]:
        """Extract every frame of a complete buffer without touching streaming state."""
        data = np.asarray(samples, dtype=np.float32).ravel()
        if data.size < self.buffer_size:
            return []
        return [
            self.compute(data[start : start + self.buffer_size], index)
            for index, start in enumerate(
                range(0, data.size - self.buffer_size + 1, self.hop_size)
            )
        ]

    def reset(self) -> None:
        """Drop buffered samples and restart frame numbering."""
        self._pending = np.zeros(0, dtype=np.float32)
        self._frame_index = 0

    def compute(self, frame: np.ndarray, timestamp: int = 0) -> FeatureFrame:
        """
        Compute the feature vector of one frame.

        Non-finite samples are treated as zero; silent frames yield zero
        RMS, energy and flatness instead of NaNs.
        """
        x = np.nan_to_num(
            np.asarray(frame, dtype=np.float64), nan=0.0, posinf=0.0, neginf=0.0
        )
        n = x.size

        energy = float(np.sum(x * x))
        rms = float(np.sqrt(energy / n)) if n else 0.0

        signs = x >= 0
        crossings = int(np.count_nonzero(signs[1:] != signs[:-1]))
        zcr = crossings / (n - 1) if n > 1 else 0.0

        spectrum = np.abs(np.fft.rfft(x * self._window))
        magnitude_sum = float(np.sum(spectrum))
        centroid = (
            float(np.sum(self._freqs * spectrum)) / magnitude_sum if magnitude_sum > 0 else 0.0
        )

        mean_magnitude = magnitude_sum / spectrum.size
        if mean_magnitude > 0 and np.all(spectrum > 0):
            geometric_mean = float(np.exp(np.mean(np.log(spectrum))))
            flatness = min(max(geometric_mean / mean_magnitude, 0.0), 1.0)
        else:
            flatness = 0.0

        mel_energies = self._mel_filters @ (spectrum**2)
        log_mel = np.log(np.maximum(mel_energies, MEL_LOG_FLOOR))
        mfcc = dct(log_mel, type=2, norm="ortho")[: self.n_mfcc]

        return FeatureFrame(
            timestamp=timestamp,
            rms=_finite_or_zero(rms),
            zcr=_finite_or_zero(zcr),
            spectral_centroid=_finite_or_zero(centroid),
            spectral_flatness=_finite_or_zero(flatness),
            energy=_finite_or_zero(energy),
            mfcc=tuple(_finite_or_zero(c) for c in mfcc),
        )
