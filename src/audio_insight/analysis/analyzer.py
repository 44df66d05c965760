"""Analysis stage: spectrum snapshots, feature frames and live classification."""

from collections import deque
from collections.abc import Callable

import numpy as np
from scipy.signal import get_window

from .classifier import RuleClassifier
from .config import (
    AGGREGATION_RETAIN_SIZE,
    AGGREGATION_WINDOW_SIZE,
    ANALYZER_FFT_SIZE,
    ANALYZER_MAX_DECIBELS,
    ANALYZER_MIN_DECIBELS,
    ANALYZER_SMOOTHING,
    FEATURE_HISTORY_SIZE,
    FRAME_BUFFER_SIZE,
    FRAME_HOP_SIZE,
)
from .feature_aggregator import FeatureAggregator
from .frame_extractor import FrameExtractor
from .interfaces import ClassificationStrategy, ProcessingStage
from .logging_utils import get_logger
from .models import ClassificationResult, FeatureFrame

logger = get_logger(__name__)


class SpectrumAnalyzer:
    """
    Frequency-magnitude snapshots of the most recent samples.

    Keeps the last ``fft_size`` samples, applies a Blackman window, smooths
    magnitudes over successive reads and maps decibels between
    ``min_decibels`` and ``max_decibels`` onto 0-255.
    """

    def __init__(
        self,
        fft_size: int = ANALYZER_FFT_SIZE,
        smoothing: float = ANALYZER_SMOOTHING,
        min_decibels: float = ANALYZER_MIN_DECIBELS,
        max_decibels: float = ANALYZER_MAX_DECIBELS,
    ) -> None:
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("FFT size must be a power of two of at least 32")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("Smoothing must be in [0.0, 1.0)")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be lower than max_decibels")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._window = get_window("blackman", fft_size)
        self._time_data = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, samples: np.ndarray) -> None:
        """Append samples to the time-domain history."""
        block = np.asarray(samples, dtype=np.float64).ravel()
        if block.size >= self.fft_size:
            self._time_data = block[-self.fft_size :].copy()
        elif block.size:
            self._time_data = np.concatenate((self._time_data[block.size :], block))

    def float_frequency_data(self) -> np.ndarray:
        """Smoothed magnitudes in decibels, one value per bin."""
        spectrum = np.fft.rfft(self._time_data * self._window)[: self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)
        return np.nan_to_num(decibels, nan=-np.inf)

    def byte_frequency_data(self) -> np.ndarray:
        """Smoothed magnitudes scaled onto 0-255 (uint8), one value per bin."""
        decibels = self.float_frequency_data()
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor(scale * (decibels - self.min_decibels))
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def reset(self) -> None:
        self._time_data[:] = 0.0
        self._smoothed[:] = 0.0


class AnalyzerStage(ProcessingStage):
    """
    Analysis tap on the signal graph.

    Each block feeds the spectrum snapshot used by the render loop and the
    frame extractor. Completed frames go through the aggregator and every
    full window is classified with the current strategy. Only the latest
    classification is kept.
    """

    def __init__(
        self,
        classifier: ClassificationStrategy | None = None,
        sample_rate: int | None = None,
        name: str = "analyzer",
        window_size: int = AGGREGATION_WINDOW_SIZE,
        retain_size: int = AGGREGATION_RETAIN_SIZE,
        history_size: int = FEATURE_HISTORY_SIZE,
        fft_size: int = ANALYZER_FFT_SIZE,
        smoothing: float = ANALYZER_SMOOTHING,
    ) -> None:
        """
        Initialize the analyzer stage.

        Args:
            classifier: Classification strategy (rule list by default)
            sample_rate: Sample rate in Hz; if None it is taken from the graph on attach
            name: Stage name used in logs
            window_size: Frames per classification window
            retain_size: Frames kept after each classification
            history_size: Frames kept for average statistics
            fft_size: FFT size of the spectrum snapshot
            smoothing: Temporal smoothing of the spectrum snapshot
        """
        self._name = name
        self._classifier = classifier or RuleClassifier()
        self.spectrum = SpectrumAnalyzer(fft_size=fft_size, smoothing=smoothing)
        self.aggregator = FeatureAggregator(window_size, retain_size)
        self._history: deque[FeatureFrame] = deque(maxlen=history_size)

        self.sample_rate: int | None = None
        self._extractor: FrameExtractor | None = None
        if sample_rate is not None:
            self._configure(sample_rate)

        self._active = True
        self._latest_frame: FeatureFrame | None = None
        self._latest_result: ClassificationResult | None = None
        self._frame_callback: Callable[[FeatureFrame], None] | None = None
        self._classification_callback: Callable[[ClassificationResult], None] | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def classifier(self) -> ClassificationStrategy:
        return self._classifier

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def latest_frame(self) -> FeatureFrame | None:
        return self._latest_frame

    @property
    def latest_result(self) -> ClassificationResult | None:
        return self._latest_result

    @property
    def history(self) -> tuple[FeatureFrame, ...]:
        return tuple(self._history)

    def _configure(self, sample_rate: int) -> None:
        self.sample_rate = sample_rate
        self._extractor = FrameExtractor(sample_rate, FRAME_BUFFER_SIZE, FRAME_HOP_SIZE)
        self.aggregator.clear()

    def on_attach(self, sample_rate: int) -> None:
        if self._extractor is None or self.sample_rate != sample_rate:
            self._configure(sample_rate)

    def on_detach(self) -> None:
        """Drop buffered samples and frames so a later re-attach starts contiguous."""
        if self._extractor is not None:
            self._extractor.reset()
        self.aggregator.clear()
        self.spectrum.reset()

    def set_classifier(self, classifier: ClassificationStrategy) -> None:
        """Switch classification strategy; takes effect at the next full window."""
        self._classifier = classifier
        logger.debug(f"Analyzer '{self._name}' now classifies with '{classifier.name}'")

    def set_frame_callback(self, callback: Callable[[FeatureFrame], None] | None) -> None:
        self._frame_callback = callback

    def set_classification_callback(
        self, callback: Callable[[ClassificationResult], None] | None
    ) -> None:
        self._classification_callback = callback

    def start(self) -> None:
        """Resume analysis of incoming blocks."""
        self._active = True

    def stop(self) -> None:
        """
        Stop analysing incoming blocks.

        Partially collected frames and windows are dropped so the next start
        classifies a fresh contiguous window.
        """
        self._active = False
        self.aggregator.clear()
        if self._extractor is not None:
            self._extractor.reset()

    def process_block(self, samples: np.ndarray) -> None:
        if not self._active:
            return
        if self._extractor is None:
            raise RuntimeError(f"Analyzer '{self._name}' has no sample rate; attach it to a graph first")

        self.spectrum.push(samples)
        for frame in self._extractor.process(samples):
            self._handle_frame(frame)

    def _handle_frame(self, frame: FeatureFrame) -> None:
        self._history.append(frame)
        self._latest_frame = frame

        if self._frame_callback:
            try:
                self._frame_callback(frame)
            except Exception as e:
                logger.error(f"Error in feature frame callback: {e}")

        stats = self.aggregator.push(frame)
        if stats is None:
            return

        result = self._classifier.classify(stats)
        self._latest_result = result
        logger.trace(
            f"🎯 Window classified as {result.label.value} "
            f"({result.confidence:.2f}, {result.strategy})"
        )

        if self._classification_callback:
            try:
                self._classification_callback(result)
            except Exception as e:
                logger.error(f"Error in classification callback: {e}")

    def average_features(self) -> dict[str, float] | None:
        """Mean RMS, ZCR and spectral centroid over the recent frame history."""
        if not self._history:
            return None
        frames = list(self._history)
        return {
            "avg_rms": float(np.mean([f.rms for f in frames])),
            "avg_zcr": float(np.mean([f.zcr for f in frames])),
            "avg_spectral_centroid": float(np.mean([f.spectral_centroid for f in frames])),
        }
