"""Sliding-window aggregation of feature frames."""

from collections import deque
from collections.abc import Callable, Sequence

import numpy as np

from .config import AGGREGATION_RETAIN_SIZE, AGGREGATION_WINDOW_SIZE
from .logging_utils import get_logger
from .models import FeatureFrame, FeatureStats

logger = get_logger(__name__)


def summarize_frames(frames: Sequence[FeatureFrame]) -> FeatureStats:
    """
    Compute window statistics over a sequence of frames.

    Scalar features are arithmetic means. The MFCC vectors are averaged
    coefficient by coefficient and ``mfcc_std_dev`` is the population
    standard deviation across the coefficients of that mean vector, i.e.
    how uneven the window's average cepstral shape is. An empty sequence
    summarizes to all zeros.
    """
    if not frames:
        return FeatureStats(
            mean_spectral_centroid=0.0,
            mean_spectral_flatness=0.0,
            mean_zcr=0.0,
            mfcc_std_dev=0.0,
            mean_rms=0.0,
        )

    mean_mfcc = np.mean(np.array([frame.mfcc for frame in frames], dtype=np.float64), axis=0)
    return FeatureStats(
        mean_spectral_centroid=float(np.mean([f.spectral_centroid for f in frames])),
        mean_spectral_flatness=float(np.mean([f.spectral_flatness for f in frames])),
        mean_zcr=float(np.mean([f.zcr for f in frames])),
        mfcc_std_dev=float(np.std(mean_mfcc)) if mean_mfcc.size else 0.0,
        mean_rms=float(np.mean([f.rms for f in frames])),
        mean_energy=float(np.mean([f.energy for f in frames])),
        frame_count=len(frames),
    )


class FeatureAggregator:
    """
    Bounded ring buffer of recent frames.

    When the buffer reaches ``window_size`` frames an aggregation event is
    emitted, then only the newest ``retain_size`` frames are kept so
    consecutive windows overlap.
    """

    def __init__(
        self,
        window_size: int = AGGREGATION_WINDOW_SIZE,
        retain_size: int = AGGREGATION_RETAIN_SIZE,
        on_aggregate: Callable[[FeatureStats], None] | None = None,
    ) -> None:
        if window_size <= 0:
            raise ValueError("Window size must be positive")
        if retain_size < 0 or retain_size >= window_size:
            raise ValueError("Retain size must be non-negative and smaller than the window size")

        self.window_size = window_size
        self.retain_size = retain_size
        self._frames: deque[FeatureFrame] = deque(maxlen=window_size)
        self._on_aggregate = on_aggregate
        self._last_timestamp: int | None = None
        self.aggregations = 0

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def frames(self) -> tuple[FeatureFrame, ...]:
        return tuple(self._frames)

    def push(self, frame: FeatureFrame) -> FeatureStats | None:
        """
        Append a frame.

        Args:
            frame: Next frame in hop order

        Returns:
            Window statistics if this frame completed a window, else None

        Raises:
            ValueError: If the frame is older than the previously pushed one
        """
        if self._last_timestamp is not None and frame.timestamp <= self._last_timestamp:
            raise ValueError(
                f"Frame {frame.timestamp} arrived after frame {self._last_timestamp}; "
                "frames must be pushed in hop order"
            )
        self._last_timestamp = frame.timestamp
        self._frames.append(frame)

        if len(self._frames) < self.window_size:
            return None

        stats = self.current_stats()
        self.aggregations += 1
        for _ in range(len(self._frames) - self.retain_size):
            self._frames.popleft()

        logger.trace(
            f"Aggregated window #{self.aggregations} ending at frame {frame.timestamp}"
        )
        if self._on_aggregate is not None:
            try:
                self._on_aggregate(stats)
            except Exception as e:
                logger.error(f"Error in aggregation callback: {e}")
        return stats

    def current_stats(self) -> FeatureStats:
        """Statistics over the frames currently buffered."""
        return summarize_frames(list(self._frames))

    def clear(self) -> None:
        self._frames.clear()
        self._last_timestamp = None
