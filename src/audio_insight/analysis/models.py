"""Data models for live audio analysis."""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


@dataclass(frozen=True)
class FeatureFrame:
    """Features computed from one analysis frame."""

    timestamp: int  # frame index within the stream
    rms: float
    zcr: float
    spectral_centroid: float  # Hz
    spectral_flatness: float
    energy: float
    mfcc: tuple[float, ...]


@dataclass(frozen=True)
class FeatureStats:
    """Rolling statistics over a window of feature frames."""

    mean_spectral_centroid: float
    mean_spectral_flatness: float
    mean_zcr: float
    mfcc_std_dev: float
    mean_rms: float
    mean_energy: float = 0.0
    frame_count: int = 0


class ContentLabel(Enum):
    """Content categories produced by classification."""

    SPEECH = "speech"
    MUSIC = "music"
    NOISE = "noise"
    SILENCE = "silence"
    UNKNOWN = "unknown"

    @property
    def description(self) -> str:
        """Human readable description of the category."""
        return _LABEL_DESCRIPTIONS[self]


_LABEL_DESCRIPTIONS = {
    ContentLabel.SPEECH: "Human speech or voice content",
    ContentLabel.MUSIC: "Musical content with instruments or melody",
    ContentLabel.NOISE: "Background noise or non-musical sound",
    ContentLabel.SILENCE: "Silent or very quiet audio",
    ContentLabel.UNKNOWN: "Unable to classify accurately",
}


@dataclass(frozen=True)
class ClassificationResult:
    """Label and confidence derived from aggregated statistics."""

    label: ContentLabel
    confidence: float
    source_stats: FeatureStats
    strategy: str = "rules"


class RecordingState(Enum):
    """States of a recording session."""

    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AudioBlob:
    """Finalized recording handed to the upload service."""

    data: bytes
    mime_type: str
    duration: float  # seconds

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ChartBar:
    """Geometry of one bar in a bar chart (MFCC coefficients or spectrum bins)."""

    x: float
    y: float
    width: float
    height: float
    hue: float


@dataclass
class RenderFrame:
    """Output of one render tick."""

    tick: int
    image: np.ndarray | None = None  # (height, width, 3) uint8 RGB
    bars: list[ChartBar] = field(default_factory=list)
    marker_x: float | None = None
