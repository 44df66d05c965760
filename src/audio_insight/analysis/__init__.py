"""Real-time audio feature extraction and classification."""

from .analyzer import AnalyzerStage, SpectrumAnalyzer
from .classifier import RuleClassifier, VotingClassifier, classify_buffer, get_classifier
from .exceptions import (
    AlreadyBoundError,
    AudioAnalysisError,
    AudioCaptureError,
    DeliveryError,
    GraphReleasedError,
    MicrophoneNotFoundError,
    MicrophonePermissionError,
)
from .feature_aggregator import FeatureAggregator, summarize_frames
from .filter_stage import FILTER_PRESETS, FilterConfig, FilterStage, FilterType
from .frame_extractor import FrameExtractor
from .interfaces import (
    CaptureDevice,
    ClassificationStrategy,
    FrameClock,
    ProcessingStage,
    Renderer,
    UploadService,
)
from .models import (
    AudioBlob,
    ChartBar,
    ClassificationResult,
    ContentLabel,
    FeatureFrame,
    FeatureStats,
    RecordingState,
    RenderFrame,
)
from .recording import RecordingSession, select_mime_type
from .render_loop import AsyncioFrameClock, RenderLoop, SpectrogramRenderer, SpectrumBarsRenderer
from .service import AudioAnalysisService
from .signal_graph import AudioSource, GraphHandle, SignalGraph

__all__ = [
    "AudioSource",
    "GraphHandle",
    "SignalGraph",
    "FrameExtractor",
    "FeatureAggregator",
    "summarize_frames",
    "RuleClassifier",
    "VotingClassifier",
    "classify_buffer",
    "get_classifier",
    "FilterType",
    "FilterConfig",
    "FilterStage",
    "FILTER_PRESETS",
    "SpectrumAnalyzer",
    "AnalyzerStage",
    "RenderLoop",
    "AsyncioFrameClock",
    "SpectrogramRenderer",
    "SpectrumBarsRenderer",
    "RecordingSession",
    "select_mime_type",
    "AudioAnalysisService",
    "FeatureFrame",
    "FeatureStats",
    "ContentLabel",
    "ClassificationResult",
    "RecordingState",
    "AudioBlob",
    "ChartBar",
    "RenderFrame",
    "ProcessingStage",
    "ClassificationStrategy",
    "CaptureDevice",
    "UploadService",
    "FrameClock",
    "Renderer",
    "AudioAnalysisError",
    "AlreadyBoundError",
    "GraphReleasedError",
    "AudioCaptureError",
    "MicrophoneNotFoundError",
    "MicrophonePermissionError",
    "DeliveryError",
]
