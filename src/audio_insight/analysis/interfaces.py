"""Abstract interfaces for the analysis pipeline and its collaborators."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import numpy as np

from .models import AudioBlob, ClassificationResult, FeatureStats, RenderFrame


class ProcessingStage(ABC):
    """A read-only consumer attached to the fan-out tap of a signal graph."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return a name for this stage, used in logs."""
        pass

    @abstractmethod
    def process_block(self, samples: np.ndarray) -> None:
        """
        Consume one block of samples.

        Args:
            samples: The stage's own copy of the block (mono float32)
        """
        pass

    def on_attach(self, sample_rate: int) -> None:
        """Called when the stage is connected to a tap."""
        pass

    def on_detach(self) -> None:
        """Called when the stage is disconnected from a tap."""
        pass


class ClassificationStrategy(ABC):
    """Maps aggregated statistics to a labeled result."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the strategy name."""
        pass

    @abstractmethod
    def classify(self, stats: FeatureStats) -> ClassificationResult:
        """
        Classify aggregated statistics.

        Args:
            stats: Statistics over a contiguous window of frames

        Returns:
            ClassificationResult with label and confidence
        """
        pass


class CaptureDevice(ABC):
    """Supplies an audio source and raw sample blocks."""

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Sample rate of delivered blocks in Hz."""
        pass

    @property
    @abstractmethod
    def mime_type(self) -> str:
        """MIME type of the blob produced by encode()."""
        pass

    @abstractmethod
    def open(self) -> None:
        """
        Acquire the device and start delivering audio.

        Raises:
            MicrophoneNotFoundError: If no input device is available
            MicrophonePermissionError: If access to the device is denied
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the device."""
        pass

    def pause(self) -> None:
        """Suspend delivery without releasing the device."""
        pass

    def resume(self) -> None:
        """Resume delivery after pause()."""
        pass

    @abstractmethod
    def read_chunk(self) -> bytes | None:
        """Return the next raw chunk, or None when nothing is available."""
        pass

    @abstractmethod
    def encode(self, chunks: list[bytes]) -> bytes:
        """Finalize accumulated chunks into one deliverable payload."""
        pass


class UploadService(ABC):
    """Receives finished recordings and returns a durable reference."""

    @abstractmethod
    def deliver(self, blob: AudioBlob) -> str:
        """
        Store a finished recording.

        Args:
            blob: Finalized audio payload

        Returns:
            Reference to the stored recording
        """
        pass


class FrameClock(ABC):
    """Display refresh clock driving render loops."""

    @abstractmethod
    def request_frame(self, callback: Callable[[], None]) -> Any:
        """Schedule callback for the next refresh tick and return a cancel handle."""
        pass

    @abstractmethod
    def cancel_frame(self, handle: Any) -> None:
        """Cancel a tick scheduled with request_frame()."""
        pass


class Renderer(ABC):
    """Produces one render frame per tick from live analyser output."""

    @abstractmethod
    def render(self, tick: int) -> RenderFrame:
        """Draw the next frame."""
        pass
