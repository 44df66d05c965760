"""Live audio analysis service orchestrator."""

import asyncio
from collections.abc import Callable
from typing import Any

import numpy as np

from .analyzer import AnalyzerStage
from .audio_capture import PyAudioCaptureDevice, bytes_to_samples
from .classifier import get_classifier
from .config import ERROR_RECOVERY_SLEEP, IDLE_POLL_INTERVAL, PROCESSING_STOP_TIMEOUT
from .exceptions import AudioCaptureError, GraphReleasedError
from .filter_stage import FilterConfig, FilterStage
from .interfaces import CaptureDevice, ClassificationStrategy, FrameClock
from .logging_utils import get_logger
from .models import ClassificationResult, FeatureFrame, RenderFrame
from .performance_monitor import BlockTimingMonitor
from .render_loop import AsyncioFrameClock, RenderLoop, SpectrogramRenderer, SpectrumBarsRenderer
from .signal_graph import AudioSource, GraphHandle, SignalGraph

logger = get_logger(__name__)


class AudioAnalysisService:
    """
    Coordinates capture, the signal graph, both stages and the render loops.

    The source is bound once and the handle is kept across play/pause/stop;
    close() releases it for good.
    """

    def __init__(
        self,
        device: CaptureDevice | None = None,
        classifier: str | ClassificationStrategy = "rules",
        filter_config: FilterConfig | None = None,
        filter_enabled: bool = True,
        frame_clock: FrameClock | None = None,
        enable_monitoring: bool = False,
        source_name: str = "capture",
    ) -> None:
        """
        Initialize the service.

        Args:
            device: Capture device delivering raw chunks (PyAudio microphone by default)
            classifier: Strategy name ("rules" or "voting") or instance
            filter_config: Initial filter parameters
            filter_enabled: Whether the filter spectrum starts rendering
            frame_clock: Refresh clock for render loops (asyncio timer by default)
            enable_monitoring: Whether to track dispatch latency against block deadlines
            source_name: Name of the audio source bound to the graph
        """
        self._device = device if device is not None else PyAudioCaptureDevice()
        self._source = AudioSource(source_name, self._device.sample_rate)

        self._monitoring_enabled = enable_monitoring
        self._monitor = BlockTimingMonitor() if enable_monitoring else None
        self._graph = SignalGraph(self._monitor)
        self._handle: GraphHandle | None = None
        self._closed = False

        strategy = get_classifier(classifier) if isinstance(classifier, str) else classifier
        self._filter = FilterStage(filter_config, enabled=filter_enabled)
        self._analyzer = AnalyzerStage(strategy)
        self._analyzer.stop()

        clock = frame_clock if frame_clock is not None else AsyncioFrameClock()
        self._spectrogram_loop = RenderLoop(
            clock,
            SpectrogramRenderer(self._analyzer),
            on_paint=lambda frame: self._emit_render("spectrogram", frame),
            name="spectrogram",
        )
        self._spectrum_loop = RenderLoop(
            clock,
            SpectrumBarsRenderer(self._filter),
            on_paint=lambda frame: self._emit_render("filter-spectrum", frame),
            name="filter-spectrum",
        )

        self._playing = False
        self._device_open = False
        self._processing_task: asyncio.Task | None = None

        self._render_callback: Callable[[str, RenderFrame], None] | None = None

    @property
    def source(self) -> AudioSource:
        return self._source

    @property
    def graph(self) -> SignalGraph:
        return self._graph

    @property
    def filter_stage(self) -> FilterStage:
        return self._filter

    @property
    def analyzer(self) -> AnalyzerStage:
        return self._analyzer

    @property
    def render_loops(self) -> tuple[RenderLoop, RenderLoop]:
        return self._spectrogram_loop, self._spectrum_loop

    def is_playing(self) -> bool:
        return self._playing

    def initialize(self) -> GraphHandle:
        """
        Bind the source and attach both stages.

        Safe to call repeatedly; the source is bound only the first time.

        Raises:
            GraphReleasedError: If the service has been closed
        """
        if self._closed:
            raise GraphReleasedError("Audio analysis service is closed")
        if self._handle is not None:
            return self._handle

        handle = self._graph.bind(self._source)
        self._graph.attach_stage(handle, self._filter)
        self._graph.attach_stage(handle, self._analyzer)
        self._handle = handle
        logger.debug(f"Audio analysis graph initialized (sample_rate: {self._source.sample_rate})")
        return handle

    def feed_block(self, samples: np.ndarray) -> None:
        """Dispatch one block of samples through the graph."""
        handle = self.initialize()
        self._graph.dispatch(handle, samples)

    async def play(self) -> None:
        """Open (or resume) capture and start analysis and rendering."""
        if self._playing:
            logger.warning("Service is already playing")
            return

        self.initialize()

        if self._device_open:
            self._device.resume()
        else:
            try:
                self._device.open()
            except AudioCaptureError as e:
                logger.error(f"Audio capture error: {e}")
                raise
            self._device_open = True

        self._analyzer.start()
        self._playing = True
        self._start_render_loops()
        self._processing_task = asyncio.create_task(self._process_audio_pipeline())
        logger.debug("▶️ Audio analysis started")

    async def pause(self) -> None:
        """Suspend capture, analysis and rendering; the device stays open."""
        if not self._playing:
            return
        await self._halt()
        self._device.pause()
        logger.debug("⏸️ Audio analysis paused")

    async def stop(self) -> None:
        """Stop analysis and rendering and release the capture device."""
        if self._playing:
            await self._halt()
        if self._device_open:
            self._device.close()
            self._device_open = False
            logger.debug("⏹️ Audio analysis stopped")

    async def close(self) -> None:
        """Stop everything and release the graph; the service cannot be reused."""
        await self.stop()
        if self._handle is not None:
            self._graph.release(self._handle)
        self._closed = True

    async def _halt(self) -> None:
        self._playing = False
        self._spectrogram_loop.cancel()
        self._spectrum_loop.cancel()

        if self._processing_task and not self._processing_task.done():
            try:
                await asyncio.wait_for(self._processing_task, timeout=PROCESSING_STOP_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Audio processing pipeline did not stop within {PROCESSING_STOP_TIMEOUT}s; cancelled"
                )
        self._processing_task = None

        self._analyzer.stop()

    def _start_render_loops(self) -> None:
        self._spectrogram_loop.start()
        if self._filter.is_enabled:
            self._spectrum_loop.start()

    async def _process_audio_pipeline(self) -> None:
        """Pull chunks from the device and push them through the graph until halted."""
        logger.debug("Starting real-time audio processing pipeline")

        while self._playing:
            try:
                chunk = await asyncio.to_thread(self._device.read_chunk)
                if not self._playing:
                    break
                if not chunk:
                    await asyncio.sleep(IDLE_POLL_INTERVAL)
                    continue

                self.feed_block(bytes_to_samples(chunk))

            except asyncio.CancelledError:
                logger.debug("Audio processing pipeline cancelled")
                raise
            except Exception as e:
                logger.error(f"Error in audio processing pipeline: {e}")
                await asyncio.sleep(ERROR_RECOVERY_SLEEP)

        logger.debug("Audio processing pipeline finished")

    def set_filter_config(self, filter_config: FilterConfig) -> None:
        """Apply new filter parameters from the next block on."""
        self._filter.configure(filter_config)

    def apply_filter_preset(self, preset_name: str) -> FilterConfig:
        preset = self._filter.apply_preset(preset_name)
        if self._playing:
            self._spectrum_loop.start()
        return preset

    def toggle_filter(self, enabled: bool) -> None:
        """Show or hide the filter visualization; filtering itself never stops."""
        self._filter.toggle(enabled)
        if enabled and self._playing:
            self._spectrum_loop.start()
        elif not enabled:
            self._spectrum_loop.cancel()

    def set_classifier(self, classifier: str | ClassificationStrategy) -> None:
        strategy = get_classifier(classifier) if isinstance(classifier, str) else classifier
        self._analyzer.set_classifier(strategy)

    def set_frame_callback(self, callback: Callable[[FeatureFrame], None] | None) -> None:
        self._analyzer.set_frame_callback(callback)

    def set_classification_callback(
        self, callback: Callable[[ClassificationResult], None] | None
    ) -> None:
        self._analyzer.set_classification_callback(callback)

    def set_render_callback(self, callback: Callable[[str, RenderFrame], None] | None) -> None:
        """
        Receive painted frames.

        Args:
            callback: Called with the loop name ("spectrogram" or
                "filter-spectrum") and the frame
        """
        self._render_callback = callback

    def _emit_render(self, loop_name: str, frame: RenderFrame) -> None:
        if self._render_callback:
            self._render_callback(loop_name, frame)

    def get_latest_classification(self) -> ClassificationResult | None:
        return self._analyzer.latest_result

    def get_average_features(self) -> dict[str, float] | None:
        return self._analyzer.average_features()

    def get_component_status(self) -> dict[str, Any]:
        return {
            "bound": self._handle is not None,
            "released": self._handle is not None and self._handle.is_released,
            "playing": self._playing,
            "device_open": self._device_open,
            "filter_enabled": self._filter.is_enabled,
            "classifier": self._analyzer.classifier.name,
            "spectrogram_rendering": self._spectrogram_loop.is_running,
            "filter_spectrum_rendering": self._spectrum_loop.is_running,
        }

    def get_performance_stats(self) -> dict[str, Any]:
        if not self._monitoring_enabled or not self._monitor:
            return {"monitoring_disabled": True}
        stats = self._monitor.get_stats()
        return {
            "blocks_processed": stats.blocks_processed,
            "missed_deadlines": stats.missed_deadlines,
            "average_latency_ms": stats.average_latency_ms,
            "max_latency_ms": stats.max_latency_ms,
            "average_budget_usage": stats.average_budget_usage,
        }
