"""Cancellable, frame-clock driven rendering of live analyser output."""

import asyncio
from collections.abc import Callable
from typing import Any

import numpy as np

from .analyzer import AnalyzerStage
from .config import (
    DISPLAY_REFRESH_RATE_HZ,
    MFCC_BAR_GAP,
    MFCC_CANVAS_HEIGHT,
    MFCC_CANVAS_WIDTH,
    SPECTROGRAM_BOOST_GAIN,
    SPECTROGRAM_BOOST_OFFSET,
    SPECTROGRAM_HEIGHT,
    SPECTROGRAM_WIDTH,
    SPECTRUM_BAR_WIDTH_FACTOR,
    SPECTRUM_CANVAS_HEIGHT,
    SPECTRUM_CANVAS_WIDTH,
)
from .filter_stage import FilterStage
from .interfaces import FrameClock, Renderer
from .logging_utils import get_logger
from .models import ChartBar, RenderFrame

logger = get_logger(__name__)


def color_ramp(intensity: np.ndarray) -> np.ndarray:
    """
    Map intensities in [0, 1] onto the five-stop ramp
    deep blue -> cyan -> green -> yellow -> red.

    Returns:
        uint8 array of shape (..., 3)
    """
    i = np.clip(np.asarray(intensity, dtype=np.float64), 0.0, 1.0)
    zeros = np.zeros_like(i)
    full = np.full_like(i, 255.0)

    bands = [i < 0.2, i < 0.4, i < 0.6, i < 0.8]
    t1 = (i - 0.2) * 5
    t2 = (i - 0.4) * 5
    t3 = (i - 0.6) * 5
    t4 = (i - 0.8) * 5

    r = np.select(bands, [zeros, zeros, zeros, np.floor(t3 * 255)], default=full)
    g = np.select(
        bands,
        [zeros, np.floor(t1 * 255), full, full],
        default=np.floor((1 - t4) * 255),
    )
    b = np.select(
        bands,
        [np.floor(100 + i * 5 * 155), full, np.floor((1 - t2) * 255), zeros],
        default=zeros,
    )
    return np.clip(np.stack([r, g, b], axis=-1), 0, 255).astype(np.uint8)


def boost(raw: np.ndarray, gain: float, offset: float) -> np.ndarray:
    """Linear gain and offset on 0-255 magnitudes, capped at 255."""
    return np.minimum(255.0, np.asarray(raw, dtype=np.float64) * gain + offset)


def mfcc_bars(
    mfcc: tuple[float, ...] | list[float],
    width: float = MFCC_CANVAS_WIDTH,
    height: float = MFCC_CANVAS_HEIGHT,
    gap: float = MFCC_BAR_GAP,
) -> list[ChartBar]:
    """
    Lay out one bar per coefficient around the horizontal centre line.

    Heights are normalized by the largest absolute coefficient so the chart
    always uses half the canvas height in each direction.
    """
    count = len(mfcc)
    if count == 0:
        return []

    bar_width = width / count
    max_value = max(abs(value) for value in mfcc)
    centre = height / 2

    bars = []
    for index, value in enumerate(mfcc):
        normalized = value / max_value if max_value > 0 else 0.0
        bar_height = normalized * height / 2
        bars.append(
            ChartBar(
                x=index * bar_width,
                y=centre - max(bar_height, 0.0),
                width=max(bar_width - gap, 0.0),
                height=abs(bar_height),
                hue=240 - (index / count) * 240,
            )
        )
    return bars


def spectrum_bars(
    data: np.ndarray,
    width: float = SPECTRUM_CANVAS_WIDTH,
    height: float = SPECTRUM_CANVAS_HEIGHT,
    width_factor: float = SPECTRUM_BAR_WIDTH_FACTOR,
) -> list[ChartBar]:
    """Lay out frequency bins as bottom-aligned bars until the canvas is full."""
    count = len(data)
    if count == 0:
        return []

    bar_width = (width / count) * width_factor
    bars = []
    x = 0.0
    for index, value in enumerate(data):
        if x >= width:
            break
        bar_height = (float(value) / 255.0) * height
        bars.append(
            ChartBar(
                x=x,
                y=height - bar_height,
                width=bar_width,
                height=bar_height,
                hue=(index / count) * 360,
            )
        )
        x += bar_width + 1
    return bars


class SpectrogramRenderer(Renderer):
    """Scrolling spectrogram plus coefficient bars from an analyzer stage."""

    def __init__(
        self,
        analyzer: AnalyzerStage,
        width: int = SPECTROGRAM_WIDTH,
        height: int = SPECTROGRAM_HEIGHT,
        gain: float = SPECTROGRAM_BOOST_GAIN,
        offset: float = SPECTROGRAM_BOOST_OFFSET,
        mfcc_width: float = MFCC_CANVAS_WIDTH,
        mfcc_height: float = MFCC_CANVAS_HEIGHT,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("Spectrogram size must be positive")

        self.analyzer = analyzer
        self.width = width
        self.height = height
        self.gain = gain
        self.offset = offset
        self.mfcc_width = mfcc_width
        self.mfcc_height = mfcc_height
        self.image = np.zeros((height, width, 3), dtype=np.uint8)

    def set_boost(self, gain: float, offset: float) -> None:
        self.gain = gain
        self.offset = offset

    def draw_column(self, data: np.ndarray) -> None:
        """Shift the image one column left and paint ``data`` as the new rightmost column."""
        self.image[:, :-1] = self.image[:, 1:]

        bin_count = len(data)
        if bin_count == 0:
            self.image[:, -1] = 0
            return

        # Row 0 of the column is the lowest frequency, drawn at the bottom
        rows = np.arange(self.height)
        freq_index = np.floor(rows / self.height * bin_count).astype(int)
        intensity = boost(np.asarray(data)[freq_index], self.gain, self.offset) / 255.0
        self.image[::-1, -1] = color_ramp(intensity)

    def render(self, tick: int) -> RenderFrame:
        self.draw_column(self.analyzer.spectrum.byte_frequency_data())
        frame = self.analyzer.latest_frame
        bars = mfcc_bars(frame.mfcc, self.mfcc_width, self.mfcc_height) if frame else []
        return RenderFrame(tick=tick, image=self.image.copy(), bars=bars)


class SpectrumBarsRenderer(Renderer):
    """Bar chart of a filter stage's output spectrum with a centre-frequency marker."""

    def __init__(
        self,
        filter_stage: FilterStage,
        width: float = SPECTRUM_CANVAS_WIDTH,
        height: float = SPECTRUM_CANVAS_HEIGHT,
    ) -> None:
        self.filter_stage = filter_stage
        self.width = width
        self.height = height

    def render(self, tick: int) -> RenderFrame:
        data = self.filter_stage.spectrum.byte_frequency_data()
        return RenderFrame(
            tick=tick,
            bars=spectrum_bars(data, self.width, self.height),
            marker_x=self.filter_stage.marker_position(self.width),
        )


class AsyncioFrameClock(FrameClock):
    """Refresh clock on the running asyncio event loop."""

    def __init__(self, refresh_rate: float = DISPLAY_REFRESH_RATE_HZ) -> None:
        if refresh_rate <= 0:
            raise ValueError("Refresh rate must be positive")
        self.interval = 1.0 / refresh_rate

    def request_frame(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(self.interval, callback)

    def cancel_frame(self, handle: Any) -> None:
        handle.cancel()


class RenderLoop:
    """
    Paints one frame per refresh tick until cancelled.

    Every run carries a liveness token; a tick only paints and reschedules
    while its token is still the active one, so a cancelled loop never paints
    again even if a tick was already in flight.
    """

    def __init__(
        self,
        clock: FrameClock,
        renderer: Renderer,
        on_paint: Callable[[RenderFrame], None] | None = None,
        name: str = "render",
    ) -> None:
        self.clock = clock
        self.renderer = renderer
        self.name = name
        self._on_paint = on_paint
        self._token: object | None = None
        self._pending: Any = None
        self._tick = 0
        self.paint_count = 0

    @property
    def is_running(self) -> bool:
        return self._token is not None

    def set_paint_callback(self, callback: Callable[[RenderFrame], None] | None) -> None:
        self._on_paint = callback

    def start(self) -> None:
        """Start painting; a no-op when already running."""
        if self._token is not None:
            return
        token = object()
        self._token = token
        self._schedule(token)
        logger.debug(f"▶️ Render loop '{self.name}' started")

    def cancel(self) -> None:
        """Stop painting; no paint happens after this returns."""
        if self._token is None:
            return
        self._token = None
        if self._pending is not None:
            self.clock.cancel_frame(self._pending)
            self._pending = None
        logger.debug(f"⏹️ Render loop '{self.name}' cancelled after {self.paint_count} paints")

    def _schedule(self, token: object) -> None:
        self._pending = self.clock.request_frame(lambda: self._run_tick(token))

    def _run_tick(self, token: object) -> None:
        if token is not self._token:
            return
        self._pending = None

        try:
            frame = self.renderer.render(self._tick)
        except Exception as e:
            logger.error(f"Render loop '{self.name}' failed to render tick {self._tick}: {e}")
            frame = None
        self._tick += 1

        if frame is not None:
            self.paint_count += 1
            if self._on_paint:
                try:
                    self._on_paint(frame)
                except Exception as e:
                    logger.error(f"Error in paint callback: {e}")

        # The paint callback may have cancelled this loop
        if token is self._token:
            self._schedule(token)
