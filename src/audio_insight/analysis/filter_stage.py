"""Configurable second-order parametric filter stage."""

import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

import numpy as np
from scipy import signal

from .analyzer import SpectrumAnalyzer
from .config import (
    FILTER_DEFAULT_FREQUENCY_HZ,
    FILTER_DEFAULT_GAIN_DB,
    FILTER_DEFAULT_Q,
    FILTER_MAX_FREQUENCY_HZ,
    FILTER_MAX_GAIN_DB,
    FILTER_MAX_Q,
    FILTER_MIN_FREQUENCY_HZ,
    FILTER_MIN_GAIN_DB,
    FILTER_MIN_Q,
    FILTER_NYQUIST_GUARD,
    FILTER_RESPONSE_POINTS,
)
from .interfaces import ProcessingStage
from .logging_utils import get_logger

logger = get_logger(__name__)


class FilterType(Enum):
    """Biquad filter topologies."""

    LOWPASS = "lowpass"
    HIGHPASS = "highpass"
    BANDPASS = "bandpass"
    NOTCH = "notch"
    PEAKING = "peaking"
    LOWSHELF = "lowshelf"
    HIGHSHELF = "highshelf"

    @property
    def uses_gain(self) -> bool:
        return self in (FilterType.PEAKING, FilterType.LOWSHELF, FilterType.HIGHSHELF)


@dataclass(frozen=True)
class FilterConfig:
    """Filter parameters; gain only matters for peaking and shelf types."""

    type: FilterType = FilterType.LOWPASS
    frequency: float = FILTER_DEFAULT_FREQUENCY_HZ
    q: float = FILTER_DEFAULT_Q
    gain: float = FILTER_DEFAULT_GAIN_DB

    def __post_init__(self) -> None:
        if not isinstance(self.type, FilterType):
            object.__setattr__(self, "type", FilterType(self.type))
        if not FILTER_MIN_FREQUENCY_HZ <= self.frequency <= FILTER_MAX_FREQUENCY_HZ:
            raise ValueError(
                f"Frequency must be between {FILTER_MIN_FREQUENCY_HZ:g} and "
                f"{FILTER_MAX_FREQUENCY_HZ:g} Hz, got {self.frequency}"
            )
        if not FILTER_MIN_Q <= self.q <= FILTER_MAX_Q:
            raise ValueError(f"Q must be between {FILTER_MIN_Q:g} and {FILTER_MAX_Q:g}, got {self.q}")
        if not FILTER_MIN_GAIN_DB <= self.gain <= FILTER_MAX_GAIN_DB:
            raise ValueError(
                f"Gain must be between {FILTER_MIN_GAIN_DB:g} and {FILTER_MAX_GAIN_DB:g} dB, got {self.gain}"
            )

    def with_changes(self, **changes) -> "FilterConfig":
        """Return a copy with some parameters replaced (validated again)."""
        return replace(self, **changes)


FILTER_PRESETS: dict[str, FilterConfig] = {
    "voice-enhance": FilterConfig(FilterType.HIGHPASS, 80.0, 0.7),
    "bass-boost": FilterConfig(FilterType.LOWSHELF, 200.0, 1.0, 10.0),
    "treble-boost": FilterConfig(FilterType.HIGHSHELF, 4000.0, 1.0, 10.0),
    "telephone": FilterConfig(FilterType.BANDPASS, 1000.0, 2.0),
    "remove-hum": FilterConfig(FilterType.NOTCH, 60.0, 10.0),
}


def design_biquad(filter_config: FilterConfig, sample_rate: int) -> np.ndarray:
    """
    Compute normalized biquad coefficients (Audio EQ Cookbook).

    Args:
        filter_config: Filter parameters
        sample_rate: Sample rate in Hz

    Returns:
        Second-order sections array of shape (1, 6)
    """
    frequency = min(filter_config.frequency, FILTER_NYQUIST_GUARD * sample_rate)
    w0 = 2.0 * np.pi * frequency / sample_rate
    cos_w0 = np.cos(w0)
    alpha = np.sin(w0) / (2.0 * filter_config.q)
    a = 10.0 ** (filter_config.gain / 40.0)
    filter_type = filter_config.type

    if filter_type is FilterType.LOWPASS:
        b = [(1 - cos_w0) / 2, 1 - cos_w0, (1 - cos_w0) / 2]
        den = [1 + alpha, -2 * cos_w0, 1 - alpha]
    elif filter_type is FilterType.HIGHPASS:
        b = [(1 + cos_w0) / 2, -(1 + cos_w0), (1 + cos_w0) / 2]
        den = [1 + alpha, -2 * cos_w0, 1 - alpha]
    elif filter_type is FilterType.BANDPASS:
        b = [alpha, 0.0, -alpha]
        den = [1 + alpha, -2 * cos_w0, 1 - alpha]
    elif filter_type is FilterType.NOTCH:
        b = [1.0, -2 * cos_w0, 1.0]
        den = [1 + alpha, -2 * cos_w0, 1 - alpha]
    elif filter_type is FilterType.PEAKING:
        b = [1 + alpha * a, -2 * cos_w0, 1 - alpha * a]
        den = [1 + alpha / a, -2 * cos_w0, 1 - alpha / a]
    elif filter_type is FilterType.LOWSHELF:
        k = 2 * np.sqrt(a) * alpha
        b = [
            a * ((a + 1) - (a - 1) * cos_w0 + k),
            2 * a * ((a - 1) - (a + 1) * cos_w0),
            a * ((a + 1) - (a - 1) * cos_w0 - k),
        ]
        den = [
            (a + 1) + (a - 1) * cos_w0 + k,
            -2 * ((a - 1) + (a + 1) * cos_w0),
            (a + 1) + (a - 1) * cos_w0 - k,
        ]
    elif filter_type is FilterType.HIGHSHELF:
        k = 2 * np.sqrt(a) * alpha
        b = [
            a * ((a + 1) + (a - 1) * cos_w0 + k),
            -2 * a * ((a - 1) + (a + 1) * cos_w0),
            a * ((a + 1) + (a - 1) * cos_w0 - k),
        ]
        den = [
            (a + 1) - (a - 1) * cos_w0 + k,
            2 * ((a - 1) - (a + 1) * cos_w0),
            (a + 1) - (a - 1) * cos_w0 - k,
        ]
    else:
        raise ValueError(f"Unsupported filter type: {filter_type}")

    a0 = den[0]
    return np.array([[b[0] / a0, b[1] / a0, b[2] / a0, 1.0, den[1] / a0, den[2] / a0]])


class FilterStage(ProcessingStage):
    """
    Parametric filter tap on the signal graph.

    Parameter changes swap the coefficients in place and keep the filter's
    delay line, so they apply from the next block without rebuilding the
    stage. Disabling only freezes the spectrum snapshot; the filter stays in
    the signal path and keeps processing blocks.
    """

    def __init__(
        self,
        filter_config: FilterConfig | None = None,
        sample_rate: int | None = None,
        name: str = "filter",
        enabled: bool = True,
    ) -> None:
        """
        Initialize the filter stage.

        Args:
            filter_config: Initial filter parameters (lowpass 1 kHz by default)
            sample_rate: Sample rate in Hz; if None it is taken from the graph on attach
            name: Stage name used in logs
            enabled: Whether the spectrum visualization starts enabled
        """
        self._name = name
        self._config = filter_config or FilterConfig()
        self._enabled = enabled
        self._lock = threading.Lock()

        self.sample_rate: int | None = None
        self._sos: np.ndarray | None = None
        self._zi: np.ndarray | None = None
        self.spectrum = SpectrumAnalyzer()

        self._output_callback: Callable[[np.ndarray], None] | None = None
        self._latest_output: np.ndarray | None = None
        self.blocks_processed = 0

        if sample_rate is not None:
            self._prepare(sample_rate)

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> FilterConfig:
        return self._config

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def latest_output(self) -> np.ndarray | None:
        return self._latest_output

    def _prepare(self, sample_rate: int) -> None:
        with self._lock:
            self.sample_rate = sample_rate
            self._sos = design_biquad(self._config, sample_rate)
            self._zi = np.zeros((self._sos.shape[0], 2))

    def on_attach(self, sample_rate: int) -> None:
        if self._sos is None or self.sample_rate != sample_rate:
            self._prepare(sample_rate)
        logger.debug(
            f"🎛️ Filter '{self._name}' ready: {self._config.type.value} "
            f"{self._config.frequency:g}Hz Q={self._config.q:g} gain={self._config.gain:g}dB"
        )

    def on_detach(self) -> None:
        with self._lock:
            if self._zi is not None:
                self._zi[:] = 0.0
        self.spectrum.reset()

    def set_output_callback(self, callback: Callable[[np.ndarray], None] | None) -> None:
        """Receive every processed block (the stage's destination)."""
        self._output_callback = callback

    def configure(self, filter_config: FilterConfig) -> None:
        """Apply new parameters from the next processed block on."""
        with self._lock:
            self._config = filter_config
            if self.sample_rate is not None:
                self._sos = design_biquad(filter_config, self.sample_rate)
        logger.debug(
            f"🎛️ Filter '{self._name}' updated: {filter_config.type.value} "
            f"{filter_config.frequency:g}Hz Q={filter_config.q:g} gain={filter_config.gain:g}dB"
        )

    def toggle(self, enabled: bool) -> None:
        """Start or stop feeding the spectrum snapshot; filtering continues either way."""
        self._enabled = enabled
        logger.debug(f"Filter '{self._name}' {'enabled' if enabled else 'disabled'}")

    def apply_preset(self, preset_name: str) -> FilterConfig:
        """
        Configure a named preset and enable the filter.

        Raises:
            ValueError: If the preset does not exist
        """
        try:
            preset = FILTER_PRESETS[preset_name]
        except KeyError:
            raise ValueError(
                f"Unknown filter preset: {preset_name}. Available: {sorted(FILTER_PRESETS)}"
            ) from None
        self.configure(preset)
        self.toggle(True)
        return preset

    def process_block(self, samples: np.ndarray) -> None:
        if self._sos is None:
            raise RuntimeError(f"Filter '{self._name}' has no sample rate; attach it to a graph first")

        block = np.asarray(samples, dtype=np.float64).ravel()
        with self._lock:
            filtered, self._zi = signal.sosfilt(self._sos, block, zi=self._zi)
        output = filtered.astype(np.float32)
        if self._enabled:
            self.spectrum.push(output)

        self._latest_output = output
        self.blocks_processed += 1

        if self._output_callback:
            try:
                self._output_callback(output)
            except Exception as e:
                logger.error(f"Error in filter output callback: {e}")

    def frequency_response(
        self, n_points: int = FILTER_RESPONSE_POINTS
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Magnitude response of the current configuration.

        Returns:
            (frequencies in Hz, magnitude in dB)
        """
        if self._sos is None or self.sample_rate is None:
            raise RuntimeError(f"Filter '{self._name}' has no sample rate; attach it to a graph first")
        freqs, response = signal.sosfreqz(self._sos, worN=n_points, fs=self.sample_rate)
        with np.errstate(divide="ignore"):
            magnitude_db = 20.0 * np.log10(np.abs(response))
        return freqs, magnitude_db

    def marker_position(self, width: float) -> float:
        """X coordinate of the centre frequency on a linear 0..Nyquist axis."""
        if self.sample_rate is None:
            return 0.0
        nyquist = self.sample_rate / 2.0
        return min(self._config.frequency / nyquist, 1.0) * width
