"""Tests for AudioAnalysisService."""

import asyncio
import itertools
import logging
import time
from collections.abc import Callable

import numpy as np
import pytest

from audio_insight.analysis.audio_capture import PyAudioCaptureDevice
from audio_insight.analysis.exceptions import GraphReleasedError, MicrophoneNotFoundError
from audio_insight.analysis.filter_stage import FilterConfig, FilterType
from audio_insight.analysis.interfaces import CaptureDevice, FrameClock
from audio_insight.analysis.models import ContentLabel
from audio_insight.analysis.service import AudioAnalysisService

SILENT_CHUNK = b"\x00\x00" * 256


class FakeDevice(CaptureDevice):
    """Capture device that hands out queued chunks, then nothing."""

    def __init__(self, chunks: list[bytes] | None = None, open_error: Exception | None = None):
        self.queue = list(chunks or [])
        self.open_error = open_error
        self.calls: list[str] = []

    @property
    def sample_rate(self) -> int:
        return 16000

    @property
    def mime_type(self) -> str:
        return "audio/wav"

    def open(self) -> None:
        self.calls.append("open")
        if self.open_error:
            raise self.open_error

    def close(self) -> None:
        self.calls.append("close")

    def pause(self) -> None:
        self.calls.append("pause")

    def resume(self) -> None:
        self.calls.append("resume")

    def read_chunk(self) -> bytes | None:
        return self.queue.pop(0) if self.queue else None

    def encode(self, chunks: list[bytes]) -> bytes:
        return b"".join(chunks)


class SlowDevice(FakeDevice):
    """Device whose reads block far longer than a stop is willing to wait."""

    def read_chunk(self) -> bytes | None:
        time.sleep(1.0)
        return None


class ManualFrameClock(FrameClock):
    def __init__(self) -> None:
        self._ids = itertools.count()
        self.pending: dict[int, Callable[[], None]] = {}

    def request_frame(self, callback: Callable[[], None]) -> int:
        handle = next(self._ids)
        self.pending[handle] = callback
        return handle

    def cancel_frame(self, handle: int) -> None:
        self.pending.pop(handle, None)

    def tick(self) -> None:
        callbacks = list(self.pending.values())
        self.pending.clear()
        for callback in callbacks:
            callback()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def clock() -> ManualFrameClock:
    return ManualFrameClock()


def make_service(clock: ManualFrameClock, chunks: int = 0, **kwargs) -> AudioAnalysisService:
    device = kwargs.pop("device", None) or FakeDevice([SILENT_CHUNK] * chunks)
    return AudioAnalysisService(device=device, frame_clock=clock, **kwargs)


@pytest.mark.unit
class TestAudioAnalysisServiceSetup:
    """Construction and graph binding."""

    def test_default_device_is_microphone(self) -> None:
        service = AudioAnalysisService()

        assert isinstance(service._device, PyAudioCaptureDevice)
        assert service.source.sample_rate == 44100
        assert service.is_playing() is False

    def test_initialize_binds_once(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)

        first = service.initialize()
        second = service.initialize()

        assert first is second
        assert service.source.is_bound is True
        assert first.stages == (service.filter_stage, service.analyzer)
        assert service.analyzer.sample_rate == 16000

    def test_analysis_waits_for_play(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)

        for _ in range(30):
            service.feed_block(np.zeros(256, dtype=np.float32))

        assert service.get_latest_classification() is None
        assert service.filter_stage.blocks_processed == 30

    def test_feed_block_while_analyzer_active(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)
        service.analyzer.start()

        for _ in range(30):
            service.feed_block(np.zeros(256, dtype=np.float32))

        assert service.get_latest_classification().label is ContentLabel.SILENCE
        assert service.get_average_features()["avg_rms"] == 0.0

    def test_set_classifier_by_name(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)

        service.set_classifier("voting")

        assert service.get_component_status()["classifier"] == "voting"

    def test_filter_configuration(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)
        service.initialize()

        service.set_filter_config(FilterConfig(FilterType.HIGHPASS, 200.0))
        assert service.filter_stage.config.type is FilterType.HIGHPASS

        preset = service.apply_filter_preset("remove-hum")
        assert service.filter_stage.config is preset

    def test_performance_stats(self, clock: ManualFrameClock) -> None:
        monitored = make_service(clock, enable_monitoring=True)
        for _ in range(3):
            monitored.feed_block(np.zeros(256, dtype=np.float32))

        assert monitored.get_performance_stats()["blocks_processed"] == 3
        assert make_service(ManualFrameClock()).get_performance_stats() == {
            "monitoring_disabled": True
        }


@pytest.mark.unit
class TestAudioAnalysisServiceLifecycle:
    """play / pause / stop / close."""

    @pytest.mark.asyncio
    async def test_play_classifies_captured_audio(self, clock: ManualFrameClock) -> None:
        service = make_service(clock, chunks=30)
        results = []
        service.set_classification_callback(results.append)

        await service.play()
        await wait_until(lambda: len(results) > 0)
        await service.stop()

        assert results[0].label is ContentLabel.SILENCE
        assert service.is_playing() is False
        assert service.analyzer.is_active is False
        assert service._device.calls == ["open", "close"]

    @pytest.mark.asyncio
    async def test_play_twice_is_harmless(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)

        await service.play()
        await service.play()
        await service.stop()

        assert service._device.calls == ["open", "close"]

    @pytest.mark.asyncio
    async def test_render_loops_paint_while_playing(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)
        painted = []
        service.set_render_callback(lambda name, frame: painted.append(name))

        await service.play()
        clock.tick()
        clock.tick()
        await service.stop()
        clock.tick()

        assert sorted(painted) == ["filter-spectrum", "filter-spectrum", "spectrogram", "spectrogram"]
        assert clock.pending == {}

    @pytest.mark.asyncio
    async def test_pause_keeps_device_open(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)

        await service.play()
        await service.pause()

        status = service.get_component_status()
        assert status["playing"] is False
        assert status["device_open"] is True
        assert status["spectrogram_rendering"] is False

        await service.play()
        await service.stop()

        assert service._device.calls == ["open", "pause", "resume", "close"]

    @pytest.mark.asyncio
    async def test_open_failure_propagates(self, clock: ManualFrameClock) -> None:
        device = FakeDevice(open_error=MicrophoneNotFoundError("No microphone found"))
        service = make_service(clock, device=device)

        with pytest.raises(MicrophoneNotFoundError):
            await service.play()

        assert service.is_playing() is False
        assert clock.pending == {}

    @pytest.mark.asyncio
    async def test_close_releases_graph(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)
        await service.play()

        await service.close()

        assert service.get_component_status()["released"] is True
        with pytest.raises(GraphReleasedError):
            service.initialize()

    @pytest.mark.asyncio
    async def test_toggle_filter_controls_spectrum_loop(self, clock: ManualFrameClock) -> None:
        service = make_service(clock)
        await service.play()
        spectrogram, spectrum = service.render_loops

        service.toggle_filter(False)
        assert spectrum.is_running is False
        assert spectrogram.is_running is True

        service.toggle_filter(True)
        assert spectrum.is_running is True

        await service.stop()

    @pytest.mark.asyncio
    async def test_disabled_filter_does_not_render(self, clock: ManualFrameClock) -> None:
        service = make_service(clock, filter_enabled=False)

        await service.play()
        _, spectrum = service.render_loops
        assert spectrum.is_running is False
        await service.stop()

        service.toggle_filter(True)
        assert spectrum.is_running is False

    @pytest.mark.asyncio
    async def test_stop_gives_up_on_blocked_read(
        self, clock: ManualFrameClock, caplog: pytest.LogCaptureFixture
    ) -> None:
        service = make_service(clock, device=SlowDevice())
        await service.play()
        await asyncio.sleep(0.05)

        with caplog.at_level(logging.WARNING):
            await service.stop()

        assert service.is_playing() is False
        assert "did not stop" in caplog.text
        assert service._device.calls == ["open", "close"]

    @pytest.mark.asyncio
    async def test_cancelling_stop_propagates(self, clock: ManualFrameClock) -> None:
        service = make_service(clock, device=SlowDevice())
        await service.play()
        await asyncio.sleep(0.05)

        stopping = asyncio.create_task(service.stop())
        await asyncio.sleep(0.05)
        stopping.cancel()

        with pytest.raises(asyncio.CancelledError):
            await stopping
        assert service.is_playing() is False
