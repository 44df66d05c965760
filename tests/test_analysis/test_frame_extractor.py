"""Tests for frame extraction and per-frame features."""

import numpy as np
import pytest

from audio_insight.analysis.frame_extractor import FrameExtractor, mel_filterbank


def sine(frequency: float, sample_rate: int, length: int, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(length) / sample_rate
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float32)


def expected_frame_count(length: int, buffer_size: int = 512, hop_size: int = 256) -> int:
    if length < buffer_size:
        return 0
    return (length - buffer_size) // hop_size + 1


@pytest.fixture
def extractor() -> FrameExtractor:
    return FrameExtractor(sample_rate=16000)


@pytest.mark.unit
class TestFrameCount:
    """Frames emitted over a stream."""

    @pytest.mark.parametrize("length", [0, 100, 511, 512, 513, 767, 768, 1024, 5000])
    @pytest.mark.parametrize("block_size", [128, 256, 1000])
    def test_streamed_frame_count(self, length: int, block_size: int) -> None:
        extractor = FrameExtractor(sample_rate=16000)
        rng = np.random.default_rng(length + block_size)
        samples = rng.uniform(-0.5, 0.5, length).astype(np.float32)

        frames = []
        for start in range(0, length, block_size):
            frames.extend(extractor.process(samples[start : start + block_size]))

        assert len(frames) == expected_frame_count(length)
        assert [f.timestamp for f in frames] == list(range(len(frames)))

    @pytest.mark.parametrize("length", [0, 511, 512, 2048, 4100])
    def test_extract_all_frame_count(self, extractor: FrameExtractor, length: int) -> None:
        frames = extractor.extract_all(np.zeros(length, dtype=np.float32))

        assert len(frames) == expected_frame_count(length)

    def test_hop_sized_blocks_yield_at_most_one_frame(self, extractor: FrameExtractor) -> None:
        counts = [len(extractor.process(np.ones(256, dtype=np.float32))) for _ in range(10)]

        assert counts[0] == 0
        assert all(count == 1 for count in counts[1:])

    def test_custom_geometry(self) -> None:
        extractor = FrameExtractor(sample_rate=8000, buffer_size=256, hop_size=64)

        frames = extractor.extract_all(np.zeros(1000, dtype=np.float32))

        assert len(frames) == expected_frame_count(1000, 256, 64)

    def test_frames_generator_is_lazy(self, extractor: FrameExtractor) -> None:
        pulled = []

        def blocks():
            for index in range(6):
                pulled.append(index)
                yield np.zeros(256, dtype=np.float32)

        stream = extractor.frames(blocks())
        first = next(stream)

        assert first.timestamp == 0
        assert pulled == [0, 1]
        assert len(list(stream)) == 4

    def test_reset_restarts_numbering(self, extractor: FrameExtractor) -> None:
        extractor.process(np.zeros(1024, dtype=np.float32))
        assert extractor.frames_emitted == 3

        extractor.reset()
        frames = extractor.process(np.zeros(512, dtype=np.float32))

        assert extractor.frames_emitted == 1
        assert frames[0].timestamp == 0


@pytest.mark.unit
class TestFeatures:
    """Feature values of single frames."""

    def test_zero_frame_yields_zero_scalar_features(self, extractor: FrameExtractor) -> None:
        frame = extractor.compute(np.zeros(512, dtype=np.float32))

        assert frame.rms == 0.0
        assert frame.energy == 0.0
        assert frame.spectral_flatness == 0.0
        assert frame.spectral_centroid == 0.0
        assert frame.zcr == 0.0
        assert len(frame.mfcc) == 13
        assert all(np.isfinite(c) for c in frame.mfcc)
        # every mel band sits at the log floor, giving a constant cepstrum
        assert frame.mfcc[0] == pytest.approx(np.sqrt(26) * np.log(1e-10))
        np.testing.assert_allclose(frame.mfcc[1:], 0.0, atol=1e-9)

    def test_non_finite_samples_are_treated_as_zero(self, extractor: FrameExtractor) -> None:
        samples = np.zeros(512, dtype=np.float32)
        samples[10] = np.nan
        samples[20] = np.inf

        frame = extractor.compute(samples)

        assert frame.rms == 0.0
        assert frame.energy == 0.0

    def test_feature_ranges_on_noise(self, extractor: FrameExtractor) -> None:
        rng = np.random.default_rng(7)
        samples = rng.normal(0.0, 0.3, 16000).astype(np.float32)

        for frame in extractor.extract_all(samples):
            assert frame.rms >= 0.0
            assert frame.energy >= 0.0
            assert 0.0 <= frame.zcr <= 1.0
            assert 0.0 <= frame.spectral_flatness <= 1.0
            assert frame.spectral_centroid >= 0.0

    def test_rms_and_energy_of_constant_signal(self, extractor: FrameExtractor) -> None:
        frame = extractor.compute(np.full(512, 0.5, dtype=np.float32))

        assert frame.rms == pytest.approx(0.5)
        assert frame.energy == pytest.approx(512 * 0.25)

    def test_zcr_of_alternating_signal(self, extractor: FrameExtractor) -> None:
        samples = np.tile(np.array([0.5, -0.5], dtype=np.float32), 256)

        frame = extractor.compute(samples)

        assert frame.zcr == pytest.approx(1.0)

    def test_centroid_of_bin_aligned_sine(self, extractor: FrameExtractor) -> None:
        # 1000 Hz is exactly bin 32 of a 512-point FFT at 16 kHz
        frame = extractor.compute(sine(1000.0, 16000, 512))

        assert frame.spectral_centroid == pytest.approx(1000.0, abs=1.0)
        assert frame.spectral_flatness < 0.1

    def test_noise_is_flatter_than_tone(self, extractor: FrameExtractor) -> None:
        rng = np.random.default_rng(3)
        noise = extractor.compute(rng.normal(0.0, 0.3, 512).astype(np.float32))
        tone = extractor.compute(sine(1000.0, 16000, 512))

        assert noise.spectral_flatness > tone.spectral_flatness

    def test_brighter_signal_has_higher_centroid(self, extractor: FrameExtractor) -> None:
        low = extractor.compute(sine(500.0, 16000, 512))
        high = extractor.compute(sine(4000.0, 16000, 512))

        assert high.spectral_centroid > low.spectral_centroid

    def test_features_are_deterministic(self, extractor: FrameExtractor) -> None:
        samples = sine(440.0, 16000, 512)

        assert extractor.compute(samples) == extractor.compute(samples)


@pytest.mark.unit
class TestConfiguration:
    """Constructor validation and helpers."""

    def test_invalid_parameters(self) -> None:
        with pytest.raises(ValueError, match="Sample rate must be positive"):
            FrameExtractor(sample_rate=0)
        with pytest.raises(ValueError, match="Hop size"):
            FrameExtractor(sample_rate=16000, buffer_size=512, hop_size=1024)
        with pytest.raises(ValueError, match="Hop size"):
            FrameExtractor(sample_rate=16000, hop_size=0)
        with pytest.raises(ValueError, match="MFCC count"):
            FrameExtractor(sample_rate=16000, n_mfcc=30, n_mel_bands=26)

    def test_mel_filterbank_shape(self) -> None:
        filters = mel_filterbank(26, 512, 16000.0)

        assert filters.shape == (26, 257)
        assert np.all(filters >= 0.0)
        assert np.all(filters <= 1.0)
        assert np.count_nonzero(filters.sum(axis=1)) > 20
