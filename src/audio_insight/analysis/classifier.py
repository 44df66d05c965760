"""Content classification strategies over aggregated feature statistics."""

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from . import config
from .config import FRAME_BUFFER_SIZE, FRAME_HOP_SIZE
from .feature_aggregator import summarize_frames
from .frame_extractor import FrameExtractor
from .interfaces import ClassificationStrategy
from .logging_utils import get_logger
from .models import ClassificationResult, ContentLabel, FeatureStats

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClassificationRule:
    """One entry of the priority-ordered decision list."""

    label: ContentLabel
    priority: int  # lower is evaluated first
    confidence: float
    predicate: Callable[[FeatureStats], bool]


def _is_silence(stats: FeatureStats) -> bool:
    return stats.mean_rms < config.SILENCE_RMS_THRESHOLD


def _is_speech(stats: FeatureStats) -> bool:
    return (
        config.SPEECH_CENTROID_LOW_HZ < stats.mean_spectral_centroid < config.SPEECH_CENTROID_HIGH_HZ
        and stats.mean_zcr > config.SPEECH_ZCR_THRESHOLD
        and stats.mfcc_std_dev > config.SPEECH_MFCC_STD_THRESHOLD
    )


def _is_music(stats: FeatureStats) -> bool:
    return (
        stats.mean_spectral_centroid > config.MUSIC_CENTROID_THRESHOLD_HZ
        and stats.mean_rms > config.MUSIC_RMS_THRESHOLD
        and config.MUSIC_MFCC_STD_LOW < stats.mfcc_std_dev < config.MUSIC_MFCC_STD_HIGH
    )


def _is_noise(stats: FeatureStats) -> bool:
    return stats.mfcc_std_dev < config.NOISE_MFCC_STD_THRESHOLD or (
        stats.mean_rms < config.NOISE_RMS_THRESHOLD
        and stats.mean_spectral_centroid < config.NOISE_CENTROID_THRESHOLD_HZ
    )


DEFAULT_RULES = (
    ClassificationRule(ContentLabel.SILENCE, 1, config.SILENCE_CONFIDENCE, _is_silence),
    ClassificationRule(ContentLabel.SPEECH, 2, config.SPEECH_CONFIDENCE, _is_speech),
    ClassificationRule(ContentLabel.MUSIC, 3, config.MUSIC_CONFIDENCE, _is_music),
    ClassificationRule(ContentLabel.NOISE, 4, config.NOISE_CONFIDENCE, _is_noise),
)


class RuleClassifier(ClassificationStrategy):
    """
    Five-way first-match decision list.

    Rules are evaluated in ascending priority and the first matching rule
    decides the label; when nothing matches the result is ``unknown`` with
    confidence 0.5. The same statistics always yield the same result.
    """

    def __init__(self, rules: tuple[ClassificationRule, ...] = DEFAULT_RULES) -> None:
        self._rules = tuple(sorted(rules, key=lambda rule: rule.priority))

    @property
    def name(self) -> str:
        return "rules"

    @property
    def rules(self) -> tuple[ClassificationRule, ...]:
        return self._rules

    def classify(self, stats: FeatureStats) -> ClassificationResult:
        for rule in self._rules:
            if rule.predicate(stats):
                return ClassificationResult(rule.label, rule.confidence, stats, self.name)
        return ClassificationResult(
            ContentLabel.UNKNOWN, config.UNKNOWN_CONFIDENCE, stats, self.name
        )


class VotingClassifier(ClassificationStrategy):
    """
    Two-class music/speech scorer used for live streams.

    Three thresholds each cast a weighted vote for one hypothesis; the
    winner's share of the votes is reported as confidence.
    """

    @property
    def name(self) -> str:
        return "voting"

    def score(self, stats: FeatureStats) -> tuple[int, int]:
        """Return (music_votes, speech_votes)."""
        music = 0
        speech = 0

        if stats.mean_spectral_centroid > config.VOTING_CENTROID_THRESHOLD_HZ:
            music += config.VOTING_CENTROID_WEIGHT
        else:
            speech += config.VOTING_CENTROID_WEIGHT

        if stats.mean_spectral_flatness > config.VOTING_FLATNESS_THRESHOLD:
            speech += config.VOTING_FLATNESS_WEIGHT
        else:
            music += config.VOTING_FLATNESS_WEIGHT

        if stats.mean_zcr > config.VOTING_ZCR_THRESHOLD:
            speech += config.VOTING_ZCR_WEIGHT
        else:
            music += config.VOTING_ZCR_WEIGHT

        return music, speech

    def classify(self, stats: FeatureStats) -> ClassificationResult:
        music, speech = self.score(stats)
        total = music + speech
        if music > speech:
            return ClassificationResult(ContentLabel.MUSIC, music / total, stats, self.name)
        return ClassificationResult(ContentLabel.SPEECH, speech / total, stats, self.name)


CLASSIFICATION_STRATEGIES: dict[str, type[ClassificationStrategy]] = {
    "rules": RuleClassifier,
    "voting": VotingClassifier,
}


def get_classifier(name: str = "rules") -> ClassificationStrategy:
    """
    Create a classification strategy by name.

    Raises:
        ValueError: If the name is not a known strategy
    """
    try:
        return CLASSIFICATION_STRATEGIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown classification strategy: {name}. "
            f"Available: {sorted(CLASSIFICATION_STRATEGIES)}"
        ) from None


def classify_buffer(
    samples: np.ndarray,
    sample_rate: int,
    classifier: ClassificationStrategy | None = None,
) -> ClassificationResult:
    """
    Classify a complete buffer.

    Every hop-spaced frame of the buffer is summarized into one set of
    statistics. Buffers shorter than a frame summarize to zeros and come
    out as silence.

    Args:
        samples: Mono samples normalized to [-1, 1]
        sample_rate: Sample rate in Hz
        classifier: Strategy to apply (rule list by default)

    Returns:
        ClassificationResult for the whole buffer
    """
    classifier = classifier or RuleClassifier()
    extractor = FrameExtractor(sample_rate, FRAME_BUFFER_SIZE, FRAME_HOP_SIZE)
    frames = extractor.extract_all(samples)
    stats = summarize_frames(frames)
    result = classifier.classify(stats)

    logger.debug(
        f"Classified {len(samples) / sample_rate:.2f}s buffer ({len(frames)} frames) as "
        f"{result.label.value} ({result.confidence:.2f})"
    )
    return result
