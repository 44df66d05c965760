"""Dispatch latency tracking against the audio callback deadline."""

import time
from collections import deque
from dataclasses import dataclass

from .config import BLOCK_DEADLINE_LOG_INTERVAL, BLOCK_TIMING_HISTORY_SIZE
from .logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class BlockTimingStats:
    """Summary of recent dispatch latencies."""

    blocks_processed: int
    missed_deadlines: int
    average_latency_ms: float
    max_latency_ms: float
    average_budget_usage: float  # latency / block duration, 1.0 == deadline


class BlockTimingMonitor:
    """
    Measures how long each block dispatch takes relative to the real-time
    duration of that block.

    A dispatch slower than the block it processes means the next engine
    callback will arrive before the previous one returned, which shows up
    as audible dropouts.
    """

    def __init__(self, history_size: int = BLOCK_TIMING_HISTORY_SIZE) -> None:
        if history_size <= 0:
            raise ValueError("History size must be positive")

        self._latencies_ms: deque[float] = deque(maxlen=history_size)
        self._budget_usage: deque[float] = deque(maxlen=history_size)
        self._blocks_processed = 0
        self._missed_deadlines = 0
        self._last_warning = 0.0

    def record(self, latency_sec: float, block_size: int, sample_rate: int) -> bool:
        """
        Record one dispatch.

        Args:
            latency_sec: Wall time spent dispatching the block
            block_size: Number of samples in the block
            sample_rate: Sample rate of the block in Hz

        Returns:
            True if the dispatch met its deadline
        """
        self._blocks_processed += 1
        deadline_sec = block_size / sample_rate if sample_rate > 0 else 0.0

        self._latencies_ms.append(latency_sec * 1000.0)
        usage = latency_sec / deadline_sec if deadline_sec > 0 else 0.0
        self._budget_usage.append(usage)

        if deadline_sec > 0 and latency_sec > deadline_sec:
            self._missed_deadlines += 1
            now = time.monotonic()
            if now - self._last_warning >= BLOCK_DEADLINE_LOG_INTERVAL:
                logger.warning(
                    f"⚠️ Block dispatch missed its deadline: {latency_sec * 1000:.2f}ms "
                    f"for a {deadline_sec * 1000:.2f}ms block "
                    f"({self._missed_deadlines} missed so far)"
                )
                self._last_warning = now
            return False
        return True

    def get_stats(self) -> BlockTimingStats:
        latencies = list(self._latencies_ms)
        usage = list(self._budget_usage)
        return BlockTimingStats(
            blocks_processed=self._blocks_processed,
            missed_deadlines=self._missed_deadlines,
            average_latency_ms=sum(latencies) / len(latencies) if latencies else 0.0,
            max_latency_ms=max(latencies) if latencies else 0.0,
            average_budget_usage=sum(usage) / len(usage) if usage else 0.0,
        )

    def reset(self) -> None:
        self._latencies_ms.clear()
        self._budget_usage.clear()
        self._blocks_processed = 0
        self._missed_deadlines = 0
        self._last_warning = 0.0
