"""Single-binding signal graph with parallel fan-out to processing stages."""

import itertools
import threading
import time
import weakref

import numpy as np

from .exceptions import AlreadyBoundError, GraphReleasedError
from .interfaces import ProcessingStage
from .logging_utils import get_logger
from .performance_monitor import BlockTimingMonitor

logger = get_logger(__name__)


class AudioSource:
    """
    Handle to one playable or recordable stream.

    A source can be bound to a processing graph at most once in its
    lifetime. The flag is never cleared, not even when the graph that bound
    it is released.
    """

    def __init__(self, name: str, sample_rate: int) -> None:
        if sample_rate <= 0:
            raise ValueError("Sample rate must be positive")

        self.name = name
        self.sample_rate = sample_rate
        self._bound = False

    @property
    def is_bound(self) -> bool:
        return self._bound

    def __repr__(self) -> str:
        return f"AudioSource(name={self.name!r}, sample_rate={self.sample_rate}, bound={self._bound})"


class GraphHandle:
    """Shared tap point created by SignalGraph.bind()."""

    def __init__(self, handle_id: int, source: AudioSource) -> None:
        self.handle_id = handle_id
        self.sample_rate = source.sample_rate
        self.source_name = source.name
        self._source_ref = weakref.ref(source)
        self._stages: list[ProcessingStage] = []
        self._released = False
        self.blocks_dispatched = 0

    @property
    def source(self) -> AudioSource | None:
        """The bound source, or None once the caller has dropped it."""
        return self._source_ref()

    @property
    def is_released(self) -> bool:
        return self._released

    @property
    def stages(self) -> tuple[ProcessingStage, ...]:
        return tuple(self._stages)

    def __repr__(self) -> str:
        state = "released" if self._released else "active"
        return f"GraphHandle(id={self.handle_id}, source={self.source_name!r}, {state}, stages={len(self._stages)})"


class SignalGraph:
    """
    Owns the connection point of each bound AudioSource and fans its blocks
    out to independently attached stages.

    Stages are connected in parallel: each one receives its own copy of every
    block, and a stage that raises is logged and skipped without disturbing
    the others. Detaching or releasing takes the dispatch lock, so once the
    call returns the detached stage will not be called again.
    """

    def __init__(self, monitor: BlockTimingMonitor | None = None) -> None:
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._handles: dict[int, GraphHandle] = {}
        self._monitor = monitor

    def bind(self, source: AudioSource) -> GraphHandle:
        """
        Create the shared tap for a source.

        Args:
            source: Source to bind; marked bound for the rest of its lifetime

        Returns:
            GraphHandle used for all further operations

        Raises:
            AlreadyBoundError: If the source has been bound before
        """
        with self._lock:
            if source.is_bound:
                logger.error(f"❌ Audio source '{source.name}' is already bound")
                raise AlreadyBoundError(f"Audio source '{source.name}' is already bound")

            source._bound = True
            handle = GraphHandle(next(self._ids), source)
            self._handles[handle.handle_id] = handle

        logger.debug(
            f"🔗 Bound audio source '{source.name}' "
            f"(handle: {handle.handle_id}, sample_rate: {source.sample_rate})"
        )
        return handle

    def attach_stage(self, handle: GraphHandle, stage: ProcessingStage) -> None:
        """
        Connect a stage to the shared tap.

        Attaching a stage that is already attached is a no-op.

        Raises:
            GraphReleasedError: If the handle has been released
        """
        with self._lock:
            if handle.is_released:
                raise GraphReleasedError(
                    f"Cannot attach stage '{stage.name}': graph handle {handle.handle_id} is released"
                )
            if any(existing is stage for existing in handle._stages):
                logger.trace(f"Stage '{stage.name}' already attached to handle {handle.handle_id}")
                return

            stage.on_attach(handle.sample_rate)
            handle._stages.append(stage)

        logger.debug(f"Attached stage '{stage.name}' to handle {handle.handle_id}")

    def detach_stage(self, handle: GraphHandle, stage: ProcessingStage) -> None:
        """Disconnect exactly this stage; a no-op when it is not attached."""
        with self._lock:
            for index, existing in enumerate(handle._stages):
                if existing is stage:
                    del handle._stages[index]
                    break
            else:
                logger.trace(f"Stage '{stage.name}' not attached to handle {handle.handle_id}")
                return

        self._notify_detach(stage)
        logger.debug(f"Detached stage '{stage.name}' from handle {handle.handle_id}")

    def release(self, handle: GraphHandle) -> None:
        """Disconnect every stage and invalidate the handle. Safe to repeat."""
        with self._lock:
            if handle.is_released:
                return
            handle._released = True
            stages = list(handle._stages)
            handle._stages.clear()
            self._handles.pop(handle.handle_id, None)

        for stage in stages:
            self._notify_detach(stage)

        logger.debug(
            f"🔌 Released handle {handle.handle_id} for '{handle.source_name}' "
            f"({len(stages)} stages disconnected, {handle.blocks_dispatched} blocks dispatched)"
        )

    def dispatch(self, handle: GraphHandle, samples: np.ndarray) -> None:
        """
        Deliver one block to every attached stage.

        Blocks arriving after release are dropped.

        Args:
            handle: Tap to deliver through
            samples: Mono block from the source
        """
        with self._lock:
            if handle.is_released:
                logger.trace(f"Dropping block for released handle {handle.handle_id}")
                return

            start = time.perf_counter()
            for stage in list(handle._stages):
                try:
                    stage.process_block(np.array(samples, dtype=np.float32, copy=True))
                except Exception as e:
                    logger.error(f"Stage '{stage.name}' failed to process block: {e}")
            handle.blocks_dispatched += 1

            if self._monitor is not None:
                self._monitor.record(
                    time.perf_counter() - start, len(samples), handle.sample_rate
                )

    def active_handles(self) -> list[GraphHandle]:
        with self._lock:
            return list(self._handles.values())

    def _notify_detach(self, stage: ProcessingStage) -> None:
        try:
            stage.on_detach()
        except Exception as e:
            logger.error(f"Error detaching stage '{stage.name}': {e}")
