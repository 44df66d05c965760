"""Recording session state machine."""

import time
from collections.abc import Callable

from .config import PREFERRED_MIME_TYPES
from .exceptions import DeliveryError
from .interfaces import CaptureDevice, UploadService
from .logging_utils import get_logger
from .models import AudioBlob, RecordingState

logger = get_logger(__name__)


def select_mime_type(
    is_supported: Callable[[str], bool],
    candidates: list[str] | None = None,
) -> str | None:
    """
    Pick the first container format the recorder supports.

    Args:
        is_supported: Predicate answering whether a MIME type can be recorded
        candidates: Preference order (PREFERRED_MIME_TYPES by default)

    Returns:
        The first supported MIME type, or None if none is supported
    """
    for mime_type in candidates if candidates is not None else PREFERRED_MIME_TYPES:
        if is_supported(mime_type):
            return mime_type
    return None


class RecordingSession:
    """
    Capture lifecycle: idle -> recording <-> paused -> stopped.

    Transitions that do not apply to the current state are ignored rather
    than raised, so callers may forward UI events without ordering them.
    Elapsed time only advances while recording. Environment errors from
    opening the device propagate and leave the session idle.
    """

    def __init__(
        self,
        device: CaptureDevice,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.device = device
        self._clock = clock
        self._state = RecordingState.IDLE
        self._chunks: list[bytes] = []
        self._elapsed_before_segment = 0.0
        self._segment_started_at: float | None = None
        self._blob: AudioBlob | None = None
        self.reference: str | None = None

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def elapsed(self) -> float:
        """Seconds spent recording, excluding paused intervals."""
        if self._segment_started_at is None:
            return self._elapsed_before_segment
        return self._elapsed_before_segment + (self._clock() - self._segment_started_at)

    @property
    def chunks(self) -> tuple[bytes, ...]:
        return tuple(self._chunks)

    @property
    def blob(self) -> AudioBlob | None:
        """The finalized recording once stopped."""
        return self._blob

    def _ignore(self, transition: str) -> bool:
        logger.debug(f"Ignoring '{transition}' while {self._state.value}")
        return False

    def _close_segment(self) -> None:
        if self._segment_started_at is not None:
            self._elapsed_before_segment += self._clock() - self._segment_started_at
            self._segment_started_at = None

    def start(self) -> bool:
        """
        Acquire the capture device and begin recording.

        Returns:
            True if the session started, False if the transition was ignored

        Raises:
            MicrophoneNotFoundError: If no input device is available
            MicrophonePermissionError: If access to the device is denied
        """
        if self._state is not RecordingState.IDLE:
            return self._ignore("start")

        self.device.open()
        self._state = RecordingState.RECORDING
        self._segment_started_at = self._clock()
        logger.debug(f"🔴 Recording started ({self.device.mime_type})")
        return True

    def pause(self) -> bool:
        if self._state is not RecordingState.RECORDING:
            return self._ignore("pause")

        self.device.pause()
        self._close_segment()
        self._state = RecordingState.PAUSED
        logger.debug(f"⏸️ Recording paused at {self.elapsed:.2f}s")
        return True

    def resume(self) -> bool:
        if self._state is not RecordingState.PAUSED:
            return self._ignore("resume")

        self.device.resume()
        self._segment_started_at = self._clock()
        self._state = RecordingState.RECORDING
        logger.debug("▶️ Recording resumed")
        return True

    def stop(self) -> AudioBlob | None:
        """
        Finalize the accumulated chunks into one blob.

        Returns:
            The finished recording, or None if the transition was ignored
        """
        if self._state not in (RecordingState.RECORDING, RecordingState.PAUSED):
            self._ignore("stop")
            return None

        self._close_segment()
        self._state = RecordingState.STOPPED
        self.device.close()

        self._blob = AudioBlob(
            data=self.device.encode(list(self._chunks)),
            mime_type=self.device.mime_type,
            duration=self._elapsed_before_segment,
        )
        logger.debug(
            f"⏹️ Recording stopped: {len(self._chunks)} chunks, "
            f"{self._blob.size} bytes, {self._blob.duration:.2f}s"
        )
        return self._blob

    def discard(self) -> bool:
        """Drop a stopped recording without delivering it and return to idle."""
        if self._state is not RecordingState.STOPPED:
            return self._ignore("discard")

        self._chunks.clear()
        self._blob = None
        self.reference = None
        self._elapsed_before_segment = 0.0
        self._state = RecordingState.IDLE
        logger.debug("🗑️ Recording discarded")
        return True

    def append_chunk(self, chunk: bytes) -> bool:
        """
        Add captured audio; only accepted while recording.

        Returns:
            True if the chunk was kept
        """
        if self._state is not RecordingState.RECORDING or not chunk:
            return False
        self._chunks.append(chunk)
        return True

    def poll(self) -> bytes | None:
        """Read one chunk from the device into the session while recording."""
        if self._state is not RecordingState.RECORDING:
            return None
        chunk = self.device.read_chunk()
        if chunk:
            self.append_chunk(chunk)
        return chunk

    def deliver(self, upload_service: UploadService) -> str:
        """
        Hand the finished recording to the upload service.

        Returns:
            Durable reference returned by the service

        Raises:
            DeliveryError: If there is no finished recording or the upload fails
        """
        if self._state is not RecordingState.STOPPED or self._blob is None:
            raise DeliveryError(f"No finished recording to deliver (state: {self._state.value})")

        try:
            reference = upload_service.deliver(self._blob)
        except Exception as e:
            logger.error(f"❌ Failed to deliver recording: {e}")
            raise DeliveryError(f"Failed to deliver recording: {e}") from e

        self.reference = reference
        logger.debug(f"📤 Recording delivered as {reference}")
        return reference
