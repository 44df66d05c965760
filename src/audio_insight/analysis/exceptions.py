"""Custom exceptions for live audio analysis."""


class AudioAnalysisError(Exception):
    """Base exception for audio analysis errors."""

    pass


class SignalGraphError(AudioAnalysisError):
    """Exception raised for misuse of the signal graph."""

    pass


class AlreadyBoundError(SignalGraphError):
    """Exception raised when an audio source is bound a second time."""

    pass


class GraphReleasedError(SignalGraphError):
    """Exception raised when a released graph handle is used to attach a stage."""

    pass


class AudioCaptureError(AudioAnalysisError):
    """Exception raised for audio capture related errors."""

    pass


class MicrophoneNotFoundError(AudioCaptureError):
    """Exception raised when no microphone is found."""

    pass


class MicrophonePermissionError(AudioCaptureError):
    """Exception raised when access to the microphone is denied."""

    pass


class DeliveryError(AudioAnalysisError):
    """Exception raised when a finished recording cannot be delivered."""

    pass
