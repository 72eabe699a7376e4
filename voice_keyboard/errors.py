"""
Error taxonomy for the dictation pipeline.

Only audio recorder errors stop a session from starting. Everything else
degrades to the best available text.
"""

from typing import Optional


class VoiceKeyboardError(Exception):
    """Base exception for voice keyboard errors."""
    pass


class AudioRecorderError(VoiceKeyboardError):
    """Base exception for audio recorder errors."""
    pass


class MicrophonePermissionError(AudioRecorderError):
    """Raised when microphone permissions are not granted."""
    pass


class DeviceError(AudioRecorderError):
    """Raised when no audio input devices are available."""
    pass


class ProviderError(VoiceKeyboardError):
    """Raised when a transcription or cleanup provider call fails."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class SliceTranscriptionError(VoiceKeyboardError):
    """A single audio slice could not be transcribed."""

    def __init__(self, index: int, cause: Exception):
        super().__init__(f"Slice {index + 1} could not be transcribed: {cause}")
        self.index = index
        self.cause = cause


class CleanupError(VoiceKeyboardError):
    """The cleanup pass failed; the raw merged transcript is kept."""
    pass


class DrainTimeoutWarning(UserWarning):
    """Outstanding slices did not finish within the finalize budget."""

    def __init__(self, outstanding: int, waited: float):
        super().__init__(
            f"{outstanding} slice(s) still processing after {waited:.1f}s. "
            "Finalizing with available data..."
        )
        self.outstanding = outstanding
        self.waited = waited
