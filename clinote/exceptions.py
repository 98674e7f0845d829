"""Error taxonomy for the clinical note assistant."""


class ClinicalNoteError(RuntimeError):
    """Base class for all errors raised by clinote components."""


class ConfigurationError(ClinicalNoteError):
    """Raised when a required setting or credential is missing."""


class AudioCaptureError(ClinicalNoteError):
    """Raised when the microphone cannot be used."""


class PermissionDenied(AudioCaptureError):
    """Raised when the host refuses access to the microphone."""


class DeviceUnavailable(AudioCaptureError):
    """Raised when no usable input device can be opened."""


class TranscriptionError(ClinicalNoteError):
    """Raised by the live transcription layer."""


class ConnectionFailed(TranscriptionError):
    """Raised when the transcription service connection cannot be established."""


class StreamError(TranscriptionError):
    """Reported when an open transcription connection fails."""


class NoteGenerationError(ClinicalNoteError):
    """Raised when a clinical note cannot be produced."""


class EmptyInput(NoteGenerationError):
    """Raised when there is no transcript text to build a note from."""


class RequestFailed(NoteGenerationError):
    """Raised when the generative-text request fails in transport or at the service."""


class EmptyResponse(NoteGenerationError):
    """Raised when the service answers without a usable candidate."""
