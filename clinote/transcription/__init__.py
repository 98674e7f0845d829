"""Live transcription module."""

from .base import AbstractTranscriptionClient
from .deepgram_backend import DeepgramLiveClient
from .session import TranscriptionSession

__all__ = [
    "AbstractTranscriptionClient",
    "DeepgramLiveClient",
    "TranscriptionSession",
]
