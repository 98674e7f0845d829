"""Data models for the clinical note assistant."""

from .audio import AudioChunk, AudioStats
from .events import (
    ConnectionClosed,
    ConnectionOpened,
    StreamFailed,
    TranscriptionEvent,
    TranscriptReceived,
)
from .notes import ClinicalNote
from .session import SessionState, SessionStatus
from .transcription import TranscriptFragment, TranscriptionOptions, TranscriptionState

__all__ = [
    "AudioChunk",
    "AudioStats",
    "ConnectionOpened",
    "TranscriptReceived",
    "StreamFailed",
    "ConnectionClosed",
    "TranscriptionEvent",
    "ClinicalNote",
    "SessionState",
    "SessionStatus",
    "TranscriptFragment",
    "TranscriptionOptions",
    "TranscriptionState",
]
