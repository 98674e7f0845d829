"""Transcription-related data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class TranscriptionState(Enum):
    """Lifecycle of one connection to the transcription service."""
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass(frozen=True)
class TranscriptFragment:
    """A piece of text attributed to one transcription event."""
    text: str
    is_final: bool
    confidence: Optional[float] = None
    start: Optional[float] = None     # Seconds from stream start
    duration: Optional[float] = None  # Seconds of audio covered


@dataclass(frozen=True)
class TranscriptionOptions:
    """Settings sent to the live transcription service when connecting."""
    model: str = "nova-2"
    punctuate: bool = True
    interim_results: bool = True
    language: Optional[str] = None
    # Raw PCM from the capture adapter
    encoding: str = "linear16"
    sample_rate: int = 16000
    channels: int = 1

    def to_query_params(self) -> Dict[str, str]:
        """Render the options as query string values for the live endpoint."""
        params = {
            "model": self.model,
            "punctuate": _flag(self.punctuate),
            "interim_results": _flag(self.interim_results),
            "encoding": self.encoding,
            "sample_rate": str(self.sample_rate),
            "channels": str(self.channels),
        }
        if self.language:
            params["language"] = self.language
        return params


def _flag(value: bool) -> str:
    return "true" if value else "false"
