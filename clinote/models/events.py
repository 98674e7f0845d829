"""Tagged events emitted by a live transcription connection."""

from dataclasses import dataclass
from typing import Optional, Union

from .transcription import TranscriptFragment


@dataclass(frozen=True)
class ConnectionOpened:
    """The service accepted the connection."""


@dataclass(frozen=True)
class TranscriptReceived:
    """One transcript result, interim or final."""
    fragment: TranscriptFragment


@dataclass(frozen=True)
class StreamFailed:
    """The connection reported an error."""
    error: Exception


@dataclass(frozen=True)
class ConnectionClosed:
    """The connection ended."""
    code: Optional[int] = None
    reason: str = ""


TranscriptionEvent = Union[ConnectionOpened, TranscriptReceived, StreamFailed, ConnectionClosed]
