"""Abstract base class for live transcription service clients."""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from ..models.events import TranscriptionEvent
from ..models.transcription import TranscriptionOptions


class AbstractTranscriptionClient(ABC):
    """One streaming connection to a live transcription service.

    Implementations must keep ``send`` non-blocking and deliver chunks in the
    order they were handed over.
    """

    @abstractmethod
    async def connect(self, options: TranscriptionOptions) -> None:
        """Open the connection.

        Raises:
            ConnectionFailed: The service could not be reached or refused us
        """

    @abstractmethod
    def send(self, chunk: bytes) -> None:
        """Queue a raw audio chunk for delivery."""

    @abstractmethod
    def events(self) -> AsyncIterator[TranscriptionEvent]:
        """Iterate over events received from the service until the connection ends."""

    @abstractmethod
    async def finish(self) -> None:
        """Signal end-of-stream and release the connection. Idempotent."""
