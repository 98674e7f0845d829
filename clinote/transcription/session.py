"""Live transcription session: connection lifecycle as a small state machine."""

import asyncio
import logging
from typing import Callable, List, Optional

from .base import AbstractTranscriptionClient
from ..exceptions import ConnectionFailed, StreamError, TranscriptionError
from ..models.events import (
    ConnectionClosed,
    ConnectionOpened,
    StreamFailed,
    TranscriptionEvent,
    TranscriptReceived,
)
from ..models.transcription import TranscriptFragment, TranscriptionOptions, TranscriptionState

logger = logging.getLogger(__name__)

FragmentHandler = Callable[[TranscriptFragment], None]
ErrorHandler = Callable[[TranscriptionError], None]
CloseHandler = Callable[[ConnectionClosed], None]


class TranscriptionSession:
    """Owns one connection to the transcription service.

    States: IDLE -> CONNECTING -> OPEN -> CLOSING -> CLOSED, with ERRORED
    reachable from CONNECTING or OPEN. Every service event goes through
    ``handle_event``; events that do not fit the current state are dropped.
    There is no retry: an error ends the session.
    """

    def __init__(self, client: AbstractTranscriptionClient):
        self.client = client
        self.state = TranscriptionState.IDLE
        self.error: Optional[TranscriptionError] = None
        self.chunks_forwarded = 0
        self.dropped_chunks = 0

        self._fragment_handlers: List[FragmentHandler] = []
        self._error_handlers: List[ErrorHandler] = []
        self._close_handlers: List[CloseHandler] = []
        self._receiver: Optional[asyncio.Task] = None
        self._released = False

    def on_fragment(self, handler: FragmentHandler) -> None:
        self._fragment_handlers.append(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        self._error_handlers.append(handler)

    def on_close(self, handler: CloseHandler) -> None:
        """Register a callback for the service closing an open connection on its own."""
        self._close_handlers.append(handler)

    @property
    def is_open(self) -> bool:
        return self.state is TranscriptionState.OPEN

    async def open(self, options: TranscriptionOptions) -> None:
        """Connect to the service and start receiving events.

        Args:
            options: Recognition model, punctuation and interim-results settings

        Raises:
            ConnectionFailed: The connection could not be established
            asyncio.CancelledError: The attempt was cancelled; nothing is left open
            TranscriptionError: The session was already used
        """
        if self.state is not TranscriptionState.IDLE:
            raise TranscriptionError(f"Cannot open a session in state {self.state.value}")

        self._transition(TranscriptionState.CONNECTING)
        try:
            await self.client.connect(options)
        except ConnectionFailed as e:
            # The client cleans up after a failed connect
            self._released = True
            self.handle_event(StreamFailed(e))
            raise
        except asyncio.CancelledError:
            self._released = True
            if self.state is TranscriptionState.CONNECTING:
                self._transition(TranscriptionState.CLOSED)
            raise

        if self.state is not TranscriptionState.CONNECTING:
            logger.info("Session closed while connecting, releasing the new connection")
            await self._release_client()
            return

        self.handle_event(ConnectionOpened())
        self._receiver = asyncio.create_task(self._pump_events())

    def send(self, chunk: bytes) -> None:
        """Forward an audio chunk; silently dropped unless the session is open."""
        if self.state is not TranscriptionState.OPEN:
            self.dropped_chunks += 1
            logger.debug(f"Dropped {len(chunk)} byte chunk in state {self.state.value}")
            return
        self.client.send(chunk)
        self.chunks_forwarded += 1

    def handle_event(self, event: TranscriptionEvent) -> None:
        """Apply one service event to the state machine."""
        if isinstance(event, ConnectionOpened):
            if self.state is TranscriptionState.CONNECTING:
                self._transition(TranscriptionState.OPEN)
            else:
                self._ignore(event)

        elif isinstance(event, TranscriptReceived):
            if self.state is TranscriptionState.OPEN:
                for handler in list(self._fragment_handlers):
                    handler(event.fragment)
            else:
                self._ignore(event)

        elif isinstance(event, StreamFailed):
            if self.state in (TranscriptionState.CONNECTING, TranscriptionState.OPEN):
                was_open = self.state is TranscriptionState.OPEN
                error = event.error
                if not isinstance(error, TranscriptionError):
                    error = StreamError(str(error))
                self.error = error
                self._transition(TranscriptionState.ERRORED)
                logger.error(f"Transcription session failed: {error}")
                if was_open:
                    for handler in list(self._error_handlers):
                        handler(error)
            else:
                self._ignore(event)

        elif isinstance(event, ConnectionClosed):
            if self.state is TranscriptionState.OPEN:
                logger.warning(f"Transcription service closed the connection (code {event.code})")
                self._transition(TranscriptionState.CLOSED)
                for handler in list(self._close_handlers):
                    handler(event)
            elif self.state is TranscriptionState.CLOSING:
                self._transition(TranscriptionState.CLOSED)
            else:
                self._ignore(event)

        else:
            raise TypeError(f"Unknown transcription event: {event!r}")

    async def close(self) -> None:
        """Send end-of-stream and release the connection. Idempotent."""
        if self.state is TranscriptionState.OPEN:
            self._transition(TranscriptionState.CLOSING)
            self._stop_receiver()
            await self._release_client()
            self._transition(TranscriptionState.CLOSED)
        elif self.state in (TranscriptionState.IDLE, TranscriptionState.CONNECTING):
            # open() releases the connection if connect() is still in flight
            self._transition(TranscriptionState.CLOSED)
        else:
            self._stop_receiver()
            await self._release_client()

    async def _pump_events(self) -> None:
        try:
            async for event in self.client.events():
                self.handle_event(event)
                if self.state is not TranscriptionState.OPEN:
                    break
            else:
                self.handle_event(ConnectionClosed())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error receiving transcription events: {e!r}", exc_info=True)
            self.handle_event(StreamFailed(e))

    def _stop_receiver(self) -> None:
        receiver = self._receiver
        if receiver is not None and not receiver.done() and receiver is not asyncio.current_task():
            receiver.cancel()

    async def _release_client(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self.client.finish()
        except Exception as e:
            logger.warning(f"Error while closing transcription connection: {e!r}")

    def _transition(self, new_state: TranscriptionState) -> None:
        logger.debug(f"Transcription session {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _ignore(self, event: TranscriptionEvent) -> None:
        logger.debug(f"Ignoring {type(event).__name__} in state {self.state.value}")
