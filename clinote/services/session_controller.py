"""Session controller: coordinates capture, live transcription and note generation."""

import asyncio
import logging
from typing import Callable, Optional, Set

from ..audio.capture import AudioCapture
from ..config import ClinicalNoteConfig
from ..exceptions import (
    AudioCaptureError,
    ConfigurationError,
    ConnectionFailed,
    EmptyInput,
    EmptyResponse,
    NoteGenerationError,
    PermissionDenied,
    TranscriptionError,
)
from ..models.audio import AudioChunk, AudioStats
from ..models.events import ConnectionClosed
from ..models.notes import ClinicalNote
from ..models.session import SessionState, SessionStatus
from ..models.transcription import TranscriptFragment, TranscriptionOptions
from ..notes import GeminiEngine, NoteGenerator
from ..notes.gemini_engine import DEFAULT_BASE_URL
from ..transcription import AbstractTranscriptionClient, DeepgramLiveClient, TranscriptionSession
from ..transcription.deepgram_backend import DEFAULT_LIVE_URL
from .state_publisher import SessionStatePublisher

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], AbstractTranscriptionClient]
CaptureFactory = Callable[[], AudioCapture]


class SessionController:
    """Single owner of the recording session and of the state the UI observes.

    At most one transcription connection and one microphone stream exist at a
    time. Each recording attempt gets a generation number; callbacks carrying
    an older number are ignored, so nothing from a stopped session can touch
    the current state.
    """

    def __init__(self,
                 transcription_client_factory: Optional[ClientFactory],
                 audio_capture_factory: CaptureFactory,
                 note_generator: Optional[NoteGenerator],
                 options: Optional[TranscriptionOptions] = None,
                 publisher: Optional[SessionStatePublisher] = None,
                 auto_generate_note: bool = False):
        """Initialize session controller.

        Args:
            transcription_client_factory: Builds a fresh service client per session,
                None when the transcription service is not configured
            audio_capture_factory: Builds a fresh microphone capture per session
            note_generator: Clinical note generator, None when not configured
            options: Connection options for the transcription service
            publisher: Channel receiving every new state snapshot
            auto_generate_note: Generate a note as soon as recording stops
        """
        self._client_factory = transcription_client_factory
        self._capture_factory = audio_capture_factory
        self._note_generator = note_generator
        self._options = options or TranscriptionOptions()
        self._publisher = publisher
        self._auto_generate_note = auto_generate_note

        self._state = SessionState()
        self._generation = 0
        self._session: Optional[TranscriptionSession] = None
        self._capture: Optional[AudioCapture] = None
        self._opening: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._background: Set[asyncio.Task] = set()

        self.last_error: Optional[Exception] = None

        logger.info("SessionController initialized")

    @classmethod
    def from_config(cls,
                    config: ClinicalNoteConfig,
                    publisher: Optional[SessionStatePublisher] = None) -> "SessionController":
        """Build a controller with the Deepgram, Gemini and microphone backends.

        A component whose credential is missing is left unconfigured; the
        controller then reports it through the state message instead of running.
        """
        client_factory = None
        if config.has_transcription_api_key():
            api_key = config.get_transcription_api_key()
            url = config.get('transcription.url', DEFAULT_LIVE_URL) or DEFAULT_LIVE_URL
            connect_timeout = float(config.get('transcription.connect_timeout', 10.0))

            def client_factory() -> AbstractTranscriptionClient:
                return DeepgramLiveClient(api_key, url=url, connect_timeout=connect_timeout)
        else:
            logger.warning(f"{config.get('transcription.api_key_env')} is not set. "
                           "Recording is disabled until it is configured.")

        note_generator = None
        if config.has_notes_api_key():
            engine = GeminiEngine(
                api_key=config.get_notes_api_key(),
                model=config.get('notes.model', 'gemini-2.5-flash'),
                base_url=config.get('notes.base_url', DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
            )
            note_generator = NoteGenerator(engine)
        else:
            logger.warning(f"{config.get('notes.api_key_env')} is not set. "
                           "Note generation is disabled until it is configured.")

        def capture_factory() -> AudioCapture:
            return AudioCapture(
                sample_rate=config.get('audio.sample_rate', 16000),
                channels=config.get('audio.channels', 1),
                chunk_interval_ms=config.get('audio.chunk_interval_ms', 250),
                device_index=config.get('audio.device_index'),
            )

        return cls(
            transcription_client_factory=client_factory,
            audio_capture_factory=capture_factory,
            note_generator=note_generator,
            options=config.transcription_options(),
            publisher=publisher,
            auto_generate_note=bool(config.get('notes.auto_generate', False)),
        )

    @property
    def state(self) -> SessionState:
        return self._state

    def get_recording_stats(self) -> Optional[AudioStats]:
        capture = self._capture
        return capture.get_recording_stats() if capture else None

    async def start_recording(self) -> None:
        """Open a transcription session and, once it is open, start the microphone."""
        if self._state.is_recording:
            logger.warning("Recording already in progress")
            return

        self._loop = asyncio.get_running_loop()
        self._generation += 1
        token = self._generation
        self.last_error = None
        self._set_state(SessionState(
            status=SessionStatus.CONNECTING,
            message="Connecting to transcription service...",
            generating_note=self._state.generating_note,
        ))

        if self._client_factory is None:
            self._fail(ConfigurationError("Transcription service credential is missing"),
                       "Transcription service is not configured.")
            return

        session = TranscriptionSession(self._client_factory())
        session.on_fragment(lambda fragment: self._on_fragment(token, fragment))
        session.on_error(lambda error: self._on_transcription_error(token, error))
        session.on_close(lambda event: self._on_remote_close(token, event))
        self._session = session

        # Held so that stop_recording can abort a handshake still in flight
        opening = asyncio.ensure_future(session.open(self._options))
        self._opening = opening
        try:
            await opening
        except asyncio.CancelledError:
            if not opening.cancelled() or token == self._generation:
                raise
            logger.info("Connection attempt aborted by stop")
            return
        except ConnectionFailed as e:
            if token == self._generation:
                self._session = None
                self._fail(e, "Failed to connect to transcription service.")
            return
        finally:
            if self._opening is opening:
                self._opening = None

        if token != self._generation or not session.is_open:
            logger.info("Recording was stopped while connecting")
            return

        capture = self._capture_factory()
        capture.on_chunk(lambda chunk: self._loop.call_soon_threadsafe(self._forward_chunk, token, chunk))
        capture.on_error(lambda error: self._loop.call_soon_threadsafe(self._on_capture_error, token, error))
        try:
            capture.start()
        except AudioCaptureError as e:
            self._session = None
            self._fail(e, _capture_error_message(e))
            await session.close()
            return

        self._capture = capture
        self._update(status=SessionStatus.RECORDING, message="Recording...")
        logger.info("Recording started")

    async def stop_recording(self) -> None:
        """Stop the microphone and close the connection. Idempotent."""
        capture, self._capture = self._capture, None
        session, self._session = self._session, None
        opening, self._opening = self._opening, None
        if capture is None and session is None:
            logger.debug("Nothing to stop")
            return

        # Anything still in flight for this session is stale from here on
        self._generation += 1
        if opening is not None and not opening.done():
            opening.cancel()
        if capture is not None:
            capture.stop()

        if self._state.status is not SessionStatus.ERRORED:
            self._update(status=SessionStatus.STOPPING, message="Stopping transcription...")
        if session is not None:
            await session.close()
        if self._state.status is not SessionStatus.ERRORED:
            self._update(status=SessionStatus.FINISHED, message="Transcription finished.")
        logger.info("Recording stopped")

        if self._auto_generate_note and self._state.final_transcript.strip():
            await self.request_note_generation()

    async def request_note_generation(self) -> Optional[ClinicalNote]:
        """Generate a clinical note from the final transcript.

        Returns:
            The new note, or None when the request was refused or failed
        """
        if self._state.is_recording:
            logger.warning("Cannot generate a note while recording")
            return None
        if self._state.generating_note:
            logger.warning("Note generation already in progress")
            return None
        if self._note_generator is None:
            self.last_error = ConfigurationError("Note generation credential is missing")
            self._update(message="Note generation is not configured.")
            return None

        token = self._generation
        self._update(generating_note=True, message="Generating clinical note...")
        try:
            note = await self._note_generator.generate(self._state.final_transcript)
        except NoteGenerationError as e:
            self.last_error = e
            logger.error(f"Note generation failed: {e}")
            self._update(generating_note=False, message=_note_error_message(e))
            return None
        except BaseException:
            # Cancellation or an unexpected failure must not leave the flag set
            self._update(generating_note=False, message="Error generating note.")
            raise

        if token != self._generation:
            logger.info("Discarding clinical note generated for a previous session")
            self._update(generating_note=False)
            return None

        self.last_error = None
        self._update(generating_note=False, note=note, message="Clinical note generated!")
        return note

    async def shutdown(self) -> None:
        """Stop any recording and wait for pending cleanup."""
        await self.stop_recording()
        await self.wait_for_background_tasks()

    async def wait_for_background_tasks(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _forward_chunk(self, token: int, chunk: AudioChunk) -> None:
        if token != self._generation or self._session is None:
            return
        self._session.send(chunk.data)

    def _on_fragment(self, token: int, fragment: TranscriptFragment) -> None:
        if token != self._generation:
            return
        new_state = self._state.with_fragment(fragment)
        if new_state is not self._state:
            self._set_state(new_state)

    def _on_transcription_error(self, token: int, error: TranscriptionError) -> None:
        if token != self._generation:
            return
        self._abort(error, SessionStatus.ERRORED, "Transcription connection error.")

    def _on_remote_close(self, token: int, event: ConnectionClosed) -> None:
        if token != self._generation:
            return
        logger.info(f"Transcription service ended the session (code {event.code})")
        self._abort(None, SessionStatus.FINISHED, "Transcription finished.")

    def _on_capture_error(self, token: int, error: AudioCaptureError) -> None:
        if token != self._generation:
            return
        self._abort(error, SessionStatus.ERRORED, _capture_error_message(error))

    def _abort(self, error: Optional[Exception], status: SessionStatus, message: str) -> None:
        """Fail-stop: stop the microphone now, release the connection in the background."""
        self._generation += 1
        capture, self._capture = self._capture, None
        session, self._session = self._session, None
        if capture is not None:
            capture.stop()

        if error is not None:
            self.last_error = error
            logger.error(f"{message} {error}")
        self._update(status=status, message=message)

        if session is not None:
            task = asyncio.get_running_loop().create_task(session.close())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def _fail(self, error: Exception, message: str) -> None:
        self.last_error = error
        logger.error(f"{message} {error}")
        self._update(status=SessionStatus.ERRORED, message=message)

    def _update(self, **changes) -> None:
        self._set_state(self._state.update(**changes))

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        if self._publisher is not None:
            self._publisher.publish(state)


def _capture_error_message(error: AudioCaptureError) -> str:
    if isinstance(error, PermissionDenied):
        return "Microphone access was denied."
    return "Error accessing microphone."


def _note_error_message(error: NoteGenerationError) -> str:
    if isinstance(error, EmptyInput):
        return "Nothing to summarise: the final transcript is empty."
    if isinstance(error, EmptyResponse):
        return "Failed to generate note."
    return "Error generating note."
