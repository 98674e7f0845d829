"""Pytest configuration and fixtures for clinote tests."""

import asyncio
import logging
import time
import uuid
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np
import pytest

from clinote.exceptions import ConnectionFailed
from clinote.models.audio import AudioChunk, AudioStats
from clinote.models.events import TranscriptReceived
from clinote.models.transcription import TranscriptFragment
from clinote.transcription.base import AbstractTranscriptionClient


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without I/O")
    config.addinivalue_line("markers", "integration: tests wiring several components together")
    config.addinivalue_line("markers", "slow: tests that take more than a second")


class FakeTranscriptionClient(AbstractTranscriptionClient):
    """In-memory stand-in for the live transcription service.

    Tests push events with ``emit`` and inspect what the session sent.
    """

    def __init__(self, fail_connect: bool = False):
        self.fail_connect = fail_connect
        self.connect_gate: Optional[asyncio.Event] = None
        self.options = None
        self.connect_calls = 0
        self.finish_calls = 0
        self.connected = False
        self.connect_cancelled = False
        self.sent: List[bytes] = []
        self._queue: Optional[asyncio.Queue] = None

    async def connect(self, options) -> None:
        self.connect_calls += 1
        self.options = options
        if self.connect_gate is not None:
            try:
                await self.connect_gate.wait()
            except asyncio.CancelledError:
                self.connect_cancelled = True
                raise
        if self.fail_connect:
            raise ConnectionFailed("connection refused")
        self._queue = asyncio.Queue()
        self.connected = True

    def send(self, chunk: bytes) -> None:
        self.sent.append(chunk)

    async def events(self):
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def finish(self) -> None:
        self.finish_calls += 1
        if self._queue is not None:
            self._queue.put_nowait(None)

    def emit(self, event) -> None:
        self._queue.put_nowait(event)

    def emit_fragment(self, text: str, is_final: bool) -> None:
        self.emit(TranscriptReceived(TranscriptFragment(text=text, is_final=is_final)))

    def end_stream(self) -> None:
        """Simulate the service closing the stream on its own."""
        self._queue.put_nowait(None)


class FakeAudioCapture:
    """Microphone stand-in; ``emit`` delivers a chunk as the capture thread would."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.is_recording = False
        self.start_calls = 0
        self.stop_calls = 0
        self.releases = 0
        self.total_chunks = 0
        self._chunk_handlers = []
        self._error_handlers = []

    def on_chunk(self, handler) -> None:
        self._chunk_handlers.append(handler)

    def on_error(self, handler) -> None:
        self._error_handlers.append(handler)

    def start(self) -> None:
        self.start_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.is_recording = True

    def stop(self) -> None:
        self.stop_calls += 1
        if not self.is_recording:
            return
        self.is_recording = False
        self.releases += 1

    def emit(self, data: bytes) -> None:
        if not self.is_recording:
            return
        self.total_chunks += 1
        chunk = AudioChunk(data=data, sequence_number=self.total_chunks, timestamp=time.time())
        for handler in list(self._chunk_handlers):
            handler(chunk)

    def fail(self, error: Exception) -> None:
        self.is_recording = False
        for handler in list(self._error_handlers):
            handler(error)

    def get_recording_stats(self) -> AudioStats:
        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=0.0,
            sample_rate=16000,
            chunk_size=4000,
            total_chunks=self.total_chunks,
            peak_level=0.0,
        )


class FakeGenerationEngine:
    """Generation engine returning a canned response or raising a canned error."""

    model = "fake-model"

    def __init__(self, response=None, error: Optional[Exception] = None):
        self.response = response if response is not None else gemini_response("## Clinical Note")
        self.error = error
        self.prompts: List[str] = []
        self.release: Optional[asyncio.Event] = None

    async def generate_content(self, prompt: str):
        self.prompts.append(prompt)
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.response


def gemini_response(*texts: str) -> dict:
    """Build a generateContent response whose first candidate holds the given parts."""
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": text} for text in texts], "role": "model"},
                "finishReason": "STOP",
            }
        ]
    }


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Let pending callbacks and tasks on the running loop run."""
    return _settle


@pytest.fixture
def fake_client():
    return FakeTranscriptionClient()


@pytest.fixture
def fake_capture():
    return FakeAudioCapture()


@pytest.fixture
def fake_engine():
    return FakeGenerationEngine()


@pytest.fixture
def make_gemini_response():
    return gemini_response


@pytest.fixture
def make_fake_client():
    return FakeTranscriptionClient


@pytest.fixture
def make_fake_engine():
    return FakeGenerationEngine


@pytest.fixture
def make_fake_capture():
    return FakeAudioCapture


@pytest.fixture
def unique_topic():
    """A pub/sub topic name no other test uses."""
    return f"test_{uuid.uuid4().hex}"


@pytest.fixture
def sample_audio_chunk():
    """Generate a 250 ms sample audio chunk for testing."""
    sample_rate = 16000
    samples = 4000
    freq = 440  # A4 note

    t = np.linspace(0, samples / sample_rate, samples, False)
    wave_data = np.sin(2 * np.pi * freq * t) * 0.5

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        def read(frames, exception_on_overflow=True):
            # Pace reads like a real device would
            time.sleep(0.002)
            return b'\x00\x00' * frames

        # Configure mock stream
        mock_stream.read.side_effect = read
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {"index": 0}

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }
