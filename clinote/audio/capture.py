"""Microphone capture that emits fixed-interval audio chunks."""

import errno
import time
import logging
from threading import Thread, Event, RLock, current_thread
from typing import Optional, List, Callable
from datetime import datetime

import numpy as np
import pyaudio

from ..exceptions import DeviceUnavailable, PermissionDenied
from ..models.audio import AudioChunk, AudioStats


logger = logging.getLogger(__name__)

ChunkHandler = Callable[[AudioChunk], None]
ErrorHandler = Callable[[Exception], None]


class AudioCapture:
    """Continuous microphone capture delivering one chunk per interval to its handlers.

    The device is opened by ``start()`` on the caller's thread so that
    permission and device problems surface immediately, then read on a
    background thread. The device is released exactly once, by whichever
    path ends the capture.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_interval_ms: int = 250,
        device_index: Optional[int] = None,
        format: int = pyaudio.paInt16,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            sample_rate: Audio sample rate in Hz
            channels: Number of audio channels (1 for mono)
            chunk_interval_ms: Duration of each emitted chunk in milliseconds
            device_index: PyAudio input device, None for the default device
            format: Audio sample format (16-bit signed int)
        """
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_interval_ms = chunk_interval_ms
        self.chunk_size = max(1, int(sample_rate * chunk_interval_ms / 1000))
        # stop() runs on the event loop, so wait at most one blocking read
        self.stop_timeout = chunk_interval_ms / 1000 + 0.05
        self.device_index = device_index
        self.format = format

        self._chunk_handlers: List[ChunkHandler] = []
        self._error_handlers: List[ErrorHandler] = []

        # Held while handlers run so stop() cannot return mid-delivery
        self._handler_lock = RLock()
        self._release_lock = RLock()

        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False

        self.start_time: Optional[datetime] = None
        self.total_chunks = 0
        self.peak_level = 0.0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream: Optional[pyaudio.Stream] = None

    def on_chunk(self, handler: ChunkHandler) -> None:
        """Register a callback invoked once per captured chunk."""
        self._chunk_handlers.append(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        """Register a callback invoked if reading from the device fails."""
        self._error_handlers.append(handler)

    def start(self) -> None:
        """Open the microphone and start emitting chunks in a background thread.

        Raises:
            PermissionDenied: The host refused access to the microphone
            DeviceUnavailable: No input device could be opened
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        logger.info("Starting audio capture")
        self.stream = self.__open_audio_stream()

        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_chunks = 0
        self.peak_level = 0.0
        self.is_recording = True

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.recording_thread.start()

    def stop(self) -> None:
        """Stop capturing and release the device. Safe to call repeatedly."""
        with self._handler_lock:
            if not self.is_recording:
                logger.debug("Audio capture already stopped")
                return
            self.stop_event.set()
            self.is_recording = False

        logger.info("Stopping audio capture")
        thread = self.recording_thread
        if thread and thread.is_alive() and thread is not current_thread():
            thread.join(timeout=self.stop_timeout)
            if thread.is_alive():
                logger.warning("Audio capture thread still reading, it releases the device on exit")

        logger.info(f"Audio capture stopped. Total chunks: {self.total_chunks}")

    def __open_audio_stream(self) -> pyaudio.Stream:
        self.pyaudio_instance = pyaudio.PyAudio()
        try:
            if self.device_index is None:
                # Raises IOError when the host has no input device at all
                self.pyaudio_instance.get_default_input_device_info()
            stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=self.chunk_size,
                stream_callback=None
            )
        except OSError as e:
            self._terminate_pyaudio()
            if e.errno in (errno.EACCES, errno.EPERM):
                raise PermissionDenied(f"Microphone access denied: {e}") from e
            raise DeviceUnavailable(f"Could not open input device: {e}") from e

        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk ({self.chunk_interval_ms}ms)")
        return stream

    def __read_audio_chunk(self) -> AudioChunk:
        data = self.stream.read(self.chunk_size, exception_on_overflow=False)
        self.total_chunks += 1
        peak = _peak_level(data) if self.format == pyaudio.paInt16 else 0.0
        self.peak_level = peak
        return AudioChunk(
            data=data,
            sequence_number=self.total_chunks,
            timestamp=time.time(),
            peak_level=peak,
        )

    def _record_continuously(self) -> None:
        """Internal method: read loop running in the background thread."""
        try:
            while not self.stop_event.is_set():
                chunk = self.__read_audio_chunk()
                with self._handler_lock:
                    if self.stop_event.is_set():
                        break
                    for handler in list(self._chunk_handlers):
                        handler(chunk)
        except Exception as e:
            logger.error(f"Audio capture failed: {e}", exc_info=True)
            with self._handler_lock:
                self.is_recording = False
                self.stop_event.set()
            for handler in list(self._error_handlers):
                handler(DeviceUnavailable(f"Audio capture failed: {e}"))
        finally:
            self._release_device()

    def _release_device(self) -> None:
        with self._release_lock:
            if self.stream is not None:
                try:
                    self.stream.stop_stream()
                    self.stream.close()
                finally:
                    self.stream = None
                    logger.debug("Audio stream closed")
            self._terminate_pyaudio()

    def _terminate_pyaudio(self) -> None:
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
            peak_level=self.peak_level,
        )

    def __enter__(self) -> "AudioCapture":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if getattr(self, "is_recording", False):
            self.stop()


def _peak_level(data: bytes) -> float:
    samples = np.frombuffer(data, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    return float(np.abs(samples.astype(np.int32)).max()) / 32768.0