"""Audio-related data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AudioChunk:
    """A fixed-interval slice of raw microphone audio."""
    data: bytes
    sequence_number: int
    timestamp: float  # Time when this chunk was captured
    peak_level: float = 0.0  # 0.0 to 1.0

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int
    peak_level: float
