"""Microphone capture module."""

from .capture import AudioCapture

__all__ = [
    'AudioCapture',
]
