"""Clinical note generation module."""

from .gemini_engine import GeminiEngine
from .generator import CLINICAL_NOTE_PROMPT, GenerationEngine, NoteGenerator

__all__ = [
    "GeminiEngine",
    "GenerationEngine",
    "NoteGenerator",
    "CLINICAL_NOTE_PROMPT",
]
