"""Terminal user interface."""

from .keyboard_input import create_input_handler
from .note_screen import NoteScreen

__all__ = [
    "create_input_handler",
    "NoteScreen",
]
