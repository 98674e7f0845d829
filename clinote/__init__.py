"""Clinical note assistant: live transcription and LLM-written clinical notes."""

__version__ = "0.1.0"
