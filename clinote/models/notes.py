"""Clinical note data model."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ClinicalNote:
    """Markdown clinical note returned by the generative-text service."""
    content: str
    model: str = ""
    generated_at: datetime = field(default_factory=datetime.now)
