"""Clinical note generation from an accumulated transcript."""

import logging
import time
from typing import Any, Dict, Protocol

from ..exceptions import EmptyInput, EmptyResponse, RequestFailed
from ..models.notes import ClinicalNote

logger = logging.getLogger(__name__)

CLINICAL_NOTE_PROMPT = (
    "Based on the following patient-provider conversation transcript, "
    "generate a professional clinical note. Transcript: \"{transcript}\""
)


class GenerationEngine(Protocol):
    """Protocol for engines that turn a prompt into a generateContent-style response."""

    model: str

    async def generate_content(self, prompt: str) -> Dict[str, Any]:
        """Send a prompt to the engine and get the raw response."""
        ...


class NoteGenerator:
    """Turns a transcript into a clinical note with a single, non-retried request."""

    def __init__(self, engine: GenerationEngine):
        """Initialize note generator.

        Args:
            engine: Generation engine that implements the GenerationEngine protocol
        """
        self.engine = engine
        logger.info("NoteGenerator initialized")

    def build_prompt(self, transcript_text: str) -> str:
        return CLINICAL_NOTE_PROMPT.format(transcript=transcript_text)

    async def generate(self, transcript_text: str) -> ClinicalNote:
        """Generate a clinical note from the transcript.

        Args:
            transcript_text: Final transcript of the patient-provider conversation

        Returns:
            ClinicalNote holding the markdown text of the first candidate

        Raises:
            EmptyInput: The transcript is empty; no request is made
            RequestFailed: The request failed in transport or at the service
            EmptyResponse: The service returned no usable candidate
        """
        if not transcript_text or not transcript_text.strip():
            raise EmptyInput("Transcript is empty, nothing to generate a note from")

        prompt = self.build_prompt(transcript_text)
        start_time = time.time()
        try:
            response = await self.engine.generate_content(prompt)
        except RequestFailed:
            raise
        except Exception as e:
            raise RequestFailed(f"Note generation request failed: {e!r}") from e

        content = _first_candidate_text(response)
        logger.info(f"Clinical note generated: {len(content)} chars "
                    f"in {time.time() - start_time:.2f}s")
        return ClinicalNote(content=content, model=getattr(self.engine, "model", ""))


def _first_candidate_text(response: Dict[str, Any]) -> str:
    if not isinstance(response, dict):
        raise EmptyResponse("Unexpected response from the generative-text service")

    candidates = response.get("candidates")
    if candidates is not None and not isinstance(candidates, list):
        raise EmptyResponse("Malformed candidates in service response")
    if not candidates:
        feedback = response.get("promptFeedback")
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if block_reason:
            raise EmptyResponse(f"Prompt was blocked: {block_reason}")
        raise EmptyResponse("Service returned no candidates")

    first = candidates[0]
    if not isinstance(first, dict):
        raise EmptyResponse("First candidate is malformed")
    content = first.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        parts = []
    text = "".join(part["text"] for part in parts
                   if isinstance(part, dict) and isinstance(part.get("text"), str))
    if not text.strip():
        finish_reason = first.get("finishReason", "unknown")
        raise EmptyResponse(f"First candidate has no text (finish reason: {finish_reason})")
    return text
