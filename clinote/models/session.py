"""Observable state of the recording session."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from .notes import ClinicalNote
from .transcription import TranscriptFragment


class SessionStatus(Enum):
    """Recording lifecycle as seen by the presentation layer."""
    IDLE = "idle"
    CONNECTING = "connecting"
    RECORDING = "recording"
    STOPPING = "stopping"
    FINISHED = "finished"
    ERRORED = "errored"

    @property
    def is_active(self) -> bool:
        return self in (SessionStatus.CONNECTING, SessionStatus.RECORDING, SessionStatus.STOPPING)


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of everything the UI renders.

    The session controller is the only writer; every change produces a new
    snapshot which is published to subscribers.
    """
    status: SessionStatus = SessionStatus.IDLE
    message: str = "Idle"
    fragments: Tuple[TranscriptFragment, ...] = ()
    live_transcript: str = ""
    final_transcript: str = ""
    note: Optional[ClinicalNote] = None
    generating_note: bool = False

    @property
    def is_recording(self) -> bool:
        return self.status.is_active

    def with_fragment(self, fragment: TranscriptFragment) -> "SessionState":
        """Return a snapshot with the fragment appended to the transcripts.

        Fragments without text are ignored. Every fragment lands on the live
        transcript; only final ones land on the final transcript.
        """
        if not fragment.text:
            return self
        final_transcript = self.final_transcript
        if fragment.is_final:
            final_transcript += fragment.text + " "
        return replace(
            self,
            fragments=self.fragments + (fragment,),
            live_transcript=self.live_transcript + fragment.text + " ",
            final_transcript=final_transcript,
        )

    def update(self, **changes) -> "SessionState":
        return replace(self, **changes)
