"""Terminal screen showing status, live transcript and the generated clinical note."""

import logging
from typing import Optional

from rich.align import Align
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from ..models.session import SessionState, SessionStatus
from ..services.state_publisher import SessionStatePublisher

logger = logging.getLogger(__name__)

_STATUS_STYLES = {
    SessionStatus.IDLE: "bold white",
    SessionStatus.CONNECTING: "bold yellow",
    SessionStatus.RECORDING: "bold red",
    SessionStatus.STOPPING: "bold yellow",
    SessionStatus.FINISHED: "bold green",
    SessionStatus.ERRORED: "bold red reverse",
}


class NoteScreen:
    """Redraws the terminal whenever a new session state is published."""

    def __init__(self, publisher: SessionStatePublisher, console: Optional[Console] = None):
        self.console = console or Console()
        self.publisher = publisher
        self.state = SessionState()
        self.live: Optional[Live] = None

    def start(self) -> None:
        self.publisher.subscribe(self.on_state)
        self.live = Live(self.render(self.state), console=self.console,
                         refresh_per_second=4, screen=False)
        self.live.start()
        logger.info("NoteScreen started")

    def stop(self) -> None:
        self.publisher.unsubscribe(self.on_state)
        if self.live is not None:
            self.live.stop()
            self.live = None
        logger.info("NoteScreen stopped")

    def on_state(self, state: SessionState) -> None:
        self.state = state
        if self.live is not None:
            self.live.update(self.render(state))

    def render(self, state: SessionState) -> Layout:
        """Build the full screen layout for a state snapshot."""
        layout = Layout()
        layout.split_column(
            Layout(self._header(state), name="header", size=3),
            Layout(name="main", ratio=1),
            Layout(self._footer(state), name="footer", size=3),
        )
        layout["main"].split_row(
            Layout(self._transcript_panel(state), name="transcript", ratio=1),
            Layout(self._note_panel(state), name="note", ratio=1),
        )
        return layout

    def _header(self, state: SessionState) -> Panel:
        header_text = Text.assemble(
            ("Clinical Note Assistant", "bold blue"),
            "  |  ",
            (state.message, _STATUS_STYLES.get(state.status, "bold")),
        )
        return Panel(Align.center(header_text), style="bright_blue")

    def _transcript_panel(self, state: SessionState) -> Panel:
        if state.live_transcript:
            body = Text(state.live_transcript, style="white")
        else:
            body = Text("Press 1 to start recording", style="dim white italic")
        final_words = len(state.final_transcript.split())
        return Panel(body, title="Live Transcription",
                     subtitle=f"{final_words} final words", border_style="blue")

    def _note_panel(self, state: SessionState):
        if state.generating_note:
            body = Text("Generating clinical note...", style="yellow italic")
        elif state.note is not None:
            body = Markdown(state.note.content)
        else:
            body = Text("No note yet", style="dim white italic")
        return Panel(body, title="Clinical Note", border_style="green")

    def _footer(self, state: SessionState) -> Panel:
        can_generate = (not state.is_recording and not state.generating_note
                        and bool(state.final_transcript.strip()))
        controls = Text.assemble(
            ("Controls: ", "bold"),
            ("1", "bold green"), " Start Recording  ",
            ("2", "bold yellow"), " Stop Recording  ",
            ("3", "bold cyan" if can_generate else "dim"), " Generate Note  ",
            ("Q", "bold red"), " Quit",
        )
        return Panel(Align.center(controls), style="bright_black")
