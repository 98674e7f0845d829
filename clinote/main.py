"""Main application entry point for the clinical note assistant."""

import sys
import asyncio
import argparse
import logging
from concurrent.futures import Future
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from . import __version__
from .config import ClinicalNoteConfig
from .services import SessionController, SessionStatePublisher
from .ui import NoteScreen, create_input_handler

logger = logging.getLogger(__name__)

QUIT_KEYS = ("q", "\x03")


class Application:
    """Wires configuration, controller and terminal UI around one event loop."""

    def __init__(self, config_path: Optional[str] = None, log_level: Optional[str] = None):
        self.config = ClinicalNoteConfig(config_path)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))

        self.publisher = SessionStatePublisher()
        self.controller = SessionController.from_config(self.config, self.publisher)
        self.screen = NoteScreen(self.publisher)

        self._actions: Dict[str, Callable[[], Awaitable]] = {
            "1": self.controller.start_recording,
            "2": self.controller.stop_recording,
            "3": self.controller.request_note_generation,
        }
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._quit: Optional[asyncio.Event] = None

    def run(self) -> None:
        asyncio.run(self._run())

    async def _run(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._quit = asyncio.Event()
        input_handler = create_input_handler(self.on_key)

        self.screen.start()
        input_handler.start()
        try:
            await self._quit.wait()
        finally:
            input_handler.stop()
            await self.controller.shutdown()
            self.screen.stop()
            logger.info("Application stopped")

    def on_key(self, key: str) -> bool:
        """Dispatch a key press from the keyboard thread onto the event loop.

        Returns:
            False when the application should quit
        """
        if key in QUIT_KEYS:
            self._loop.call_soon_threadsafe(self._quit.set)
            return False

        action = self._actions.get(key)
        if action is None:
            return True
        future = asyncio.run_coroutine_threadsafe(action(), self._loop)
        future.add_done_callback(_log_action_failure)
        return True


def _log_action_failure(future: Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Action failed: {error!r}", exc_info=error)


def setup_logging(config: ClinicalNoteConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/clinote.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("Clinical note assistant starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for the clinical note assistant."""
    parser = argparse.ArgumentParser(
        description="clinote - live transcription to clinical notes",
        epilog="Keys: 1=Start recording, 2=Stop recording, 3=Generate note, q=Quit. "
               "Credentials are read from DEEPGRAM_API_KEY and GEMINI_API_KEY."
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"clinote v{__version__}"
    )

    args = parser.parse_args()

    try:
        app = Application(args.config, args.log_level)
        app.run()
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
