"""Cross-platform keyboard input handling for the terminal UI."""

import sys
import threading
import time
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)

KeyCallback = Callable[[str], bool]


class KeyboardInputHandler:
    """Read single key presses on a background thread and hand them to a callback."""

    def __init__(self, callback: KeyCallback, poll_interval: float = 0.05):
        """Initialize keyboard handler.

        Args:
            callback: Called on the input thread with each lower-cased key;
                returns True to keep reading, False to quit
            poll_interval: Pause between reads in seconds
        """
        self.callback = callback
        self.poll_interval = poll_interval
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._read_keys, daemon=True)
        self.thread.name = "KeyboardInputThread"
        self.thread.start()
        logger.info(f"{type(self).__name__} started")

    def stop(self) -> None:
        self.running = False
        # A quit key stops the loop from inside the thread itself
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info(f"{type(self).__name__} stopped")

    def _read_keys(self) -> None:
        while self.running:
            key = self._get_key()
            if key:
                logger.debug(f"Key pressed: {key!r}")
                if not self.callback(key):
                    self.running = False
                    break
            time.sleep(self.poll_interval)
        logger.info("Keyboard input loop ended")

    def _get_key(self) -> Optional[str]:
        """Return the next key press, or None if none arrived within the poll window."""
        if sys.platform == "win32":
            return self._get_key_windows()
        return self._get_key_unix()

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt
        if not msvcrt.kbhit():
            return None
        return msvcrt.getch().decode('utf-8', errors='ignore').lower()

    def _get_key_unix(self) -> Optional[str]:
        import select
        import tty
        import termios

        if not select.select([sys.stdin], [], [], 0.1)[0]:
            return None
        # Raw mode only for the single read so rich can keep drawing
        saved = termios.tcgetattr(sys.stdin)
        try:
            tty.setraw(sys.stdin.fileno())
            key = sys.stdin.read(1)
        finally:
            termios.tcsetattr(sys.stdin, termios.TCSADRAIN, saved)
        return key.lower()


class SimpleInputHandler(KeyboardInputHandler):
    """Line-based fallback when stdin is not a terminal: one command per line."""

    def _get_key(self) -> Optional[str]:
        try:
            line = input().strip().lower()
        except EOFError:
            # Closed input quits the app
            return "q"
        return line[:1] or None


def create_input_handler(callback: KeyCallback) -> KeyboardInputHandler:
    """Create the best available input handler for the current terminal.

    Args:
        callback: Function that takes a key and returns True to continue, False to quit

    Returns:
        An input handler instance
    """
    if sys.stdin.isatty():
        return KeyboardInputHandler(callback)
    logger.warning("stdin is not a terminal, reading one command per line")
    return SimpleInputHandler(callback)
