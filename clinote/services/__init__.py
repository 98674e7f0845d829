"""Services layer for session orchestration."""

from .session_controller import SessionController
from .state_publisher import SessionStatePublisher

__all__ = [
    "SessionController",
    "SessionStatePublisher",
]
