"""Session state publisher for pub/sub state updates."""

import logging
from typing import Callable

from pubsub import pub

from ..models.session import SessionState

logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState], None]


class SessionStatePublisher:
    """Publishes session state snapshots using pubsub.pub.

    Listeners are held weakly by pubsub, so callers must keep a reference to
    whatever they subscribe.
    """

    def __init__(self, topic: str = "session.state"):
        """Initialize session state publisher.

        Args:
            topic: Pub/sub topic name for state snapshots
        """
        self.topic = topic
        logger.info(f"SessionStatePublisher initialized with topic: {topic}")

    def publish(self, state: SessionState) -> None:
        """Publish a state snapshot to the pub/sub topic.

        Args:
            state: SessionState to publish
        """
        pub.sendMessage(self.topic, state=state)
        logger.debug(f"Published session state: {state.status.value} ({state.message})")

    def subscribe(self, listener: StateListener) -> None:
        pub.subscribe(listener, self.topic)

    def unsubscribe(self, listener: StateListener) -> None:
        pub.unsubscribe(listener, self.topic)
