"""
Session Event Bus
=================

Fan-out of session notifications to presentation layers.

Listeners are plain callables receiving a SessionEvent. They are invoked
synchronously on the event loop, in subscription order.

Design Rules:
    - The session never depends on a listener succeeding
    - Listener errors are logged and counted, never propagated
    - Listeners must not block; async consumers should enqueue the event
"""

import logging
from typing import Callable, List

from screen_recap.models.session import SessionEvent


logger = logging.getLogger(__name__)


SessionListener = Callable[[SessionEvent], None]


class SessionEventBus:
    """
    Synchronous publish/subscribe for session events.

    Attributes:
        emitted: Events published
        listener_errors: Exceptions raised by listeners

    Example:
        bus = SessionEventBus()
        unsubscribe = bus.subscribe(lambda event: print(event.type))
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: List[SessionListener] = []
        self.emitted: int = 0
        self.listener_errors: int = 0

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: SessionEvent) -> None:
        """Deliver an event to every listener."""
        self.emitted += 1
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self.listener_errors += 1
                logger.error(f"Session listener failed on {event.type.value}: {e}")
