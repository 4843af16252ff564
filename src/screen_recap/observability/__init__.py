"""
Observability Module
====================

Session notifications for presentation layers.

    - SessionEventBus: publish/subscribe of SessionEvent objects
"""

from screen_recap.observability.events import SessionEventBus, SessionListener

__all__ = ["SessionEventBus", "SessionListener"]
