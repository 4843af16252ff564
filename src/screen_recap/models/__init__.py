"""
Data Models
===========

Pydantic models for ScreenRecapAgent.

Models:
    Input:
        - FrameMessage: Schema for messages from a remote frame stream

    Session:
        - CaptureState: Session lifecycle states
        - AnalysisRecord: Per-frame analysis result
        - SessionResult: Final summary and records
        - SessionEvent / SessionEventType: Session notifications
        - SessionSnapshot: Status view of a running session
"""

from screen_recap.models.input import FrameMessage
from screen_recap.models.session import (
    AnalysisRecord,
    CaptureState,
    SessionEvent,
    SessionEventType,
    SessionResult,
    SessionSnapshot,
)

__all__ = [
    # Input
    "FrameMessage",
    # Session
    "CaptureState",
    "AnalysisRecord",
    "SessionResult",
    "SessionEvent",
    "SessionEventType",
    "SessionSnapshot",
]
