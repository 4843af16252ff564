"""
Session Models
==============

State and result models for a capture session.

Core Concepts:
    - CaptureState: Lifecycle state of one session
    - AnalysisRecord: Per-frame description (or error text)
    - SessionResult: Final summary plus the ordered per-frame records
    - SessionEvent: Notification envelope consumed by presentation layers

Lifecycle:
    IDLE → CAPTURING → DRAINING → SUMMARIZING → COMPLETE
    any  → FAILED   (acquisition failure only)

    COMPLETE and FAILED are terminal.

Example:
    from screen_recap.models.session import AnalysisRecord, SessionResult

    record = AnalysisRecord(frame_id=3, text="A code editor with ...")
    result = SessionResult(session_id="ab12", summary="...", records=[record])
"""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CaptureState(str, Enum):
    """
    Lifecycle states of a capture session.

    Attributes:
        IDLE: Created, not started
        CAPTURING: Tick loop and flush timer running
        DRAINING: No more frames accepted; remaining frames being analyzed
        SUMMARIZING: All analyses collected; summary in progress
        COMPLETE: SessionResult produced (terminal)
        FAILED: Stream could not be acquired (terminal)
    """

    IDLE = "IDLE"
    CAPTURING = "CAPTURING"
    DRAINING = "DRAINING"
    SUMMARIZING = "SUMMARIZING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (CaptureState.COMPLETE, CaptureState.FAILED)


class AnalysisRecord(BaseModel):
    """
    Result of analyzing one frame.

    Attributes:
        frame_id: Sequence number of the source frame (traceability only)
        text: Description, or a descriptive error string
        is_error: Whether ``text`` is an error string
    """

    model_config = ConfigDict(frozen=True)

    frame_id: int = Field(..., ge=0, description="Source frame sequence number")
    text: str = Field(..., description="Frame description or error text")
    is_error: bool = Field(default=False, description="True when text is an error")


class SessionResult(BaseModel):
    """
    Final output of a completed session.

    Attributes:
        session_id: Session that produced this result
        summary: Summary text (possibly the concatenation fallback)
        records: Per-frame records in dispatch order
        frames_kept: Frames that passed the differ
        summary_fallback: True when the summarizer failed and the
            concatenation fallback was returned
        completed_at: UNIX timestamp of completion
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    summary: str
    records: List[AnalysisRecord] = Field(default_factory=list)
    frames_kept: int = Field(default=0, ge=0)
    summary_fallback: bool = False
    completed_at: float = Field(default_factory=time.time)

    @property
    def error_count(self) -> int:
        return sum(1 for record in self.records if record.is_error)


class SessionEventType(str, Enum):
    """Kinds of session notifications."""

    STATE_CHANGED = "state_changed"
    STREAM_READY = "stream_ready"
    FRAME_COUNT = "frame_count"
    BATCH_ANALYZED = "batch_analyzed"
    RESULT = "result"
    FAILED = "failed"


class SessionEvent(BaseModel):
    """
    Notification emitted by the session controller.

    Only the fields relevant to ``type`` are set.

    Attributes:
        type: Event kind
        session_id: Emitting session
        timestamp: UNIX timestamp of emission
        state: New state (state_changed)
        frame_count: Kept frames so far (frame_count)
        stream: Stream handle description (stream_ready)
        records: Records of one batch (batch_analyzed)
        result: Final result (result)
        error: Error message (failed)
    """

    model_config = ConfigDict(frozen=True)

    type: SessionEventType
    session_id: str
    timestamp: float = Field(default_factory=time.time)
    state: Optional[CaptureState] = None
    frame_count: Optional[int] = None
    stream: Optional[dict] = None
    records: Optional[List[AnalysisRecord]] = None
    result: Optional[SessionResult] = None
    error: Optional[str] = None


class SessionSnapshot(BaseModel):
    """Point-in-time view of a session for status endpoints."""

    session_id: str
    state: CaptureState
    frames_captured: int = 0
    frames_kept: int = 0
    frames_buffered: int = 0
    read_errors: int = 0
    batches_dispatched: int = 0
    records_collected: int = 0
    capture_delay_ms: int = 0
    stream: Optional[dict] = None
    error: Optional[str] = None
