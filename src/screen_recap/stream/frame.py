"""
Frame Data Model
=================

Internal frame representation for the capture pipeline.

This module defines the typed Frame class that is passed between the
frame sources, the differ, the buffer and the batch analyzer.

Design Rules:
    - This is the ONLY frame format passed to downstream stages
    - The payload is an encoded image data URL, never a decoded bitmap
    - Frames are immutable once produced by a source
"""

import time
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Captured frame from a frame source.

    This is the canonical internal representation of a frame.
    It is immutable (frozen) to prevent accidental modification.

    Attributes:
        frame_id: Monotonically increasing sequence number within a session
        image: Encoded image as a data URL (``data:image/jpeg;base64,...``)
        timestamp: UNIX timestamp when the frame was captured
    """

    frame_id: int
    image: str
    timestamp: float = field(default_factory=time.time)

    @property
    def payload_size(self) -> int:
        """Length of the encoded payload in characters."""
        return len(self.image)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp:.3f}, "
            f"payload={self.payload_size} chars)"
        )
