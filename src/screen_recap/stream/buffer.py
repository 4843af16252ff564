"""
Frame Buffer
=============

Ordered accumulator for kept frames awaiting analysis.

This module provides the FrameBuffer class, which sits between the
capture loop and the batch analyzer.

Design Rules:
    - Push order is preserved by every drain
    - drain() empties the buffer and returns its contents in one step
    - Methods are synchronous, so a drain never interleaves with a push
      on the event loop
    - Does NOT process or modify frames
"""

import logging
from typing import List

from screen_recap.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameBuffer:
    """
    Ordered buffer of kept frames with a size-based flush threshold.

    A frame pushed here is handed out by exactly one drain. Two drains
    racing back-to-back simply leave the second one empty.

    Attributes:
        flush_size: Number of buffered frames that triggers a flush
        total_pushed: Frames ever pushed
        total_drained: Frames ever handed out by drain()

    Example:
        buffer = FrameBuffer(flush_size=5)

        if buffer.push(frame):
            batch = buffer.drain()
    """

    def __init__(self, flush_size: int = 5) -> None:
        """
        Initialize frame buffer.

        Args:
            flush_size: Size threshold for the flush trigger. Must be >= 1.
        """
        if flush_size < 1:
            raise ValueError("flush_size must be >= 1")

        self._flush_size = flush_size
        self._frames: List[Frame] = []
        self._total_pushed: int = 0
        self._total_drained: int = 0
        self._drain_count: int = 0

    @property
    def flush_size(self) -> int:
        """Size threshold for the flush trigger."""
        return self._flush_size

    @property
    def size(self) -> int:
        """Current number of frames in buffer."""
        return len(self._frames)

    @property
    def total_pushed(self) -> int:
        """Total frames ever pushed into buffer."""
        return self._total_pushed

    @property
    def total_drained(self) -> int:
        """Total frames ever drained from buffer."""
        return self._total_drained

    def __len__(self) -> int:
        return len(self._frames)

    def push(self, frame: Frame) -> bool:
        """
        Append a frame to the buffer.

        Args:
            frame: Kept frame

        Returns:
            True if the buffer reached the flush threshold with this push.
        """
        self._frames.append(frame)
        self._total_pushed += 1
        return len(self._frames) >= self._flush_size

    def drain(self) -> List[Frame]:
        """
        Empty the buffer and return its contents in push order.

        Returns:
            List of frames (empty if nothing was buffered).
        """
        frames, self._frames = self._frames, []
        if frames:
            self._total_drained += len(frames)
            self._drain_count += 1
            logger.debug(
                f"Drained {len(frames)} frames "
                f"(ids {frames[0].frame_id}..{frames[-1].frame_id})"
            )
        return frames

    def peek(self) -> List[Frame]:
        """Copy of the buffered frames without draining them."""
        return list(self._frames)

    def clear(self) -> int:
        """
        Discard all buffered frames.

        Only used when resetting a session before capture starts.

        Returns:
            Number of frames cleared.
        """
        cleared = len(self._frames)
        self._frames = []
        return cleared

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with size, flush_size, total_pushed, total_drained, drains
        """
        return {
            "size": self.size,
            "flush_size": self._flush_size,
            "total_pushed": self._total_pushed,
            "total_drained": self._total_drained,
            "drains": self._drain_count,
        }
