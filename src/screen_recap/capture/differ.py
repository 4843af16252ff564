"""
Frame Differ
============

Cheap change detection between consecutive kept frames.

Each frame payload is reduced to a 32-bit CRC fingerprint. A frame is kept
when it is the first of the session or when its fingerprint differs from
the last kept one.

Fingerprint Choice (CRC-32):
    The fingerprint is a heuristic over the encoded payload, not a pixel
    comparison. Collisions or encoder noise only change how densely the
    session is sampled; they never affect the correctness of the summary.
    zlib.crc32 runs in C and stays well under a millisecond for a
    full-screen JPEG.
"""

import logging
import zlib
from typing import Optional

from screen_recap.stream.frame import Frame


logger = logging.getLogger(__name__)


def fingerprint(frame: Frame) -> int:
    """
    Compute the fingerprint of a frame payload.

    Args:
        frame: Frame with an encoded payload

    Returns:
        Unsigned 32-bit CRC of the payload
    """
    return zlib.crc32(frame.image.encode("ascii", errors="replace")) & 0xFFFFFFFF


class FrameDiffer:
    """
    Keeps frames whose fingerprint differs from the last kept frame.

    Attributes:
        evaluated: Frames evaluated since the last reset
        kept: Frames kept since the last reset
        discarded: Frames discarded as duplicates since the last reset

    Example:
        differ = FrameDiffer()

        if differ.should_keep(frame):
            buffer.push(frame)
    """

    def __init__(self) -> None:
        self._last_fingerprint: Optional[int] = None
        self.evaluated: int = 0
        self.kept: int = 0
        self.discarded: int = 0

    @property
    def last_fingerprint(self) -> Optional[int]:
        """Fingerprint of the last kept frame (None before the first)."""
        return self._last_fingerprint

    def should_keep(self, frame: Frame) -> bool:
        """
        Decide whether a frame is worth analyzing.

        Updates the stored fingerprint when the frame is kept.

        Args:
            frame: Newly captured frame

        Returns:
            True for the first frame of a session or a changed frame.
        """
        self.evaluated += 1
        digest = fingerprint(frame)

        if self._last_fingerprint is not None and digest == self._last_fingerprint:
            self.discarded += 1
            logger.debug(f"Frame {frame.frame_id} unchanged ({digest:08x}), discarded")
            return False

        self._last_fingerprint = digest
        self.kept += 1
        logger.debug(f"Frame {frame.frame_id} kept ({digest:08x})")
        return True

    def reset(self) -> None:
        """Forget the previous fingerprint and counters."""
        self._last_fingerprint = None
        self.evaluated = 0
        self.kept = 0
        self.discarded = 0

    def metrics(self) -> dict:
        return {
            "evaluated": self.evaluated,
            "kept": self.kept,
            "discarded": self.discarded,
        }
