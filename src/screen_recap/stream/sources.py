"""
Frame Sources
=============

Frame source abstraction for the capture pipeline.

A frame source owns the underlying media stream. The session controller
acquires it with ``start``, pulls one frame per capture tick with
``next_frame`` and releases it with ``stop``.

Components:
    - FrameSource: Protocol for frame sources
    - StreamHandle: Opaque handle of an acquired stream
    - MockFrameSource: Deterministic synthetic scenes for testing and demos

Error Taxonomy:
    - AcquisitionError: The stream could not be obtained at all (fatal)
    - FrameReadError: A single tick could not produce a usable frame (skipped)
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple, Union

import cv2
import numpy as np

from screen_recap.stream.frame import Frame
from screen_recap.stream.image_codec import encode_data_url


logger = logging.getLogger(__name__)


class AcquisitionError(Exception):
    """Raised when a frame source cannot be acquired."""
    pass


class FrameReadError(Exception):
    """Raised when a single capture tick fails to produce a usable frame."""
    pass


class CaptureSelection(str, Enum):
    """
    What the user chose to share.

    Attributes:
        SCREEN: An entire display
        WINDOW: A single application window
        TAB: A single browser tab
    """

    SCREEN = "screen"
    WINDOW = "window"
    TAB = "tab"


def parse_selection(selection: Union[str, CaptureSelection]) -> CaptureSelection:
    """
    Normalize a selection value.

    Raises:
        AcquisitionError: If the selection is not a known capture target
    """
    if isinstance(selection, CaptureSelection):
        return selection
    try:
        return CaptureSelection(str(selection).lower())
    except ValueError:
        raise AcquisitionError(f"Unknown capture selection: {selection!r}")


@dataclass(frozen=True, slots=True)
class StreamHandle:
    """
    Handle of an acquired media stream.

    Attributes:
        stream_id: Unique id of the stream
        selection: What is being captured
        label: Human-readable description of the stream
        opened_at: UNIX timestamp when the stream was acquired
    """

    stream_id: str
    selection: CaptureSelection
    label: str
    opened_at: float = field(default_factory=time.time)

    @classmethod
    def open(cls, selection: CaptureSelection, label: str) -> "StreamHandle":
        return cls(stream_id=uuid.uuid4().hex[:12], selection=selection, label=label)

    def to_dict(self) -> dict:
        return {
            "stream_id": self.stream_id,
            "selection": self.selection.value,
            "label": self.label,
            "opened_at": self.opened_at,
        }


class FrameSource(Protocol):
    """
    Protocol for frame sources.

    Implementations:
        - MockFrameSource (synthetic scenes)
        - ScreenFrameSource (local display via mss)
        - WebSocketFrameSource (remote frame stream)
    """

    async def start(self, selection: CaptureSelection) -> StreamHandle:
        """
        Acquire the media stream.

        Raises:
            AcquisitionError: If the stream cannot be obtained
        """
        ...

    async def next_frame(self, handle: StreamHandle) -> Optional[Frame]:
        """
        Capture the current frame.

        Returns:
            Frame, or None if the stream is no longer active

        Raises:
            FrameReadError: If this tick produced no usable frame
        """
        ...

    async def stop(self, handle: StreamHandle) -> None:
        """Release the media stream. Safe to call more than once."""
        ...


class MockFrameSource:
    """
    Deterministic synthetic frame source.

    Renders flat-colored scenes labelled with their index and encodes them
    as JPEG. A scene is held for ``hold_frames`` consecutive ticks, so the
    differ sees runs of identical frames separated by changes. This ensures:
        - Reproducible payloads across runs
        - Predictable keep / discard patterns
        - An optional natural end of stream after ``max_frames`` ticks

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        hold_frames: Ticks each scene is held for
        max_frames: Ticks before the stream reports inactive (0 = unlimited)
    """

    _PALETTE: Tuple[Tuple[int, int, int], ...] = (
        (40, 40, 40),
        (200, 120, 30),
        (30, 160, 60),
        (60, 60, 210),
        (180, 180, 180),
        (20, 140, 200),
    )

    def __init__(
        self,
        width: int = 320,
        height: int = 180,
        hold_frames: int = 3,
        max_frames: int = 0,
        jpeg_quality: int = 80,
    ) -> None:
        if width < 16 or height < 16:
            raise ValueError("width and height must be >= 16")
        if hold_frames < 1:
            raise ValueError("hold_frames must be >= 1")

        self.width = width
        self.height = height
        self.hold_frames = hold_frames
        self.max_frames = max_frames
        self.jpeg_quality = jpeg_quality

        self._ticks: Dict[str, int] = {}
        self._scene_cache: Dict[int, str] = {}

        logger.info(
            f"MockFrameSource initialized: {width}x{height}, "
            f"hold_frames={hold_frames}, max_frames={max_frames or 'unlimited'}"
        )

    async def start(self, selection: CaptureSelection) -> StreamHandle:
        handle = StreamHandle.open(selection, label=f"mock {selection.value}")
        self._ticks[handle.stream_id] = 0
        logger.info(f"Mock stream acquired: {handle.stream_id}")
        return handle

    async def next_frame(self, handle: StreamHandle) -> Optional[Frame]:
        tick = self._ticks.get(handle.stream_id)
        if tick is None:
            return None
        if self.max_frames and tick >= self.max_frames:
            return None

        self._ticks[handle.stream_id] = tick + 1
        # Yield so the tick behaves like a real acquisition
        await asyncio.sleep(0)

        scene = tick // self.hold_frames
        return Frame(frame_id=tick, image=self._render(scene))

    async def stop(self, handle: StreamHandle) -> None:
        if self._ticks.pop(handle.stream_id, None) is not None:
            logger.info(f"Mock stream released: {handle.stream_id}")

    def _render(self, scene: int) -> str:
        """Render and encode one scene (cached per scene index)."""
        cached = self._scene_cache.get(scene)
        if cached is not None:
            return cached

        color = self._PALETTE[scene % len(self._PALETTE)]
        image = np.full((self.height, self.width, 3), color, dtype=np.uint8)
        cv2.putText(
            image,
            f"Scene {scene}",
            (10, self.height // 2),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.8,
            (255, 255, 255),
            2,
        )
        payload = encode_data_url(image, quality=self.jpeg_quality)
        self._scene_cache[scene] = payload
        return payload
