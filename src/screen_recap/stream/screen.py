"""
Screen Frame Source
===================

Local display capture using ``mss``.

This source:
    - Captures a whole monitor per tick (mss cannot isolate windows or tabs)
    - Optionally downscales to ``max_width`` before encoding
    - Encodes frames as JPEG data URLs via the image codec
    - Runs every grab in a worker thread so the event loop never blocks

Design Rules:
    - A fresh mss context is opened per grab; mss handles are not shared
      across threads
    - Grab failures surface as FrameReadError, never as crashes
"""

import asyncio
import logging
from typing import Dict, Optional

import cv2
import mss
import numpy as np

from screen_recap.stream.frame import Frame
from screen_recap.stream.image_codec import ImageDecodeError, encode_data_url
from screen_recap.stream.sources import (
    AcquisitionError,
    CaptureSelection,
    FrameReadError,
    StreamHandle,
)


logger = logging.getLogger(__name__)


class ScreenFrameSource:
    """
    Frame source backed by the local display.

    Attributes:
        monitor: mss monitor index (1 = primary display, 0 = all displays)
        jpeg_quality: JPEG quality for encoded frames
        max_width: Frames wider than this are downscaled (0 = keep size)
    """

    def __init__(
        self,
        monitor: int = 1,
        jpeg_quality: int = 80,
        max_width: int = 1280,
    ) -> None:
        if monitor < 0:
            raise ValueError("monitor must be >= 0")

        self.monitor = monitor
        self.jpeg_quality = jpeg_quality
        self.max_width = max_width

        self._counters: Dict[str, int] = {}
        self._regions: Dict[str, dict] = {}

        logger.info(
            f"ScreenFrameSource initialized: monitor={monitor}, "
            f"quality={jpeg_quality}, max_width={max_width or 'native'}"
        )

    async def start(self, selection: CaptureSelection) -> StreamHandle:
        if selection is not CaptureSelection.SCREEN:
            logger.warning(
                f"Screen backend cannot isolate a {selection.value}; "
                f"capturing monitor {self.monitor} instead"
            )

        try:
            region = await asyncio.to_thread(self._probe_monitor)
        except AcquisitionError:
            raise
        except Exception as e:
            raise AcquisitionError(f"Failed to open display: {e}")

        handle = StreamHandle.open(
            selection,
            label=f"monitor {self.monitor} ({region['width']}x{region['height']})",
        )
        self._counters[handle.stream_id] = 0
        self._regions[handle.stream_id] = region
        logger.info(f"Screen stream acquired: {handle.label}")
        return handle

    async def next_frame(self, handle: StreamHandle) -> Optional[Frame]:
        region = self._regions.get(handle.stream_id)
        if region is None:
            return None

        try:
            image = await asyncio.to_thread(self._grab, region)
        except Exception as e:
            raise FrameReadError(f"Screen grab failed: {e}")

        # Stream may have been released while the grab was running
        if handle.stream_id not in self._regions:
            return None

        frame_id = self._counters[handle.stream_id]
        self._counters[handle.stream_id] = frame_id + 1
        return Frame(frame_id=frame_id, image=image)

    async def stop(self, handle: StreamHandle) -> None:
        self._counters.pop(handle.stream_id, None)
        if self._regions.pop(handle.stream_id, None) is not None:
            logger.info(f"Screen stream released: {handle.label}")

    def _probe_monitor(self) -> dict:
        """Resolve the configured monitor to its capture region."""
        with mss.mss() as sct:
            if self.monitor >= len(sct.monitors):
                raise AcquisitionError(
                    f"Monitor {self.monitor} not found "
                    f"({len(sct.monitors) - 1} display(s) available)"
                )
            return dict(sct.monitors[self.monitor])

    def _grab(self, region: dict) -> str:
        """Grab, downscale and encode one frame (runs in a worker thread)."""
        with mss.mss() as sct:
            shot = sct.grab(region)
        bgra = np.asarray(shot, dtype=np.uint8)

        if self.max_width and bgra.shape[1] > self.max_width:
            scale = self.max_width / bgra.shape[1]
            size = (self.max_width, max(1, int(bgra.shape[0] * scale)))
            bgra = cv2.resize(bgra, size, interpolation=cv2.INTER_AREA)

        try:
            return encode_data_url(bgra, quality=self.jpeg_quality)
        except ImageDecodeError as e:
            raise FrameReadError(str(e))
