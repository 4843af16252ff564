"""
Stream Module
=============

Frame model, frame buffering and frame sources.

This module provides the ingestion layer for ScreenRecapAgent:
    - Frame: Typed frame data model (internal representation)
    - FrameBuffer: Ordered kept-frame buffer with atomic drain
    - FrameSource: Protocol for media stream backends
    - MockFrameSource / ScreenFrameSource / WebSocketFrameSource: backends

Example:
    from screen_recap.stream import CaptureSelection, FrameBuffer, MockFrameSource

    source = MockFrameSource(hold_frames=3)
    handle = await source.start(CaptureSelection.SCREEN)
    buffer = FrameBuffer(flush_size=5)

    frame = await source.next_frame(handle)
    if buffer.push(frame):
        batch = buffer.drain()
"""

from screen_recap.stream.frame import Frame
from screen_recap.stream.buffer import FrameBuffer
from screen_recap.stream.image_codec import ImageDecodeError
from screen_recap.stream.sources import (
    AcquisitionError,
    CaptureSelection,
    FrameReadError,
    FrameSource,
    MockFrameSource,
    StreamHandle,
)
from screen_recap.stream.screen import ScreenFrameSource
from screen_recap.stream.consumer import WebSocketFrameSource


__all__ = [
    "Frame",
    "FrameBuffer",
    "ImageDecodeError",
    "AcquisitionError",
    "CaptureSelection",
    "FrameReadError",
    "FrameSource",
    "MockFrameSource",
    "StreamHandle",
    "ScreenFrameSource",
    "WebSocketFrameSource",
]
