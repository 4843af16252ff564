"""
WebSocket Frame Source
======================

Frame source that subscribes to a remote frame stream over WebSocket.

This module provides the WebSocketFrameSource class which:
    - Connects to a frame stream endpoint when the session starts
    - Receives and validates FrameMessage payloads in a background task
    - Keeps only the most recent frame (capture ticks sample the stream)
    - Reports the stream inactive once the sender ends or disconnects

Design Rules:
    - Does NOT decode image data
    - Invalid messages are counted and logged, never fatal
    - No reconnection: a dropped stream ends the capture session
"""

import asyncio
import logging
import time
from typing import Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
)

from screen_recap.models.input import FrameMessage
from screen_recap.stream.frame import Frame
from screen_recap.stream.image_codec import to_data_url
from screen_recap.stream.sources import (
    AcquisitionError,
    CaptureSelection,
    FrameReadError,
    StreamHandle,
)


logger = logging.getLogger(__name__)


class StreamMetrics:
    """Metrics for WebSocketFrameSource observability."""

    __slots__ = (
        "messages_received",
        "frames_received",
        "frames_sampled",
        "parse_errors",
        "last_sender_frame_id",
    )

    def __init__(self) -> None:
        self.messages_received: int = 0
        self.frames_received: int = 0
        self.frames_sampled: int = 0
        self.parse_errors: int = 0
        self.last_sender_frame_id: int = -1

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "messages_received": self.messages_received,
            "frames_received": self.frames_received,
            "frames_sampled": self.frames_sampled,
            "parse_errors": self.parse_errors,
            "last_sender_frame_id": self.last_sender_frame_id,
        }


class WebSocketFrameSource:
    """
    Frame source fed by a remote WebSocket frame stream.

    One stream at a time. The background reader overwrites the latest
    frame as messages arrive; ``next_frame`` returns whatever is latest,
    so an idle sender yields identical frames the differ will discard.

    Attributes:
        url: WebSocket URL of the frame stream
        open_timeout: Seconds allowed for the connection handshake
        metrics: Operational metrics

    Example:
        source = WebSocketFrameSource(url="ws://localhost:8000/ws/frames")
        handle = await source.start(CaptureSelection.TAB)
        frame = await source.next_frame(handle)
        await source.stop(handle)
    """

    def __init__(self, url: str, open_timeout: float = 10.0) -> None:
        self.url = url
        self.open_timeout = open_timeout

        self._websocket = None
        self._reader_task: Optional[asyncio.Task] = None
        self._handle: Optional[StreamHandle] = None
        self._latest_image: Optional[str] = None
        self._latest_timestamp: float = 0.0
        self._active: bool = False
        self._counter: int = 0

        self.metrics = StreamMetrics()

    @property
    def active(self) -> bool:
        """Whether the remote stream is still delivering."""
        return self._active

    async def start(self, selection: CaptureSelection) -> StreamHandle:
        if self._handle is not None:
            raise AcquisitionError("WebSocket stream already acquired")

        logger.info(f"Connecting to frame stream: {self.url}")
        try:
            self._websocket = await websockets.connect(
                self.url,
                open_timeout=self.open_timeout,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )
        except Exception as e:
            raise AcquisitionError(f"Failed to connect to {self.url}: {e}")

        self._handle = StreamHandle.open(selection, label=f"{selection.value} via {self.url}")
        self._active = True
        self._counter = 0
        self._latest_image = None
        self._reader_task = asyncio.create_task(
            self._read_messages(),
            name="frame_stream_reader",
        )
        logger.info(f"Connected to frame stream: {self._handle.stream_id}")
        return self._handle

    async def next_frame(self, handle: StreamHandle) -> Optional[Frame]:
        if self._handle is None or handle.stream_id != self._handle.stream_id:
            return None
        if not self._active:
            return None
        if self._latest_image is None:
            raise FrameReadError("No frame received from stream yet")

        frame = Frame(
            frame_id=self._counter,
            image=self._latest_image,
            timestamp=self._latest_timestamp,
        )
        self._counter += 1
        self.metrics.frames_sampled += 1
        return frame

    async def stop(self, handle: StreamHandle) -> None:
        if self._handle is None or handle.stream_id != self._handle.stream_id:
            return

        logger.info("Frame stream stopping...")
        self._active = False

        if self._websocket is not None:
            try:
                await self._websocket.close()
            except Exception as e:
                logger.debug(f"Error closing frame stream: {e}")

        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

        self._websocket = None
        self._reader_task = None
        self._handle = None
        logger.info("Frame stream released")

    async def _read_messages(self) -> None:
        """Receive messages until the sender ends or disconnects."""
        try:
            async for raw in self._websocket:
                self.metrics.messages_received += 1
                message = self._parse(raw)
                if message is None:
                    continue

                if message.type == "ended":
                    logger.info("Frame stream ended by sender")
                    break

                self._latest_image = to_data_url(message.image)
                self._latest_timestamp = message.timestamp or time.time()
                self.metrics.frames_received += 1
                if message.frame_id is not None:
                    self.metrics.last_sender_frame_id = message.frame_id

        except ConnectionClosedOK:
            logger.info("Frame stream closed normally")
        except ConnectionClosed as e:
            logger.warning(f"Frame stream closed: {e}")
        finally:
            self._active = False

    def _parse(self, raw) -> Optional[FrameMessage]:
        """Parse and validate a raw message; None when unusable."""
        try:
            message = FrameMessage.model_validate_json(raw)
        except ValidationError as e:
            self.metrics.parse_errors += 1
            logger.error(f"Invalid frame message: {e.error_count()} error(s)")
            return None

        if message.type == "frame" and not message.image:
            self.metrics.parse_errors += 1
            logger.error("Frame message without image data")
            return None

        return message
