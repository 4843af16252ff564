"""
Stream Tests
============

Tests for frames, the frame buffer, the image codec and the mock source.
"""

import asyncio
import base64

import numpy as np
import pytest

from screen_recap.stream import (
    AcquisitionError,
    CaptureSelection,
    FrameBuffer,
    ImageDecodeError,
    MockFrameSource,
)
from screen_recap.stream.image_codec import encode_data_url, parse_data_url, to_data_url
from screen_recap.stream.sources import parse_selection

from conftest import data_url, make_frame


class TestFrameBuffer:
    """Tests for the ordered frame buffer."""

    def test_push_reports_threshold(self):
        """Verify push returns True once the flush size is reached."""
        buffer = FrameBuffer(flush_size=3)

        assert buffer.push(make_frame(0)) is False
        assert buffer.push(make_frame(1)) is False
        assert buffer.push(make_frame(2)) is True
        assert buffer.size == 3

    def test_drain_preserves_push_order(self):
        """Verify drain returns frames in push order and empties the buffer."""
        buffer = FrameBuffer(flush_size=5)
        for i in (4, 1, 9):
            buffer.push(make_frame(i))

        drained = buffer.drain()

        assert [frame.frame_id for frame in drained] == [4, 1, 9]
        assert buffer.size == 0
        assert len(buffer) == 0

    def test_second_drain_is_empty(self):
        """Verify each frame is handed out by exactly one drain."""
        buffer = FrameBuffer()
        buffer.push(make_frame(0))

        first = buffer.drain()
        second = buffer.drain()

        assert len(first) == 1
        assert second == []
        assert buffer.total_pushed == 1
        assert buffer.total_drained == 1

    def test_peek_does_not_drain(self):
        """Verify peek leaves the frames buffered."""
        buffer = FrameBuffer()
        buffer.push(make_frame(0))

        assert len(buffer.peek()) == 1
        assert buffer.size == 1

    def test_clear_and_metrics(self):
        """Verify clear discards frames and metrics reflect drains."""
        buffer = FrameBuffer(flush_size=2)
        buffer.push(make_frame(0))
        buffer.push(make_frame(1))
        buffer.drain()
        buffer.push(make_frame(2))

        assert buffer.clear() == 1
        assert buffer.metrics() == {
            "size": 0,
            "flush_size": 2,
            "total_pushed": 3,
            "total_drained": 2,
            "drains": 1,
        }

    def test_invalid_flush_size(self):
        """Verify a flush size below 1 is rejected."""
        with pytest.raises(ValueError):
            FrameBuffer(flush_size=0)


class TestImageCodec:
    """Tests for data URL encoding and the payload pre-check."""

    def test_encode_produces_jpeg_data_url(self):
        """Verify encoded arrays parse back to JPEG bytes."""
        image = np.zeros((32, 48, 3), dtype=np.uint8)
        payload = encode_data_url(image, quality=70)

        assert payload.startswith("data:image/jpeg;base64,")
        media_type, raw = parse_data_url(payload)
        assert media_type == "image/jpeg"
        assert raw[:2] == b"\xff\xd8"

    def test_encode_accepts_bgra(self):
        """Verify four-channel captures are converted before encoding."""
        image = np.zeros((16, 16, 4), dtype=np.uint8)
        assert encode_data_url(image).startswith("data:image/jpeg;base64,")

    def test_encode_rejects_empty_image(self):
        """Verify an empty array cannot be encoded."""
        with pytest.raises(ImageDecodeError):
            encode_data_url(np.zeros((0, 0, 3), dtype=np.uint8))

    def test_parse_valid_payload(self):
        """Verify a well-formed payload returns its bytes."""
        media_type, raw = parse_data_url(data_url("hello", media_type="image/png"))
        assert media_type == "image/png"
        assert raw == b"hello"

    @pytest.mark.parametrize(
        "payload, message",
        [
            ("", "empty payload"),
            ("not-a-data-url", "invalid format"),
            ("data:image/jpeg;base64,", "failed to extract base64 data"),
            ("data:image/tiff;base64,aGVsbG8=", "unsupported media type"),
            ("data:image/jpeg,aGVsbG8=", "not base64"),
            ("data:image/jpeg;base64,@@@@", "base64 decode failed"),
        ],
    )
    def test_parse_rejects_bad_payloads(self, payload, message):
        """Verify malformed payloads raise ImageDecodeError."""
        with pytest.raises(ImageDecodeError, match=message):
            parse_data_url(payload)

    def test_to_data_url_wraps_bare_base64(self):
        """Verify bare base64 gets a JPEG data URL prefix."""
        raw = base64.b64encode(b"jpeg").decode("ascii")

        assert to_data_url(raw) == f"data:image/jpeg;base64,{raw}"
        assert to_data_url(data_url("x")) == data_url("x")


class TestSelection:
    """Tests for capture selection parsing."""

    def test_known_selections(self):
        """Verify strings map to CaptureSelection members."""
        assert parse_selection("screen") is CaptureSelection.SCREEN
        assert parse_selection("WINDOW") is CaptureSelection.WINDOW
        assert parse_selection(CaptureSelection.TAB) is CaptureSelection.TAB

    def test_unknown_selection(self):
        """Verify unknown targets are acquisition failures."""
        with pytest.raises(AcquisitionError):
            parse_selection("printer")


class TestMockFrameSource:
    """Tests for the synthetic frame source."""

    def test_scenes_are_held_for_hold_frames_ticks(self):
        """Verify identical payloads within a scene and a change after it."""
        source = MockFrameSource(width=64, height=32, hold_frames=2, max_frames=5)

        async def collect():
            handle = await source.start(CaptureSelection.SCREEN)
            frames = []
            while True:
                frame = await source.next_frame(handle)
                if frame is None:
                    break
                frames.append(frame)
            await source.stop(handle)
            return frames

        frames = asyncio.run(collect())

        assert [frame.frame_id for frame in frames] == [0, 1, 2, 3, 4]
        assert frames[0].image == frames[1].image
        assert frames[1].image != frames[2].image
        assert frames[2].image == frames[3].image
        parse_data_url(frames[4].image)

    def test_stopped_stream_is_inactive(self):
        """Verify next_frame returns None after the handle is released."""
        source = MockFrameSource(width=32, height=32)

        async def run():
            handle = await source.start(CaptureSelection.WINDOW)
            first = await source.next_frame(handle)
            await source.stop(handle)
            return handle, first, await source.next_frame(handle)

        handle, first, after_stop = asyncio.run(run())

        assert handle.selection is CaptureSelection.WINDOW
        assert first is not None
        assert after_stop is None
