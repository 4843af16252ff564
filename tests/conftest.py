"""
Test Configuration
==================

Pytest fixtures and test doubles for ScreenRecapAgent.

Async code is driven with asyncio.run() inside plain test functions.
"""

import asyncio
import base64
from typing import Dict, List, Optional, Sequence

import pytest

from screen_recap.capture import AdaptiveClock
from screen_recap.perception import DescribeError, SummarizeError
from screen_recap.stream import (
    AcquisitionError,
    CaptureSelection,
    Frame,
    FrameReadError,
    StreamHandle,
)


def data_url(tag: str, media_type: str = "image/jpeg") -> str:
    """Valid-looking image payload whose content is ``tag``."""
    encoded = base64.b64encode(tag.encode("utf-8")).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def make_frame(frame_id: int, tag: Optional[str] = None) -> Frame:
    return Frame(frame_id=frame_id, image=data_url(tag or f"frame-{frame_id}"))


class ScriptedFrameSource:
    """
    Frame source replaying a fixed list of payloads.

    After the script runs out the stream reports inactive, or keeps
    repeating the last payload when ``repeat_last`` is set. Entries equal
    to ``READ_ERROR`` raise FrameReadError for that tick; any exception
    instance in the script is raised as is.
    """

    READ_ERROR = "<read-error>"

    def __init__(
        self,
        payloads: Sequence[object],
        repeat_last: bool = False,
        start_error: Optional[Exception] = None,
    ) -> None:
        self.payloads = list(payloads)
        self.repeat_last = repeat_last
        self.start_error = start_error

        self.started: List[StreamHandle] = []
        self.stopped: List[StreamHandle] = []
        self.ticks: int = 0
        self._frame_id: int = 0

    @property
    def active_handles(self) -> int:
        return len(self.started) - len(self.stopped)

    async def start(self, selection: CaptureSelection) -> StreamHandle:
        if self.start_error is not None:
            raise self.start_error
        handle = StreamHandle.open(selection, label="scripted")
        self.started.append(handle)
        return handle

    async def next_frame(self, handle: StreamHandle) -> Optional[Frame]:
        index = self.ticks
        self.ticks += 1

        if index < len(self.payloads):
            payload = self.payloads[index]
        elif self.repeat_last and self.payloads:
            payload = self.payloads[-1]
        else:
            return None

        if isinstance(payload, Exception):
            raise payload
        if payload == self.READ_ERROR:
            raise FrameReadError(f"scripted read error at tick {index}")

        frame = Frame(frame_id=self._frame_id, image=payload)
        self._frame_id += 1
        return frame

    async def stop(self, handle: StreamHandle) -> None:
        self.stopped.append(handle)


class RecordingDescriber:
    """
    Describer that records call order, completion order and concurrency.

    Attributes:
        latencies: Seconds to wait per frame id (default ``latency``)
        fail_ids: Frame ids raising DescribeError
    """

    def __init__(
        self,
        latency: float = 0.0,
        latencies: Optional[Dict[int, float]] = None,
        fail_ids: Sequence[int] = (),
    ) -> None:
        self.latency = latency
        self.latencies = latencies or {}
        self.fail_ids = set(fail_ids)

        self.calls: List[int] = []
        self.completed: List[int] = []
        self.in_flight: int = 0
        self.peak_in_flight: int = 0

    async def describe(self, frame: Frame) -> str:
        self.calls.append(frame.frame_id)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latencies.get(frame.frame_id, self.latency))
            if frame.frame_id in self.fail_ids:
                raise DescribeError(f"upstream error for frame {frame.frame_id}")
            self.completed.append(frame.frame_id)
            return f"description of frame {frame.frame_id}"
        finally:
            self.in_flight -= 1


class StubSummarizer:
    """Summarizer returning a fixed text, or failing."""

    def __init__(self, text: str = "combined summary", fail: bool = False) -> None:
        self.text = text
        self.fail = fail
        self.received: List[List[str]] = []

    async def summarize(self, texts: Sequence[str]) -> str:
        self.received.append(list(texts))
        if self.fail:
            raise SummarizeError("summarizer unavailable")
        return self.text


@pytest.fixture
def fast_clock():
    """Adaptive clock with millisecond-scale delays for session tests."""
    return AdaptiveClock(initial_delay_ms=2, min_delay_ms=1, max_delay_ms=4, step_ms=1)


@pytest.fixture
def scripted_source():
    """Factory for ScriptedFrameSource."""
    return ScriptedFrameSource


@pytest.fixture
def recording_describer():
    """Factory for RecordingDescriber."""
    return RecordingDescriber


@pytest.fixture
def stub_summarizer():
    """Factory for StubSummarizer."""
    return StubSummarizer


@pytest.fixture
def acquisition_error():
    return AcquisitionError("permission denied by user")
