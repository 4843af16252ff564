"""
Perception Engine
==================

Vision and summarization abstractions for the analysis pipeline.

This module provides the VisionDescriber and TextSummarizer protocols plus
deterministic mock implementations that make no external API calls.

Design Rules:
    - Describers take a Frame and return free text
    - Summarizers take many texts and return one text
    - Backend failures are raised as DescribeError / SummarizeError
    - Mocks provide stable output for testing and offline demos
"""

import asyncio
import logging
from typing import Collection, Optional, Protocol, Sequence

from screen_recap.capture.differ import fingerprint
from screen_recap.stream.frame import Frame


logger = logging.getLogger(__name__)


class DescribeError(Exception):
    """Raised when a frame cannot be described."""
    pass


class SummarizeError(Exception):
    """Raised when analyses cannot be summarized."""
    pass


class VisionDescriber(Protocol):
    """
    Protocol for vision backends.

    Implemented by:
        - MockVisionDescriber (testing, offline demos)
        - OpenAIVisionDescriber (production)
    """

    async def describe(self, frame: Frame) -> str:
        """
        Describe what is visible in a frame.

        Raises:
            DescribeError: On timeout, malformed image or upstream error
        """
        ...


class TextSummarizer(Protocol):
    """
    Protocol for summarization backends.

    Implemented by:
        - MockTextSummarizer (testing, offline demos)
        - OpenAITextSummarizer (production)
    """

    async def summarize(self, texts: Sequence[str]) -> str:
        """
        Fold many per-frame analyses into one summary.

        Raises:
            SummarizeError: On upstream error or empty output
        """
        ...


class MockVisionDescriber:
    """
    Deterministic mock describer.

    Descriptions are derived from the frame id and payload fingerprint, so
    identical payloads always get identical text.

    Attributes:
        latency: Simulated seconds per call
        fail_frame_ids: Frame ids for which DescribeError is raised
        call_count: Total describe() calls
    """

    def __init__(
        self,
        latency: float = 0.0,
        fail_frame_ids: Optional[Collection[int]] = None,
    ) -> None:
        self.latency = latency
        self.fail_frame_ids = frozenset(fail_frame_ids or ())
        self.call_count: int = 0

        logger.info(
            f"MockVisionDescriber initialized: latency={latency}s, "
            f"failing frames={sorted(self.fail_frame_ids) or 'none'}"
        )

    async def describe(self, frame: Frame) -> str:
        self.call_count += 1
        if self.latency > 0:
            await asyncio.sleep(self.latency)

        if frame.frame_id in self.fail_frame_ids:
            raise DescribeError(f"simulated describer failure for frame {frame.frame_id}")

        return (
            f"Frame {frame.frame_id}: synthetic screen content "
            f"(fingerprint {fingerprint(frame):08x}, {frame.payload_size} chars)"
        )


class MockTextSummarizer:
    """
    Deterministic mock summarizer.

    Produces a bullet list with the first line of every analysis.

    Attributes:
        fail: Raise SummarizeError on every call
        call_count: Total summarize() calls
    """

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.call_count: int = 0

    async def summarize(self, texts: Sequence[str]) -> str:
        self.call_count += 1
        if self.fail:
            raise SummarizeError("simulated summarizer failure")

        lines = [f"Summary of {len(texts)} frame analyses:"]
        for text in texts:
            first_line = text.strip().splitlines()[0] if text.strip() else "(empty)"
            lines.append(f"- {first_line[:160]}")
        return "\n".join(lines)
