"""
Perception Module
=================

Vision description and text summarization backends.

This module provides a black-box abstraction for the language models.
The pipeline consumes ONLY text produced here, never model internals.

Components:
    - VisionDescriber / TextSummarizer: Backend protocols
    - MockVisionDescriber / MockTextSummarizer: Deterministic mocks
    - OpenAIVisionDescriber / OpenAITextSummarizer: OpenAI API (production)
"""

from screen_recap.perception.engine import (
    DescribeError,
    MockTextSummarizer,
    MockVisionDescriber,
    SummarizeError,
    TextSummarizer,
    VisionDescriber,
)
from screen_recap.perception.openai_engine import (
    OpenAITextSummarizer,
    OpenAIVisionDescriber,
)

__all__ = [
    "VisionDescriber",
    "TextSummarizer",
    "DescribeError",
    "SummarizeError",
    "MockVisionDescriber",
    "MockTextSummarizer",
    "OpenAIVisionDescriber",
    "OpenAITextSummarizer",
]
