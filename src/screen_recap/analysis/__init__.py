"""
Analysis Module
===============

Batched frame analysis and final summarization.

    - BatchAnalyzer: concurrent, order-preserving, fault-isolated describe
    - SummarizerAdapter: records -> one summary, with a text fallback
"""

from screen_recap.analysis.batch import BatchAnalyzer
from screen_recap.analysis.summary import (
    FALLBACK_NOTE,
    NO_FRAMES_MESSAGE,
    SummarizerAdapter,
)

__all__ = [
    "BatchAnalyzer",
    "SummarizerAdapter",
    "NO_FRAMES_MESSAGE",
    "FALLBACK_NOTE",
]
