"""
Summarizer Adapter
==================

Turns the ordered per-frame records of a session into one summary string.

Rules:
    - No records       -> fixed "no frames" message
    - One record       -> its text verbatim, no summarizer call
    - Two or more      -> all texts (error texts included) go to the
                          summarizer; if that fails, the literal
                          concatenation is returned behind a failure note

The caller always receives text.
"""

import logging
from typing import Sequence

from screen_recap.models.session import AnalysisRecord
from screen_recap.perception.engine import TextSummarizer


logger = logging.getLogger(__name__)


NO_FRAMES_MESSAGE = (
    "No frames were captured for analysis. Please try again and ensure your "
    "screen is shared for at least a few seconds."
)

FALLBACK_NOTE = (
    "Failed to summarize analyses. Showing the {count} individual frame "
    "analyses instead:"
)


def concatenate(texts: Sequence[str]) -> str:
    """Join analyses into one composite text, in order."""
    return "\n\n".join(texts)


class SummarizerAdapter:
    """
    Summary step with a guaranteed text result.

    Attributes:
        summarizer: Summarization backend
        last_used_fallback: Whether the last call returned the fallback
    """

    def __init__(self, summarizer: TextSummarizer) -> None:
        self.summarizer = summarizer
        self.last_used_fallback: bool = False

    async def summarize(self, records: Sequence[AnalysisRecord]) -> str:
        """
        Summarize a session's records.

        Args:
            records: Per-frame records in dispatch order

        Returns:
            Summary text (never empty)
        """
        self.last_used_fallback = False

        if not records:
            logger.info("No records to summarize")
            return NO_FRAMES_MESSAGE

        texts = [record.text for record in records]
        if len(texts) == 1:
            return texts[0]

        try:
            summary = await self.summarizer.summarize(texts)
            if not summary or not summary.strip():
                raise ValueError("summarizer returned empty text")
            return summary
        except Exception as e:
            logger.warning(
                f"Summarization failed ({e}); "
                f"falling back to {len(texts)} concatenated analyses"
            )
            self.last_used_fallback = True
            return f"{FALLBACK_NOTE.format(count=len(texts))}\n\n{concatenate(texts)}"
