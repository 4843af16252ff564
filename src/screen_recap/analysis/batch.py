"""
Batch Analyzer
==============

Concurrent, fault-isolated description of a batch of frames.

This analyzer:
    - Runs a cheap local pre-check on every payload
    - Sends valid frames to the vision describer, at most
      ``max_concurrency`` calls in flight per batch
    - Turns every per-frame failure into an error record for that slot
    - Returns one record per input frame, in input order

Ordering:
    asyncio.gather returns results in argument order, so output[i] always
    belongs to input[i] regardless of which describer call finishes first.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from screen_recap.models.session import AnalysisRecord
from screen_recap.perception.engine import VisionDescriber
from screen_recap.stream.frame import Frame
from screen_recap.stream.image_codec import ImageDecodeError, parse_data_url


logger = logging.getLogger(__name__)


class BatchAnalyzer:
    """
    Describes batches of frames under a concurrency cap.

    Attributes:
        describer: Vision backend
        max_concurrency: Maximum describer calls in flight per batch
        call_timeout: Seconds allowed per describer call (None = no limit)
        peak_in_flight: Highest in-flight count observed within one batch
        batches: Batches analyzed
        describe_calls: Describer calls made
        error_count: Error records produced (pre-check and describer)

    Example:
        analyzer = BatchAnalyzer(describer, max_concurrency=3)
        records = await analyzer.analyze(buffer.drain())
    """

    def __init__(
        self,
        describer: VisionDescriber,
        max_concurrency: int = 3,
        call_timeout: Optional[float] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if call_timeout is not None and call_timeout <= 0:
            raise ValueError("call_timeout must be positive")

        self.describer = describer
        self.max_concurrency = max_concurrency
        self.call_timeout = call_timeout

        self.peak_in_flight: int = 0
        self.batches: int = 0
        self.describe_calls: int = 0
        self.error_count: int = 0

        logger.info(
            f"BatchAnalyzer initialized: max_concurrency={max_concurrency}, "
            f"call_timeout={call_timeout or 'none'}"
        )

    async def analyze(self, frames: Sequence[Frame]) -> List[AnalysisRecord]:
        """
        Analyze a batch of frames.

        Never raises for per-frame problems; each failure becomes an
        error record in the matching position.

        Args:
            frames: Frames in dispatch order

        Returns:
            Records with len(records) == len(frames), records[i] for frames[i]
        """
        if not frames:
            return []

        self.batches += 1
        semaphore = asyncio.Semaphore(self.max_concurrency)
        in_flight = [0]

        records = await asyncio.gather(
            *(self._analyze_frame(frame, semaphore, in_flight) for frame in frames)
        )

        errors = sum(1 for record in records if record.is_error)
        logger.info(
            f"Batch analyzed: {len(records)} frames, {errors} error(s) "
            f"(ids {frames[0].frame_id}..{frames[-1].frame_id})"
        )
        return list(records)

    async def _analyze_frame(
        self,
        frame: Frame,
        semaphore: asyncio.Semaphore,
        in_flight: List[int],
    ) -> AnalysisRecord:
        """Pre-check and describe one frame, converting failures to records."""
        try:
            parse_data_url(frame.image)
        except ImageDecodeError as e:
            logger.warning(f"Frame {frame.frame_id} rejected before describe: {e}")
            return self._error_record(frame, f"Frame {frame.frame_id} has invalid image data: {e}")

        async with semaphore:
            in_flight[0] += 1
            self.peak_in_flight = max(self.peak_in_flight, in_flight[0])
            self.describe_calls += 1
            try:
                if self.call_timeout is not None:
                    text = await asyncio.wait_for(
                        self.describer.describe(frame),
                        timeout=self.call_timeout,
                    )
                else:
                    text = await self.describer.describe(frame)
            except asyncio.TimeoutError:
                logger.warning(f"Describe timed out for frame {frame.frame_id}")
                return self._error_record(
                    frame,
                    f"Error analyzing frame {frame.frame_id}: "
                    f"timed out after {self.call_timeout:.1f}s",
                )
            except Exception as e:
                logger.warning(f"Describe failed for frame {frame.frame_id}: {e}")
                return self._error_record(
                    frame,
                    f"Error analyzing frame {frame.frame_id}: {e or type(e).__name__}",
                )
            finally:
                in_flight[0] -= 1

        return AnalysisRecord(frame_id=frame.frame_id, text=text or "No analysis available")

    def _error_record(self, frame: Frame, message: str) -> AnalysisRecord:
        self.error_count += 1
        return AnalysisRecord(frame_id=frame.frame_id, text=message, is_error=True)

    def get_metrics(self) -> dict:
        """Get analyzer metrics for observability."""
        return {
            "batches": self.batches,
            "describe_calls": self.describe_calls,
            "error_count": self.error_count,
            "peak_in_flight": self.peak_in_flight,
            "max_concurrency": self.max_concurrency,
        }
