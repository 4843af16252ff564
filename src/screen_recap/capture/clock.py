"""
Adaptive Clock
==============

Inter-capture delay that follows the observed rate of change.

Changed frames shorten the delay by one step (denser sampling during
activity); unchanged frames lengthen it by one step (sparser sampling while
idle). The delay is clamped to [min_delay_ms, max_delay_ms], which bounds
the number of vision calls per minute while still catching bursts.

    changed:   delay = max(min_delay_ms, delay - step_ms)
    unchanged: delay = min(max_delay_ms, delay + step_ms)

The capture loop reads ``delay_ms`` before scheduling each tick, so a
change takes effect on the next capture.
"""

import logging


logger = logging.getLogger(__name__)


class AdaptiveClock:
    """
    Bounded, step-adjusted capture delay.

    Attributes:
        initial_delay_ms: Delay at session start
        min_delay_ms: Lower bound (fastest sampling)
        max_delay_ms: Upper bound (slowest sampling)
        step_ms: Adjustment per evaluated frame

    Example:
        clock = AdaptiveClock()
        clock.on_frame_evaluated(True)    # 900
        clock.on_frame_evaluated(False)   # 1000
    """

    def __init__(
        self,
        initial_delay_ms: int = 1000,
        min_delay_ms: int = 500,
        max_delay_ms: int = 2000,
        step_ms: int = 100,
    ) -> None:
        """
        Initialize adaptive clock.

        Args:
            initial_delay_ms: Starting delay, must lie within the bounds
            min_delay_ms: Minimum delay (> 0)
            max_delay_ms: Maximum delay (>= min_delay_ms)
            step_ms: Step applied per evaluation (> 0)
        """
        if min_delay_ms <= 0:
            raise ValueError("min_delay_ms must be positive")
        if max_delay_ms < min_delay_ms:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        if not min_delay_ms <= initial_delay_ms <= max_delay_ms:
            raise ValueError("initial_delay_ms must lie within [min_delay_ms, max_delay_ms]")
        if step_ms <= 0:
            raise ValueError("step_ms must be positive")

        self.initial_delay_ms = initial_delay_ms
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self.step_ms = step_ms

        self._delay_ms = initial_delay_ms

    @property
    def delay_ms(self) -> int:
        """Current delay before the next capture."""
        return self._delay_ms

    @property
    def delay_seconds(self) -> float:
        return self._delay_ms / 1000.0

    def on_frame_evaluated(self, was_different: bool) -> int:
        """
        Adjust the delay after a frame was evaluated by the differ.

        Args:
            was_different: Whether the frame differed from the last kept one

        Returns:
            The new delay in milliseconds
        """
        previous = self._delay_ms
        if was_different:
            self._delay_ms = max(self.min_delay_ms, self._delay_ms - self.step_ms)
        else:
            self._delay_ms = min(self.max_delay_ms, self._delay_ms + self.step_ms)

        if self._delay_ms != previous:
            logger.debug(f"Capture delay {previous}ms -> {self._delay_ms}ms")
        return self._delay_ms

    def reset(self) -> None:
        """Restore the initial delay (start of a new session)."""
        self._delay_ms = self.initial_delay_ms
