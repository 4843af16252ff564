"""
Capture Module
==============

Sampling decisions for the capture loop.

    - FrameDiffer: keeps a frame only when it changed
    - AdaptiveClock: speeds up sampling during activity, slows it when idle
"""

from screen_recap.capture.differ import FrameDiffer, fingerprint
from screen_recap.capture.clock import AdaptiveClock

__all__ = ["FrameDiffer", "AdaptiveClock", "fingerprint"]
