#!/usr/bin/env python3
"""
Capture Session Script
======================

Standalone script that runs one capture session end to end.

This script:
    1. Acquires a frame source (mock, local screen or remote stream)
    2. Captures for a configurable duration (or until the stream ends)
    3. Logs progress every few seconds
    4. Stops, waits for the summary and prints it

Prerequisites:
    - pip install -e .
    - OPENAI_API_KEY set when using --analysis openai

Usage:
    python scripts/run_session.py --duration 20
    python scripts/run_session.py --source screen --analysis openai --duration 60
    python scripts/run_session.py --source stream --url ws://localhost:8000/ws/frames
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from screen_recap.agent import SessionController
from screen_recap.models.session import CaptureState, SessionEvent, SessionEventType
from screen_recap.perception import (
    MockTextSummarizer,
    MockVisionDescriber,
    OpenAITextSummarizer,
    OpenAIVisionDescriber,
)
from screen_recap.stream import (
    AcquisitionError,
    MockFrameSource,
    ScreenFrameSource,
    WebSocketFrameSource,
)


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_source(args: argparse.Namespace):
    if args.source == "screen":
        return ScreenFrameSource(monitor=args.monitor)
    if args.source == "stream":
        return WebSocketFrameSource(url=args.url)
    return MockFrameSource(hold_frames=3, max_frames=args.mock_frames)


def build_backends(args: argparse.Namespace):
    if args.analysis == "openai":
        return (
            OpenAIVisionDescriber(model=args.model),
            OpenAITextSummarizer(model=args.model),
        )
    return MockVisionDescriber(latency=0.2), MockTextSummarizer()


async def run_session(args: argparse.Namespace) -> int:
    """
    Run one session.

    Returns:
        Process exit code
    """
    describer, summarizer = build_backends(args)
    controller = SessionController(
        source=build_source(args),
        describer=describer,
        summarizer=summarizer,
    )

    def on_event(event: SessionEvent) -> None:
        if event.type is SessionEventType.FRAME_COUNT:
            logger.info(f"  Frames kept: {event.frame_count}")
        elif event.type is SessionEventType.BATCH_ANALYZED:
            logger.info(f"  Batch analyzed: {len(event.records or [])} records")

    controller.events.subscribe(on_event)

    logger.info("=" * 60)
    logger.info(f"Capture session {controller.session_id}")
    logger.info(f"Source: {args.source}, analysis: {args.analysis}")
    logger.info(f"Duration: {args.duration} seconds")
    logger.info("=" * 60)

    try:
        await controller.start(args.selection)
    except AcquisitionError as e:
        logger.error(f"Could not start capture: {e}")
        return 1

    start_time = time.time()
    try:
        while controller.state is CaptureState.CAPTURING:
            if time.time() - start_time >= args.duration:
                logger.info(f"Duration ({args.duration}s) reached")
                break
            await asyncio.sleep(0.5)
    finally:
        result = await controller.stop()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Frames captured: {controller.frames_captured}")
    logger.info(f"Frames kept: {result.frames_kept}")
    logger.info(f"Records: {len(result.records)} ({result.error_count} errors)")
    logger.info(f"Summary fallback: {result.summary_fallback}")
    logger.info("=" * 60)
    print(result.summary)

    return 0


def main():
    parser = argparse.ArgumentParser(description="Run one screen capture session")
    parser.add_argument(
        "--source",
        choices=["mock", "screen", "stream"],
        default="mock",
        help="Frame source backend (default: mock)",
    )
    parser.add_argument(
        "--analysis",
        choices=["mock", "openai"],
        default="mock",
        help="Describer / summarizer backend (default: mock)",
    )
    parser.add_argument(
        "--selection",
        choices=["screen", "window", "tab"],
        default="screen",
        help="What to capture (default: screen)",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("SCREEN_RECAP_STREAM_URL", "ws://localhost:8000/ws/frames"),
        help="WebSocket URL for --source stream",
    )
    parser.add_argument("--monitor", type=int, default=1, help="Monitor index for --source screen")
    parser.add_argument("--model", type=str, default="gpt-4o-mini", help="OpenAI model")
    parser.add_argument(
        "--duration",
        type=int,
        default=20,
        help="Capture duration in seconds (default: 20)",
    )
    parser.add_argument(
        "--mock-frames",
        type=int,
        default=0,
        help="End the mock stream after N ticks (default: never)",
    )

    args = parser.parse_args()
    sys.exit(asyncio.run(run_session(args)))


if __name__ == "__main__":
    main()
