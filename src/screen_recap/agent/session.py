"""
Session Controller
==================

Owns one capture-to-summary lifecycle.

The controller drives two cooperative tasks while capturing:

    capture tick:  sleep(clock.delay) → next_frame → differ → clock → buffer
                   (size trigger flushes as soon as the buffer is full)
    flush timer:   every flush_interval_ms, flush a non-empty buffer

Each flush drains the buffer and analyzes the batch in its own task, so
the tick loop never waits on the vision model. When capture ends (stop()
or the stream going inactive) the ticks and the timer are cancelled, the
stream is released, and the finalization graph flushes the rest, waits for
every batch and summarizes.

States:
    IDLE → CAPTURING → DRAINING → SUMMARIZING → COMPLETE
    any  → FAILED   (acquisition failure only)

Design Rules:
    - Differ, clock and buffer mutations are synchronous; only frame
      acquisition, describer calls and the summary call suspend
    - In-flight batches are awaited on stop, never abandoned
    - The stream handle is released on every exit path
    - One controller per session; terminal controllers are never reused
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from screen_recap.agent.graph import FinalizeState, build_finalize_graph, create_initial_state
from screen_recap.analysis.batch import BatchAnalyzer
from screen_recap.analysis.summary import SummarizerAdapter
from screen_recap.capture.clock import AdaptiveClock
from screen_recap.capture.differ import FrameDiffer
from screen_recap.models.session import (
    AnalysisRecord,
    CaptureState,
    SessionEvent,
    SessionEventType,
    SessionResult,
    SessionSnapshot,
)
from screen_recap.observability.events import SessionEventBus
from screen_recap.perception.engine import TextSummarizer, VisionDescriber
from screen_recap.stream.buffer import FrameBuffer
from screen_recap.stream.frame import Frame
from screen_recap.stream.sources import (
    AcquisitionError,
    CaptureSelection,
    FrameReadError,
    FrameSource,
    StreamHandle,
    parse_selection,
)


logger = logging.getLogger(__name__)


class SessionController:
    """
    Capture session state machine.

    Attributes:
        session_id: Unique id of this session
        source: Frame source owning the media stream
        clock: Adaptive capture delay
        differ: Change detector
        buffer: Kept frames awaiting analysis
        analyzer: Batch analyzer
        summarizer: Summarizer adapter
        events: Event bus for presentation layers
        flush_interval_ms: Period of the flush timer
        frame_timeout_sec: Seconds allowed per frame acquisition

    Example:
        controller = SessionController(source, describer, summarizer)
        controller.events.subscribe(print)

        await controller.start(CaptureSelection.SCREEN)
        ...
        result = await controller.stop()
        print(result.summary)
    """

    def __init__(
        self,
        source: FrameSource,
        describer: VisionDescriber,
        summarizer: TextSummarizer,
        clock: Optional[AdaptiveClock] = None,
        buffer: Optional[FrameBuffer] = None,
        differ: Optional[FrameDiffer] = None,
        events: Optional[SessionEventBus] = None,
        flush_interval_ms: int = 5000,
        max_concurrency: int = 3,
        describe_timeout_sec: Optional[float] = None,
        frame_timeout_sec: float = 3.0,
        session_id: Optional[str] = None,
    ) -> None:
        if flush_interval_ms <= 0:
            raise ValueError("flush_interval_ms must be positive")
        if frame_timeout_sec <= 0:
            raise ValueError("frame_timeout_sec must be positive")

        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.source = source
        self.clock = clock or AdaptiveClock()
        self.buffer = buffer or FrameBuffer()
        self.differ = differ or FrameDiffer()
        self.analyzer = BatchAnalyzer(
            describer,
            max_concurrency=max_concurrency,
            call_timeout=describe_timeout_sec,
        )
        self.summarizer = SummarizerAdapter(summarizer)
        self.events = events or SessionEventBus()
        self.flush_interval_ms = flush_interval_ms
        self.frame_timeout_sec = frame_timeout_sec

        # Lifecycle
        self._state: CaptureState = CaptureState.IDLE
        self._handle: Optional[StreamHandle] = None
        self._error: Optional[BaseException] = None
        self._result: Optional[SessionResult] = None
        self._done: asyncio.Event = asyncio.Event()

        # Tasks
        self._tick_task: Optional[asyncio.Task] = None
        self._flush_task: Optional[asyncio.Task] = None
        self._finalize_task: Optional[asyncio.Task] = None
        self._batch_tasks: List[asyncio.Task] = []

        # Batch results by dispatch slot (None until the batch completes)
        self._batches: List[Optional[List[AnalysisRecord]]] = []

        # Counters
        self.frames_captured: int = 0
        self.read_errors: int = 0

        self._graph = build_finalize_graph(
            drain=self._drain_node,
            collect=self._collect_node,
            summarize=self._summarize_node,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> CaptureState:
        """Current lifecycle state."""
        return self._state

    @property
    def handle(self) -> Optional[StreamHandle]:
        """Acquired stream handle while the stream is held."""
        return self._handle

    @property
    def result(self) -> Optional[SessionResult]:
        """Final result once COMPLETE."""
        return self._result

    @property
    def error(self) -> Optional[BaseException]:
        """Failure cause once FAILED."""
        return self._error

    @property
    def frame_count(self) -> int:
        """Kept frames so far."""
        return self.differ.kept

    @property
    def records(self) -> List[AnalysisRecord]:
        """Records of completed batches, in dispatch order."""
        return [record for batch in self._batches if batch for record in batch]

    # =========================================================================
    # Public API
    # =========================================================================

    async def start(
        self,
        selection: Union[str, CaptureSelection] = CaptureSelection.SCREEN,
    ) -> StreamHandle:
        """
        Acquire the stream and begin capturing.

        Args:
            selection: What to capture ("screen", "window" or "tab")

        Returns:
            The acquired stream handle

        Raises:
            RuntimeError: If the controller was already started
            AcquisitionError: If the stream cannot be acquired (session FAILED)
        """
        if self._state is not CaptureState.IDLE:
            raise RuntimeError(
                f"Session {self.session_id} cannot start from {self._state.value}"
            )

        self.clock.reset()
        self.buffer.clear()
        self.differ.reset()

        try:
            target = parse_selection(selection)
            handle = await self.source.start(target)
        except AcquisitionError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = AcquisitionError(f"Failed to acquire frame source: {e}")
            self._fail(error)
            raise error from e

        self._handle = handle
        self._set_state(CaptureState.CAPTURING)
        self._emit(SessionEventType.STREAM_READY, stream=handle.to_dict())

        self._tick_task = asyncio.create_task(
            self._capture_loop(),
            name=f"capture_tick_{self.session_id}",
        )
        self._flush_task = asyncio.create_task(
            self._flush_timer(),
            name=f"flush_timer_{self.session_id}",
        )

        logger.info(
            f"Session {self.session_id} capturing {target.value} "
            f"({handle.label}), delay={self.clock.delay_ms}ms"
        )
        return handle

    async def stop(self) -> SessionResult:
        """
        Stop capturing and wait for the summary.

        Safe to call after the stream already ended on its own.

        Returns:
            SessionResult of this session

        Raises:
            RuntimeError: If the session was never started
            AcquisitionError: If the session FAILED
        """
        if self._state is CaptureState.IDLE:
            raise RuntimeError(f"Session {self.session_id} was never started")

        if self._state is CaptureState.CAPTURING:
            self._begin_draining("stop requested")

        return await self.wait()

    async def wait(self) -> SessionResult:
        """
        Wait until the session is terminal.

        Returns:
            SessionResult once COMPLETE

        Raises:
            The failure cause if the session FAILED
        """
        if self._state is CaptureState.IDLE:
            raise RuntimeError(f"Session {self.session_id} was never started")

        await self._done.wait()
        if self._result is None:
            raise self._error or RuntimeError(f"Session {self.session_id} produced no result")
        return self._result

    def snapshot(self) -> SessionSnapshot:
        """Point-in-time status of the session."""
        return SessionSnapshot(
            session_id=self.session_id,
            state=self._state,
            frames_captured=self.frames_captured,
            frames_kept=self.differ.kept,
            frames_buffered=self.buffer.size,
            read_errors=self.read_errors,
            batches_dispatched=len(self._batches),
            records_collected=len(self.records),
            capture_delay_ms=self.clock.delay_ms,
            stream=self._handle.to_dict() if self._handle else None,
            error=str(self._error) if self._error else None,
        )

    def get_metrics(self) -> Dict[str, Any]:
        """Get session metrics for observability."""
        return {
            "state": self._state.value,
            "frames_captured": self.frames_captured,
            "read_errors": self.read_errors,
            "capture_delay_ms": self.clock.delay_ms,
            "differ": self.differ.metrics(),
            "buffer": self.buffer.metrics(),
            "analyzer": self.analyzer.get_metrics(),
        }

    # =========================================================================
    # Capture loop
    # =========================================================================

    async def _capture_loop(self) -> None:
        """Tick loop: one frame acquisition per clock delay."""
        handle = self._handle

        while self._state is CaptureState.CAPTURING:
            await asyncio.sleep(self.clock.delay_seconds)
            if self._state is not CaptureState.CAPTURING:
                break

            try:
                frame = await asyncio.wait_for(
                    self.source.next_frame(handle),
                    timeout=self.frame_timeout_sec,
                )
            except asyncio.TimeoutError:
                self.read_errors += 1
                logger.warning(
                    f"Frame acquisition timed out after {self.frame_timeout_sec}s, "
                    f"skipping tick"
                )
                continue
            except FrameReadError as e:
                self.read_errors += 1
                logger.warning(f"Frame read failed, skipping tick: {e}")
                continue
            except Exception as e:
                self.read_errors += 1
                logger.warning(
                    f"Frame source raised {type(e).__name__}, skipping tick: {e}"
                )
                continue

            if self._state is not CaptureState.CAPTURING:
                break

            if frame is None:
                logger.info(f"Session {self.session_id}: stream is no longer active")
                self._begin_draining("stream ended")
                return

            self._evaluate(frame)

    def _evaluate(self, frame: Frame) -> None:
        """Differ → clock → buffer for one frame. Never suspends."""
        self.frames_captured += 1

        kept = self.differ.should_keep(frame)
        self.clock.on_frame_evaluated(kept)
        if not kept:
            return

        threshold_reached = self.buffer.push(frame)
        self._emit(SessionEventType.FRAME_COUNT, frame_count=self.differ.kept)

        if threshold_reached:
            self._flush("size")

    async def _flush_timer(self) -> None:
        """Periodic flush of a non-empty buffer."""
        interval = self.flush_interval_ms / 1000.0
        while self._state is CaptureState.CAPTURING:
            await asyncio.sleep(interval)
            if self._state is CaptureState.CAPTURING and self.buffer.size > 0:
                self._flush("timer")

    def _flush(self, trigger: str) -> Optional[asyncio.Task]:
        """
        Drain the buffer and analyze the batch in the background.

        Returns:
            The batch task, or None when the buffer was empty.
        """
        frames = self.buffer.drain()
        if not frames:
            return None

        slot = len(self._batches)
        self._batches.append(None)
        task = asyncio.create_task(
            self._run_batch(slot, frames),
            name=f"batch_{self.session_id}_{slot}",
        )
        self._batch_tasks.append(task)

        logger.info(
            f"Session {self.session_id}: batch {slot} dispatched "
            f"({len(frames)} frames, {trigger} trigger)"
        )
        return task

    async def _run_batch(self, slot: int, frames: List[Frame]) -> None:
        """Analyze one batch and store its records in its dispatch slot."""
        try:
            records = await self.analyzer.analyze(frames)
        except Exception as e:
            logger.error(f"Batch {slot} failed as a whole: {e}")
            records = [
                AnalysisRecord(
                    frame_id=frame.frame_id,
                    text=f"Error analyzing frame {frame.frame_id}: {e}",
                    is_error=True,
                )
                for frame in frames
            ]

        self._batches[slot] = records
        self._emit(SessionEventType.BATCH_ANALYZED, records=records)

    # =========================================================================
    # Draining and finalization
    # =========================================================================

    def _begin_draining(self, reason: str) -> None:
        """Stop accepting frames and schedule finalization."""
        if self._state is not CaptureState.CAPTURING:
            return

        logger.info(f"Session {self.session_id} draining: {reason}")
        self._set_state(CaptureState.DRAINING)

        current = asyncio.current_task()
        for task in (self._tick_task, self._flush_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

        self._finalize_task = asyncio.create_task(
            self._finalize(),
            name=f"finalize_{self.session_id}",
        )

    async def _finalize(self) -> None:
        """Release the stream, then run the finalization graph."""
        try:
            pending = [
                task for task in (self._tick_task, self._flush_task)
                if task is not None and task is not asyncio.current_task()
            ]
            await asyncio.gather(*pending, return_exceptions=True)
            await self._release_stream()

            final_state = await self._graph.ainvoke(create_initial_state())

            self._result = SessionResult(
                session_id=self.session_id,
                summary=final_state["summary"],
                records=final_state["records"],
                frames_kept=self.differ.kept,
                summary_fallback=final_state["fallback"],
            )
        except Exception as e:
            logger.exception(f"Session {self.session_id} finalization failed")
            await self._release_stream()
            self._fail(e)
            return

        self._set_state(CaptureState.COMPLETE)
        self._emit(SessionEventType.RESULT, result=self._result)
        self._done.set()

        logger.info(
            f"Session {self.session_id} complete: {self.differ.kept} frames kept, "
            f"{len(self._result.records)} records, "
            f"{self._result.error_count} error(s), "
            f"fallback={self._result.summary_fallback}"
        )

    async def _drain_node(self, state: FinalizeState) -> Dict[str, Any]:
        """Flush frames still in the buffer as a final batch."""
        remaining = self.buffer.size
        self._flush("stop")
        return {"dispatched": remaining}

    async def _collect_node(self, state: FinalizeState) -> Dict[str, Any]:
        """Await every dispatched batch and gather records in dispatch order."""
        if self._batch_tasks:
            await asyncio.gather(*self._batch_tasks, return_exceptions=True)

        records = self.records
        self._set_state(CaptureState.SUMMARIZING)
        return {"records": records}

    async def _summarize_node(self, state: FinalizeState) -> Dict[str, Any]:
        """Fold the records into the summary text."""
        summary = await self.summarizer.summarize(state["records"])
        return {
            "summary": summary,
            "fallback": self.summarizer.last_used_fallback,
        }

    async def _release_stream(self) -> None:
        """Release the stream handle if still held."""
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self.source.stop(handle)
        except Exception as e:
            logger.error(f"Failed to release stream {handle.stream_id}: {e}")

    # =========================================================================
    # State and events
    # =========================================================================

    def _set_state(self, new_state: CaptureState) -> None:
        previous = self._state
        self._state = new_state
        logger.info(
            f"Session {self.session_id}: {previous.value} → {new_state.value}"
        )
        self._emit(SessionEventType.STATE_CHANGED, state=new_state)

    def _fail(self, error: BaseException) -> None:
        self._error = error
        logger.error(f"Session {self.session_id} failed: {error}")
        self._set_state(CaptureState.FAILED)
        self._emit(SessionEventType.FAILED, error=str(error))
        self._done.set()

    def _emit(self, event_type: SessionEventType, **fields: Any) -> None:
        self.events.emit(
            SessionEvent(type=event_type, session_id=self.session_id, **fields)
        )
