"""
Session Controller Tests
========================

End-to-end tests of the capture lifecycle with scripted sources and
recording describers. Clock delays are a few milliseconds so sessions
finish quickly.
"""

import asyncio

import pytest

from screen_recap.agent import SessionController
from screen_recap.analysis.summary import NO_FRAMES_MESSAGE
from screen_recap.models.session import CaptureState, SessionEventType
from screen_recap.stream import AcquisitionError, CaptureSelection, FrameBuffer

from conftest import (
    RecordingDescriber,
    ScriptedFrameSource,
    StubSummarizer,
    data_url,
)


def _controller(source, clock, describer=None, summarizer=None, **kwargs):
    return SessionController(
        source=source,
        describer=describer or RecordingDescriber(),
        summarizer=summarizer or StubSummarizer(),
        clock=clock,
        **kwargs,
    )


def _states(events):
    return [
        event.state for event in events
        if event.type is SessionEventType.STATE_CHANGED
    ]


class TestCaptureAndDiffing:
    """Tests for the tick loop feeding the differ and the buffer."""

    def test_duplicates_are_not_buffered(self, fast_clock):
        """Verify F0 == F1 == F2 != F3 buffers exactly F0 and F3."""
        source = ScriptedFrameSource([data_url("A")] * 3 + [data_url("B")])
        buffered_at_drain = []

        async def run():
            controller = _controller(source, fast_clock, flush_interval_ms=60000)

            def on_event(event):
                if event.state is CaptureState.DRAINING:
                    buffered_at_drain.append(
                        [frame.frame_id for frame in controller.buffer.peek()]
                    )

            controller.events.subscribe(on_event)
            await controller.start(CaptureSelection.SCREEN)
            return controller, await controller.wait()

        controller, result = asyncio.run(run())

        assert buffered_at_drain == [[0, 3]]
        assert controller.frames_captured == 4
        assert result.frames_kept == 2
        assert [record.frame_id for record in result.records] == [0, 3]

    def test_read_errors_skip_the_tick(self, fast_clock):
        """Verify a failed frame read is skipped and capture continues."""
        source = ScriptedFrameSource(
            [data_url("A"), ScriptedFrameSource.READ_ERROR, data_url("B")]
        )

        async def run():
            controller = _controller(source, fast_clock)
            await controller.start()
            return controller, await controller.wait()

        controller, result = asyncio.run(run())

        assert controller.read_errors == 1
        assert len(result.records) == 2

    def test_unexpected_source_error_skips_the_tick(self, fast_clock):
        """Verify an arbitrary source exception neither kills capture nor hangs wait."""
        source = ScriptedFrameSource(
            [data_url("A"), OSError("display went away for one tick")]
        )

        async def run():
            controller = _controller(source, fast_clock)
            await controller.start()
            result = await asyncio.wait_for(controller.wait(), timeout=5.0)
            return controller, result

        controller, result = asyncio.run(run())

        assert controller.state is CaptureState.COMPLETE
        assert controller.read_errors == 1
        assert [record.frame_id for record in result.records] == [0]
        assert source.active_handles == 0

    def test_frame_count_events(self, fast_clock):
        """Verify a frame_count event follows every kept frame."""
        source = ScriptedFrameSource([data_url("A"), data_url("A"), data_url("B")])
        counts = []

        async def run():
            controller = _controller(source, fast_clock)
            controller.events.subscribe(
                lambda event: counts.append(event.frame_count)
                if event.type is SessionEventType.FRAME_COUNT else None
            )
            await controller.start()
            await controller.wait()

        asyncio.run(run())

        assert counts == [1, 2]


class TestFlushTriggers:
    """Tests for size and timer flushes during capture."""

    def test_size_trigger_flushes_before_timer(self, fast_clock):
        """Verify the fifth kept frame dispatches a batch while capturing."""
        payloads = [data_url(f"scene-{i}") for i in range(5)]
        source = ScriptedFrameSource(payloads, repeat_last=True)
        seen = {}

        async def run():
            controller = _controller(
                source,
                fast_clock,
                buffer=FrameBuffer(flush_size=5),
                flush_interval_ms=60000,
            )
            batch_done = asyncio.Event()

            def on_event(event):
                if event.type is SessionEventType.BATCH_ANALYZED:
                    seen["state"] = controller.state
                    seen["records"] = event.records
                    batch_done.set()

            controller.events.subscribe(on_event)
            await controller.start()
            await asyncio.wait_for(batch_done.wait(), timeout=5.0)
            return await controller.stop()

        result = asyncio.run(run())

        assert seen["state"] is CaptureState.CAPTURING
        assert [record.frame_id for record in seen["records"]] == [0, 1, 2, 3, 4]
        assert len(result.records) == 5

    def test_timer_flushes_partial_buffer(self, fast_clock):
        """Verify the flush timer dispatches a buffer below the size threshold."""
        source = ScriptedFrameSource([data_url("A"), data_url("B")], repeat_last=True)
        seen = {}

        async def run():
            controller = _controller(
                source,
                fast_clock,
                buffer=FrameBuffer(flush_size=100),
                flush_interval_ms=30,
            )
            batch_done = asyncio.Event()

            def on_event(event):
                if event.type is SessionEventType.BATCH_ANALYZED:
                    seen.setdefault("state", controller.state)
                    batch_done.set()

            controller.events.subscribe(on_event)
            await controller.start()
            await asyncio.wait_for(batch_done.wait(), timeout=5.0)
            return await controller.stop()

        result = asyncio.run(run())

        assert seen["state"] is CaptureState.CAPTURING
        assert [record.frame_id for record in result.records] == [0, 1]

    def test_records_follow_dispatch_order(self, fast_clock):
        """Verify batch order survives batches completing out of order."""
        source = ScriptedFrameSource([data_url(f"s{i}") for i in range(5)])
        describer = RecordingDescriber(latencies={0: 0.2})

        async def run():
            controller = _controller(
                source,
                fast_clock,
                describer=describer,
                buffer=FrameBuffer(flush_size=2),
                flush_interval_ms=60000,
            )
            await controller.start()
            return await controller.wait()

        result = asyncio.run(run())

        assert describer.completed[-1] == 0
        assert [record.frame_id for record in result.records] == [0, 1, 2, 3, 4]


class TestStopAndFinalization:
    """Tests for draining, summarizing and the final result."""

    def test_stream_end_completes_without_stop(self, fast_clock):
        """Verify an inactive stream drains and completes on its own."""
        source = ScriptedFrameSource([data_url("A"), data_url("B"), data_url("C")])
        summarizer = StubSummarizer(text="all done")
        events = []

        async def run():
            controller = _controller(source, fast_clock, summarizer=summarizer)
            controller.events.subscribe(events.append)
            await controller.start()
            return controller, await controller.wait()

        controller, result = asyncio.run(run())

        assert _states(events) == [
            CaptureState.CAPTURING,
            CaptureState.DRAINING,
            CaptureState.SUMMARIZING,
            CaptureState.COMPLETE,
        ]
        assert controller.state is CaptureState.COMPLETE
        assert result.summary == "all done"
        assert summarizer.received == [[record.text for record in result.records]]
        assert source.active_handles == 0
        assert events[-1].type is SessionEventType.RESULT
        assert events[-1].result == result

    def test_describer_failure_keeps_record_slot(self, fast_clock):
        """Verify a failing frame yields an error record at its position."""
        source = ScriptedFrameSource([data_url("A"), data_url("B"), data_url("C")])
        describer = RecordingDescriber(fail_ids=[1])

        async def run():
            controller = _controller(source, fast_clock, describer=describer)
            await controller.start()
            return await controller.wait()

        result = asyncio.run(run())

        assert len(result.records) == 3
        assert [record.is_error for record in result.records] == [False, True, False]
        assert result.error_count == 1
        assert result.summary_fallback is False

    def test_stop_awaits_in_flight_batch(self, fast_clock):
        """Verify stop waits for a batch that is still being described."""
        payloads = [data_url(f"scene-{i}") for i in range(5)]
        source = ScriptedFrameSource(payloads, repeat_last=True)
        describer = RecordingDescriber(latency=0.1)

        async def run():
            controller = _controller(
                source,
                fast_clock,
                describer=describer,
                buffer=FrameBuffer(flush_size=5),
                flush_interval_ms=60000,
            )
            dispatched = asyncio.Event()
            controller.events.subscribe(
                lambda event: dispatched.set()
                if event.frame_count == 5 else None
            )
            await controller.start()
            await asyncio.wait_for(dispatched.wait(), timeout=5.0)
            return await controller.stop()

        result = asyncio.run(run())

        assert len(result.records) == 5
        assert not any(record.is_error for record in result.records)
        assert sorted(describer.completed) == [0, 1, 2, 3, 4]
        assert source.active_handles == 0

    def test_immediate_stop_reports_no_frames(self, fast_clock):
        """Verify stopping before any kept frame yields the no-frames message."""
        source = ScriptedFrameSource([], repeat_last=True)
        summarizer = StubSummarizer()

        async def run():
            controller = _controller(source, fast_clock, summarizer=summarizer)
            await controller.start()
            return await controller.stop()

        result = asyncio.run(run())

        assert result.summary == NO_FRAMES_MESSAGE
        assert result.records == []
        assert summarizer.received == []

    def test_summary_fallback_is_reported(self, fast_clock):
        """Verify a failing summarizer still produces a result."""
        source = ScriptedFrameSource([data_url("A"), data_url("B")])

        async def run():
            controller = _controller(
                source, fast_clock, summarizer=StubSummarizer(fail=True)
            )
            await controller.start()
            return await controller.wait()

        result = asyncio.run(run())

        assert result.summary_fallback is True
        assert "description of frame 0" in result.summary
        assert "description of frame 1" in result.summary

    def test_stop_after_completion_returns_same_result(self, fast_clock):
        """Verify stop on a completed session returns the stored result."""
        source = ScriptedFrameSource([data_url("A")])

        async def run():
            controller = _controller(source, fast_clock)
            await controller.start()
            first = await controller.wait()
            return first, await controller.stop()

        first, second = asyncio.run(run())

        assert first is second

    def test_listener_errors_do_not_break_session(self, fast_clock):
        """Verify a raising listener is isolated from the session."""
        source = ScriptedFrameSource([data_url("A"), data_url("B")])

        def broken_listener(event):
            raise RuntimeError("listener bug")

        async def run():
            controller = _controller(source, fast_clock)
            controller.events.subscribe(broken_listener)
            await controller.start()
            return controller, await controller.wait()

        controller, result = asyncio.run(run())

        assert controller.state is CaptureState.COMPLETE
        assert len(result.records) == 2
        assert controller.events.listener_errors > 0


class TestAcquisitionAndLifecycle:
    """Tests for acquisition failures and lifecycle guards."""

    def test_acquisition_failure_marks_session_failed(self, fast_clock, acquisition_error):
        """Verify a refused stream fails the session and surfaces the error."""
        source = ScriptedFrameSource([], start_error=acquisition_error)
        events = []

        async def run():
            controller = _controller(source, fast_clock)
            controller.events.subscribe(events.append)
            with pytest.raises(AcquisitionError):
                await controller.start()
            with pytest.raises(AcquisitionError):
                await controller.stop()
            return controller

        controller = asyncio.run(run())

        assert controller.state is CaptureState.FAILED
        assert controller.error is acquisition_error
        assert controller.result is None
        assert events[-1].type is SessionEventType.FAILED
        assert "permission denied" in events[-1].error
        assert source.started == []

    def test_unexpected_start_error_is_wrapped(self, fast_clock):
        """Verify any source start failure surfaces as AcquisitionError."""
        source = ScriptedFrameSource([], start_error=OSError("device busy"))

        async def run():
            controller = _controller(source, fast_clock)
            with pytest.raises(AcquisitionError, match="device busy"):
                await controller.start()
            return controller

        controller = asyncio.run(run())

        assert controller.state is CaptureState.FAILED

    def test_unknown_selection_fails_acquisition(self, fast_clock):
        """Verify an unknown capture target is an acquisition failure."""
        source = ScriptedFrameSource([data_url("A")])

        async def run():
            controller = _controller(source, fast_clock)
            with pytest.raises(AcquisitionError):
                await controller.start("printer")
            return controller

        controller = asyncio.run(run())

        assert controller.state is CaptureState.FAILED
        assert source.started == []

    def test_start_twice_is_rejected(self, fast_clock):
        """Verify a controller only starts once."""
        source = ScriptedFrameSource([data_url("A")], repeat_last=True)

        async def run():
            controller = _controller(source, fast_clock)
            await controller.start()
            with pytest.raises(RuntimeError):
                await controller.start()
            await controller.stop()

        asyncio.run(run())

        assert len(source.started) == 1
        assert source.active_handles == 0

    def test_stop_before_start_is_rejected(self, fast_clock):
        """Verify stop on an idle controller raises."""
        controller = _controller(ScriptedFrameSource([]), fast_clock)

        with pytest.raises(RuntimeError):
            asyncio.run(controller.stop())

    def test_snapshot_and_metrics(self, fast_clock):
        """Verify status views after completion."""
        source = ScriptedFrameSource([data_url("A"), data_url("A"), data_url("B")])

        async def run():
            controller = _controller(source, fast_clock)
            await controller.start(CaptureSelection.TAB)
            await controller.wait()
            return controller

        controller = asyncio.run(run())
        snapshot = controller.snapshot()
        metrics = controller.get_metrics()

        assert snapshot.state is CaptureState.COMPLETE
        assert snapshot.frames_captured == 3
        assert snapshot.frames_kept == 2
        assert snapshot.records_collected == 2
        assert snapshot.stream is None
        assert metrics["differ"] == {"evaluated": 3, "kept": 2, "discarded": 1}
        assert metrics["analyzer"]["describe_calls"] == 2

    @pytest.mark.parametrize(
        "kwargs", [{"flush_interval_ms": 0}, {"frame_timeout_sec": 0}]
    )
    def test_invalid_configuration(self, fast_clock, kwargs):
        """Verify non-positive intervals are rejected."""
        with pytest.raises(ValueError):
            _controller(ScriptedFrameSource([]), fast_clock, **kwargs)
