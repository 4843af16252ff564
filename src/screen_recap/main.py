"""
ScreenRecapAgent Main Application
=================================

FastAPI entry point for the screen capture and summary agent.

The HTTP layer is thin plumbing around one SessionController at a time;
all capture, analysis and summary behaviour lives in the core modules.

Endpoints:
    GET  /                   - Service information
    GET  /health             - Liveness probe
    GET  /metrics            - Counters of the current session
    POST /session/start      - Start a capture session
    POST /session/stop       - Stop capturing and return the SessionResult
    GET  /session            - Status (and result once complete)
    POST /analyze            - Describe a single image
    POST /analyze/batch      - Describe a batch of images
    POST /analyze/summarize  - Summarize a list of analyses
    WS   /ws/events          - Real-time session events
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Tuple, Union

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from screen_recap.config import settings
from screen_recap.agent import SessionController
from screen_recap.analysis import BatchAnalyzer
from screen_recap.capture import AdaptiveClock
from screen_recap.models.session import CaptureState, SessionEvent
from screen_recap.observability import SessionEventBus, SessionListener
from screen_recap.perception import (
    DescribeError,
    MockTextSummarizer,
    MockVisionDescriber,
    OpenAITextSummarizer,
    OpenAIVisionDescriber,
    SummarizeError,
    TextSummarizer,
    VisionDescriber,
)
from screen_recap.perception.openai_engine import create_client
from screen_recap.stream import (
    AcquisitionError,
    CaptureSelection,
    Frame,
    FrameBuffer,
    ImageDecodeError,
    MockFrameSource,
    ScreenFrameSource,
    WebSocketFrameSource,
)
from screen_recap.stream.image_codec import parse_data_url


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_describer: Optional[VisionDescriber] = None
_summarizer: Optional[TextSummarizer] = None
_analyzer: Optional[BatchAnalyzer] = None
_events: SessionEventBus = SessionEventBus()
_controller: Optional[SessionController] = None
_session_lock: Optional[asyncio.Lock] = None
_startup_time: float = 0.0


# =============================================================================
# Request Models
# =============================================================================

class StartSessionRequest(BaseModel):
    """Body of POST /session/start."""

    selection: CaptureSelection = Field(
        default=CaptureSelection.SCREEN,
        description="What to capture: screen, window or tab",
    )


class AnalyzeRequest(BaseModel):
    """Body of POST /analyze."""

    imageData: str = Field(..., description="Image as a data URL")


class BatchAnalyzeRequest(BaseModel):
    """Body of POST /analyze/batch."""

    images: List[str] = Field(default_factory=list, description="Images as data URLs")


class SummarizeRequest(BaseModel):
    """Body of POST /analyze/summarize."""

    analyses: List[str] = Field(default_factory=list, description="Per-frame analyses")


# =============================================================================
# Backend Factories
# =============================================================================

FrameSourceType = Union[MockFrameSource, ScreenFrameSource, WebSocketFrameSource]


def create_frame_source() -> FrameSourceType:
    """
    Create frame source based on config.

    Fails fast on an unknown backend.
    """
    capture = settings.capture
    backend = capture.backend

    if backend == "mock":
        logger.info("Using MockFrameSource")
        return MockFrameSource(
            width=capture.mock.width,
            height=capture.mock.height,
            hold_frames=capture.mock.hold_frames,
            max_frames=capture.mock.max_frames,
            jpeg_quality=capture.jpeg_quality,
        )

    elif backend == "screen":
        logger.info(f"Using ScreenFrameSource: monitor={capture.monitor}")
        return ScreenFrameSource(
            monitor=capture.monitor,
            jpeg_quality=capture.jpeg_quality,
            max_width=capture.max_width,
        )

    elif backend == "stream":
        logger.info(f"Using WebSocketFrameSource: {capture.stream_url}")
        return WebSocketFrameSource(url=capture.stream_url)

    else:
        raise ValueError(f"Unknown capture backend: {backend}")


def create_analysis_backends() -> Tuple[VisionDescriber, TextSummarizer]:
    """
    Create describer and summarizer based on config.

    Fails fast if the OpenAI backend is requested without credentials.
    """
    analysis = settings.analysis
    backend = analysis.backend

    if backend == "mock":
        logger.info("Using mock vision describer and summarizer")
        return MockVisionDescriber(), MockTextSummarizer()

    elif backend == "openai":
        client = create_client(
            api_key=analysis.api_key,
            timeout=analysis.request_timeout_sec,
            max_retries=analysis.max_retries,
        )
        logger.info(f"Using OpenAI backends: model={analysis.model}")
        return (
            OpenAIVisionDescriber(
                model=analysis.model,
                max_tokens=analysis.describe_max_tokens,
                client=client,
            ),
            OpenAITextSummarizer(
                model=analysis.model,
                max_tokens=analysis.summary_max_tokens,
                client=client,
            ),
        )

    else:
        raise ValueError(f"Unknown analysis backend: {backend}")


def create_session() -> SessionController:
    """Build a fresh controller for one session from config."""
    capture = settings.capture
    return SessionController(
        source=create_frame_source(),
        describer=_describer,
        summarizer=_summarizer,
        clock=AdaptiveClock(
            initial_delay_ms=capture.initial_delay_ms,
            min_delay_ms=capture.min_delay_ms,
            max_delay_ms=capture.max_delay_ms,
            step_ms=capture.delay_step_ms,
        ),
        buffer=FrameBuffer(flush_size=settings.buffer.flush_size),
        events=_events,
        flush_interval_ms=settings.buffer.flush_interval_ms,
        max_concurrency=settings.analysis.max_concurrency,
        describe_timeout_sec=settings.analysis.describe_timeout_sec,
        frame_timeout_sec=capture.frame_timeout_sec,
    )


def get_controller() -> Optional[SessionController]:
    return _controller


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _describer, _summarizer, _analyzer, _controller
    global _session_lock, _startup_time

    # Startup
    _startup_time = time.time()
    logger.info(f"Starting {settings.agent.name} {settings.agent.version}")

    _describer, _summarizer = create_analysis_backends()
    _analyzer = BatchAnalyzer(
        _describer,
        max_concurrency=settings.analysis.max_concurrency,
        call_timeout=settings.analysis.describe_timeout_sec,
    )
    _session_lock = asyncio.Lock()
    _controller = None

    logger.info(
        f"Capture backend: {settings.capture.backend}, "
        f"analysis backend: {settings.analysis.backend}"
    )

    yield

    # Shutdown: release any held stream
    logger.info("Shutting down gracefully...")

    controller = _controller
    if controller is not None and not controller.state.is_terminal:
        try:
            await controller.stop()
        except Exception as e:
            logger.warning(f"Session did not finish cleanly on shutdown: {e}")

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="ScreenRecapAgent",
    description="Adaptive screen capture with batched vision analysis and summary",
    version=settings.agent.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "ScreenRecapAgent",
        "version": settings.agent.version,
        "name": settings.agent.name,
        "status": "running",
        "capture_backend": settings.capture.backend,
        "analysis_backend": settings.analysis.backend,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe - always 200 while the process is up."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    controller = get_controller()
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "capture_backend": settings.capture.backend,
        "analysis_backend": settings.analysis.backend,
        "events_emitted": _events.emitted,
        "event_listeners": _events.listener_count,
        "analyze_endpoint": _analyzer.get_metrics() if _analyzer else {},
        "session": controller.get_metrics() if controller else None,
    })


@app.post("/session/start")
async def start_session(request: StartSessionRequest) -> JSONResponse:
    """Start a new capture session (one at a time)."""
    global _controller

    async with _session_lock:
        if _controller is not None and not _controller.state.is_terminal:
            return JSONResponse(
                {
                    "error": "A capture session is already active",
                    "session_id": _controller.session_id,
                    "state": _controller.state.value,
                },
                status_code=409,
            )

        controller = create_session()
        _controller = controller
        try:
            await controller.start(request.selection)
        except AcquisitionError as e:
            return JSONResponse(
                {
                    "error": f"Failed to start screen sharing: {e}",
                    "session_id": controller.session_id,
                    "state": controller.state.value,
                },
                status_code=503,
            )

    return JSONResponse(controller.snapshot().model_dump(mode="json"))


@app.post("/session/stop")
async def stop_session() -> JSONResponse:
    """Stop capturing; returns once the summary is ready."""
    controller = get_controller()
    if controller is None:
        return JSONResponse({"error": "No capture session"}, status_code=409)

    try:
        result = await controller.stop()
    except Exception as e:
        if controller.state is not CaptureState.FAILED:
            raise
        return JSONResponse(
            {"error": str(e), "state": controller.state.value},
            status_code=409,
        )

    return JSONResponse(result.model_dump(mode="json"))


@app.get("/session")
async def session_status() -> JSONResponse:
    """Status of the current (or last) session."""
    controller = get_controller()
    if controller is None:
        return JSONResponse({"error": "No capture session"}, status_code=404)

    payload = controller.snapshot().model_dump(mode="json")
    if controller.result is not None:
        payload["result"] = controller.result.model_dump(mode="json")
    return JSONResponse(payload)


@app.post("/analyze")
async def analyze_image(request: AnalyzeRequest) -> JSONResponse:
    """Describe one image."""
    try:
        parse_data_url(request.imageData)
    except ImageDecodeError as e:
        return JSONResponse({"error": f"Invalid image data - {e}"}, status_code=400)

    try:
        analysis = await _describer.describe(Frame(frame_id=0, image=request.imageData))
    except DescribeError as e:
        return JSONResponse({"error": f"Failed to analyze image: {e}"}, status_code=500)

    return JSONResponse({"analysis": analysis})


@app.post("/analyze/batch")
async def analyze_batch(request: BatchAnalyzeRequest) -> JSONResponse:
    """Describe a batch of images; per-image failures become error texts."""
    if not request.images:
        return JSONResponse({"error": "Images array is required"}, status_code=400)

    frames = [
        Frame(frame_id=index, image=image)
        for index, image in enumerate(request.images)
    ]
    records = await _analyzer.analyze(frames)
    return JSONResponse({"analyses": [record.text for record in records]})


@app.post("/analyze/summarize")
async def summarize_analyses(request: SummarizeRequest) -> JSONResponse:
    """Summarize a list of analyses."""
    if not request.analyses:
        return JSONResponse({"error": "Analyses array is required"}, status_code=400)

    try:
        summary = await _summarizer.summarize(request.analyses)
    except SummarizeError as e:
        return JSONResponse(
            {"error": f"Failed to summarize analyses: {e}"},
            status_code=500,
        )

    return JSONResponse({"summary": summary})


# =============================================================================
# WebSocket Endpoints
# =============================================================================

EVENT_QUEUE_SIZE = 256


def queue_listener(queue: asyncio.Queue) -> SessionListener:
    """
    Listener feeding one WebSocket client's queue.

    Events are dropped while the queue is full so a slow client never
    grows memory or blocks the session.
    """
    def enqueue(event: SessionEvent) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Event queue full, dropping {event.type.value} event")

    return enqueue


@app.websocket("/ws/events")
async def event_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time session events."""
    await websocket.accept()
    logger.info("Client connected to /ws/events")

    queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)
    unsubscribe = _events.subscribe(queue_listener(queue))

    try:
        while True:
            event = await queue.get()
            await websocket.send_json(event.model_dump(mode="json"))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        unsubscribe()
        logger.info("Client disconnected from /ws/events")


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Console entry point."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "screen_recap.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
