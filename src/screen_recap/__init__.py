"""
ScreenRecapAgent
================

Adaptive screen-capture and batched vision-analysis agent.

This package captures periodic frames from a screen, window or tab stream,
keeps only the frames that changed, describes them with a vision model in
small concurrent batches, and folds the per-frame descriptions into one
summary when the session ends.

Components:
    - stream: Frame model, frame buffer, frame sources
    - capture: Frame differ and adaptive capture clock
    - perception: Vision describer / text summarizer backends
    - analysis: Batch analyzer and summarizer adapter
    - agent: Session controller (capture state machine)
    - observability: Session event bus

Example:
    from screen_recap.agent import SessionController
    from screen_recap.stream import MockFrameSource
    from screen_recap.perception import MockVisionDescriber, MockTextSummarizer

    controller = SessionController(
        source=MockFrameSource(),
        describer=MockVisionDescriber(),
        summarizer=MockTextSummarizer(),
    )
    await controller.start("screen")
    ...
    result = await controller.stop()
"""

__version__ = "0.1.0"
__author__ = "ScreenRecap Project"

__all__ = [
    "__version__",
]
