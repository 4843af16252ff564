"""
OpenAI Perception Engine
========================

Production describer and summarizer using the OpenAI chat completions API.

This engine:
    - Sends each frame as an ``image_url`` part to a vision-capable model
    - Folds per-frame analyses into one summary with a second model call
    - Wraps every API failure in DescribeError / SummarizeError

Design Rules:
    - Fail fast on misconfiguration (client construction)
    - Never swallow API errors; callers decide how to recover
    - Log all API calls at debug level
"""

import logging
from typing import Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

from screen_recap.perception.engine import DescribeError, SummarizeError
from screen_recap.stream.frame import Frame


logger = logging.getLogger(__name__)


DESCRIBE_SYSTEM_PROMPT = (
    "You are an AI assistant that analyzes screenshots of web pages. "
    "Provide a concise summary of what you see in the image, focusing on the "
    "main content, layout, and any notable elements. If you cannot see any "
    "content or the image appears blank, explicitly state this."
)

DESCRIBE_USER_PROMPT = "Analyze this screenshot of a web page:"

SUMMARY_SYSTEM_PROMPT = (
    "You are an AI assistant that summarizes multiple analyses of screen "
    "recordings. Provide a comprehensive summary that captures the key "
    "information from all the individual frame analyses. Focus on the main "
    "content, activities, and changes observed across the frames."
)

_BLANK_MARKERS = ("cannot see", "no content", "blank", "empty")


def create_client(
    api_key: Optional[str] = None,
    timeout: float = 30.0,
    max_retries: int = 2,
) -> AsyncOpenAI:
    """
    Build an AsyncOpenAI client.

    ``api_key=None`` lets the client read OPENAI_API_KEY from the environment.
    """
    try:
        return AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
    except OpenAIError as e:
        raise ValueError(f"Failed to initialize OpenAI client: {e}")


class OpenAIVisionDescriber:
    """
    Vision describer backed by an OpenAI vision model.

    Attributes:
        model: Chat model name
        max_tokens: Completion budget per frame
        call_count: Total API calls made
        error_count: Total API errors
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 500,
        client: Optional[AsyncOpenAI] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or create_client(api_key, timeout, max_retries)

        self.call_count: int = 0
        self.error_count: int = 0

        logger.info(f"OpenAIVisionDescriber initialized: model={model}")

    async def describe(self, frame: Frame) -> str:
        self.call_count += 1
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": DESCRIBE_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": DESCRIBE_USER_PROMPT},
                            {"type": "image_url", "image_url": {"url": frame.image}},
                        ],
                    },
                ],
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            self.error_count += 1
            raise DescribeError(f"OpenAI vision call failed: {e}")

        if not response.choices:
            self.error_count += 1
            raise DescribeError("OpenAI vision call returned no choices")

        content = response.choices[0].message.content or ""
        if not content:
            return "No analysis available"

        lowered = content.lower()
        if any(marker in lowered for marker in _BLANK_MARKERS):
            logger.warning(f"Model reported no visible content in frame {frame.frame_id}")

        logger.debug(f"Described frame {frame.frame_id}: {len(content)} chars")
        return content

    def get_metrics(self) -> dict:
        return {
            "model": self.model,
            "call_count": self.call_count,
            "error_count": self.error_count,
        }


class OpenAITextSummarizer:
    """
    Text summarizer backed by an OpenAI chat model.

    Attributes:
        model: Chat model name
        max_tokens: Completion budget for the summary
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1000,
        client: Optional[AsyncOpenAI] = None,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 2,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or create_client(api_key, timeout, max_retries)

        self.call_count: int = 0
        self.error_count: int = 0

        logger.info(f"OpenAITextSummarizer initialized: model={model}")

    async def summarize(self, texts: Sequence[str]) -> str:
        self.call_count += 1
        composite = "\n\n".join(texts)
        logger.info(f"Summarizing {len(texts)} analyses ({len(composite)} chars)")

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            f"I have {len(texts)} analyses of frames from a screen "
                            f"recording. Please provide a comprehensive summary:"
                            f"\n\n{composite}"
                        ),
                    },
                ],
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            self.error_count += 1
            raise SummarizeError(f"OpenAI summary call failed: {e}")

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            self.error_count += 1
            raise SummarizeError("OpenAI summary call returned no content")

        return content

    def get_metrics(self) -> dict:
        return {
            "model": self.model,
            "call_count": self.call_count,
            "error_count": self.error_count,
        }
