"""
Input Message Schema
====================

Pydantic model for frame messages received from a remote frame stream.

Input Contract:
    {
        "type": "frame",
        "frame_id": 1234,
        "timestamp": 1707321234.567,
        "image": "data:image/jpeg;base64,..."   (or bare base64 JPEG)
    }

    {"type": "ended"}   <- the user stopped sharing

Example:
    raw = await websocket.recv()
    message = FrameMessage.model_validate_json(raw)
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class FrameMessage(BaseModel):
    """
    Schema for messages received from a remote frame stream.

    Attributes:
        type: "frame" for an image, "ended" when sharing stopped
        frame_id: Sender's frame counter (informational only)
        timestamp: UNIX timestamp when the frame was captured
        image: Data URL or bare base64 JPEG
    """

    type: Literal["frame", "ended"] = Field(
        default="frame",
        description="Message kind",
    )

    frame_id: Optional[int] = Field(
        default=None,
        ge=0,
        description="Sender-side frame counter",
    )

    timestamp: Optional[float] = Field(
        default=None,
        gt=0,
        description="UNIX timestamp of capture",
    )

    image: Optional[str] = Field(
        default=None,
        description="Data URL or base64-encoded JPEG frame",
    )
