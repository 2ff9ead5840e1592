"""Detector adapters: the black-box object detector behind a small protocol.

Two implementations:

1. :class:`ClientDetector`: the kiosk page runs the model in the browser
   and posts its predictions over the WebSocket.  ``detect`` just
   validates that payload.
2. :class:`~docent.detection.yolo.YoloDetector`: a local ultralytics
   model fed from a camera on the kiosk host.

Both must report ``ready`` before their output is used; calls made
before that return no detections.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from docent.models import BoundingBox, Detection

logger = logging.getLogger(__name__)


class DetectorAdapter(Protocol):
    """Anything that turns one frame into a list of detections."""

    @property
    def ready(self) -> bool: ...

    async def detect(self, frame: Any) -> list[Detection]: ...


# ======================================================================
# Browser-side detector payloads
# ======================================================================
class FrameSize(BaseModel):
    width: float = Field(ge=0)
    height: float = Field(ge=0)


class PredictedObject(BaseModel):
    """One prediction as produced by the in-browser detector."""

    label: str = Field(alias="class")
    score: float = Field(ge=0.0, le=1.0)
    bbox: tuple[float, float, float, float]  # x, y, w, h

    def to_detection(self) -> Detection:
        x, y, w, h = self.bbox
        return Detection(
            label=self.label,
            confidence=self.score,
            bbox=BoundingBox(x=x, y=y, width=w, height=h),
        )


class DetectionsMessage(BaseModel):
    frame: FrameSize
    objects: list[dict[str, Any]] = Field(default_factory=list)


class ClientDetector:
    """Detector whose inference happens in the kiosk browser."""

    def __init__(self) -> None:
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def mark_ready(self) -> None:
        self._ready = True

    @staticmethod
    def frame_size(payload: dict[str, Any]) -> tuple[float, float]:
        """Width and height of the frame a ``detections`` message refers to."""
        message = DetectionsMessage.model_validate(payload)
        return message.frame.width, message.frame.height

    async def detect(self, frame: dict[str, Any]) -> list[Detection]:
        """Validate a ``detections`` message into :class:`Detection` objects.

        Malformed predictions are skipped; a malformed envelope raises
        :class:`pydantic.ValidationError`.
        """
        if not self._ready:
            return []
        message = DetectionsMessage.model_validate(frame)
        detections: list[Detection] = []
        for raw in message.objects:
            try:
                detections.append(PredictedObject.model_validate(raw).to_detection())
            except ValidationError as exc:
                logger.debug("Skipping malformed prediction %r: %s", raw, exc)
        return detections
