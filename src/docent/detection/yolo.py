"""Local camera detection with an ultralytics YOLO model.

Used when ``detector_backend = "yolo"``: the kiosk host owns the camera
and the browser only handles audio and display.  ``ultralytics`` and
``opencv-python`` are optional (``pip install docent[vision]``) and are
imported lazily, so the rest of the package works without them.
"""

from __future__ import annotations

import asyncio
import importlib.util
import logging
from typing import Any, Callable, Optional

from docent.events import DetectorReady, Event, PresenceObserved
from docent.models import BoundingBox, Detection
from docent.presence import PresenceEstimator

logger = logging.getLogger(__name__)


def vision_available() -> bool:
    """Whether ultralytics and OpenCV are installed (checked without importing)."""
    return (
        importlib.util.find_spec("ultralytics") is not None
        and importlib.util.find_spec("cv2") is not None
    )


def _as_list(values: Any) -> list:
    return values.tolist() if hasattr(values, "tolist") else list(values)


def results_to_detections(result: Any) -> list[Detection]:
    """Convert one ultralytics ``Results`` object (xyxy boxes) to detections."""
    boxes = getattr(result, "boxes", None)
    if boxes is None:
        return []
    names = getattr(result, "names", {}) or {}

    detections: list[Detection] = []
    for xyxy, conf, cls in zip(_as_list(boxes.xyxy), _as_list(boxes.conf), _as_list(boxes.cls)):
        x1, y1, x2, y2 = (float(v) for v in xyxy)
        detections.append(Detection(
            label=str(names.get(int(cls), int(cls))),
            confidence=float(conf),
            bbox=BoundingBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1),
        ))
    return detections


class YoloDetector:
    """Object detector backed by ultralytics YOLO.

    Parameters
    ----------
    model_name : str
        Weights file or hub name, e.g. ``yolo11n.pt`` (downloaded on first use).
    """

    def __init__(self, model_name: str = "yolo11n.pt") -> None:
        self.model_name = model_name
        self._model: object = None

    @property
    def ready(self) -> bool:
        return self._model is not None

    def _load_model(self) -> object:
        from ultralytics import YOLO  # type: ignore[import-untyped]

        return YOLO(self.model_name)

    async def load(self) -> bool:
        """Load the model in a worker thread.  Returns ``ready``."""
        if self._model is not None:
            return True
        loop = asyncio.get_running_loop()
        try:
            self._model = await loop.run_in_executor(None, self._load_model)
            logger.info("Loaded YOLO model %s", self.model_name)
        except Exception:
            logger.exception("Failed to load YOLO model %s", self.model_name)
            self._model = None
        return self.ready

    def _infer(self, frame: Any) -> list[Detection]:
        results = self._model(frame, verbose=False)  # type: ignore[operator]
        if not results:
            return []
        return results_to_detections(results[0])

    async def detect(self, frame: Any) -> list[Detection]:
        if self._model is None or frame is None:
            return []
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._infer, frame)
        except Exception:
            logger.exception("YOLO inference failed")
            return []


class CameraFeed:
    """Frames from an OpenCV capture device."""

    def __init__(self, index: int = 0, width: int = 640, height: int = 480) -> None:
        self.index = index
        self.width = width
        self.height = height
        self._capture: object = None

    def open(self) -> bool:
        import cv2  # type: ignore[import-untyped]

        capture = cv2.VideoCapture(self.index)
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        if not capture.isOpened():
            capture.release()
            logger.error("Could not open camera %d", self.index)
            return False
        self._capture = capture
        logger.info("Camera %d opened", self.index)
        return True

    def read(self) -> Optional[Any]:
        if self._capture is None:
            return None
        ok, frame = self._capture.read()  # type: ignore[attr-defined]
        return frame if ok else None

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()  # type: ignore[attr-defined]
            self._capture = None


async def run_detection_loop(
    feed: CameraFeed,
    detector: YoloDetector,
    estimator: PresenceEstimator,
    post: Callable[[Event], None],
    idle_sleep: float = 0.05,
) -> None:
    """Read, detect and estimate presence until cancelled.

    Frames are read and inferred in worker threads; only the resulting
    :class:`PresenceObserved` events reach the interaction loop.
    """
    loop = asyncio.get_running_loop()
    announced = False
    try:
        if not await detector.load():
            logger.error("Detector not available; presence detection disabled")
            return
        while True:
            frame = await loop.run_in_executor(None, feed.read)
            if frame is None:
                await asyncio.sleep(idle_sleep)
                continue
            if not announced:
                post(DetectorReady())
                announced = True

            detections = await detector.detect(frame)
            height, width = frame.shape[:2]
            snapshot = estimator.observe(detections, width, height, ready=detector.ready)
            if snapshot is not None:
                post(PresenceObserved(snapshot))
            await asyncio.sleep(0)
    finally:
        feed.release()
