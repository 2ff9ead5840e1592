"""Presence estimation from per-frame detections.

Turns the raw detector output for one frame into a
:class:`~docent.models.PresenceSnapshot`: how many visitors are in view
and whether any of them stands close to the kiosk.  Closeness is judged
by how much of the frame a visitor's bounding box covers.

There is no smoothing across frames here.  Each frame fully
replaces the previous snapshot; debouncing happens in the orchestrator
through its cooldown flags and absence timer.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

from docent.models import Detection, PresenceSnapshot

logger = logging.getLogger(__name__)


def area_ratio(detection: Detection, frame_width: float, frame_height: float) -> float:
    """Fraction of the frame covered by the detection's bounding box."""
    frame_area = frame_width * frame_height
    if frame_area <= 0:
        return 0.0
    return detection.bbox.area / frame_area


class PresenceEstimator:
    """Counts qualifying visitors and flags the close ones.

    Parameters
    ----------
    label : str
        Detector class that counts as a visitor.
    min_confidence : float
        Detections must score strictly above this.
    close_ratio : float
        A visitor is close when their box covers strictly more than this
        fraction of the frame.
    clock : callable
        Monotonic time source, used for ``last_seen``.
    """

    def __init__(
        self,
        label: str = "person",
        min_confidence: float = 0.5,
        close_ratio: float = 0.15,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.label = label
        self.min_confidence = min_confidence
        self.close_ratio = close_ratio
        self._clock = clock
        self._snapshot = PresenceSnapshot()
        self._changed = False
        self.last_seen: Optional[float] = None

    @property
    def snapshot(self) -> PresenceSnapshot:
        return self._snapshot

    @property
    def changed(self) -> bool:
        """Whether the latest frame produced a different snapshot."""
        return self._changed

    def qualifying(self, detections: Iterable[Detection]) -> list[Detection]:
        return [
            d for d in detections
            if d.label == self.label and d.confidence > self.min_confidence
        ]

    def update(
        self,
        detections: Iterable[Detection],
        frame_width: float,
        frame_height: float,
    ) -> PresenceSnapshot:
        """Compute and store the snapshot for one frame."""
        people = self.qualifying(detections)
        any_close = any(
            area_ratio(d, frame_width, frame_height) > self.close_ratio
            for d in people
        )
        snapshot = PresenceSnapshot(person_count=len(people), any_close=any_close)

        self._changed = snapshot != self._snapshot
        self._snapshot = snapshot
        if snapshot.person_present:
            self.last_seen = self._clock()
        if self._changed:
            logger.debug(
                "Presence: %d person(s), close=%s", snapshot.person_count, snapshot.any_close
            )
        return snapshot

    def observe(
        self,
        detections: Iterable[Detection],
        frame_width: float,
        frame_height: float,
        ready: bool,
    ) -> Optional[PresenceSnapshot]:
        """Like :meth:`update`, but a no-op until the detector is ready."""
        if not ready:
            return None
        return self.update(detections, frame_width, frame_height)
