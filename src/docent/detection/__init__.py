"""Object detection adapters (browser-side or local YOLO)."""

from docent.detection.adapter import ClientDetector, DetectorAdapter

__all__ = ["ClientDetector", "DetectorAdapter"]
