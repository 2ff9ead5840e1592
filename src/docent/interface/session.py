"""One kiosk connection: detector, presence, voice and orchestrator wired together."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from docent.config import Settings
from docent.detection.adapter import ClientDetector
from docent.events import DetectorReady, ListenRequested, PresenceObserved
from docent.interface.voice.channel import BrowserVoiceChannel
from docent.orchestrator import InteractionOrchestrator, StatusReport
from docent.presence import PresenceEstimator
from docent.resolver import AnswerResolver
from docent.timers import LoopScheduler, Scheduler

logger = logging.getLogger(__name__)


class KioskSession:
    """Routes kiosk messages into a single interaction orchestrator.

    Parameters
    ----------
    settings : Settings
        Thresholds and timings.
    resolver : AnswerResolver
        Shared answer lookup.
    send : callable
        Non-blocking sink for messages to the kiosk page.
    scheduler : Scheduler, optional
        Defaults to the running asyncio loop.
    """

    def __init__(
        self,
        settings: Settings,
        resolver: AnswerResolver,
        send: Callable[[dict], None],
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.settings = settings
        self._send = send
        scheduler = scheduler or LoopScheduler()

        self.detector = ClientDetector()
        self.estimator = PresenceEstimator(
            label=settings.person_label,
            min_confidence=settings.min_confidence,
            close_ratio=settings.close_area_ratio,
        )
        self.voice = BrowserVoiceChannel(
            send=send,
            emit=lambda event: self.orchestrator.post(event),
            scheduler=scheduler,
            language=settings.recognition_language,
            restart_delay=settings.recognition_restart_delay,
        )
        self.orchestrator = InteractionOrchestrator(
            voice=self.voice,
            resolver=resolver,
            settings=settings,
            scheduler=scheduler,
        )
        self.orchestrator.add_listener(self._send_status)

    def _send_status(self, report: StatusReport) -> None:
        self._send({"type": "status", **report.to_dict()})

    def start(self) -> None:
        self.orchestrator.publish()

    def close(self) -> None:
        self.orchestrator.close()
        self.voice.close()

    async def handle(self, data: dict[str, Any]) -> None:
        """Route one decoded client message."""
        msg_type = data.get("type", "")

        if msg_type == "ping":
            self._send({"type": "pong"})
        elif msg_type == "detector_ready":
            if self.settings.detector_backend == "client":
                self.detector.mark_ready()
                self.orchestrator.post(DetectorReady())
        elif msg_type == "detections":
            await self._on_detections(data)
        elif msg_type == "restart_voice":
            self.orchestrator.post(ListenRequested())
        elif not self.voice.handle_message(data):
            self._send({"type": "error", "message": f"Unknown message type: {msg_type!r}"})

    async def _on_detections(self, data: dict[str, Any]) -> None:
        if self.settings.detector_backend != "client" or not self.detector.ready:
            return
        try:
            width, height = self.detector.frame_size(data)
            detections = await self.detector.detect(data)
        except ValidationError as exc:
            self._send({"type": "error", "message": f"Invalid detections: {exc.error_count()} error(s)"})
            return
        snapshot = self.estimator.observe(detections, width, height, ready=self.detector.ready)
        if snapshot is not None:
            self.orchestrator.post(PresenceObserved(snapshot))
