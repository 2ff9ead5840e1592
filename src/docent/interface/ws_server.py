"""WebSocket server bridging the kiosk page to the interaction loop.

Runs as a FastAPI application.  The kiosk page connects over a single
WebSocket; the page owns the microphone, the speaker and (with the
``client`` detector backend) the camera model.  Everything that decides
*what happens next* lives server-side in one
:class:`~docent.orchestrator.InteractionOrchestrator` per connection.

Message protocol (kiosk → server)
---------------------------------
Text frames are JSON::

    {"type": "hello", "secure_context": true,
     "speech_recognition": true, "speech_synthesis": true}
    {"type": "detector_ready"}
    {"type": "detections", "frame": {"width": 640, "height": 480},
     "objects": [{"class": "person", "score": 0.91, "bbox": [x, y, w, h]}]}
    {"type": "speech_start"} / {"type": "speech_end"}
    {"type": "speech_error", "error": "..."}
    {"type": "transcript", "text": "..."}        # interim
    {"type": "transcript_final", "text": "..."}  # finished utterance
    {"type": "recognition_start"} / {"type": "recognition_end"}
    {"type": "recognition_error", "error": "not-allowed"}
    {"type": "restart_voice"}                     # panel button
    {"type": "ping"}

Message protocol (server → kiosk)
---------------------------------
::

    {"type": "status", "state": "IDLE", "person_count": 0, ...}
    {"type": "speak", "text": "...", "language": "en-US"}
    {"type": "listen", "action": "start"|"stop", ...}
    {"type": "alert", "message": "..."}
    {"type": "error", "message": "..."}
    {"type": "pong"}
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from docent.config import Settings, get_settings
from docent.interface.session import KioskSession
from docent.models import load_corpus
from docent.resolver import AnswerResolver

logger = logging.getLogger(__name__)

_KIOSK_DIR = Path(__file__).parent / "kiosk"


class AskRequest(BaseModel):
    query: str


class AskResponse(BaseModel):
    answer: str
    kind: str
    score: float
    keyword: str = ""


async def _write_outbox(ws: WebSocket, outbox: asyncio.Queue) -> None:
    """Forward queued messages to the kiosk in order."""
    while True:
        payload = await outbox.get()
        await ws.send_text(json.dumps(payload))


def create_kiosk_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the kiosk FastAPI application.

    Serves the kiosk page at ``/`` and the interaction WebSocket at ``/ws``.
    """
    settings = settings or get_settings()
    app = FastAPI(title="Docent Kiosk", version="0.2.0")

    resolver = AnswerResolver(
        load_corpus(settings.corpus_path), threshold=settings.fuzzy_threshold
    )
    logger.info("Loaded %d Q&A entries from %s", len(resolver), settings.corpus_path)
    active_sessions: set[KioskSession] = set()

    if _KIOSK_DIR.is_dir():
        app.mount("/kiosk", StaticFiles(directory=str(_KIOSK_DIR)), name="kiosk")

    @app.get("/")
    async def index():
        """Serve the kiosk page."""
        index_path = _KIOSK_DIR / "index.html"
        if index_path.exists():
            return FileResponse(str(index_path), media_type="text/html")
        return HTMLResponse("<h1>Docent Kiosk</h1><p>Kiosk page not found.</p>")

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "detector_backend": settings.detector_backend,
            "corpus_entries": len(resolver),
            "sessions": len(active_sessions),
        }

    @app.post("/ask", response_model=AskResponse)
    async def ask(request: AskRequest) -> AskResponse:
        """Resolve a typed question without going through voice."""
        result = resolver.resolve(request.query)
        return AskResponse(
            answer=result.answer,
            kind=result.kind.value,
            score=round(result.score, 3),
            keyword=result.keyword,
        )

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        await ws.accept()

        outbox: asyncio.Queue[dict] = asyncio.Queue()
        session = KioskSession(settings, resolver, send=outbox.put_nowait)
        active_sessions.add(session)

        tasks = [
            asyncio.create_task(session.orchestrator.run()),
            asyncio.create_task(_write_outbox(ws, outbox)),
        ]
        if settings.detector_backend == "yolo":
            tasks.append(asyncio.create_task(_run_camera(settings, session)))

        session.start()
        try:
            while True:
                text = await ws.receive_text()
                try:
                    data = json.loads(text)
                except json.JSONDecodeError:
                    outbox.put_nowait({"type": "error", "message": "Invalid JSON"})
                    continue
                if not isinstance(data, dict):
                    outbox.put_nowait({"type": "error", "message": "Expected a JSON object"})
                    continue
                await session.handle(data)

        except WebSocketDisconnect:
            logger.info("Kiosk disconnected")
        except Exception:
            logger.exception("WebSocket error")
        finally:
            await _cancel_tasks(tasks)
            session.close()
            active_sessions.discard(session)

    return app


async def _cancel_tasks(tasks: list[asyncio.Task]) -> None:
    """Cancel per-connection tasks and wait for them to finish."""
    for task in tasks:
        task.cancel()
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            logger.error("Session task failed: %r", result)


async def _run_camera(settings: Settings, session: KioskSession) -> None:
    """Server-side detection loop for the ``yolo`` backend."""
    from docent.detection.yolo import CameraFeed, YoloDetector, run_detection_loop, vision_available

    if not vision_available():
        logger.error("detector_backend=yolo needs the 'vision' extra (ultralytics, opencv-python)")
        return
    feed = CameraFeed(index=settings.camera_index)
    loop = asyncio.get_running_loop()
    if not await loop.run_in_executor(None, feed.open):
        return
    await run_detection_loop(
        feed,
        YoloDetector(settings.yolo_model),
        session.estimator,
        session.orchestrator.post,
    )
