"""Tests for the kiosk FastAPI app and WebSocket protocol."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from docent.interface.voice.channel import INSECURE_CONTEXT_ALERT
from docent.interface.ws_server import create_kiosk_app
from docent.resolver import GREETING_REPLY

HELLO_OK = {"type": "hello", "secure_context": True, "speech_recognition": True,
            "speech_synthesis": True}


@pytest.fixture
def app_settings(settings, tmp_path):
    corpus = tmp_path / "projects.json"
    corpus.write_text(json.dumps([
        {"keywords": ["solar tracker"], "answer": "It follows the sun."},
    ]))
    return settings.model_copy(update={"corpus_path": corpus})


@pytest.fixture
def client(app_settings):
    return TestClient(create_kiosk_app(app_settings))


def receive_until(ws, msg_type, limit=10):
    for _ in range(limit):
        msg = ws.receive_json()
        if msg["type"] == msg_type:
            return msg
    raise AssertionError(f"no {msg_type!r} message received")


# ======================================================================
# HTTP routes
# ======================================================================

class TestHttp:

    def test_index(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "text/html" in r.headers["content-type"]

    def test_static_assets(self, client):
        assert client.get("/kiosk/kiosk.js").status_code == 200

    def test_kiosk_ignores_cancelled_utterances(self, client):
        script = client.get("/kiosk/kiosk.js").text
        assert 'e.error === "interrupted" || e.error === "canceled"' in script

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["detector_backend"] == "client"
        assert data["corpus_entries"] == 1
        assert data["sessions"] == 0

    def test_ask_match(self, client):
        data = client.post("/ask", json={"query": "what is the solar tracker"}).json()
        assert data["answer"] == "It follows the sun."
        assert data["kind"] == "match"
        assert data["keyword"] == "solar tracker"

    def test_ask_greeting(self, client):
        data = client.post("/ask", json={"query": "hi"}).json()
        assert data["answer"] == GREETING_REPLY

    def test_ask_requires_query(self, client):
        assert client.post("/ask", json={}).status_code == 422

    def test_missing_corpus_serves_fallbacks(self, settings, tmp_path):
        app = create_kiosk_app(settings.model_copy(update={"corpus_path": tmp_path / "none.json"}))
        data = TestClient(app).post("/ask", json={"query": "solar tracker"}).json()
        assert data["kind"] == "fallback"


# ======================================================================
# WebSocket protocol (ws_server.py, session.py)
# ======================================================================

class TestWebSocket:

    def test_initial_status(self, client):
        with client.websocket_connect("/ws") as ws:
            status = ws.receive_json()
            assert status["type"] == "status"
            assert status["state"] == "IDLE"
            assert status["detector_ready"] is False

    def test_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})
            assert receive_until(ws, "pong") == {"type": "pong"}

    def test_question_is_spoken(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json(HELLO_OK)
            ws.send_json({"type": "transcript_final", "text": "tell me about the solar tracker"})
            msg = receive_until(ws, "speak")
            assert msg["text"] == "It follows the sun."
            assert msg["language"] == "en-US"

    def test_close_visitor_is_welcomed(self, client, app_settings):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json(HELLO_OK)
            ws.send_json({"type": "detector_ready"})
            ws.send_json({
                "type": "detections",
                "frame": {"width": 640, "height": 480},
                "objects": [{"class": "person", "score": 0.9, "bbox": [100, 0, 300, 480]}],
            })
            msg = receive_until(ws, "speak")
            assert msg["text"] == app_settings.welcome_message

    def test_insecure_context_alert(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "hello", "secure_context": False, "speech_recognition": True})
            msg = receive_until(ws, "alert")
            assert msg["message"] == INSECURE_CONTEXT_ALERT

    def test_invalid_json(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            assert receive_until(ws, "error")["message"] == "Invalid JSON"

    def test_non_object_payload(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("[1, 2]")
            assert receive_until(ws, "error")["message"] == "Expected a JSON object"

    def test_unknown_type(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "teleport"})
            assert "teleport" in receive_until(ws, "error")["message"]

    def test_invalid_detections(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "detector_ready"})
            ws.send_json({"type": "detections", "objects": []})
            assert receive_until(ws, "error")["message"].startswith("Invalid detections")


# ======================================================================
# Connection teardown
# ======================================================================

class TestTaskCleanup:

    def test_tasks_are_awaited_after_cancel(self, caplog):
        from docent.interface.ws_server import _cancel_tasks

        finished = []

        async def long_running():
            try:
                await asyncio.sleep(60)
            finally:
                finished.append("long_running")

        async def failing():
            raise RuntimeError("camera exploded")

        async def scenario():
            tasks = [asyncio.create_task(long_running()), asyncio.create_task(failing())]
            await asyncio.sleep(0)
            await _cancel_tasks(tasks)
            return tasks

        with caplog.at_level("ERROR"):
            tasks = asyncio.run(scenario())
        assert all(task.done() for task in tasks)
        assert finished == ["long_running"]
        assert "camera exploded" in caplog.text

    def test_disconnect_leaves_no_session(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json(HELLO_OK)
        assert client.get("/health").json()["sessions"] == 0
