"""Voice I/O bridge to the kiosk browser.

Speech recognition and synthesis run in the kiosk page (Web Speech API).
This module is the server-side half: it sends ``speak`` / ``listen``
commands down the WebSocket and converts the page's callbacks into
orchestrator events.

Failure classes handled here, at the adapter boundary:

- *RecognitionUnavailable*: insecure context, unsupported engine or a
  denied microphone.  Surfaced once as an ``alert``; listening is refused
  from then on and never auto-retried.  A manual restart forgets a denied
  microphone so the visitor can grant access and try again.
- *RecognitionTransientStop*: recognition ended without being asked to
  (silence timeout, network blip).  Restarted after a short delay.
- *SynthesisFailure*: reported as :class:`~docent.events.SpeechFailed`
  so the state machine can fall back to listening.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol

from docent.events import (
    Event,
    RecognitionFailed,
    SpeechEnded,
    SpeechFailed,
    SpeechStarted,
    TranscriptFinal,
    TranscriptUpdated,
)
from docent.timers import Scheduler, Timer

logger = logging.getLogger(__name__)

# Recognition error codes that will not clear up by retrying.
UNAVAILABLE_ERRORS = frozenset({"not-allowed", "service-not-allowed", "audio-capture"})

INSECURE_CONTEXT_ALERT = (
    "Voice features require HTTPS or localhost. Please serve the kiosk over SSL."
)
UNSUPPORTED_ALERT = "This browser does not support speech recognition."
MICROPHONE_ALERT = "Microphone access was denied. Voice questions are disabled."


class VoiceChannel(Protocol):
    """Commands the orchestrator issues to the audio front end."""

    @property
    def listening(self) -> bool: ...

    @property
    def speaking(self) -> bool: ...

    def speak(self, text: str) -> None: ...

    def start_listening(self) -> None: ...

    def stop_listening(self) -> None: ...

    def restart(self) -> None: ...


class BrowserVoiceChannel:
    """Voice channel backed by the kiosk page.

    Parameters
    ----------
    send : callable
        Delivers one JSON-able command to the page (non-blocking).
    emit : callable
        Receives the orchestrator events produced from page callbacks.
    scheduler : Scheduler
        Used for the transient-stop restart delay.
    language : str
        BCP-47 tag passed to the page's recognizer and synthesizer.
    restart_delay : float
        Seconds to wait before restarting after a transient stop.
    """

    def __init__(
        self,
        send: Callable[[dict], None],
        emit: Callable[[Event], None],
        scheduler: Scheduler,
        language: str = "en-US",
        restart_delay: float = 0.1,
    ) -> None:
        self._send = send
        self._emit = emit
        self.language = language
        self.restart_delay = restart_delay
        self._restart_timer = Timer("recognition-restart", scheduler)

        self._listening = False
        self._speaking = False
        self._stop_requested = False
        self._secure_context = True
        self._recognition_supported = True
        self._last_error: Optional[str] = None
        self._alerted = False

    # -- state --------------------------------------------------------------

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def unavailable(self) -> bool:
        """True when recognition cannot work until the kiosk is fixed."""
        return (
            not self._secure_context
            or not self._recognition_supported
            or self._last_error in UNAVAILABLE_ERRORS
        )

    # -- commands -----------------------------------------------------------

    def speak(self, text: str) -> None:
        """Speak one utterance; the page cancels whatever was playing."""
        logger.info("Speaking: %s", text)
        self._send({"type": "speak", "text": text, "language": self.language})

    def start_listening(self) -> None:
        if self.unavailable:
            self._alert_unavailable()
            return
        if self._listening:
            return
        self._restart_timer.cancel()
        self._stop_requested = False
        self._listening = True
        self._send({"type": "listen", "action": "start", "language": self.language})

    def stop_listening(self) -> None:
        self._restart_timer.cancel()
        self._stop_requested = True
        if not self._listening:
            return
        self._listening = False
        self._send({"type": "listen", "action": "stop"})

    def restart(self) -> None:
        """Manual restart: forget the last recognition error and listen again.

        An insecure context or an unsupported engine still blocks listening.
        """
        self._last_error = None
        self._alerted = False
        self.start_listening()

    def close(self) -> None:
        self._restart_timer.cancel()

    # -- kiosk callbacks ----------------------------------------------------

    def handle_message(self, data: dict[str, Any]) -> bool:
        """Process one voice message from the page.

        Returns False when ``data`` is not a voice message.
        """
        msg_type = data.get("type", "")

        if msg_type == "hello":
            self._on_hello(data)
        elif msg_type == "speech_start":
            self._speaking = True
            self._emit(SpeechStarted())
        elif msg_type == "speech_end":
            self._speaking = False
            self._emit(SpeechEnded())
        elif msg_type == "speech_error":
            self._speaking = False
            self._emit(SpeechFailed(error=str(data.get("error", ""))))
        elif msg_type == "transcript":
            self._emit(TranscriptUpdated(text=str(data.get("text", ""))))
        elif msg_type == "transcript_final":
            self._emit(TranscriptFinal(text=str(data.get("text", ""))))
        elif msg_type == "recognition_start":
            self._listening = True
        elif msg_type == "recognition_end":
            self._on_recognition_end()
        elif msg_type == "recognition_error":
            self._on_recognition_error(str(data.get("error", "unknown")))
        else:
            return False
        return True

    def _on_hello(self, data: dict[str, Any]) -> None:
        self._secure_context = bool(data.get("secure_context", False))
        self._recognition_supported = bool(data.get("speech_recognition", False))
        if not data.get("speech_synthesis", True):
            logger.warning("Kiosk browser has no speech synthesis")
        logger.info(
            "Kiosk connected: secure=%s recognition=%s",
            self._secure_context, self._recognition_supported,
        )
        if self.unavailable:
            self._alert_unavailable()

    def _on_recognition_end(self) -> None:
        was_listening = self._listening
        self._listening = False
        if self._stop_requested or not was_listening:
            return
        if self.unavailable or self._speaking:
            return
        logger.debug("Recognition stopped unexpectedly; restarting")
        self._restart_timer.arm(self.restart_delay, self._restart_after_stop)

    def _restart_after_stop(self) -> None:
        if self._speaking or self._stop_requested:
            return
        self.start_listening()

    def _on_recognition_error(self, code: str) -> None:
        self._last_error = code
        unavailable = code in UNAVAILABLE_ERRORS
        if unavailable:
            self._restart_timer.cancel()
            self._listening = False
            self._alert_unavailable()
        self._emit(RecognitionFailed(code=code, unavailable=unavailable))

    def _alert_unavailable(self) -> None:
        if self._alerted:
            return
        self._alerted = True
        if not self._secure_context:
            message = INSECURE_CONTEXT_ALERT
        elif not self._recognition_supported:
            message = UNSUPPORTED_ALERT
        else:
            message = MICROPHONE_ALERT
        logger.error("Voice unavailable: %s", message)
        self._send({"type": "alert", "message": message})
