"""Interaction state machine for the kiosk.

    IDLE → WELCOMING → LISTENING ⇄ SPEAKING
      ↑                    │
      └──── absence ───────┘

The orchestrator is the only owner of :class:`OrchestratorState`.  Camera
snapshots, kiosk voice callbacks and timer expiries all arrive as
:mod:`docent.events` and go through :meth:`InteractionOrchestrator.dispatch`;
nothing else mutates the state.

Two flags debounce the greeting: ``cooldown`` and ``welcome_triggered``.
Both are set when a welcome starts and cleared either by the hard-reset
timer or by a full absence window with nobody in view.  The close/far
signal itself is not debounced, so a visitor hovering around the
proximity threshold cannot trigger a second welcome while the flags are
set.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from docent.config import Settings, get_settings
from docent.events import (
    AbsenceElapsed,
    DetectorReady,
    Event,
    HardResetElapsed,
    ListenDelayElapsed,
    ListenRequested,
    PresenceObserved,
    RecognitionFailed,
    SpeechEnded,
    SpeechFailed,
    SpeechStarted,
    TranscriptFinal,
    TranscriptUpdated,
)
from docent.interface.voice.channel import VoiceChannel
from docent.models import InteractionState, PresenceSnapshot
from docent.resolver import AnswerResolver
from docent.timers import LoopScheduler, Scheduler, Timer

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorState:
    """Everything the state machine knows about the current interaction."""

    interaction: InteractionState = InteractionState.IDLE
    cooldown: bool = False
    welcome_triggered: bool = False
    detector_ready: bool = False
    presence: PresenceSnapshot = field(default_factory=PresenceSnapshot)
    transcript: str = ""
    response: str = ""


@dataclass(frozen=True)
class StatusReport:
    """What the kiosk panel shows."""

    state: InteractionState
    person_detected: bool
    person_count: int
    any_close: bool
    detector_ready: bool
    transcript: str
    response: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data


# Valid transitions.  IDLE -> LISTENING happens when the listen timer fires
# after an absence reset already returned the kiosk to IDLE.
_TRANSITIONS: dict[InteractionState, set[InteractionState]] = {
    InteractionState.IDLE: {
        InteractionState.WELCOMING, InteractionState.LISTENING, InteractionState.SPEAKING,
    },
    InteractionState.WELCOMING: {InteractionState.LISTENING, InteractionState.SPEAKING},
    InteractionState.LISTENING: {InteractionState.SPEAKING, InteractionState.IDLE},
    InteractionState.SPEAKING: {InteractionState.LISTENING},
}

StatusListener = Callable[[StatusReport], None]


class InteractionOrchestrator:
    """Drives greetings and voice Q&A from presence and voice events.

    Parameters
    ----------
    voice : VoiceChannel
        Speech output and recognition control.
    resolver : AnswerResolver
        Answers finalized questions.
    settings : Settings, optional
        Timing and welcome text; defaults to :func:`get_settings`.
    scheduler : Scheduler, optional
        Source of delayed callbacks; defaults to the running asyncio loop.
    """

    def __init__(
        self,
        voice: VoiceChannel,
        resolver: AnswerResolver,
        settings: Optional[Settings] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.voice = voice
        self.resolver = resolver
        self.settings = settings or get_settings()
        self.state = OrchestratorState()

        scheduler = scheduler or LoopScheduler()
        self._listen_timer = Timer("listen", scheduler)
        self._hard_reset_timer = Timer("hard-reset", scheduler)
        self._absence_timer = Timer("absence", scheduler)

        self._listeners: list[StatusListener] = []
        self._last_report: Optional[StatusReport] = None
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # -- public surface -----------------------------------------------------

    @property
    def interaction(self) -> InteractionState:
        return self.state.interaction

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def report(self) -> StatusReport:
        s = self.state
        return StatusReport(
            state=s.interaction,
            person_detected=s.presence.person_present,
            person_count=s.presence.person_count,
            any_close=s.presence.any_close,
            detector_ready=s.detector_ready,
            transcript=s.transcript,
            response=s.response,
        )

    def publish(self) -> None:
        """Send the current status to every listener, changed or not."""
        self._last_report = None
        self._notify()

    def post(self, event: Event) -> None:
        """Queue an event for :meth:`run`.  Safe to call from any thread."""
        if self._loop is None:
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def run(self) -> None:
        """Drain the event queue forever (cancel the task to stop)."""
        self._loop = asyncio.get_running_loop()
        while True:
            event = await self._queue.get()
            self.dispatch(event)

    def close(self) -> None:
        self._listen_timer.cancel()
        self._hard_reset_timer.cancel()
        self._absence_timer.cancel()

    def dispatch(self, event: Event) -> None:
        """Apply one event.  Handler failures are logged, never raised."""
        try:
            self._handle(event)
            self._maybe_welcome()
            self._update_absence_timer()
        except Exception:
            logger.exception("Failed to handle %s", type(event).__name__)
        self._notify()

    # -- transition function ------------------------------------------------

    def _handle(self, event: Event) -> None:
        s = self.state

        if isinstance(event, PresenceObserved):
            s.presence = event.snapshot

        elif isinstance(event, DetectorReady):
            if not s.detector_ready:
                logger.info("Detector ready")
            s.detector_ready = True

        elif isinstance(event, SpeechStarted):
            self._transition(InteractionState.SPEAKING)

        elif isinstance(event, (SpeechEnded, SpeechFailed)):
            if isinstance(event, SpeechFailed):
                logger.error("Speech synthesis failed: %s", event.error or "unknown error")
            if s.interaction == InteractionState.SPEAKING:
                self._transition(InteractionState.LISTENING)
                self._start_listening()

        elif isinstance(event, TranscriptUpdated):
            s.transcript = event.text

        elif isinstance(event, TranscriptFinal):
            self._answer(event.text)

        elif isinstance(event, RecognitionFailed):
            if event.unavailable:
                logger.error("Speech recognition unavailable: %s", event.code)
            else:
                logger.warning("Speech recognition error: %s", event.code)

        elif isinstance(event, ListenRequested):
            s.transcript = ""
            self.voice.restart()

        elif isinstance(event, ListenDelayElapsed):
            self._transition(InteractionState.LISTENING)
            self._start_listening()

        elif isinstance(event, HardResetElapsed):
            logger.info("Hard reset: clearing greeting cooldown")
            self._clear_cooldown()

        elif isinstance(event, AbsenceElapsed):
            logger.info("Area clear: resetting greeting triggers")
            self._clear_cooldown()
            if s.interaction == InteractionState.LISTENING:
                self._transition(InteractionState.IDLE)

        else:
            logger.debug("Ignoring unknown event %r", event)

    def _transition(self, target: InteractionState) -> bool:
        current = self.state.interaction
        if target == current:
            return True
        if target not in _TRANSITIONS.get(current, set()):
            logger.debug("Rejected transition %s -> %s", current.value, target.value)
            return False
        logger.info("State %s -> %s", current.value, target.value)
        self.state.interaction = target
        return True

    # -- greeting -----------------------------------------------------------

    def _maybe_welcome(self) -> None:
        s = self.state
        if (
            s.presence.any_close
            and not s.cooldown
            and not s.welcome_triggered
            and s.detector_ready
            and s.interaction == InteractionState.IDLE
        ):
            self._welcome()

    def _welcome(self) -> None:
        s = self.state
        s.welcome_triggered = True
        s.cooldown = True
        self._transition(InteractionState.WELCOMING)
        self._listen_timer.arm(
            self.settings.listen_delay, lambda: self.dispatch(ListenDelayElapsed())
        )
        self._hard_reset_timer.arm(
            self.settings.hard_reset_delay, lambda: self.dispatch(HardResetElapsed())
        )
        self._speak(self.settings.welcome_message)

    def _clear_cooldown(self) -> None:
        self.state.cooldown = False
        self.state.welcome_triggered = False

    def _update_absence_timer(self) -> None:
        s = self.state
        waiting = not s.presence.person_present and (s.cooldown or s.welcome_triggered)
        if not waiting:
            self._absence_timer.cancel()
        elif not self._absence_timer.active:
            self._absence_timer.arm(
                self.settings.absence_reset_delay, lambda: self.dispatch(AbsenceElapsed())
            )

    # -- voice --------------------------------------------------------------

    def _answer(self, text: str) -> None:
        query = text.strip()
        if not query:
            return
        logger.info("Query: %s", query)
        self.voice.stop_listening()
        resolution = self.resolver.resolve(query)
        self.state.transcript = ""
        self._speak(resolution.answer)

    def _speak(self, text: str) -> None:
        self.state.response = text
        try:
            self.voice.speak(text)
        except Exception:
            logger.exception("Speech output failed")

    def _start_listening(self) -> None:
        self.state.transcript = ""
        self.voice.start_listening()

    def _notify(self) -> None:
        report = self.report()
        if report == self._last_report:
            return
        self._last_report = report
        for listener in self._listeners:
            try:
                listener(report)
            except Exception:
                logger.exception("Status listener failed")
