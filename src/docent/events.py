"""Events consumed by the interaction orchestrator.

Camera frames, kiosk voice callbacks and elapsed timers are all turned
into one of these before they reach the state machine.
"""

from __future__ import annotations

from dataclasses import dataclass

from docent.models import PresenceSnapshot


class Event:
    """Marker base class."""


@dataclass(frozen=True)
class DetectorReady(Event):
    pass


@dataclass(frozen=True)
class PresenceObserved(Event):
    snapshot: PresenceSnapshot


@dataclass(frozen=True)
class SpeechStarted(Event):
    pass


@dataclass(frozen=True)
class SpeechEnded(Event):
    pass


@dataclass(frozen=True)
class SpeechFailed(Event):
    error: str = ""


@dataclass(frozen=True)
class TranscriptUpdated(Event):
    text: str


@dataclass(frozen=True)
class TranscriptFinal(Event):
    text: str


@dataclass(frozen=True)
class RecognitionFailed(Event):
    code: str
    unavailable: bool = False


@dataclass(frozen=True)
class ListenRequested(Event):
    """Manual voice restart from the kiosk panel."""


# Timer expiries
@dataclass(frozen=True)
class ListenDelayElapsed(Event):
    pass


@dataclass(frozen=True)
class HardResetElapsed(Event):
    pass


@dataclass(frozen=True)
class AbsenceElapsed(Event):
    pass
