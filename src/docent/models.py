"""Core domain models shared by the detection, presence and interaction layers."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class DocentError(Exception):
    """Base class for errors raised by the kiosk core."""


class CorpusError(DocentError):
    """The Q&A corpus could not be parsed."""


# ======================================================================
# Enumerations
# ======================================================================
class InteractionState(str, Enum):
    """Visible state of the kiosk conversation."""

    IDLE = "IDLE"            # nobody engaged, waiting for an approach
    WELCOMING = "WELCOMING"  # greeting issued, grace period running
    LISTENING = "LISTENING"  # microphone open for a question
    SPEAKING = "SPEAKING"    # an utterance is playing


# ======================================================================
# Per-frame vision data
# ======================================================================
@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in pixel space."""

    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)


@dataclass(frozen=True)
class Detection:
    """One object reported by the detector for a single frame."""

    label: str
    confidence: float  # 0.0 – 1.0
    bbox: BoundingBox


@dataclass(frozen=True)
class PresenceSnapshot:
    """Who is in front of the kiosk right now."""

    person_count: int = 0
    any_close: bool = False

    @property
    def person_present(self) -> bool:
        return self.person_count > 0


# ======================================================================
# Q&A corpus
# ======================================================================
class QAEntry(BaseModel):
    """A keyworded answer about one exhibited project."""

    model_config = ConfigDict(frozen=True)

    keywords: tuple[str, ...] = Field(default_factory=tuple)
    answer: str


_CORPUS_ADAPTER = TypeAdapter(list[QAEntry])


def load_corpus(path: Path | str) -> list[QAEntry]:
    """Load the Q&A corpus from a JSON array.

    A missing file yields an empty corpus so the kiosk still runs (every
    question then gets the default reply).  A file that exists but does
    not parse raises :class:`CorpusError`.
    """
    path = Path(path)
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return _CORPUS_ADAPTER.validate_python(raw)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise CorpusError(f"Invalid corpus file {path}: {exc}") from exc
