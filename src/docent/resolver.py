"""Answer lookup for spoken visitor questions.

A question goes through three stages, stopping at the first that
produces a reply:

1. Small talk: greetings ("hello", "hi") and "how are you" get fixed
   conversational replies.
2. Keyword search over the project corpus.  A keyword that occurs in the
   question as whole words is a perfect hit.  Otherwise the whole
   question is searched approximately inside the keyword: the score is the
   fewest edits (Levenshtein) that turn the question into some part of the
   keyword, divided by the question's length.  Speech engines mangle single
   words ("irigation"), which stays cheap, while a long off-topic sentence
   can never be explained by a short keyword.
3. A fixed "didn't understand" reply.

Scores are *distances* (0.0 = exact, 1.0 = nothing in common); an entry
qualifies when its best keyword distance is at or below ``threshold``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from rapidfuzz.distance import Levenshtein

from docent.models import QAEntry

logger = logging.getLogger(__name__)

GREETING_REPLY = "Hello! How can I help you regarding the projects?"
STATUS_REPLY = "I am doing great, thank you! I am ready to explain any project here."
FALLBACK_REPLY = (
    "Sorry, I didn't quite catch that. "
    "Could you rephrase your question about the projects?"
)

_GREETING_WORDS = re.compile(r"\b(hello|hi)\b")
_STATUS_PHRASE = "how are you"
_PUNCTUATION = re.compile(r"[^\w\s']")


class ReplyKind(str, Enum):
    GREETING = "greeting"
    SMALL_TALK = "small_talk"
    MATCH = "match"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one question."""

    answer: str
    kind: ReplyKind
    score: float = 1.0  # keyword distance; 0.0 for small talk
    entry: Optional[QAEntry] = None
    keyword: str = ""


def normalize(text: str) -> str:
    """Lower-case, drop punctuation, collapse whitespace."""
    return " ".join(_PUNCTUATION.sub(" ", text.lower()).split())


def approximate_errors(pattern: str, text: str) -> int:
    """Fewest edits turning ``pattern`` into any substring of ``text``."""
    best = len(pattern)
    for start in range(len(text)):
        for end in range(start + 1, len(text) + 1):
            errors = Levenshtein.distance(pattern, text[start:end], score_cutoff=best)
            if errors < best:
                best = errors
                if best == 0:
                    return 0
    return best


def keyword_distance(query: str, keyword: str) -> float:
    """Distance between a normalized query and one keyword (0.0 – 1.0)."""
    kw = normalize(keyword)
    if not kw or not query:
        return 1.0
    if re.search(rf"\b{re.escape(kw)}\b", query):
        return 0.0
    return min(1.0, approximate_errors(query, kw) / len(query))


class AnswerResolver:
    """Resolves questions against a fixed corpus of :class:`QAEntry`.

    Parameters
    ----------
    entries : sequence of QAEntry
        The corpus, in priority order (earlier entries win ties).
    threshold : float
        Maximum keyword distance accepted as a match.
    """

    def __init__(self, entries: Sequence[QAEntry] = (), threshold: float = 0.6) -> None:
        self.entries: tuple[QAEntry, ...] = tuple(entries)
        self.threshold = threshold

    def __len__(self) -> int:
        return len(self.entries)

    def search(self, query: str) -> list[tuple[float, str, QAEntry]]:
        """All qualifying entries as ``(distance, keyword, entry)``, best first."""
        text = normalize(query)
        hits: list[tuple[float, str, QAEntry]] = []
        for entry in self.entries:
            best_score, best_kw = 1.0, ""
            for kw in entry.keywords:
                score = keyword_distance(text, kw)
                if score < best_score:
                    best_score, best_kw = score, kw
            if best_kw and best_score <= self.threshold:
                hits.append((best_score, best_kw, entry))
        # sort is stable, so equal scores keep corpus order
        hits.sort(key=lambda hit: hit[0])
        return hits

    def resolve(self, query: str) -> Resolution:
        text = normalize(query)
        if not text:
            return Resolution(answer=FALLBACK_REPLY, kind=ReplyKind.FALLBACK)

        if _GREETING_WORDS.search(text):
            return Resolution(answer=GREETING_REPLY, kind=ReplyKind.GREETING, score=0.0)
        if _STATUS_PHRASE in text:
            return Resolution(answer=STATUS_REPLY, kind=ReplyKind.SMALL_TALK, score=0.0)

        hits = self.search(text)
        if not hits:
            logger.info("No answer for %r", query)
            return Resolution(answer=FALLBACK_REPLY, kind=ReplyKind.FALLBACK)

        score, keyword, entry = hits[0]
        logger.info("Matched %r via keyword %r (distance %.2f)", query, keyword, score)
        return Resolution(
            answer=entry.answer,
            kind=ReplyKind.MATCH,
            score=score,
            entry=entry,
            keyword=keyword,
        )
