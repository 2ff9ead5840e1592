"""Tests for the answer resolver and corpus loading."""

from __future__ import annotations

import json

import pytest

from docent.models import CorpusError, QAEntry, load_corpus
from docent.resolver import (
    FALLBACK_REPLY,
    GREETING_REPLY,
    STATUS_REPLY,
    AnswerResolver,
    ReplyKind,
    approximate_errors,
    keyword_distance,
    normalize,
)

CORPUS = [
    QAEntry(keywords=("solar tracker", "solar panel"), answer="SOLAR"),
    QAEntry(keywords=("line follower", "robot"), answer="ROBOT"),
    QAEntry(keywords=("irrigation", "soil moisture"), answer="IRRIGATION"),
]


@pytest.fixture
def resolver():
    return AnswerResolver(CORPUS, threshold=0.6)


@pytest.fixture
def bundled():
    from docent.config import Settings
    return AnswerResolver(load_corpus(Settings(_env_file=None).corpus_path), threshold=0.6)


# ======================================================================
# Small talk
# ======================================================================

class TestSmallTalk:

    def test_hello_there_is_greeting(self, resolver):
        result = resolver.resolve("hello there")
        assert result.kind == ReplyKind.GREETING
        assert result.answer == GREETING_REPLY

    def test_greeting_short_circuits_search(self, resolver):
        # Mentions a project but the greeting wins.
        result = resolver.resolve("Hi, tell me about the robot")
        assert result.kind == ReplyKind.GREETING

    def test_hi_must_be_a_word(self, resolver):
        result = resolver.resolve("this robot")
        assert result.kind == ReplyKind.MATCH

    def test_case_insensitive(self, resolver):
        assert resolver.resolve("HELLO").kind == ReplyKind.GREETING

    def test_how_are_you(self, resolver):
        result = resolver.resolve("How are you doing today?")
        assert result.kind == ReplyKind.SMALL_TALK
        assert result.answer == STATUS_REPLY


# ======================================================================
# Keyword search
# ======================================================================

class TestFuzzyMatch:

    def test_verbatim_keyword(self, resolver):
        result = resolver.resolve("tell me about the solar tracker")
        assert result.kind == ReplyKind.MATCH
        assert result.answer == "SOLAR"
        assert result.score == 0.0
        assert result.keyword == "solar tracker"

    def test_misrecognised_keyword(self, resolver):
        result = resolver.resolve("irigation")
        assert result.answer == "IRRIGATION"
        assert result.score == pytest.approx(1 / 9)

    def test_misrecognised_phrase(self, resolver):
        result = resolver.resolve("line folower")
        assert result.answer == "ROBOT"
        assert result.keyword == "line follower"
        assert result.score == pytest.approx(1 / 12)

    def test_nothing_in_common(self, resolver):
        result = resolver.resolve("xyz qqq zzz")
        assert result.kind == ReplyKind.FALLBACK
        assert result.answer == FALLBACK_REPLY

    def test_long_sentence_not_explained_by_short_keyword(self, resolver):
        # 35 characters against keywords of at most 13: at least 22 edits.
        result = resolver.resolve("tell me about the irigation project")
        assert result.kind == ReplyKind.FALLBACK

    def test_best_score_wins(self, resolver):
        result = resolver.resolve("robot")
        assert result.answer == "ROBOT"

    def test_ties_follow_corpus_order(self):
        corpus = [
            QAEntry(keywords=("exhibit",), answer="FIRST"),
            QAEntry(keywords=("exhibit",), answer="SECOND"),
        ]
        assert AnswerResolver(corpus).resolve("the exhibit").answer == "FIRST"

    def test_deterministic(self, resolver):
        answers = {resolver.resolve("line folower").answer for _ in range(5)}
        assert len(answers) == 1

    def test_strict_threshold_rejects(self):
        strict = AnswerResolver(CORPUS, threshold=0.0)
        assert strict.resolve("irigation").kind == ReplyKind.FALLBACK
        assert strict.resolve("irrigation").kind == ReplyKind.MATCH

    def test_empty_corpus_falls_through(self):
        result = AnswerResolver([]).resolve("solar tracker")
        assert result.kind == ReplyKind.FALLBACK

    def test_empty_query(self, resolver):
        assert resolver.resolve("   ").kind == ReplyKind.FALLBACK

    def test_search_sorted(self, resolver):
        hits = resolver.search("solar robot")
        scores = [score for score, _, _ in hits]
        assert scores == sorted(scores)


class TestBundledCorpus:

    @pytest.mark.parametrize("question", [
        "Excuse me, could you tell me where the nearest bathroom is?",
        "Do you know if there is a good place to get coffee around here?",
        "What time does the exhibition close this evening, please?",
        "Thank you so much for your help and have a nice day",
        "Is it going to rain later today or will it stay sunny?",
    ])
    def test_off_topic_questions_fall_back(self, bundled, question):
        result = bundled.resolve(question)
        assert result.kind == ReplyKind.FALLBACK
        assert result.answer == FALLBACK_REPLY

    def test_project_question_answered(self, bundled):
        result = bundled.resolve("Can you tell me about the solar tracker?")
        assert result.kind == ReplyKind.MATCH
        assert "sun" in result.answer

    def test_misheard_project_answered(self, bundled):
        result = bundled.resolve("irigation")
        assert result.kind == ReplyKind.MATCH
        assert "irrigation" in result.answer


# ======================================================================
# Helpers
# ======================================================================

class TestHelpers:

    def test_normalize(self):
        assert normalize("  What's   the ROBOT?! ") == "what's the robot"

    def test_keyword_distance_exact(self):
        assert keyword_distance("the solar panel here", "Solar Panel") == 0.0

    def test_keyword_distance_unrelated(self):
        assert keyword_distance("xyz", "irrigation") == 1.0

    def test_keyword_distance_scales_with_query_length(self):
        short = keyword_distance("irigation", "irrigation")
        long = keyword_distance("please explain irigation", "irrigation")
        assert short < long

    def test_keyword_distance_empty(self):
        assert keyword_distance("", "robot") == 1.0
        assert keyword_distance("robot", "") == 1.0

    def test_approximate_errors(self):
        assert approximate_errors("robot", "line follower robot") == 0
        assert approximate_errors("robots", "robot") == 1
        assert approximate_errors("xyz", "abc") == 3
        assert approximate_errors("", "abc") == 0


# ======================================================================
# Corpus loading (models.py)
# ======================================================================

class TestCorpusLoading:

    def test_load(self, tmp_path):
        path = tmp_path / "corpus.json"
        path.write_text(json.dumps([{"keywords": ["a", "b"], "answer": "ans"}]))
        entries = load_corpus(path)
        assert entries == [QAEntry(keywords=("a", "b"), answer="ans")]

    def test_missing_file_is_empty(self, tmp_path):
        assert load_corpus(tmp_path / "missing.json") == []

    def test_empty_array(self, tmp_path):
        path = tmp_path / "corpus.json"
        path.write_text("[]")
        assert load_corpus(path) == []

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "corpus.json"
        path.write_text("{not json")
        with pytest.raises(CorpusError):
            load_corpus(path)

    def test_invalid_schema(self, tmp_path):
        path = tmp_path / "corpus.json"
        path.write_text(json.dumps([{"keywords": ["x"]}]))
        with pytest.raises(CorpusError):
            load_corpus(path)

    def test_entries_are_immutable(self):
        entry = QAEntry(keywords=("x",), answer="y")
        with pytest.raises(Exception):
            entry.answer = "z"

    def test_bundled_corpus(self):
        from docent.config import Settings
        entries = load_corpus(Settings(_env_file=None).corpus_path)
        assert len(entries) > 0
        assert all(e.keywords and e.answer for e in entries)
