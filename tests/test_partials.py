from __future__ import annotations

from speechsession.domain.types import RecognitionAlternative
from speechsession.stt.partials import InterimHypothesis, PartialConfig, deduplicate_words, estimate_stability


class TestDeduplicateWords:
    def test_no_overlap(self):
        assert deduplicate_words("hello world", []) == ([], ["hello", "world"])

    def test_overlapping_suffix(self):
        overlap, new = deduplicate_words("quick brown fox", ["the", "quick", "brown"])

        assert overlap == ["quick", "brown"]
        assert new == ["fox"]

    def test_case_insensitive(self):
        assert deduplicate_words("Brown fox", ["the", "brown"]) == (["Brown"], ["fox"])

    def test_everything_confirmed(self):
        assert deduplicate_words("brown", ["the", "brown"]) == (["brown"], [])

    def test_blank_text(self):
        assert deduplicate_words("   ", ["the"]) == ([], [])


class TestEstimateStability:
    def test_unknown_without_history(self):
        assert estimate_stability(0, 3) is None
        assert estimate_stability(2, 0) is None

    def test_ratio(self):
        assert estimate_stability(2, 4) == 0.5
        assert estimate_stability(2, 3) == 0.67


class TestInterimHypothesis:
    def test_due_after_window_then_every_stride(self):
        hypothesis = InterimHypothesis(PartialConfig(window_ms=1000, stride_ms=500))

        assert not hypothesis.due(900)
        assert hypothesis.due(1000)
        hypothesis.update(1000, [])
        assert not hypothesis.due(1400)
        assert hypothesis.due(1500)

    def test_tail_window_includes_overlap(self):
        assert InterimHypothesis(PartialConfig(window_ms=1000)).tail_window_ms == 1300

    def test_grows_transcript(self):
        hypothesis = InterimHypothesis()

        first = hypothesis.update(1500, [RecognitionAlternative("the quick")])
        second = hypothesis.update(2200, [RecognitionAlternative("quick brown fox", 0.8)])

        assert first == (RecognitionAlternative("the quick"), None)
        assert second == (RecognitionAlternative("the quick brown fox", 0.8), 0.5)

    def test_nothing_new(self):
        hypothesis = InterimHypothesis()
        hypothesis.update(1500, [RecognitionAlternative("hello")])

        assert hypothesis.update(2200, [RecognitionAlternative("hello")]) is None
        assert hypothesis.update(2900, []) is None

    def test_reset(self):
        hypothesis = InterimHypothesis()
        hypothesis.update(1500, [RecognitionAlternative("hello")])

        hypothesis.reset()

        assert hypothesis.state.confirmed_words == []
        assert hypothesis.state.last_partial_ms == 0
