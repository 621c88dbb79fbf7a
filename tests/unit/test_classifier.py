"""
Heuristic classifier tests.

Verifies:
- Category priority: coding > reasoning > balanced > word count
- Whole-word matching (no substring false positives)
- Complexity keyword priority and word-count fallback
"""
import pytest

from graph.classifier import classify_message, count_words, estimate_complexity


class TestCategory:

    @pytest.mark.parametrize("message", [
        "please debug this",
        "write an algorithm for sorting",
        "my python script crashes",
        "explain this function",  # coding wins over reasoning
    ])
    def test_coding_keywords(self, message):
        assert classify_message(message).category == "coding"

    def test_explain_how_recursion_is_reasoning(self):
        meta = classify_message("explain how recursion works")
        assert meta.category == "reasoning"
        assert meta.matched_keyword in ("explain", "how")

    def test_general_question_is_balanced(self):
        assert classify_message("what is the capital of France").category == "balanced"

    def test_short_message_without_keywords_is_fast(self):
        assert classify_message("hello there friend").category == "fast"

    def test_long_message_without_keywords_is_balanced(self):
        message = "I am going to the market today and I need to buy apples oranges and bread"
        assert count_words(message) >= 10
        assert classify_message(message).category == "balanced"

    def test_whole_word_matching(self):
        # "classical" must not match "class", "programme" must not match "program"
        meta = classify_message("I enjoy classical music")
        assert meta.category == "fast"
        assert meta.matched_keyword is None

    def test_case_insensitive(self):
        assert classify_message("DEBUG THIS NOW").category == "coding"

    def test_idempotent(self):
        message = "compare the theory of relativity with quantum mechanics"
        assert classify_message(message) == classify_message(message)


class TestComplexity:

    def test_high_keyword_beats_medium(self):
        # "theorem" is high, "solve" is medium
        assert estimate_complexity("solve this theorem") == "high"

    def test_medium_keyword(self):
        assert estimate_complexity("calculate the area") == "medium"

    def test_low_keyword(self):
        assert estimate_complexity("thanks a lot") == "low"

    def test_word_count_fallback(self):
        assert estimate_complexity(" ".join(["word"] * 31)) == "high"
        assert estimate_complexity(" ".join(["word"] * 16)) == "medium"
        assert estimate_complexity(" ".join(["word"] * 15)) == "low"

    def test_count_words_tolerates_whitespace(self):
        assert count_words("  a \n b\t\tc  ") == 3
        assert count_words("") == 0
