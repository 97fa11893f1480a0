"""
Unit tests for quiz_prompts.py and output_parser.py.
"""

import json

import pytest

from error_handling import MalformedOutput
from output_parser import (
    close_open_brackets,
    close_unterminated_string,
    extract_questions,
    parse_model_output,
    strip_trailing_commas,
    strip_wrapping_text,
)
from quiz_prompts import build_quiz_prompt, option_label
from schemas import QuizConfig


# ────────────────────────────────────────────────────────────────────────────
# Prompt construction
# ────────────────────────────────────────────────────────────────────────────

class TestBuildQuizPrompt:

    def test_prompt_is_deterministic(self, config):
        assert build_quiz_prompt("Cells divide.", config) == build_quiz_prompt("Cells divide.", config)

    def test_chunk_is_embedded_verbatim(self, config):
        chunk = 'He said "energy" is\nconserved.'
        prompt = build_quiz_prompt(chunk, config)
        assert f"<<<CONTENT\n{chunk}\nCONTENT>>>" in prompt

    def test_counts_and_option_bounds_are_stated(self, config):
        prompt = build_quiz_prompt("Cells divide.", config)
        assert "EXACTLY 4 questions" in prompt
        assert "2 question(s) (indices 0 to 1) of type \"single\"" in prompt
        assert "2 question(s) (indices 2 to 3) of type \"multiple\"" in prompt
        assert "EXACTLY 4 options" in prompt
        assert "between 0 and 3" in prompt
        assert "Respond ONLY with the JSON array" in prompt

    def test_only_multiple_block(self):
        cfg = QuizConfig(total_questions=1, single_correct=0, multiple_correct=1, options_per_question=3)
        prompt = build_quiz_prompt("x", cfg)
        assert "Only block: 1 question(s) (index 0) of type \"multiple\"" in prompt
        assert "type \"single\"," not in prompt

    def test_option_labels(self):
        assert option_label(0) == "a"
        assert option_label(3) == "d"
        assert option_label(26) == "27"


# ────────────────────────────────────────────────────────────────────────────
# Output parsing
# ────────────────────────────────────────────────────────────────────────────

class TestParseModelOutput:

    def test_valid_json_is_returned_unchanged(self):
        raw = json.dumps([{"question": "Q?", "options": ["a) 1", "b) 2"], "correctAnswers": [0]}])
        assert parse_model_output(raw) == json.loads(raw)

    def test_valid_json_with_trailing_comma_inside_string_untouched(self):
        raw = '[{"question": "a,]", "type": "single"}]'
        assert parse_model_output(raw)[0]["question"] == "a,]"

    def test_markdown_fence_and_preamble(self):
        raw = 'Here is your quiz:\n```json\n[{"question": "Q?"}]\n```'
        assert parse_model_output(raw) == [{"question": "Q?"}]

    def test_trailing_commas(self):
        assert parse_model_output('[{"a": 1,}, {"b": 2},]') == [{"a": 1}, {"b": 2}]

    def test_truncated_output_is_closed(self):
        raw = '[{"question": "What is the capital of France?", "options": ["a) Paris", "b) Lon'
        parsed = parse_model_output(raw)
        assert parsed[0]["question"] == "What is the capital of France?"
        assert parsed[0]["options"] == ["a) Paris", "b) Lon"]

    def test_unrepairable_output(self):
        with pytest.raises(MalformedOutput) as exc_info:
            parse_model_output("I could not generate a quiz, sorry.")
        assert exc_info.value.message == "Invalid JSON after attempted fix"


class TestRepairRules:

    def test_strip_wrapping_text(self):
        assert strip_wrapping_text('Sure!\n```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_close_unterminated_string(self):
        assert close_unterminated_string('["abc') == '["abc"'
        assert close_unterminated_string('["abc"]') == '["abc"]'

    def test_close_unterminated_string_drops_dangling_escape(self):
        assert close_unterminated_string('["ab\\') == '["ab"'

    def test_strip_trailing_commas(self):
        assert strip_trailing_commas("[1, 2, ]") == "[1, 2]"

    def test_close_open_brackets(self):
        assert close_open_brackets('[{"a": [1, 2') == '[{"a": [1, 2]}]'
        assert close_open_brackets('[{"a": 1},') == '[{"a": 1}]'


class TestExtractQuestions:

    def test_list_passes_through(self):
        assert extract_questions([1, 2]) == [1, 2]

    def test_wrapper_keys(self):
        assert extract_questions({"questions": [{"question": "Q"}]}) == [{"question": "Q"}]
        assert extract_questions({"quiz": []}) == []

    def test_single_list_valued_dict(self):
        assert extract_questions({"mcqs": [1]}) == [1]

    def test_single_question_object(self):
        q = {"question": "Q?", "options": ["a", "b"], "correctAnswers": [0]}
        assert extract_questions(q) == [q]

    def test_unrecognised_object_is_unchanged(self):
        assert extract_questions({"error": "nope"}) == {"error": "nope"}
