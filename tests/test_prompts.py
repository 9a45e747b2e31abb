# tests/test_prompts.py
"""Tests for centralized prompt validation"""
import pytest

from turnflow.core.engine.domain import PromptRequest
from turnflow.core.engine.errors import ValidationFailed
from turnflow.core.engine.prompts import recognize_choice, validate_input

CHOICES = ["A", "B", "C"]


class TestRecognizeChoice:
    def test_exact_label(self):
        assert recognize_choice("B", CHOICES) == "B"

    def test_case_insensitive(self):
        assert recognize_choice("b", CHOICES) == "B"

    def test_trimmed(self):
        assert recognize_choice("  c \n", CHOICES) == "C"

    def test_numeric_index_is_one_based(self):
        assert recognize_choice("2", CHOICES) == "B"
        assert recognize_choice(" 1 ", CHOICES) == "A"

    def test_index_out_of_range(self):
        for raw in ("0", "4", "10"):
            with pytest.raises(ValidationFailed):
                recognize_choice(raw, CHOICES)

    def test_unknown_label(self):
        with pytest.raises(ValidationFailed) as exc_info:
            recognize_choice("D", CHOICES)
        assert exc_info.value.raw == "D"

    def test_empty_input(self):
        for raw in ("", "   ", None):
            with pytest.raises(ValidationFailed):
                recognize_choice(raw, CHOICES)

    def test_index_disabled_for_non_enumerated_choices(self):
        with pytest.raises(ValidationFailed):
            recognize_choice("2", CHOICES, allow_index=False)

    def test_numeric_label_matches_before_index(self):
        # label "2" is the first option; the literal label wins over position 2
        assert recognize_choice("2", ["2", "5"]) == "2"

    def test_multiword_labels(self):
        assert recognize_choice("find food", ["Donate", "Find Food"]) == "Find Food"

    def test_partial_match_rejected(self):
        with pytest.raises(ValidationFailed):
            recognize_choice("Fin", ["Find"])


class TestValidateInput:
    def test_choices(self):
        req = PromptRequest(text="?", choices=CHOICES)
        assert validate_input(req, "b") == "B"

    def test_choices_without_index_alias(self):
        req = PromptRequest(text="?", choices=CHOICES, enumerate_choices=False)
        with pytest.raises(ValidationFailed):
            validate_input(req, "2")

    def test_free_text_passes_through_unchanged(self):
        req = PromptRequest(text="Email?")
        assert validate_input(req, " me@example.com ") == " me@example.com "

    def test_free_text_blank_rejected(self):
        with pytest.raises(ValidationFailed):
            validate_input(PromptRequest(text="Email?"), "   ")

    def test_free_text_blank_allowed_without_require_text(self):
        req = PromptRequest(text="Photo?")
        assert validate_input(req, None, require_text=False) is None
        assert validate_input(req, "  ", require_text=False) == "  "

    def test_choices_checked_even_without_require_text(self):
        req = PromptRequest(text="?", choices=CHOICES)
        with pytest.raises(ValidationFailed):
            validate_input(req, None, require_text=False)

    def test_validator_takes_precedence(self):
        def digits(raw):
            if not str(raw).isdigit():
                raise ValidationFailed("digits only", raw=raw)
            return int(raw)

        req = PromptRequest(text="How many?", choices=["ignored"])
        assert validate_input(req, "12", validator=digits) == 12
        with pytest.raises(ValidationFailed):
            validate_input(req, "ignored", validator=digits)
