"""Tests for answer validation."""

import pytest

from wda.domain.models.question import (
    LocalizedOptions,
    LocalizedText,
    Question,
    ScaleRange,
    TextConstraints,
)
from wda.services.answer_validator import validate_answer

TEXT = LocalizedText(en="Question?", de="Frage?")


def text_question(**kwargs) -> Question:
    return Question(id="q-text", text=TEXT, type="text", **kwargs)


def scale_question(minimum=1, maximum=5, **kwargs) -> Question:
    return Question(
        id="q-scale",
        text=TEXT,
        type="scale",
        scale=ScaleRange(min=minimum, max=maximum),
        **kwargs,
    )


def choice_question(kind="single_choice") -> Question:
    return Question(
        id="q-choice",
        text=TEXT,
        type=kind,
        options=LocalizedOptions(en=("Yes", "No"), de=("Ja", "Nein")),
    )


class TestRequired:
    @pytest.mark.parametrize("empty", [None, "", []])
    def test_required_empty_is_single_error(self, empty):
        """Empty answer on a required question short-circuits."""
        result = validate_answer(empty, scale_question())

        assert not result.valid
        assert result.errors == ["Answer is required"]

    @pytest.mark.parametrize("empty", [None, "", []])
    def test_optional_empty_is_valid(self, empty):
        result = validate_answer(empty, text_question(required=False))

        assert result.valid
        assert result.errors == []


class TestTypes:
    @pytest.mark.parametrize(
        "question,answer",
        [
            (text_question(), 42),
            (scale_question(), "3"),
            (scale_question(), True),
            (choice_question(), ["Yes"]),
            (choice_question("multiple_choice"), "Yes"),
            (choice_question("multiple_choice"), ["Yes", 1]),
        ],
    )
    def test_type_mismatch(self, question, answer):
        result = validate_answer(answer, question)

        assert not result.valid
        assert result.errors == ["Answer type mismatch"]

    def test_number_accepts_float(self):
        question = Question(id="q-num", text=TEXT, type="number")

        assert validate_answer(2.5, question).valid

    def test_bool_is_not_a_number(self):
        question = Question(id="q-num", text=TEXT, type="number")

        assert validate_answer(False, question).errors == ["Answer type mismatch"]


class TestTextConstraints:
    def test_too_short(self):
        question = text_question(validation=TextConstraints(min_length=10))

        result = validate_answer("short", question)

        assert result.errors == ["Answer must be at least 10 characters"]

    def test_too_long(self):
        question = text_question(validation=TextConstraints(max_length=3))

        result = validate_answer("too long", question)

        assert result.errors == ["Answer must be at most 3 characters"]

    def test_collects_every_violation(self):
        """Length and pattern violations are reported together."""
        question = text_question(
            validation=TextConstraints(max_length=3, pattern=r"\d+")
        )

        result = validate_answer("abcdef", question)

        assert not result.valid
        assert result.errors == [
            "Answer must be at most 3 characters",
            "Answer does not match the required format",
        ]

    def test_within_bounds(self):
        question = text_question(validation=TextConstraints(min_length=2, max_length=10))

        assert validate_answer("fine", question).valid


class TestChoices:
    def test_option_from_any_locale(self):
        """Options are checked against the union of all locales."""
        question = choice_question()

        assert validate_answer("Yes", question).valid
        assert validate_answer("Nein", question).valid

    def test_unknown_option(self):
        result = validate_answer("Maybe", choice_question())

        assert result.errors == ["Answer must be one of the provided options"]

    def test_multiple_choice_mixed_locales(self):
        assert validate_answer(["Yes", "Nein"], choice_question("multiple_choice")).valid

    def test_multiple_choice_unknown_member(self):
        result = validate_answer(["Yes", "Maybe"], choice_question("multiple_choice"))

        assert result.errors == ["All answers must be from provided options"]


class TestScale:
    def test_out_of_range_states_exact_bounds(self):
        result = validate_answer(6, scale_question(1, 5))

        assert not result.valid
        assert result.errors == ["Answer must be between 1 and 5"]
        assert "between 1 and 5" in result.errors[0]

    @pytest.mark.parametrize("answer", [1, 3, 5, 4.5])
    def test_in_range(self, answer):
        assert validate_answer(answer, scale_question(1, 5)).valid

    def test_below_range(self):
        assert validate_answer(0, scale_question(1, 5)).errors == [
            "Answer must be between 1 and 5"
        ]
