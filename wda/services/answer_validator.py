"""Answer validation against a question definition.

validate_answer is pure: no I/O, no logging, no state. Every applicable
violation is collected so callers can show all problems at once. The only
short-circuit is a missing answer to a required question.
"""

import re
from dataclasses import dataclass, field
from typing import Any, List

from wda.domain.models.question import Question, QuestionType


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def is_empty_answer(answer: Any) -> bool:
    return answer is None or answer == "" or answer == []


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a numeric answer
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_matches(answer: Any, question_type: QuestionType) -> bool:
    if question_type in (QuestionType.TEXT, QuestionType.SINGLE_CHOICE):
        return isinstance(answer, str)
    if question_type in (QuestionType.NUMBER, QuestionType.SCALE):
        return _is_number(answer)
    if question_type == QuestionType.MULTIPLE_CHOICE:
        return isinstance(answer, list) and all(isinstance(a, str) for a in answer)
    return False


def _format_bound(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def validate_answer(answer: Any, question: Question) -> ValidationResult:
    """
    Validate an answer value against its question.

    Args:
        answer: Raw answer (str, number, bool or list of str)
        question: Question definition from the catalog

    Returns:
        ValidationResult with every violation found
    """
    if is_empty_answer(answer):
        if question.required:
            return ValidationResult(valid=False, errors=["Answer is required"])
        return ValidationResult(valid=True)

    if not _type_matches(answer, question.type):
        return ValidationResult(valid=False, errors=["Answer type mismatch"])

    errors: List[str] = []

    if question.type == QuestionType.TEXT and question.validation is not None:
        rules = question.validation
        length = len(answer)
        if rules.min_length is not None and length < rules.min_length:
            errors.append(f"Answer must be at least {rules.min_length} characters")
        if rules.max_length is not None and length > rules.max_length:
            errors.append(f"Answer must be at most {rules.max_length} characters")
        if rules.pattern is not None and not re.fullmatch(rules.pattern, answer):
            errors.append("Answer does not match the required format")

    if question.type == QuestionType.SINGLE_CHOICE and question.options is not None:
        if answer not in question.options.all_values():
            errors.append("Answer must be one of the provided options")

    if question.type == QuestionType.MULTIPLE_CHOICE and question.options is not None:
        allowed = question.options.all_values()
        if any(choice not in allowed for choice in answer):
            errors.append("All answers must be from provided options")

    if question.type == QuestionType.SCALE and question.scale is not None:
        scale = question.scale
        if not scale.min <= answer <= scale.max:
            errors.append(
                f"Answer must be between {_format_bound(scale.min)} "
                f"and {_format_bound(scale.max)}"
            )

    return ValidationResult(valid=not errors, errors=errors)
