"""
Rule-based follow-up matching.

Walks a question's follow-up rules in declaration order and returns the
first rule whose condition holds. Conditions:
- answer_too_short: trimmed answer shorter than the rule threshold
  (survey config default when the rule sets none)
- answer_too_vague: vague-language keywords (classifier)
- contains_keywords: any rule keyword, case-insensitive substring
- answer_negative: negative-language keywords (classifier)

Only text answers (strings, or lists of strings joined with spaces) are
considered; numbers and booleans never trigger a follow-up.
"""

from dataclasses import dataclass
from typing import Any, Optional

import structlog

from wda.core.config import survey_config
from wda.domain.models.question import FollowUpCondition, FollowUpRule, Question
from wda.signals.keyword_classifier import KeywordSignalClassifier, TextSignalClassifier

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FollowUpResult:
    triggered: bool
    rule: Optional[FollowUpRule] = None
    question_text: Optional[str] = None
    reason: Optional[str] = None


NOT_TRIGGERED = FollowUpResult(triggered=False)


def answer_text(answer: Any) -> Optional[str]:
    """Text view of an answer, or None for non-text answers."""
    if isinstance(answer, str):
        return answer
    if isinstance(answer, list) and all(isinstance(a, str) for a in answer):
        return " ".join(answer)
    return None


class FollowUpService:
    """Selects the follow-up question, if any, for an accepted answer."""

    def __init__(
        self,
        classifier: Optional[TextSignalClassifier] = None,
        min_answer_length: Optional[int] = None,
    ):
        self.classifier = classifier or KeywordSignalClassifier()
        self.min_answer_length = (
            min_answer_length
            if min_answer_length is not None
            else survey_config.follow_up.min_answer_length
        )

    def _condition_holds(self, rule: FollowUpRule, text: str) -> bool:
        if rule.condition == FollowUpCondition.ANSWER_TOO_SHORT:
            threshold = (
                rule.threshold
                if rule.threshold is not None
                else self.min_answer_length
            )
            return len(text.strip()) < threshold
        if rule.condition == FollowUpCondition.ANSWER_TOO_VAGUE:
            return self.classifier.is_vague(text)
        if rule.condition == FollowUpCondition.CONTAINS_KEYWORDS:
            lowered = text.lower()
            return any(k.lower() in lowered for k in rule.keywords)
        if rule.condition == FollowUpCondition.ANSWER_NEGATIVE:
            return self.classifier.is_negative(text)
        return False

    def detect(
        self,
        answer: Any,
        question: Question,
        language: str = "en",
        previous_follow_ups: int = 0,
    ) -> FollowUpResult:
        """
        Find the first satisfied follow-up rule.

        Args:
            answer: Accepted answer value
            question: Question the answer belongs to
            language: Language for the returned follow-up text
            previous_follow_ups: Follow-up answers already recorded for this
                question; rules whose max_follow_ups is reached are skipped

        Returns:
            FollowUpResult (NOT_TRIGGERED when no rule matches)
        """
        text = answer_text(answer)
        if text is None:
            return NOT_TRIGGERED

        for rule in question.follow_up_rules:
            if previous_follow_ups >= rule.max_follow_ups:
                continue
            if self._condition_holds(rule, text):
                log.debug(
                    "follow_up_triggered",
                    question_id=question.id,
                    condition=rule.condition.value,
                )
                return FollowUpResult(
                    triggered=True,
                    rule=rule,
                    question_text=rule.follow_up_text.get(language),
                    reason=rule.condition.value,
                )
        return NOT_TRIGGERED
