"""
Question selection by survey mode.

A mode draws the leading N packs of the catalog (quick 3, standard 8, deep
all, configurable) and keeps the questions applicable to that mode, in
catalog order. The selection is fixed at session creation: the session
stores its pack ids and total, and the flow engine indexes into the same
ordering with the session cursor.
"""

from dataclasses import dataclass
from typing import List, Optional

from wda.core.config import ModesConfig, survey_config
from wda.domain.models.question import Question, QuestionCatalog
from wda.domain.models.session import Session, SurveyMode


@dataclass(frozen=True)
class QuestionEstimate:
    min: int
    max: int


class QuestionSelector:
    """Mode- and pack-filtered view of an immutable catalog."""

    def __init__(self, catalog: QuestionCatalog, modes: Optional[ModesConfig] = None):
        self.catalog = catalog
        self.modes = modes or survey_config.modes

    def select_pack_ids(self, mode: SurveyMode) -> List[str]:
        limit = getattr(self.modes, mode.value).max_packs
        packs = self.catalog.packs if limit is None else self.catalog.packs[:limit]
        return [p.id for p in packs]

    def questions_for(self, pack_ids: List[str], mode: SurveyMode) -> List[Question]:
        """Questions of the given packs applicable to mode, in catalog order."""
        selected = set(pack_ids)
        return [
            q
            for pack in self.catalog.packs
            if pack.id in selected
            for q in pack.questions
            if mode in q.applicable_modes
        ]

    def questions_for_session(self, session: Session) -> List[Question]:
        return self.questions_for(session.selected_pack_ids, session.mode)

    def question_at(self, session: Session, index: int) -> Optional[Question]:
        questions = self.questions_for_session(session)
        if 0 <= index < len(questions):
            return questions[index]
        return None

    def estimate_question_count(self, mode: SurveyMode) -> QuestionEstimate:
        limits = getattr(self.modes, mode.value)
        return QuestionEstimate(
            min=limits.estimated_min_questions, max=limits.estimated_max_questions
        )
