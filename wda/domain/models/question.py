"""Question catalog models.

Packs are loaded from YAML by wda.core.catalog_loader and assembled into a
QuestionCatalog. The catalog is frozen after load and passed into the
services at construction, so every session reads the same immutable value.

Core Models:
    - Question: one localized question with its type, constraints and
      follow-up rules
    - QuestionPack: a named, versioned bundle of questions
    - QuestionCatalog: ordered packs plus an id index
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from wda.domain.models.session import SurveyMode


class QuestionType(str, Enum):
    """Declared answer type of a question."""

    TEXT = "text"
    NUMBER = "number"
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    SCALE = "scale"


class FollowUpCondition(str, Enum):
    """Condition under which a follow-up rule fires."""

    ANSWER_TOO_SHORT = "answer_too_short"
    ANSWER_TOO_VAGUE = "answer_too_vague"
    CONTAINS_KEYWORDS = "contains_keywords"
    ANSWER_NEGATIVE = "answer_negative"


class LocalizedText(BaseModel):
    """Text in every supported language."""

    model_config = ConfigDict(frozen=True)

    de: str
    en: str

    def get(self, language: str) -> str:
        return self.de if language == "de" else self.en


class LocalizedOptions(BaseModel):
    """Choice options in every supported language (parallel lists)."""

    model_config = ConfigDict(frozen=True)

    de: Tuple[str, ...] = ()
    en: Tuple[str, ...] = ()

    def all_values(self) -> set[str]:
        """Union of all locales' options."""
        return set(self.de) | set(self.en)


class ScaleRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    min_label: Optional[LocalizedText] = None
    max_label: Optional[LocalizedText] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "ScaleRange":
        if self.min > self.max:
            raise ValueError(f"scale min {self.min} exceeds max {self.max}")
        return self


class TextConstraints(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    pattern: Optional[str] = Field(
        default=None, description="Regular expression the whole answer must match"
    )


class FollowUpRule(BaseModel):
    """Declarative condition -> follow-up question mapping."""

    model_config = ConfigDict(frozen=True)

    condition: FollowUpCondition
    follow_up_text: LocalizedText
    threshold: Optional[int] = Field(
        default=None,
        ge=1,
        description="Minimum trimmed length for answer_too_short (config default if unset)",
    )
    keywords: Tuple[str, ...] = ()
    max_follow_ups: int = Field(default=2, ge=0)


class QuestionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: Optional[str] = None
    tags: Tuple[str, ...] = ()
    free_talk_potential: Optional[str] = None


class Question(BaseModel):
    """Single catalog question."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: LocalizedText
    type: QuestionType
    required: bool = True
    options: Optional[LocalizedOptions] = None
    scale: Optional[ScaleRange] = None
    validation: Optional[TextConstraints] = None
    follow_up_rules: Tuple[FollowUpRule, ...] = ()
    applicable_modes: Tuple[SurveyMode, ...] = (
        SurveyMode.QUICK,
        SurveyMode.STANDARD,
        SurveyMode.DEEP,
    )
    metadata: QuestionMetadata = Field(default_factory=QuestionMetadata)

    @model_validator(mode="after")
    def check_type_requirements(self) -> "Question":
        if self.type in (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE):
            if self.options is None or not self.options.all_values():
                raise ValueError(f"question {self.id}: choice questions need options")
        if self.type == QuestionType.SCALE and self.scale is None:
            raise ValueError(f"question {self.id}: scale questions need a scale range")
        return self


class QuestionPack(BaseModel):
    """Named, versioned bundle of questions."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: LocalizedText
    description: Optional[LocalizedText] = None
    version: str = Field(pattern=r"^\d+\.\d+\.\d+$")
    author: Optional[str] = None
    questions: Tuple[Question, ...]


class QuestionCatalog(BaseModel):
    """Ordered, immutable set of question packs."""

    model_config = ConfigDict(frozen=True)

    packs: Tuple[QuestionPack, ...] = ()

    @model_validator(mode="after")
    def check_unique_ids(self) -> "QuestionCatalog":
        pack_ids = [p.id for p in self.packs]
        if len(pack_ids) != len(set(pack_ids)):
            raise ValueError("duplicate pack ids in catalog")
        question_ids = [q.id for p in self.packs for q in p.questions]
        if len(question_ids) != len(set(question_ids)):
            raise ValueError("duplicate question ids in catalog")
        return self

    def get_question(self, question_id: str) -> Optional[Question]:
        for pack in self.packs:
            for question in pack.questions:
                if question.id == question_id:
                    return question
        return None

    def pack_of(self, question_id: str) -> Optional[str]:
        """Id of the pack containing question_id."""
        for pack in self.packs:
            if any(q.id == question_id for q in pack.questions):
                return pack.id
        return None

    def packs_by_id(self) -> Dict[str, QuestionPack]:
        return {p.id: p for p in self.packs}

    def question_count(self) -> int:
        return sum(len(p.questions) for p in self.packs)

    def questions(self) -> List[Question]:
        return [q for p in self.packs for q in p.questions]
