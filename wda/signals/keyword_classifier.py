"""Keyword-based text signals for survey answers.

Detects, from fixed bilingual (en/de) keyword lists:
- vague language: depends, maybe, kommt drauf an, ...
- negative language: no, never, nicht, ...
- frustration: confidence = min(matches / 3, 1)
- digression: topic-shift phrases ("that reminds me", "außerdem", ...)
- insight opportunity: self-reflective or pattern language, graded
  low / medium / high
- sentiment: positive / neutral / negative / mixed

Signals are advisory. They are attached to responses and used to decide
whether to offer free talk, never to reject an answer.

The TextSignalClassifier protocol lets a model-based classifier replace the
keyword lists without touching the conversation flow.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Pattern, Protocol, runtime_checkable

from wda.domain.models.free_talk import Sentiment


@dataclass(frozen=True)
class FrustrationSignal:
    detected: bool
    confidence: float
    matched: List[str]


@dataclass(frozen=True)
class TextSignals:
    """All heuristic signals for one piece of text."""

    frustration: FrustrationSignal
    digression_detected: bool
    insight_potential: str  # "low" | "medium" | "high"
    sentiment: Sentiment

    def should_suggest_free_talk(self, threshold: float = 0.6) -> bool:
        return self.frustration.confidence > threshold


@runtime_checkable
class TextSignalClassifier(Protocol):
    """Capability interface for answer text signals."""

    def is_vague(self, text: str) -> bool: ...

    def is_negative(self, text: str) -> bool: ...

    def detect_frustration(self, text: str) -> FrustrationSignal: ...

    def detect_digression(self, text: str) -> bool: ...

    def insight_potential(self, text: str) -> str: ...

    def sentiment(self, text: str) -> Sentiment: ...

    def analyze(self, text: str) -> TextSignals: ...


def _compile(keywords: Iterable[str]) -> List[Pattern[str]]:
    return [
        re.compile(rf"(?<!\w){re.escape(k)}(?!\w)", re.IGNORECASE) for k in keywords
    ]


def _hits(patterns: List[Pattern[str]], text: str) -> List[str]:
    return [p.pattern for p in patterns if p.search(text)]


class KeywordSignalClassifier:
    """Default TextSignalClassifier backed by fixed keyword lists.

    Keywords match as whole words or phrases, case-insensitively.
    """

    VAGUE_KEYWORDS = (
        "depends",
        "maybe",
        "sometimes",
        "it depends",
        "not sure",
        "dunno",
        "kommt drauf an",
        "vielleicht",
        "manchmal",
        "weiß nicht",
    )

    NEGATIVE_KEYWORDS = (
        "no",
        "nein",
        "not",
        "nicht",
        "never",
        "nie",
        "don't",
        "doesn't",
    )

    FRUSTRATION_KEYWORDS = (
        "frustrated",
        "frustration",
        "frustriert",
        "hate",
        "hasse",
        "terrible",
        "schrecklich",
        "nothing works",
        "funktioniert nicht",
        "problems",
        "probleme",
    )

    DIGRESSION_PHRASES = (
        "that reminds me",
        "das erinnert mich",
        "actually",
        "eigentlich",
        "also",
        "außerdem",
        "another issue",
        "ein anderes problem",
    )

    INSIGHT_PHRASES = (
        "i've noticed",
        "ich habe bemerkt",
        "pattern",
        "muster",
        "broader",
        "breiter",
        "connects to",
        "hängt zusammen",
    )

    POSITIVE_KEYWORDS = (
        "great",
        "love",
        "enjoy",
        "helpful",
        "easy",
        "works well",
        "super",
        "toll",
        "gut",
        "hilfreich",
        "einfach",
        "gerne",
    )

    # Frustration matches needed for full confidence
    FRUSTRATION_SATURATION = 3

    def __init__(self):
        self._vague = _compile(self.VAGUE_KEYWORDS)
        self._negative = _compile(self.NEGATIVE_KEYWORDS)
        self._frustration = _compile(self.FRUSTRATION_KEYWORDS)
        self._digression = _compile(self.DIGRESSION_PHRASES)
        self._insight = _compile(self.INSIGHT_PHRASES)
        self._positive = _compile(self.POSITIVE_KEYWORDS)

    def is_vague(self, text: str) -> bool:
        return bool(_hits(self._vague, text))

    def is_negative(self, text: str) -> bool:
        return bool(_hits(self._negative, text))

    def detect_frustration(self, text: str) -> FrustrationSignal:
        matched = [
            k
            for k, p in zip(self.FRUSTRATION_KEYWORDS, self._frustration)
            if p.search(text)
        ]
        confidence = min(len(matched) / self.FRUSTRATION_SATURATION, 1.0)
        return FrustrationSignal(
            detected=confidence > 0, confidence=confidence, matched=matched
        )

    def detect_digression(self, text: str) -> bool:
        return bool(_hits(self._digression, text))

    def insight_potential(self, text: str) -> str:
        hits = len(_hits(self._insight, text))
        if hits > 1:
            return "high"
        if hits == 1:
            return "medium"
        return "low"

    def sentiment(self, text: str) -> Sentiment:
        negative = bool(_hits(self._frustration, text)) or self.is_negative(text)
        positive = bool(_hits(self._positive, text))
        if negative and positive:
            return Sentiment.MIXED
        if negative:
            return Sentiment.NEGATIVE
        if positive:
            return Sentiment.POSITIVE
        return Sentiment.NEUTRAL

    def analyze(self, text: str) -> TextSignals:
        return TextSignals(
            frustration=self.detect_frustration(text),
            digression_detected=self.detect_digression(text),
            insight_potential=self.insight_potential(text),
            sentiment=self.sentiment(text),
        )
