"""Text signals used to steer follow-ups and free-talk suggestions.

The keyword classifier is the default implementation; anything satisfying
TextSignalClassifier can be injected into the services instead.
"""

from wda.signals.keyword_classifier import (
    FrustrationSignal,
    KeywordSignalClassifier,
    TextSignalClassifier,
    TextSignals,
)

__all__ = [
    "FrustrationSignal",
    "KeywordSignalClassifier",
    "TextSignalClassifier",
    "TextSignals",
]
