"""Fixed user-facing messages (de/en) that do not go through a provider."""

from wda.domain.models.question import Question

WELCOME_BACK = {
    "de": (
        "Hey! Schön, dass du wieder da bist! Lass uns da weitermachen, wo wir "
        "aufgehört haben. Du hast schon {count} {noun} beantwortet."
    ),
    "en": (
        "Hey! Great to have you back! Let's pick up where we left off. "
        "You have already answered {count} {noun}."
    ),
}

QUESTION_NOUN = {
    "de": ("Frage", "Fragen"),
    "en": ("question", "questions"),
}

FREE_TALK_TRANSITION = {
    "de": (
        "Das klingt interessant! Möchtest du darüber mehr erzählen? Wir können "
        "gerne vom strukturierten Interview abweichen."
    ),
    "en": (
        "That sounds interesting! Would you like to tell me more about it? "
        "We can happily step away from the structured interview."
    ),
}

QUESTION_LEAD_IN = {
    "de": "Nächste Frage: ",
    "en": "Next up: ",
}


def welcome_back_message(response_count: int, language: str) -> str:
    language = language if language in WELCOME_BACK else "en"
    singular, plural = QUESTION_NOUN[language]
    return WELCOME_BACK[language].format(
        count=response_count, noun=singular if response_count == 1 else plural
    )


def free_talk_transition_message(language: str) -> str:
    return FREE_TALK_TRANSITION.get(language, FREE_TALK_TRANSITION["en"])


def ensure_conversational(framing: str, question: Question, language: str) -> str:
    """Framing text that differs from every localized raw question text."""
    framing = framing.strip()
    raw_texts = {question.text.de.strip(), question.text.en.strip()}
    if framing and framing not in raw_texts:
        return framing
    lead_in = QUESTION_LEAD_IN.get(language, QUESTION_LEAD_IN["en"])
    return f"{lead_in}{question.text.get(language)}"
