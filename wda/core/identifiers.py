"""Identifier generation and format checks."""

import uuid

SESSION_ID_PREFIX = "session-"


def new_id() -> str:
    """Plain UUID4 string for responses, free-form entries and checkpoints."""
    return str(uuid.uuid4())


def new_session_id() -> str:
    return f"{SESSION_ID_PREFIX}{uuid.uuid4()}"


def is_uuid4(value: object) -> bool:
    """True if value is a canonical lowercase-or-uppercase version-4 UUID string."""
    if not isinstance(value, str):
        return False
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        return False
    return parsed.version == 4 and str(parsed) == value.lower()


def is_session_id(value: object) -> bool:
    if not isinstance(value, str) or not value.startswith(SESSION_ID_PREFIX):
        return False
    return is_uuid4(value[len(SESSION_ID_PREFIX):])
