"""Repository implementations."""

from wda.persistence.repositories.session_repo import SessionRepository
from wda.persistence.repositories.response_repo import ResponseRepository
from wda.persistence.repositories.free_talk_repo import FreeTalkRepository

__all__ = [
    "SessionRepository",
    "ResponseRepository",
    "FreeTalkRepository",
]
