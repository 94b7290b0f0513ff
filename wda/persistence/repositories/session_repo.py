"""Session repository over the durable store."""

from datetime import datetime
from typing import List, Optional

import structlog

from wda.core.exceptions import RecordNotFoundError
from wda.domain.models.session import Session, SessionStatus
from wda.persistence.store import SqliteStore

log = structlog.get_logger(__name__)

SESSIONS_PREFIX = "sessions"


def session_key(session_id: str) -> str:
    return f"{SESSIONS_PREFIX}/{session_id}"


class SessionRepository:
    """Repository for session records.

    Every save is a compare-and-swap on Session.version: the stored record
    must still carry the version the caller read, otherwise the store raises
    VersionConflictError and nothing is written.
    """

    def __init__(self, store: SqliteStore):
        self.store = store

    async def create(self, session: Session) -> Session:
        """Persist a new session (fails if the id is already taken)."""
        created = session.model_copy(update={"version": 1})
        await self.store.write(
            session_key(session.id), created.model_dump(mode="json"), expected_version=0
        )
        return created

    async def get(self, session_id: str) -> Optional[Session]:
        try:
            data = await self.store.read(session_key(session_id))
        except RecordNotFoundError:
            return None
        return Session.model_validate(data)

    async def save(self, session: Session) -> Session:
        """Write an updated session read at session.version.

        Returns:
            The session as stored, with its version bumped
        """
        saved = session.model_copy(update={"version": session.version + 1})
        await self.store.write(
            session_key(session.id),
            saved.model_dump(mode="json"),
            expected_version=session.version,
        )
        return saved

    async def replace(self, session: Session) -> Session:
        """Overwrite the stored session with a restored copy.

        The copy keeps its own fields but takes the next version after the
        currently stored one, so later saves continue the version sequence.
        """
        _, current_version = await self.store.read_with_version(session_key(session.id))
        replaced = session.model_copy(update={"version": current_version + 1})
        await self.store.write(
            session_key(session.id),
            replaced.model_dump(mode="json"),
            expected_version=current_version,
        )
        log.info(
            "session_replaced", session_id=session.id, version=replaced.version
        )
        return replaced

    async def list_all(self) -> List[Session]:
        """All sessions in creation order."""
        keys = await self.store.list(SESSIONS_PREFIX)
        sessions = []
        for key in keys:
            sessions.append(Session.model_validate(await self.store.read(key)))
        return sessions

    async def list_for_project(
        self,
        project_id: str,
        status: Optional[SessionStatus] = None,
        created_after: Optional[datetime] = None,
    ) -> List[Session]:
        """Sessions of one project, newest first."""
        sessions = [
            s
            for s in await self.list_all()
            if s.project_id == project_id
            and (status is None or s.status == status)
            and (created_after is None or s.created_at > created_after)
        ]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions
