"""Free-form entry repository over the durable store."""

from typing import List, Optional

from wda.core.exceptions import RecordNotFoundError
from wda.domain.models.free_talk import FreeTalkEntry
from wda.persistence.repositories.session_repo import session_key
from wda.persistence.store import SqliteStore


def free_talk_prefix(session_id: str) -> str:
    return f"{session_key(session_id)}/freier-talk"


class FreeTalkRepository:
    """Repository for free-form conversation entries."""

    def __init__(self, store: SqliteStore):
        self.store = store

    def _key(self, session_id: str, entry_id: str) -> str:
        return f"{free_talk_prefix(session_id)}/{entry_id}"

    async def create(self, entry: FreeTalkEntry) -> FreeTalkEntry:
        await self.store.write(
            self._key(entry.session_id, entry.id),
            entry.model_dump(mode="json"),
            expected_version=0,
        )
        return entry

    async def save(self, entry: FreeTalkEntry) -> FreeTalkEntry:
        await self.store.write(
            self._key(entry.session_id, entry.id), entry.model_dump(mode="json")
        )
        return entry

    async def get(self, session_id: str, entry_id: str) -> Optional[FreeTalkEntry]:
        try:
            data = await self.store.read(self._key(session_id, entry_id))
        except RecordNotFoundError:
            return None
        return FreeTalkEntry.model_validate(data)

    async def list_for_session(self, session_id: str) -> List[FreeTalkEntry]:
        keys = await self.store.list(free_talk_prefix(session_id))
        return [FreeTalkEntry.model_validate(await self.store.read(k)) for k in keys]

    async def delete(self, session_id: str, entry_id: str) -> bool:
        return await self.store.delete(self._key(session_id, entry_id))
