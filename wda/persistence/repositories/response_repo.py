"""Response repository over the durable store."""

from typing import List, Optional

from wda.core.exceptions import RecordNotFoundError
from wda.domain.models.response import Response
from wda.persistence.repositories.session_repo import session_key
from wda.persistence.store import SqliteStore


def responses_prefix(session_id: str) -> str:
    return f"{session_key(session_id)}/responses"


class ResponseRepository:
    """Repository for write-once response records."""

    def __init__(self, store: SqliteStore):
        self.store = store

    async def create(self, response: Response) -> Response:
        await self.store.write(
            f"{responses_prefix(response.session_id)}/{response.id}",
            response.model_dump(mode="json"),
            expected_version=0,
        )
        return response

    async def get(self, session_id: str, response_id: str) -> Optional[Response]:
        try:
            data = await self.store.read(f"{responses_prefix(session_id)}/{response_id}")
        except RecordNotFoundError:
            return None
        return Response.model_validate(data)

    async def list_for_session(self, session_id: str) -> List[Response]:
        """Responses in the order they were recorded."""
        keys = await self.store.list(responses_prefix(session_id))
        return [Response.model_validate(await self.store.read(k)) for k in keys]

    async def delete(self, session_id: str, response_id: str) -> bool:
        """Remove a response whose session update never committed."""
        return await self.store.delete(f"{responses_prefix(session_id)}/{response_id}")
