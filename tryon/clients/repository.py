"""Client registry backed by the key-value store.

Clients are stored under ``client:{api_key}``; ``clients:index`` keeps the
registration order of API keys.
"""

import logging
import secrets
import time
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from tryon.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

CLIENT_PREFIX = "client:"
INDEX_KEY = "clients:index"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or "0"


def generate_api_key() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"tryon_{_base36(int(time.time() * 1000))}_{suffix}"


class ClientRecord(BaseModel):
    id: str = Field(default_factory=lambda: f"client_{uuid.uuid4().hex[:12]}")
    name: str
    api_key: str = Field(default_factory=generate_api_key)
    active: bool = True
    email: Optional[str] = None
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).date().isoformat()
    )


class ClientRepository:
    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    @staticmethod
    def _key(api_key: str) -> str:
        return f"{CLIENT_PREFIX}{api_key}"

    async def _index(self) -> List[str]:
        # Concurrent saves of the same key may append it twice
        return list(dict.fromkeys(await self._kv.list_items(INDEX_KEY)))

    async def save(self, client: ClientRecord) -> ClientRecord:
        await self._kv.set(self._key(client.api_key), client.model_dump())
        if client.api_key not in await self._index():
            await self._kv.list_append(INDEX_KEY, client.api_key)
        return client

    async def register(
        self,
        name: str,
        email: Optional[str] = None,
        api_key: Optional[str] = None,
        client_id: Optional[str] = None,
        active: bool = True,
    ) -> ClientRecord:
        fields = {"name": name, "email": email, "active": active}
        if api_key:
            fields["api_key"] = api_key
        if client_id:
            fields["id"] = client_id
        client = await self.save(ClientRecord(**fields))
        logger.info("Registered client %s (%s)", client.id, client.name)
        return client

    async def seed(self, seeds: Iterable) -> int:
        """Register startup clients that are not already present."""
        added = 0
        for seed in seeds:
            if await self.get_by_api_key(seed.api_key) is not None:
                continue
            await self.register(
                name=seed.name, api_key=seed.api_key, client_id=seed.id, active=seed.active
            )
            added += 1
        return added

    async def get_by_api_key(self, api_key: str) -> Optional[ClientRecord]:
        if not api_key:
            return None
        data = await self._kv.get(self._key(api_key))
        return ClientRecord.model_validate(data) if data else None

    async def list_clients(self) -> List[ClientRecord]:
        clients = []
        for api_key in await self._index():
            client = await self.get_by_api_key(api_key)
            if client is not None:
                clients.append(client)
        return clients

    async def delete(self, api_key: str) -> Optional[ClientRecord]:
        """Remove a client. Returns the removed record, or None if unknown."""
        client = await self.get_by_api_key(api_key)
        if client is None:
            return None
        await self._kv.delete(self._key(api_key))
        await self._kv.list_remove(INDEX_KEY, api_key)
        logger.info("Deleted client %s", client.id)
        return client

    async def validate_api_key(self, api_key: str) -> Optional[ClientRecord]:
        """Return the client for ``api_key`` if it exists and is active."""
        client = await self.get_by_api_key(api_key)
        if client is None or not client.active:
            return None
        return client
