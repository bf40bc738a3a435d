"""Persistence gateway consumed by the ingestion coordinator."""

import asyncio
from typing import Protocol

from regintel.ingestion.errors import DuplicateError
from regintel.schemas import NormalizedUpdate


class PersistenceGateway(Protocol):
    """Narrow storage interface the pipeline depends on."""

    async def create_regulatory_update(self, update: NormalizedUpdate) -> str:
        """Store an update; raises DuplicateError or StorageError."""
        ...

    async def list_all_updates(self, limit: int | None = None) -> list[NormalizedUpdate]:
        """Most recently published updates first."""
        ...

    async def list_fingerprints(self, source_id: str) -> set[str]:
        """Fingerprints already stored for a source."""
        ...


class InMemoryGateway:
    """Gateway holding updates in a dict; used for dry runs and tests."""

    def __init__(self) -> None:
        self.updates: dict[str, NormalizedUpdate] = {}
        self._lock = asyncio.Lock()

    async def create_regulatory_update(self, update: NormalizedUpdate) -> str:
        async with self._lock:
            if update.id in self.updates:
                raise DuplicateError(update.id)
            self.updates[update.id] = update
        return update.id

    async def list_all_updates(self, limit: int | None = None) -> list[NormalizedUpdate]:
        ordered = sorted(self.updates.values(), key=lambda u: u.published_at, reverse=True)
        return ordered[:limit] if limit is not None else ordered

    async def list_fingerprints(self, source_id: str) -> set[str]:
        return {
            u.fingerprint for u in self.updates.values()
            if u.source_id == source_id
        }

    def __len__(self) -> int:
        return len(self.updates)
