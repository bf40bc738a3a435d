"""Fingerprinting and duplicate detection for normalized updates."""

import asyncio
import hashlib
from collections import deque
from typing import TYPE_CHECKING, Protocol

from regintel.ingestion.base import RawItem
from regintel.ingestion.normalize import normalize_link, normalize_title
from regintel.logging import get_logger
from regintel.schemas import NormalizedUpdate

if TYPE_CHECKING:
    from regintel.db.gateway import PersistenceGateway

logger = get_logger(__name__)


def fingerprint(item: RawItem) -> str:
    """
    Stable identity of an upstream item.

    Derived from the guid when present, else the normalized link, else the
    normalized title. The basis kind is part of the hashed text so that a
    guid and a link with the same characters do not collide.
    """
    guid = (item.guid or "").strip()
    if guid:
        basis = f"guid:{guid}"
    elif normalize_link(item.link):
        basis = f"link:{normalize_link(item.link)}"
    else:
        basis = f"title:{normalize_title(item.title)}"
    return hashlib.sha256(basis.encode("utf-8")).hexdigest()


class DuplicateLookup(Protocol):
    """Strategy answering whether an update has been seen before."""

    async def contains(self, update: NormalizedUpdate) -> bool: ...

    def remember(self, update: NormalizedUpdate) -> None: ...


class FingerprintIndexLookup:
    """
    Exact lookup against an index of (source id, fingerprint) pairs.

    The index for a source is loaded once from the gateway on first use and
    kept current as updates are accepted, so a check never scans history.
    """

    def __init__(self, gateway: "PersistenceGateway") -> None:
        self.gateway = gateway
        self._index: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    async def _fingerprints_for(self, source_id: str) -> set[str]:
        if source_id not in self._index:
            async with self._lock:
                if source_id not in self._index:
                    known = await self.gateway.list_fingerprints(source_id)
                    self._index[source_id] = set(known)
                    logger.debug("Loaded fingerprint index", source=source_id, size=len(known))
        return self._index[source_id]

    async def contains(self, update: NormalizedUpdate) -> bool:
        fingerprints = await self._fingerprints_for(update.source_id or "")
        return update.fingerprint in fingerprints

    def remember(self, update: NormalizedUpdate) -> None:
        self._index.setdefault(update.source_id or "", set()).add(update.fingerprint)


class RecentWindowLookup:
    """
    Containment check against a bounded window of recent updates.

    Used when no fingerprint index exists: an update is a duplicate if a
    recent record has the same title, or its content contains the
    candidate's link.
    """

    def __init__(self, gateway: "PersistenceGateway", window: int = 500) -> None:
        self.gateway = gateway
        self.window = window
        self._recent: deque[tuple[str, str]] | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> deque[tuple[str, str]]:
        if self._recent is None:
            async with self._lock:
                if self._recent is None:
                    updates = await self.gateway.list_all_updates(limit=self.window)
                    self._recent = deque(
                        ((u.title, u.content) for u in updates),
                        maxlen=self.window,
                    )
        return self._recent

    async def contains(self, update: NormalizedUpdate) -> bool:
        recent = await self._load()
        for title, content in recent:
            if title == update.title:
                return True
            if update.url and update.url in content:
                return True
        return False

    def remember(self, update: NormalizedUpdate) -> None:
        if self._recent is None:
            self._recent = deque(maxlen=self.window)
        self._recent.append((update.title, update.content))


class Deduplicator:
    """Rejects updates that a lookup strategy has already seen."""

    def __init__(self, lookup: DuplicateLookup) -> None:
        self.lookup = lookup

    async def is_duplicate(
        self,
        candidate: NormalizedUpdate,
        lookup: DuplicateLookup | None = None,
    ) -> bool:
        return await (lookup or self.lookup).contains(candidate)

    def accept(self, update: NormalizedUpdate) -> None:
        """Record a stored update so later candidates see it."""
        self.lookup.remember(update)
