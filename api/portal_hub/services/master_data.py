# portal_hub/services/master_data.py
"""
Master Data Cache.

Process-wide lookup of curated product metadata and the brand synonym table,
rebuilt from the database whenever it is empty or older than the TTL
(10 hours by default). The instance is created once and passed explicitly to
the reconciliation engine, order placement and the HTTP layer.

Handles:
- (brand, article) -> metadata, including every declared synonym article
- brand synonym substitution for display brands
- canonical article lookup across all brands
- explicit invalidation (admin "clear cache")
"""
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select

from portal_hub.database import SessionFactory
from portal_hub.db_models import MasterDataEntry, BrandSynonym
from portal_hub.models import MasterData, CanonicalArticle
from portal_hub.services.normalize import (
    normalize_article, normalize_brand, normalize_brand_key,
)

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60 * 60

MasterDataLoader = Callable[[], Awaitable[Tuple[List[MasterData], Dict[str, str]]]]


@dataclass(frozen=True)
class _CachedEntry:
    data: MasterData
    via_synonym: bool = False


async def load_master_data_from_db(factory: SessionFactory) -> Tuple[List[MasterData], Dict[str, str]]:
    """Read all master data and brand synonyms in one pass."""
    async with factory() as db:
        entries = (await db.execute(select(MasterDataEntry))).scalars().all()
        brand_rows = (await db.execute(select(BrandSynonym))).scalars().all()

    master = [
        MasterData(
            id=e.id,
            brand=e.brand,
            correct_name=e.correct_name,
            categories=e.categories,
            pack=e.pack,
            tolerances=e.tolerances,
            synonyms=list(e.synonyms or []),
        )
        for e in entries
    ]
    synonyms: Dict[str, str] = {}
    for row in brand_rows:
        key = normalize_brand_key(row.old)
        if key and row.canonical:
            synonyms[key] = row.canonical
    return master, synonyms


def db_loader(factory: SessionFactory) -> MasterDataLoader:
    async def load() -> Tuple[List[MasterData], Dict[str, str]]:
        return await load_master_data_from_db(factory)
    return load


class MasterDataCache:
    """TTL cache over master data + brand synonyms with an injectable clock."""

    def __init__(
        self,
        loader: MasterDataLoader,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: Optional[Dict[Tuple[str, str], _CachedEntry]] = None
        self._brand_synonyms: Optional[Dict[str, str]] = None
        self._loaded_at: Optional[float] = None
        self.rebuild_count = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _is_fresh(self) -> bool:
        if self._entries is None or self._brand_synonyms is None or self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < self._ttl

    async def ensure_loaded(self) -> None:
        if self._is_fresh():
            return
        async with self._lock:
            if self._is_fresh():
                return
            await self._rebuild()

    async def _rebuild(self) -> None:
        try:
            master, brand_synonyms = await self._loader()
        except Exception:
            logger.exception("Failed to load master data caches")
            raise

        entries: Dict[Tuple[str, str], _CachedEntry] = {}
        for data in master:
            brand_key = normalize_brand_key(data.brand)
            entries[(brand_key, normalize_article(data.id))] = _CachedEntry(data)
        # synonyms never shadow a primary article
        for data in master:
            brand_key = normalize_brand_key(data.brand)
            for syn in data.synonyms or []:
                syn_key = (brand_key, normalize_article(syn))
                if syn_key[1] and syn_key not in entries:
                    entries[syn_key] = _CachedEntry(data, via_synonym=True)

        self._entries = entries
        self._brand_synonyms = dict(brand_synonyms)
        self._loaded_at = self._clock()
        self.rebuild_count += 1
        logger.info(
            "Caches loaded: master_data=%d brand_synonyms=%d",
            len(master), len(brand_synonyms),
        )

    def invalidate(self) -> None:
        """Drop everything; the next lookup rebuilds."""
        self._entries = None
        self._brand_synonyms = None
        self._loaded_at = None
        logger.info("Master data cache cleared")

    # =========================================================================
    # Lookup
    # =========================================================================

    async def brand_synonyms(self) -> Dict[str, str]:
        await self.ensure_loaded()
        return self._brand_synonyms

    async def normalize_brand(self, raw) -> str:
        return normalize_brand(raw, await self.brand_synonyms())

    async def get_master_data(self, brand: str, article: str) -> Optional[MasterData]:
        await self.ensure_loaded()
        hit = self._entries.get((normalize_brand_key(brand), normalize_article(article)))
        if hit is None:
            return None
        if hit.via_synonym:
            logger.debug("Master data found via synonym: brand=%s article=%s", brand, article)
        return hit.data.model_copy(deep=True)

    async def find_canonical_article_by_any_format(self, article: str) -> Optional[CanonicalArticle]:
        """
        Resolve ``article`` in any brand to its canonical article.

        Falls back to the normalized input itself when nothing matches.
        """
        await self.ensure_loaded()
        wanted = normalize_article(article)
        if not wanted:
            return None

        for (_, cached_article), hit in self._entries.items():
            if cached_article == wanted:
                return CanonicalArticle(
                    canonical_article=normalize_article(hit.data.id),
                    found_via_synonym=hit.via_synonym,
                )

        return CanonicalArticle(canonical_article=wanted, found_via_synonym=False)
