# portal_hub/services/brands.py
"""
Brand spelling maintenance.

Groups the display brands stored on products by their lookup key
(``normalize_brand_key``). A group with more than one spelling is a
candidate for a brand synonym entry.
"""
from __future__ import annotations
import logging
from typing import Dict, List, Set

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal_hub.database import SessionFactory, run_transaction
from portal_hub.db_models import BrandVariants, Product
from portal_hub.models import BrandDuplicatesOut, BrandGroup
from portal_hub.services.normalize import clean_brand, normalize_brand_key

logger = logging.getLogger(__name__)


async def collect_brand_groups(factory: SessionFactory) -> List[BrandGroup]:
    """Every brand key with its sorted spellings; the first spelling is canonical."""
    async with factory() as db:
        brands = (await db.execute(select(Product.brand).distinct())).scalars().all()

    variants: Dict[str, Set[str]] = {}
    for raw in brands:
        display = clean_brand(raw)
        if not display:
            continue
        variants.setdefault(normalize_brand_key(display), set()).add(display)

    groups = []
    for key, spellings in variants.items():
        ordered = sorted(spellings)
        groups.append(BrandGroup(key=key, canonical=ordered[0], variants=ordered, count=len(ordered)))
    return groups


async def find_brand_duplicates(factory: SessionFactory) -> BrandDuplicatesOut:
    groups = [g for g in await collect_brand_groups(factory) if g.count > 1]
    groups.sort(key=lambda g: (-g.count, g.key))
    return BrandDuplicatesOut(duplicates=groups)


async def rebuild_brands_cache(factory: SessionFactory) -> int:
    """Replace the ``brands`` table with the current grouping. Returns rows written."""
    groups = await collect_brand_groups(factory)

    async def work(db: AsyncSession) -> int:
        await db.execute(delete(BrandVariants))
        db.add_all(
            BrandVariants(key=g.key[:150], canonical=g.canonical, variants=g.variants)
            for g in groups
        )
        return len(groups)

    written = await run_transaction(factory, work, label="rebuild brands")
    logger.info("Brands cache rebuilt: %d brands", written)
    return written
