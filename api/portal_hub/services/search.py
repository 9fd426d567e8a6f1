# portal_hub/services/search.py
"""Product search by article, primary or synonym."""
from __future__ import annotations
import logging
from typing import Any, Dict

from sqlalchemy import String, cast, select

from portal_hub.database import SessionFactory
from portal_hub.db_models import Product
from portal_hub.models import ProductSearchOut
from portal_hub.services.normalize import normalize_article

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50


def _like_literal(value: str) -> str:
    """``value`` with LIKE wildcards escaped by a backslash."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def product_to_dict(product: Product) -> Dict[str, Any]:
    """Public view of a product; purchase costs are never included."""
    return {
        "docId": product.doc_id,
        "brand": product.brand,
        "id": product.article,
        "name": product.name,
        "categories": product.categories,
        "pack": product.pack,
        "tolerances": product.tolerances,
        "synonyms": list(product.synonyms or []),
        "needsReview": product.needs_review,
        "offers": list(product.offers or []),
    }


async def search_products_by_article(factory: SessionFactory, article: Any) -> ProductSearchOut:
    if not article or not isinstance(article, str):
        return ProductSearchOut(ok=False, error="Article is required")

    wanted = normalize_article(article)
    if not wanted:
        return ProductSearchOut(ok=False, error="Invalid article", searched_article=article)

    async with factory() as db:
        direct = (await db.execute(
            select(Product).where(Product.article == wanted).limit(SEARCH_LIMIT)
        )).scalars().all()
        # JSON text match narrows candidates; exact comparison happens below
        candidates = (await db.execute(
            select(Product)
            .where(cast(Product.synonyms, String).ilike(f'%"{_like_literal(wanted)}"%', escape="\\"))
            .limit(SEARCH_LIMIT * 4)
        )).scalars().all()

    via_synonym = [
        p for p in candidates
        if any(normalize_article(s) == wanted for s in (p.synonyms or []))
    ][:SEARCH_LIMIT]

    merged: Dict[str, Product] = {p.doc_id: p for p in direct}
    for p in via_synonym:
        merged.setdefault(p.doc_id, p)

    logger.debug("Search %s: direct=%d synonym=%d", wanted, len(direct), len(via_synonym))
    return ProductSearchOut(
        ok=True,
        products=[product_to_dict(p) for p in merged.values()],
        found_via_synonym=bool(via_synonym) and not direct,
        searched_article=article,
        canonical_article=wanted,
        count=len(merged),
    )
