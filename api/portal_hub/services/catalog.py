# portal_hub/services/catalog.py
"""
Catalog Store.

Per-product transactional writes used by reconciliation:
- upsert one supplier's offer (+ purchase cost, + reverse index entry)
- remove one supplier's offer, deleting the product once no offers remain
- bulk reads of a supplier's index entries and the products they point to

Each write is one transaction via ``run_transaction``; products and cost rows
are read ``FOR UPDATE`` so concurrent merges on the same product serialize.
"""
from __future__ import annotations
import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from portal_hub.database import SessionFactory, run_transaction
from portal_hub.db_models import Product, ProductCost, SupplierProductIndex
from portal_hub.models import Offer, OfferSet
from portal_hub.services.master_data import MasterDataCache
from portal_hub.services.normalize import normalize_article, product_doc_id, product_key

logger = logging.getLogger(__name__)


class UpsertOutcome(str, enum.Enum):
    created = "created"
    updated = "updated"


@dataclass
class ProductDraft:
    """Everything one feed row contributes to a canonical product."""
    key: str
    doc_id: str
    brand: str
    article: str
    name: str
    offer: Offer
    purchase: Decimal = Decimal("0")
    categories: Optional[List[Any]] = None
    pack: Optional[Any] = None
    tolerances: Optional[Any] = None
    synonyms: List[str] = field(default_factory=list)
    needs_review: bool = True

    @property
    def supplier(self) -> str:
        return self.offer.supplier

    def descriptive(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "categories": self.categories,
            "pack": self.pack,
            "tolerances": self.tolerances,
            "synonyms": list(self.synonyms),
            "needs_review": self.needs_review,
        }


@dataclass
class ExistingProduct:
    doc_id: str
    brand: str
    article: str
    descriptive: Dict[str, Any]
    offers: OfferSet
    purchase_by_supplier: Dict[str, Any]

    @classmethod
    def from_rows(cls, product: Product, cost: Optional[ProductCost]) -> "ExistingProduct":
        return cls(
            doc_id=product.doc_id,
            brand=product.brand,
            article=product.article,
            descriptive=_descriptive(product),
            offers=OfferSet.from_storage(product.offers),
            purchase_by_supplier=dict(cost.purchase_by_supplier or {}) if cost else {},
        )

    def matches(self, draft: ProductDraft) -> bool:
        """True when writing ``draft`` would change nothing but timestamps."""
        if not draft.offer.same_as(self.offers.get(draft.supplier)):
            return False
        if draft.purchase > 0:
            stored = self.purchase_by_supplier.get(draft.supplier)
            if stored is None or Decimal(str(stored)) != draft.purchase:
                return False
        return self.descriptive == draft.descriptive()


def _descriptive(product: Product) -> Dict[str, Any]:
    return {
        "name": product.name,
        "categories": product.categories,
        "pack": product.pack,
        "tolerances": product.tolerances,
        "synonyms": list(product.synonyms or []),
        "needs_review": product.needs_review,
    }


# =========================================================================
# Reads
# =========================================================================

async def canonical_doc_id(master_data: MasterDataCache, brand: str, article: str) -> str:
    """Doc id a (brand, article) pair is stored under, honoring synonyms and master data."""
    display = await master_data.normalize_brand(brand)
    master = await master_data.get_master_data(display, article)
    if master is not None:
        display = master.brand or display
        article = normalize_article(master.id) or article
    return product_doc_id(product_key(display, article))


async def load_supplier_index(factory: SessionFactory, supplier: str) -> List[SupplierProductIndex]:
    """All reverse index entries of one supplier, one query."""
    async with factory() as db:
        stmt = select(SupplierProductIndex).where(SupplierProductIndex.supplier == supplier)
        return list((await db.execute(stmt)).scalars().all())


async def fetch_existing(
    factory: SessionFactory,
    doc_ids: Iterable[str],
    chunk_size: int = 30,
) -> Dict[str, ExistingProduct]:
    """Products and their cost rows by doc id, queried ``chunk_size`` ids at a time."""
    ids = list(dict.fromkeys(doc_ids))
    out: Dict[str, ExistingProduct] = {}
    async with factory() as db:
        for start in range(0, len(ids), chunk_size):
            part = ids[start:start + chunk_size]
            products = (await db.execute(select(Product).where(Product.doc_id.in_(part)))).scalars().all()
            costs = (await db.execute(select(ProductCost).where(ProductCost.doc_id.in_(part)))).scalars().all()
            cost_by_id = {c.doc_id: c for c in costs}
            for product in products:
                out[product.doc_id] = ExistingProduct.from_rows(product, cost_by_id.get(product.doc_id))
    return out


async def _lock_product(db: AsyncSession, doc_id: str) -> Optional[Product]:
    stmt = select(Product).where(Product.doc_id == doc_id).with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def _lock_cost(db: AsyncSession, doc_id: str) -> Optional[ProductCost]:
    stmt = select(ProductCost).where(ProductCost.doc_id == doc_id).with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


# =========================================================================
# Writes
# =========================================================================

async def upsert_offer(factory: SessionFactory, draft: ProductDraft) -> UpsertOutcome:
    """Merge one supplier offer into its canonical product."""

    async def work(db: AsyncSession) -> UpsertOutcome:
        product = await _lock_product(db, draft.doc_id)
        cost = await _lock_cost(db, draft.doc_id)

        created = product is None
        if created:
            product = Product(
                doc_id=draft.doc_id,
                product_key=draft.key,
                brand=draft.brand,
                article=draft.article,
                offers=[],
                synonyms=[],
            )
            db.add(product)

        product.name = draft.name
        product.categories = draft.categories
        product.pack = draft.pack
        product.tolerances = draft.tolerances
        product.synonyms = list(draft.synonyms)
        product.needs_review = draft.needs_review

        offers = OfferSet.from_storage(product.offers)
        offers.put(draft.offer)
        product.offers = offers.to_storage()

        if cost is None:
            cost = ProductCost(doc_id=draft.doc_id, purchase_by_supplier={})
            db.add(cost)
        if draft.purchase > 0:
            purchases = dict(cost.purchase_by_supplier or {})
            purchases[draft.supplier] = str(draft.purchase)
            cost.purchase_by_supplier = purchases

        await db.merge(SupplierProductIndex(
            id=SupplierProductIndex.make_id(draft.supplier, draft.key),
            supplier=draft.supplier,
            product_key=draft.key,
            product_doc_id=draft.doc_id,
        ))
        logger.debug("upsert %s supplier=%s offers=%d", draft.doc_id, draft.supplier, len(offers))
        return UpsertOutcome.created if created else UpsertOutcome.updated

    return await run_transaction(factory, work, label=f"upsert {draft.doc_id}")


async def remove_offer(factory: SessionFactory, supplier: str, key: str, doc_id: str) -> bool:
    """
    Drop ``supplier``'s offer from the product.

    Deletes product and cost row when it was the last offer. The index entry
    ``(supplier, key)`` is deleted in every case. Returns whether an offer
    was actually removed.
    """

    async def work(db: AsyncSession) -> bool:
        await db.execute(
            delete(SupplierProductIndex).where(
                SupplierProductIndex.id == SupplierProductIndex.make_id(supplier, key)
            )
        )

        product = await _lock_product(db, doc_id)
        if product is None:
            return False
        offers = OfferSet.from_storage(product.offers)
        if offers.remove(supplier) is None:
            return False

        cost = await _lock_cost(db, doc_id)
        if not offers:
            await db.delete(product)
            if cost is not None:
                await db.delete(cost)
            logger.info("Product %s deleted: last offer (%s) removed", doc_id, supplier)
            return True

        product.offers = offers.to_storage()
        if cost is not None and supplier in (cost.purchase_by_supplier or {}):
            purchases = dict(cost.purchase_by_supplier)
            purchases.pop(supplier)
            cost.purchase_by_supplier = purchases
        return True

    return await run_transaction(factory, work, label=f"remove {doc_id}")
