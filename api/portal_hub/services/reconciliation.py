# portal_hub/services/reconciliation.py
"""
Catalog Reconciliation Engine.

Merges one supplier's feed into the canonical catalog:

1. normalize rows, resolve master data, build the feed key set
2. load the supplier's reverse index + the products it references (chunked)
3. plan an upsert or a removal (stock <= 0) per row
4. cleanup: indexed products the feed no longer mentions lose this offer

Every upsert/removal is its own transaction; the run as a whole is not
atomic and is safe to repeat.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from portal_hub.database import SessionFactory
from portal_hub.errors import InvalidArgument
from portal_hub.models import Offer, ReconcileFailure, ReconcileResult
from portal_hub.services.catalog import (
    ExistingProduct, ProductDraft, UpsertOutcome,
    fetch_existing, load_supplier_index, remove_offer, upsert_offer,
)
from portal_hub.services.feed_rows import FeedRow, extract_feed_row
from portal_hub.services.master_data import MasterDataCache
from portal_hub.services.normalize import (
    normalize_article, normalize_supplier, product_doc_id, product_key,
)
from portal_hub.services.pricing_rules import PricingRulesCache
from portal_hub.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class _PlannedRow:
    feed: FeedRow
    brand: str
    article: str
    key: str
    doc_id: str
    master: Any = None


class ReconciliationEngine:
    """Feed -> catalog merge with bounded fan-out."""

    def __init__(
        self,
        factory: SessionFactory,
        master_data: MasterDataCache,
        max_rows: int = settings.FEED_MAX_ROWS,
        chunk_size: int = settings.FEED_CHUNK_SIZE,
        concurrency: int = settings.FEED_CONCURRENCY,
    ):
        self.factory = factory
        self.master_data = master_data
        self.max_rows = max_rows
        self.chunk_size = chunk_size
        self.concurrency = concurrency

    async def reconcile_supplier_feed(
        self,
        supplier_id: str,
        rows: Sequence[Mapping[str, Any]],
        supplier_name: Optional[str] = None,
    ) -> ReconcileResult:
        rows = list(rows or [])
        if len(rows) > self.max_rows:
            raise InvalidArgument(
                f"Feed exceeds the limit of {self.max_rows} rows (got {len(rows)}); split the price list"
            )

        supplier = normalize_supplier(supplier_name or supplier_id)
        if not supplier:
            raise InvalidArgument("Supplier is required")

        result = ReconcileResult(supplier=supplier, total=len(rows))
        rules = PricingRulesCache(self.factory)

        # Step 1: normalize and key every row
        planned = await self._plan_rows(rows, result)
        feed_keys = set(planned)

        # Step 2: reverse index + current products
        index_entries = await load_supplier_index(self.factory, supplier)
        wanted_doc_ids = [e.product_doc_id for e in index_entries if e.product_key in feed_keys]
        existing = await fetch_existing(self.factory, wanted_doc_ids, self.chunk_size)

        logger.info(
            "Reconcile start: supplier=%s rows=%d keys=%d indexed=%d existing=%d",
            supplier, len(rows), len(feed_keys), len(index_entries), len(existing),
        )

        # Step 3: one operation per row
        tasks: List[Callable[[], Awaitable[None]]] = []
        for key, row in planned.items():
            if row.feed.stock <= 0:
                tasks.append(self._removal(result, supplier, key, row.doc_id, "remove"))
                continue
            try:
                draft = await self._build_draft(row, supplier, supplier_id, rules)
            except Exception as e:
                logger.error("Row skipped: supplier=%s key=%s error=%s", supplier, key, e)
                result.skipped += 1
                result.failures.append(ReconcileFailure(key=key, operation="upsert", error=str(e)))
                continue
            tasks.append(self._upsert(result, draft, existing.get(row.doc_id)))

        # Step 4: cleanup of indexed products absent from this feed
        for entry in index_entries:
            if entry.product_key not in feed_keys:
                tasks.append(self._removal(result, supplier, entry.product_key, entry.product_doc_id, "cleanup"))

        await self._run_bounded(tasks)

        logger.info(
            "Reconcile done: supplier=%s total=%d ok=%d created=%d updated=%d unchanged=%d "
            "skipped=%d removed=%d stale_removed=%d failures=%d",
            supplier, result.total, result.ok, result.created, result.updated, result.unchanged,
            result.skipped, result.removed, result.stale_removed, len(result.failures),
        )
        return result

    # =========================================================================
    # Planning
    # =========================================================================

    async def _plan_rows(
        self, rows: Sequence[Mapping[str, Any]], result: ReconcileResult
    ) -> Dict[str, _PlannedRow]:
        planned: Dict[str, _PlannedRow] = {}
        for i, raw in enumerate(rows):
            if not isinstance(raw, Mapping):
                logger.warning("Row %d skipped: not an object", i)
                result.skipped += 1
                continue

            feed = extract_feed_row(raw)
            brand = await self.master_data.normalize_brand(feed.brand)
            article = normalize_article(feed.article)
            if not brand or not article:
                logger.info("Row %d skipped: missing brand or article", i)
                result.skipped += 1
                continue

            master = await self.master_data.get_master_data(brand, article)
            if master is not None:
                brand = master.brand or brand
                article = normalize_article(master.id) or article

            key = product_key(brand, article)
            if key in planned:
                logger.info("Row %d replaces earlier duplicate of %s", i, key)
                result.skipped += 1
            planned[key] = _PlannedRow(
                feed=feed, brand=brand, article=article,
                key=key, doc_id=product_doc_id(key), master=master,
            )
        return planned

    async def _build_draft(
        self, row: _PlannedRow, supplier: str, supplier_id: str, rules: PricingRulesCache
    ) -> ProductDraft:
        feed = row.feed
        public_prices = feed.public_prices
        if public_prices is None:
            public_prices = await rules.public_prices(supplier_id, feed.price)

        offer = Offer(
            supplier=supplier,
            stock=feed.stock,
            public_prices=public_prices,
            external_id=feed.extra.get("external_id"),
            min_stock=feed.extra.get("min_stock"),
            updated_at=datetime.now(timezone.utc),
        )
        draft = ProductDraft(
            key=row.key,
            doc_id=row.doc_id,
            brand=row.brand,
            article=row.article,
            name=feed.name,
            offer=offer,
            purchase=feed.price,
        )
        master = row.master
        if master is not None:
            draft.name = master.correct_name or feed.name
            draft.categories = master.categories
            draft.pack = master.pack
            draft.tolerances = master.tolerances
            draft.synonyms = [a for a in (normalize_article(s) for s in master.synonyms or []) if a]
            draft.needs_review = False
        return draft

    # =========================================================================
    # Operations
    # =========================================================================

    def _upsert(
        self, result: ReconcileResult, draft: ProductDraft, current: Optional[ExistingProduct]
    ) -> Callable[[], Awaitable[None]]:
        async def op() -> None:
            if current is not None and current.matches(draft):
                result.ok += 1
                result.unchanged += 1
                return
            try:
                outcome = await upsert_offer(self.factory, draft)
            except Exception as e:
                logger.exception("Upsert failed: supplier=%s key=%s", draft.supplier, draft.key)
                result.skipped += 1
                result.failures.append(ReconcileFailure(key=draft.key, operation="upsert", error=str(e)))
                return
            result.ok += 1
            if outcome is UpsertOutcome.created:
                result.created += 1
            else:
                result.updated += 1
        return op

    def _removal(
        self, result: ReconcileResult, supplier: str, key: str, doc_id: str, operation: str
    ) -> Callable[[], Awaitable[None]]:
        async def op() -> None:
            try:
                removed = await remove_offer(self.factory, supplier, key, doc_id)
            except Exception as e:
                logger.warning("Offer removal failed: supplier=%s key=%s error=%s", supplier, key, e)
                if operation == "remove":
                    result.skipped += 1
                result.failures.append(ReconcileFailure(key=key, operation=operation, error=str(e)))
                return
            if not removed:
                return
            if operation == "cleanup":
                result.stale_removed += 1
            else:
                result.removed += 1
        return op

    async def _run_bounded(self, tasks: List[Callable[[], Awaitable[None]]]) -> None:
        semaphore = asyncio.Semaphore(max(1, self.concurrency))

        async def guarded(task: Callable[[], Awaitable[None]]) -> None:
            async with semaphore:
                await task()

        await asyncio.gather(*(guarded(t) for t in tasks))
