# portal_hub/routers/catalog.py
"""
Catalog Router - supplier feed reconciliation, product search, master data cache.
"""
from __future__ import annotations
import asyncio
from typing import Dict

from fastapi import APIRouter, Depends, Query, Request

from portal_hub.database import SessionFactory
from portal_hub.errors import Conflict, InvalidArgument
from portal_hub.models import BrandDuplicatesOut, FeedUploadIn, ProductSearchOut, ReconcileResult
from portal_hub.security import get_factory, get_master_data, require_admin
from portal_hub.services.brands import find_brand_duplicates, rebuild_brands_cache
from portal_hub.services.feed_rows import rows_from_table
from portal_hub.services.master_data import MasterDataCache
from portal_hub.services.reconciliation import ReconciliationEngine
from portal_hub.services.search import search_products_by_article
from portal_hub.services.normalize import normalize_supplier
from portal_hub.settings import settings

router = APIRouter(prefix="/catalog", tags=["Catalog"])


def _feed_lock(request: Request, supplier: str) -> asyncio.Lock:
    locks: Dict[str, asyncio.Lock] = request.app.state.feed_locks
    return locks.setdefault(supplier, asyncio.Lock())


@router.post(
    "/suppliers/{supplier_id}/feed",
    response_model=ReconcileResult,
    dependencies=[Depends(require_admin)],
)
async def upload_feed(
    supplier_id: str,
    payload: FeedUploadIn,
    request: Request,
    factory: SessionFactory = Depends(get_factory),
    master_data: MasterDataCache = Depends(get_master_data),
):
    """
    Reconcile one supplier's price list.

    Body carries either ``rows`` (list of objects) or ``table`` + ``mapping``
    (manual upload, first row is the header).
    """
    if payload.rows is not None:
        rows = payload.rows
    elif payload.table is not None:
        rows = rows_from_table(payload.table, payload.mapping or {})
    else:
        raise InvalidArgument("Either rows or table is required")

    supplier = normalize_supplier(payload.supplier_name or supplier_id)
    lock = _feed_lock(request, supplier)
    if lock.locked():
        raise Conflict(f"Price list for '{supplier}' is already being processed")

    async with lock:
        engine = ReconciliationEngine(
            factory,
            master_data,
            max_rows=settings.FEED_MAX_ROWS,
            chunk_size=settings.FEED_CHUNK_SIZE,
            concurrency=settings.FEED_CONCURRENCY,
        )
        return await engine.reconcile_supplier_feed(supplier_id, rows, payload.supplier_name)


@router.get("/search", response_model=ProductSearchOut)
async def search(
    article: str = Query("", max_length=200),
    factory: SessionFactory = Depends(get_factory),
):
    return await search_products_by_article(factory, article)


@router.post("/master-data/cache/clear", dependencies=[Depends(require_admin)])
async def clear_master_data_cache(master_data: MasterDataCache = Depends(get_master_data)):
    master_data.invalidate()
    return {"success": True, "message": "Master data cache cleared"}


@router.get(
    "/brands/duplicates",
    response_model=BrandDuplicatesOut,
    dependencies=[Depends(require_admin)],
)
async def brand_duplicates(factory: SessionFactory = Depends(get_factory)):
    return await find_brand_duplicates(factory)


@router.post("/brands/rebuild", dependencies=[Depends(require_admin)])
async def rebuild_brands(factory: SessionFactory = Depends(get_factory)):
    written = await rebuild_brands_cache(factory)
    return {"success": True, "written": written}
