# portal_hub/routers/pricing.py
"""
Pricing Router - client price preview and personal pricing rules.
"""
from __future__ import annotations
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from portal_hub.database import SessionFactory
from portal_hub.models import ClientPricingRules, ResolvePriceIn, ResolvedPrice
from portal_hub.security import get_factory, get_master_data, require_admin
from portal_hub.services.master_data import MasterDataCache
from portal_hub.services.pricing import PricingService

router = APIRouter(prefix="/pricing", tags=["Pricing"])


def _rules_out(rules: ClientPricingRules) -> Dict[str, Any]:
    return rules.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post("/resolve", response_model=ResolvedPrice)
async def resolve_price(
    payload: ResolvePriceIn,
    factory: SessionFactory = Depends(get_factory),
    master_data: MasterDataCache = Depends(get_master_data),
):
    return await PricingService(factory).preview(
        master_data,
        payload.client_id,
        payload.brand,
        payload.article,
        payload.supplier,
        payload.price_tier,
    )


@router.get("/clients/{client_id}/rules")
async def get_client_rules(client_id: str, factory: SessionFactory = Depends(get_factory)):
    return _rules_out(await PricingService(factory).get_client_rules(client_id))


@router.put("/clients/{client_id}/rules", dependencies=[Depends(require_admin)])
async def set_client_rules(
    client_id: str,
    payload: Dict[str, Any] = Body(...),
    factory: SessionFactory = Depends(get_factory),
):
    rules = await PricingService(factory).set_client_rules(client_id, payload)
    return {"success": True, "rules": _rules_out(rules)}
