# portal_hub/routers/orders.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from portal_hub.database import SessionFactory
from portal_hub.models import PlaceOrderIn, PlaceOrderOut
from portal_hub.security import get_factory, get_master_data, require_client
from portal_hub.services.master_data import MasterDataCache
from portal_hub.services.orders import OrderService
from portal_hub.services.pricing import PricingService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=PlaceOrderOut)
async def place_order(
    payload: PlaceOrderIn,
    client_id: str = Depends(require_client),
    factory: SessionFactory = Depends(get_factory),
    master_data: MasterDataCache = Depends(get_master_data),
):
    service = OrderService(factory, master_data, PricingService(factory))
    return await service.place_order(client_id, payload)
