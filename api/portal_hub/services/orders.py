# portal_hub/services/orders.py
"""
Order Placement.

    duplicate client_request_id? -> return existing order (reused)
    validate cart -> fetch products (one IN query) -> price every line
    -> one transaction: orderSeq += 1, insert order
    -> best-effort status counter update

A failing line fails the whole order; nothing is written before numbering.
The duplicate check is read-then-write: two concurrent placements with the
same client_request_id can both succeed (there is no unique constraint).
"""
from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal_hub.database import SessionFactory, run_transaction
from portal_hub.db_models import Counter, Order, OrderStatus, OrderStatusCount, Product, ORDER_SEQUENCE
from portal_hub.errors import FailedPrecondition, InvalidArgument, NotFound
from portal_hub.models import CartItem, OfferSet, OrderLine, PlaceOrderIn, PlaceOrderOut, ProductRef
from portal_hub.services.catalog import canonical_doc_id
from portal_hub.services.master_data import MasterDataCache
from portal_hub.services.normalize import clean_str, normalize_supplier, round2
from portal_hub.services.pricing import PricingService, choose_tier
from portal_hub.services.pricing_rules import PricingRulesCache
from portal_hub.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class _CartLine:
    doc_id: str
    supplier: str
    qty: int


class OrderService:
    def __init__(
        self,
        factory: SessionFactory,
        master_data: MasterDataCache,
        pricing: PricingService,
        max_items: int = settings.ORDER_MAX_ITEMS,
    ):
        self.factory = factory
        self.master_data = master_data
        self.pricing = pricing
        self.max_items = max_items

    async def place_order(self, client_id: str, request: PlaceOrderIn) -> PlaceOrderOut:
        client_id = clean_str(client_id, 128)
        if not client_id:
            raise InvalidArgument("client_id is required")

        request_id = clean_str(request.client_request_id, 128)
        if request_id:
            existing = await self.find_by_request_id(request_id)
            if existing is not None:
                logger.info("Order replay: request_id=%s -> %s", request_id, existing.id)
                return PlaceOrderOut(
                    order_id=existing.id, order_number=existing.order_number,
                    total=existing.total, reused=True,
                )

        if not request.items:
            raise InvalidArgument("Cart is empty")
        if len(request.items) > self.max_items:
            raise InvalidArgument(f"Too many items in cart (max {self.max_items})")

        lines = [await self._cart_line(raw) for raw in request.items]

        async with self.factory() as db:
            tier = await choose_tier(db, client_id, request.price_category)
            doc_ids = list(dict.fromkeys(line.doc_id for line in lines))
            found = (await db.execute(select(Product).where(Product.doc_id.in_(doc_ids)))).scalars().all()
        products: Dict[str, Product] = {p.doc_id: p for p in found}

        client_rules = await self.pricing.load_client_rules(client_id)
        rules_cache = PricingRulesCache(self.factory)

        items: List[OrderLine] = []
        total = Decimal("0.00")
        for line in lines:
            product = products.get(line.doc_id)
            if product is None:
                raise NotFound(f"Product not found: {line.doc_id}")
            offer = OfferSet.from_storage(product.offers).get(line.supplier)
            if offer is None:
                raise NotFound(f"No offer from supplier '{line.supplier}' for product {line.doc_id}")

            resolved = await self.pricing.resolve(
                client_rules,
                ProductRef(brand=product.brand, article=product.article),
                offer,
                tier,
                rules_cache,
            )
            if resolved.price <= 0:
                raise FailedPrecondition(f"No valid price for {line.doc_id} ({tier})")

            line_total = round2(resolved.price * line.qty)
            total = round2(total + line_total)
            items.append(OrderLine(
                id=product.article,
                doc_id=product.doc_id,
                name=clean_str(product.name, 600),
                brand=product.brand,
                supplier=line.supplier,
                price=resolved.price,
                quantity=line.qty,
                quantity_confirmed=line.qty,
                price_group=resolved.price_group,
                default_price_group=resolved.default_price_group,
                has_adjustment=resolved.has_adjustment,
            ))

        order_id = uuid.uuid4().hex

        async def work(db: AsyncSession) -> int:
            number = await self._next_order_number(db)
            db.add(Order(
                id=order_id,
                client_id=client_id,
                items=[item.model_dump(mode="json") for item in items],
                total=total,
                status=OrderStatus.new.value,
                order_number=number,
                archived=False,
                client_request_id=request_id or None,
                client_name=clean_str(request.client_name, 200),
                client_phone=clean_str(request.client_phone, 50),
                client_email=clean_str(request.client_email, 200),
                note=clean_str(request.note, 2000),
            ))
            return number

        order_number = await run_transaction(self.factory, work, label="place order")
        await self._bump_status_count(OrderStatus.new.value)

        logger.info(
            "Order created: id=%s number=%d client=%s items=%d total=%s",
            order_id, order_number, client_id, len(items), total,
        )
        return PlaceOrderOut(order_id=order_id, order_number=order_number, total=total)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def find_by_request_id(self, request_id: str) -> Optional[Order]:
        async with self.factory() as db:
            stmt = select(Order).where(Order.client_request_id == request_id).limit(1)
            return (await db.execute(stmt)).scalar_one_or_none()

    async def _cart_line(self, raw) -> _CartLine:
        if not isinstance(raw, dict):
            raise InvalidArgument("Cart item must be an object")
        try:
            item = CartItem.model_validate(raw)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid cart item: {e.errors()[0].get('msg', 'invalid')}") from e

        supplier = normalize_supplier(item.supplier)
        if not supplier:
            raise InvalidArgument("Cart item needs a supplier to pick the offer")

        doc_id = clean_str(item.doc_id, 255)
        if not doc_id:
            if not clean_str(item.brand) or not clean_str(item.id):
                raise InvalidArgument("Cart item without docId needs brand and id")
            doc_id = await canonical_doc_id(self.master_data, item.brand, item.id)
        return _CartLine(doc_id=doc_id, supplier=supplier, qty=max(1, item.qty))

    @staticmethod
    async def _next_order_number(db: AsyncSession) -> int:
        stmt = select(Counter).where(Counter.name == ORDER_SEQUENCE).with_for_update()
        counter = (await db.execute(stmt)).scalar_one_or_none()
        if counter is None:
            counter = Counter(name=ORDER_SEQUENCE, value=0)
            db.add(counter)
        counter.value = (counter.value or 0) + 1
        return counter.value

    async def _bump_status_count(self, status: str) -> None:
        async def work(db: AsyncSession) -> None:
            stmt = select(OrderStatusCount).where(OrderStatusCount.status == status).with_for_update()
            row = (await db.execute(stmt)).scalar_one_or_none()
            if row is None:
                db.add(OrderStatusCount(status=status, count=1))
            else:
                row.count = (row.count or 0) + 1

        try:
            await run_transaction(self.factory, work, label="order status count")
        except Exception as e:
            logger.warning("Failed to update order counts: %s", e)
