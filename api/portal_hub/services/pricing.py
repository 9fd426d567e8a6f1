# portal_hub/services/pricing.py
"""
Pricing Resolution.

A client's unit price for one supplier offer:

    tier      <- first matching client rule (product -> brand -> supplier),
                 else the default tier
    base      <- offer price for that tier, else the retail price
    price     <- base * (1 + rule%/100) * (1 + global%/100)
    result    <- price rounded UP to the cent

Clients without a rules record use the legacy tier lookup instead, which
derives a missing tier from retail via the supplier markups and rounds to
the nearest cent.
"""
from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from portal_hub.database import SessionFactory, run_transaction
from portal_hub.db_models import Client, ClientPricingRulesRecord, Product
from portal_hub.errors import InvalidArgument, NotFound
from portal_hub.models import (
    ClientPricingRule, ClientPricingRules, Offer, OfferSet, ProductRef,
    ResolvedPrice, RETAIL, is_price_tier,
)
from portal_hub.services.catalog import canonical_doc_id
from portal_hub.services.master_data import MasterDataCache
from portal_hub.services.normalize import (
    ceil2, round2, to_decimal, normalize_article, normalize_brand_key,
    normalize_supplier,
)
from portal_hub.services.pricing_rules import PricingRulesCache
from portal_hub.settings import settings

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
SCOPE_ORDER = ("product", "brand", "supplier")


def _factor(adjustment: Decimal) -> Decimal:
    return ONE + adjustment / HUNDRED


def _clamp_adjustment(value: Any) -> Decimal:
    d = to_decimal(value) or ZERO
    return max(Decimal("-100"), min(Decimal("100"), d))


# =========================================================================
# Pure resolution
# =========================================================================

def _rule_matches(rule: ClientPricingRule, product: ProductRef, offer: Offer) -> bool:
    if rule.type == "product":
        return (
            normalize_brand_key(rule.brand) == normalize_brand_key(product.brand)
            and normalize_article(rule.id) == normalize_article(product.article)
        )
    if rule.type == "brand":
        return normalize_brand_key(rule.brand) == normalize_brand_key(product.brand)
    return normalize_supplier(rule.supplier) == normalize_supplier(offer.supplier)


def find_rule(
    rules: Optional[ClientPricingRules], product: ProductRef, offer: Offer
) -> Optional[ClientPricingRule]:
    """First matching rule, product scope before brand before supplier."""
    if rules is None:
        return None
    for scope in SCOPE_ORDER:
        for rule in rules.rules:
            if rule.type == scope and _rule_matches(rule, product, offer):
                return rule
    return None


def resolve_unit_price(
    rules: Optional[ClientPricingRules],
    product: ProductRef,
    offer: Optional[Offer],
    default_tier: str,
) -> ResolvedPrice:
    """
    Client price for ``offer``. Pure: same inputs, same output.

    A price of 0 means "no valid price"; callers decide whether that is fatal.
    """
    no_price = ResolvedPrice(
        price=Decimal("0.00"), price_group=default_tier,
        default_price_group=default_tier, has_adjustment=False,
    )
    if offer is None:
        return no_price

    tier = default_tier
    adjustment = ZERO
    rule = find_rule(rules, product, offer)
    if rule is not None:
        tier = rule.price_group
        adjustment = rule.adjustment or ZERO

    base = offer.price(tier)
    if base is None or base <= 0:
        tier = RETAIL
        base = offer.price(RETAIL)
        if base is None or base <= 0:
            return no_price

    price = base * _factor(adjustment)
    global_adjustment = rules.global_adjustment if rules is not None else ZERO
    if global_adjustment:
        price = price * _factor(global_adjustment)

    return ResolvedPrice(
        price=ceil2(price),
        price_group=tier,
        default_price_group=default_tier,
        has_adjustment=bool(adjustment) or bool(global_adjustment),
    )


def legacy_unit_price(offer: Offer, tier: str, markups) -> ResolvedPrice:
    """
    Price for clients with no rules record.

    The tier's own price when present, else retail scaled by the ratio of
    the supplier's tier markup to its retail markup (nearest cent).
    """
    price = offer.price(tier)
    if price is None:
        retail = offer.price(RETAIL)
        if retail is not None and tier != RETAIL:
            f_retail = _factor(markups.retail) or ONE
            f_tier = _factor(markups.for_tier(tier)) if is_price_tier(tier) else ONE
            price = round2(retail * (f_tier / f_retail))
        else:
            price = retail if retail is not None else ZERO
    return ResolvedPrice(
        price=price, price_group=tier, default_price_group=tier, has_adjustment=False,
    )


# =========================================================================
# Client rules storage
# =========================================================================

def _migrate_rule(raw: Dict[str, Any]) -> Dict[str, Any]:
    if raw.get("adjustment") is not None:
        return raw
    markup = to_decimal(raw.get("markup")) or ZERO
    discount = to_decimal(raw.get("discount")) or ZERO
    return {**raw, "adjustment": markup - discount}


def rules_from_record(record: ClientPricingRulesRecord) -> ClientPricingRules:
    """Stored record -> rules, converting legacy markup/discount fields."""
    if record.global_adjustment is not None:
        global_adjustment = Decimal(record.global_adjustment)
    else:
        global_adjustment = (record.global_markup or ZERO) - (record.global_discount or ZERO)

    rules: List[ClientPricingRule] = []
    for raw in record.rules or []:
        if not isinstance(raw, dict):
            continue
        try:
            rules.append(ClientPricingRule.model_validate(_migrate_rule(raw)))
        except ValidationError as e:
            logger.warning("Ignoring malformed pricing rule for client %s: %s", record.client_id, e)
    return ClientPricingRules(global_adjustment=global_adjustment, rules=rules)


def validate_rules_payload(payload: Dict[str, Any]) -> ClientPricingRules:
    """Admin input -> clean rules. Raises InvalidArgument."""
    raw_rules = payload.get("rules")
    if raw_rules is None:
        raw_rules = []
    if not isinstance(raw_rules, list):
        raise InvalidArgument("rules must be a list")

    global_raw = payload.get("globalAdjustment", payload.get("global_adjustment"))
    rules: List[ClientPricingRule] = []
    for raw in raw_rules:
        if not isinstance(raw, dict):
            raise InvalidArgument("Each rule must be an object")
        rule_type = raw.get("type")
        if rule_type not in SCOPE_ORDER:
            raise InvalidArgument(f"Invalid rule type: {rule_type}")
        tier = raw.get("priceGroup", raw.get("price_group"))
        if not is_price_tier(tier):
            raise InvalidArgument(f"Invalid price group: {tier}")

        migrated = _migrate_rule(raw)
        fields: Dict[str, Any] = {
            "type": rule_type,
            "price_group": tier,
            "adjustment": _clamp_adjustment(migrated.get("adjustment")),
        }
        if rule_type == "product":
            if not raw.get("brand") or not raw.get("id"):
                raise InvalidArgument("A 'product' rule needs brand and id")
            fields["brand"] = str(raw["brand"]).strip()
            fields["id"] = str(raw["id"]).strip().upper()
        elif rule_type == "brand":
            if not raw.get("brand"):
                raise InvalidArgument("A 'brand' rule needs brand")
            fields["brand"] = str(raw["brand"]).strip()
        else:
            if not raw.get("supplier"):
                raise InvalidArgument("A 'supplier' rule needs supplier")
            fields["supplier"] = str(raw["supplier"]).strip()
        rules.append(ClientPricingRule(**fields))

    return ClientPricingRules(global_adjustment=_clamp_adjustment(global_raw), rules=rules)


async def choose_tier(db: AsyncSession, client_id: Optional[str], requested: Optional[str]) -> str:
    """Explicit valid tier, else the client's stored one, else the default."""
    if is_price_tier(requested):
        return requested
    if client_id:
        client = await db.get(Client, client_id)
        if client is not None and is_price_tier(client.price_type):
            return client.price_type
    return settings.DEFAULT_PRICE_TIER


class PricingService:
    """Client rules + price resolution against stored products."""

    def __init__(self, factory: SessionFactory):
        self.factory = factory

    async def load_client_rules(self, client_id: Optional[str]) -> Optional[ClientPricingRules]:
        """None when the client has no rules record (legacy pricing applies)."""
        if not client_id:
            return None
        async with self.factory() as db:
            record = await db.get(ClientPricingRulesRecord, client_id)
        return rules_from_record(record) if record is not None else None

    async def get_client_rules(self, client_id: str) -> ClientPricingRules:
        if not client_id:
            raise InvalidArgument("client_id is required")
        return await self.load_client_rules(client_id) or ClientPricingRules()

    async def set_client_rules(self, client_id: str, payload: Dict[str, Any]) -> ClientPricingRules:
        if not client_id:
            raise InvalidArgument("client_id is required")
        rules = validate_rules_payload(payload or {})

        async def work(db: AsyncSession) -> None:
            record = await db.get(ClientPricingRulesRecord, client_id)
            if record is None:
                record = ClientPricingRulesRecord(client_id=client_id)
                db.add(record)
            record.global_adjustment = rules.global_adjustment
            record.global_discount = None
            record.global_markup = None
            record.rules = [
                r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in rules.rules
            ]

        await run_transaction(self.factory, work, label=f"set rules {client_id}")
        logger.info("Pricing rules saved: client=%s rules=%d", client_id, len(rules.rules))
        return rules

    async def resolve(
        self,
        client_rules: Optional[ClientPricingRules],
        product: ProductRef,
        offer: Offer,
        default_tier: str,
        rules_cache: Optional[PricingRulesCache] = None,
    ) -> ResolvedPrice:
        if client_rules is not None:
            return resolve_unit_price(client_rules, product, offer, default_tier)
        rules_cache = rules_cache or PricingRulesCache(self.factory)
        markups = await rules_cache.get(offer.supplier)
        return legacy_unit_price(offer, default_tier, markups)

    async def resolve_unit_price(
        self,
        client_id: Optional[str],
        product: ProductRef,
        offer: Offer,
        default_tier: str,
        rules_cache: Optional[PricingRulesCache] = None,
    ) -> ResolvedPrice:
        client_rules = await self.load_client_rules(client_id)
        return await self.resolve(client_rules, product, offer, default_tier, rules_cache)

    async def preview(
        self,
        master_data: MasterDataCache,
        client_id: Optional[str],
        brand: str,
        article: str,
        supplier: str,
        price_tier: Optional[str] = None,
    ) -> ResolvedPrice:
        """Price a stored product's offer for a client, as an order would."""
        doc_id = await canonical_doc_id(master_data, brand, article)
        async with self.factory() as db:
            product = await db.get(Product, doc_id)
            tier = await choose_tier(db, client_id, price_tier)
        if product is None:
            raise NotFound(f"Product not found: {doc_id}")

        offer = OfferSet.from_storage(product.offers).get(normalize_supplier(supplier))
        if offer is None:
            raise NotFound(f"No offer from supplier '{supplier}' for product {doc_id}")
        ref = ProductRef(brand=product.brand, article=product.article)
        return await self.resolve_unit_price(client_id, ref, offer, tier)

