# portal_hub/services/pricing_rules.py
"""
Supplier Pricing Rules.

Five markup percentages per supplier, one per price tier, used to derive
public prices from purchase cost when a feed only carries a purchase price.

Rules live either in ``pricing_rules`` (matched by id, ``supplier_id`` or one
of the ``supplier`` / ``code`` / ``name`` fields) or embedded in the supplier
record itself. The cache is per run: one reconciliation pass or one order
placement.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Sequence

from sqlalchemy import select

from portal_hub.database import SessionFactory
from portal_hub.db_models import PricingRuleRecord, Supplier
from portal_hub.models import PriceTier
from portal_hub.services.normalize import normalize_supplier, round2, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class TierPercentages:
    retail: Decimal = ZERO
    p1: Decimal = ZERO
    p2: Decimal = ZERO
    p3: Decimal = ZERO
    wholesale: Decimal = ZERO

    def is_zero(self) -> bool:
        return not any(asdict(self).values())

    def for_tier(self, tier: str) -> Decimal:
        return getattr(self, _TIER_FIELDS[tier])


_TIER_FIELDS: Dict[str, str] = {
    PriceTier.retail.value: "retail",
    PriceTier.price1.value: "p1",
    PriceTier.price2.value: "p2",
    PriceTier.price3.value: "p3",
    PriceTier.wholesale.value: "wholesale",
}

# field -> accepted keys, first present wins
_FLAT_EN = {
    "retail": ("retailPercent", "retail"),
    "p1": ("price1Percent", "p1", "price1"),
    "p2": ("price2Percent", "p2", "price2"),
    "p3": ("price3Percent", "p3", "price3"),
    "wholesale": ("wholesalePercent", "wholesale", "optPercent"),
}
_FLAT_UA = {field: (tier,) for tier, field in _TIER_FIELDS.items()}
_NESTED = {
    "retail": ("retail", "роздріб"),
    "p1": ("p1", "price1", "ціна 1"),
    "p2": ("p2", "price2", "ціна 2"),
    "p3": ("p3", "price3", "ціна 3"),
    "wholesale": ("wholesale", "опт", "ціна опт"),
}


# =========================================================================
# Parsing
# =========================================================================

def pick(obj: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """First non-blank value among ``keys``."""
    for key in keys:
        value = obj.get(key)
        if value is not None and str(value).strip() != "":
            return value
    return None


def percent_value(raw: Any) -> Decimal:
    """``"20"``, ``"20%"``, ``"20,5"`` or a number; anything else is 0."""
    if raw is None or raw == "":
        return ZERO
    if isinstance(raw, str):
        raw = raw.strip().replace("%", "").replace(",", ".")
        try:
            value = Decimal(raw)
        except ArithmeticError:
            return ZERO
        return value if value.is_finite() else ZERO
    value = to_decimal(raw)
    return value if value is not None else ZERO


def _read(obj: Mapping[str, Any], layout: Mapping[str, Sequence[str]]) -> TierPercentages:
    return TierPercentages(**{field: percent_value(pick(obj, keys)) for field, keys in layout.items()})


def parse_rule_object(obj: Optional[Mapping[str, Any]]) -> Optional[TierPercentages]:
    """
    Read markups from any of the three stored layouts.

    Flat EN keys first, then flat UA tier names (each only if some value is
    nonzero), then a nested ``rules`` / ``markups`` / ``pricing`` object.
    Returns None when nothing recognizable is present.
    """
    if not obj:
        return None

    for layout in (_FLAT_EN, _FLAT_UA):
        parsed = _read(obj, layout)
        if not parsed.is_zero():
            return parsed

    nested = obj.get("rules") or obj.get("markups") or obj.get("pricing")
    if isinstance(nested, Mapping):
        return _read(nested, _NESTED)
    return None


def build_public_prices(purchase: Any, percentages: TierPercentages) -> Dict[str, Decimal]:
    """``purchase * (1 + pct/100)`` for every tier, rounded to the nearest cent."""
    base = to_decimal(purchase) or ZERO
    return {
        tier: round2(base * (Decimal("1") + percentages.for_tier(tier) / Decimal("100")))
        for tier in _TIER_FIELDS
    }


# =========================================================================
# Cache
# =========================================================================

class PricingRulesCache:
    """Per-run memo of supplier markups."""

    MATCH_FIELDS = ("supplier", "code", "name")

    def __init__(self, factory: SessionFactory):
        self.factory = factory
        self._memo: Dict[str, TierPercentages] = {}

    async def get(self, supplier_id: Any) -> TierPercentages:
        key = normalize_supplier(supplier_id)
        cached = self._memo.get(key)
        if cached is not None:
            return cached

        found = None
        async with self.factory() as db:
            for lookup in (self._by_id, self._by_supplier_id, self._by_named_field, self._by_supplier_record):
                found = await lookup(db, key)
                if found is not None:
                    break

        result = found or TierPercentages()
        if found is None:
            logger.debug("No pricing rules for supplier %r, using zero markups", key)
        self._memo[key] = result
        return result

    def invalidate(self, supplier_id: Any) -> None:
        self._memo.pop(normalize_supplier(supplier_id), None)

    async def public_prices(self, supplier_id: Any, purchase: Any) -> Dict[str, Decimal]:
        return build_public_prices(purchase, await self.get(supplier_id))

    # -------------------------------------------------------------------------
    # Lookups, each returning None on miss
    # -------------------------------------------------------------------------

    async def _by_id(self, db, key: str) -> Optional[TierPercentages]:
        record = await db.get(PricingRuleRecord, key)
        return parse_rule_object(record.data) if record else None

    async def _by_supplier_id(self, db, key: str) -> Optional[TierPercentages]:
        return await self._first_parsed(db, PricingRuleRecord.supplier_id == key)

    async def _by_named_field(self, db, key: str) -> Optional[TierPercentages]:
        for field in self.MATCH_FIELDS:
            found = await self._first_parsed(db, getattr(PricingRuleRecord, field) == key)
            if found is not None:
                return found
        return None

    async def _by_supplier_record(self, db, key: str) -> Optional[TierPercentages]:
        supplier = await db.get(Supplier, key)
        return parse_rule_object(supplier.data) if supplier else None

    async def _first_parsed(self, db, condition) -> Optional[TierPercentages]:
        stmt = select(PricingRuleRecord).where(condition).limit(1)
        record = (await db.execute(stmt)).scalar_one_or_none()
        return parse_rule_object(record.data) if record else None
