from decimal import Decimal

from portal_hub.db_models import PricingRuleRecord, Supplier
from portal_hub.services.pricing_rules import (
    PricingRulesCache, TierPercentages, build_public_prices, parse_rule_object, percent_value,
)

from conftest import seed


def test_percent_values():
    assert percent_value("20") == Decimal("20")
    assert percent_value("20%") == Decimal("20")
    assert percent_value("20,5") == Decimal("20.5")
    assert percent_value(15) == Decimal("15")
    assert percent_value("abc") == Decimal("0")
    assert percent_value(None) == Decimal("0")


def test_parse_flat_english_keys():
    parsed = parse_rule_object({"retailPercent": "20", "p1": 10, "optPercent": "5%"})
    assert parsed == TierPercentages(
        retail=Decimal("20"), p1=Decimal("10"), wholesale=Decimal("5"),
    )


def test_parse_flat_ukrainian_tiers():
    parsed = parse_rule_object({"роздріб": "30", "ціна 2": "12,5"})
    assert parsed.retail == Decimal("30")
    assert parsed.p2 == Decimal("12.5")


def test_parse_nested_object():
    parsed = parse_rule_object({"markups": {"retail": 25, "опт": 3}})
    assert parsed.retail == Decimal("25")
    assert parsed.wholesale == Decimal("3")


def test_parse_unrecognized_is_none():
    assert parse_rule_object({"name": "S1"}) is None
    assert parse_rule_object(None) is None


def test_build_public_prices_rounds_to_nearest():
    prices = build_public_prices(Decimal("33.33"), TierPercentages(retail=Decimal("15")))
    assert prices["роздріб"] == Decimal("38.33")
    assert prices["ціна 1"] == Decimal("33.33")
    assert len(prices) == 5


async def test_lookup_order_and_memo(factory):
    await seed(
        factory,
        PricingRuleRecord(id="rule-x", supplier_id="S1", data={"retail": "20"}),
        PricingRuleRecord(id="rule-y", code="S2", data={"rules": {"retail": "7"}}),
        Supplier(id="S3", name="Third", data={"retailPercent": "9"}),
    )
    cache = PricingRulesCache(factory)

    assert (await cache.get("S1")).retail == Decimal("20")
    assert (await cache.get("S2")).retail == Decimal("7")
    assert (await cache.get("S3")).retail == Decimal("9")
    assert (await cache.get("nobody")).is_zero()

    async with factory() as db:
        record = await db.get(PricingRuleRecord, "rule-x")
        record.data = {"retail": "50"}
        await db.commit()

    assert (await cache.get("S1")).retail == Decimal("20")
    cache.invalidate("S1")
    assert (await cache.get("S1")).retail == Decimal("50")


async def test_record_by_id_wins(factory):
    await seed(
        factory,
        PricingRuleRecord(id="S1", data={"retail": "11"}),
        PricingRuleRecord(id="other", supplier_id="S1", data={"retail": "22"}),
    )
    assert (await PricingRulesCache(factory).get("S1")).retail == Decimal("11")


async def test_unparseable_record_falls_through(factory):
    await seed(
        factory,
        PricingRuleRecord(id="S1", data={"note": "empty"}),
        Supplier(id="S1", name="One", data={"retail": "4"}),
    )
    assert (await PricingRulesCache(factory).get("S1")).retail == Decimal("4")
