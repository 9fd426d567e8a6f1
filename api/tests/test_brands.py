from sqlalchemy import select

from portal_hub.db_models import BrandVariants
from portal_hub.services.brands import find_brand_duplicates, rebuild_brands_cache

from conftest import make_offer, seed_product


async def _seed_brands(factory):
    await seed_product(factory, "Bosch", "A-1", make_offer())
    await seed_product(factory, "BOSCH", "A-2", make_offer())
    await seed_product(factory, "bosch  ", "A-3", make_offer())
    await seed_product(factory, "Makita", "M-1", make_offer())
    await seed_product(factory, "Knipex", "K-1", make_offer())
    await seed_product(factory, "KNIPEX", "K-2", make_offer())


async def test_duplicates_grouped_by_key(factory):
    await _seed_brands(factory)

    out = await find_brand_duplicates(factory)

    assert out.ok is True
    assert [g.key for g in out.duplicates] == ["bosch", "knipex"]
    bosch = out.duplicates[0]
    assert bosch.variants == ["BOSCH", "Bosch", "bosch"]
    assert bosch.count == 3
    assert bosch.canonical == "BOSCH"
    assert out.duplicates[1].variants == ["KNIPEX", "Knipex"]


async def test_no_duplicates_for_single_spellings(factory):
    await seed_product(factory, "Makita", "M-1", make_offer())
    assert (await find_brand_duplicates(factory)).duplicates == []


async def test_rebuild_replaces_previous_rows(factory):
    await _seed_brands(factory)
    assert await rebuild_brands_cache(factory) == 3

    await seed_product(factory, "Festool", "F-1", make_offer())
    assert await rebuild_brands_cache(factory) == 4

    async with factory() as db:
        rows = {r.key: r for r in (await db.execute(select(BrandVariants))).scalars().all()}
    assert sorted(rows) == ["bosch", "festool", "knipex", "makita"]
    assert rows["bosch"].canonical == "BOSCH"
    assert rows["makita"].variants == ["Makita"]
