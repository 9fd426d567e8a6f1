import pytest

from portal_hub.db_models import BrandSynonym, MasterDataEntry
from portal_hub.models import MasterData
from portal_hub.services.master_data import MasterDataCache

from conftest import seed


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class CountingLoader:
    def __init__(self, master=None, synonyms=None):
        self.calls = 0
        self.master = master or []
        self.synonyms = synonyms or {}

    async def __call__(self):
        self.calls += 1
        return list(self.master), dict(self.synonyms)


DRILL = MasterData(
    id="ABC-1", brand="Bosch", correct_name="Drill", categories=["tools"], synonyms=["ABC1", "abc 01"],
)


async def test_lookup_by_primary_and_synonym_article():
    cache = MasterDataCache(CountingLoader([DRILL]))

    primary = await cache.get_master_data("bosch", "abc-1")
    via_synonym = await cache.get_master_data("BOSCH", "abc1")

    assert primary.correct_name == "Drill"
    assert via_synonym.id == "ABC-1"
    assert await cache.get_master_data("Makita", "ABC-1") is None


async def test_returned_entries_are_copies():
    cache = MasterDataCache(CountingLoader([DRILL]))
    first = await cache.get_master_data("Bosch", "ABC-1")
    first.synonyms.append("MUTATED")
    second = await cache.get_master_data("Bosch", "ABC-1")
    assert "MUTATED" not in second.synonyms


async def test_rebuilds_only_after_ttl():
    clock = FakeClock()
    loader = CountingLoader([DRILL])
    cache = MasterDataCache(loader, ttl_seconds=100, clock=clock)

    await cache.get_master_data("Bosch", "ABC-1")
    clock.now = 99
    await cache.get_master_data("Bosch", "ABC-1")
    assert loader.calls == 1

    clock.now = 100
    await cache.get_master_data("Bosch", "ABC-1")
    assert loader.calls == 2


async def test_invalidate_forces_rebuild():
    loader = CountingLoader([DRILL])
    cache = MasterDataCache(loader)
    await cache.brand_synonyms()
    cache.invalidate()
    await cache.brand_synonyms()
    assert loader.calls == 2


async def test_loader_failure_propagates():
    async def broken():
        raise RuntimeError("store down")

    cache = MasterDataCache(broken)
    with pytest.raises(RuntimeError):
        await cache.get_master_data("Bosch", "ABC-1")


async def test_find_canonical_article_any_brand():
    cache = MasterDataCache(CountingLoader([DRILL]))

    hit = await cache.find_canonical_article_by_any_format("abc 01")
    assert hit.canonical_article == "ABC-1"
    assert hit.found_via_synonym is True

    direct = await cache.find_canonical_article_by_any_format("abc-1")
    assert direct.found_via_synonym is False

    unknown = await cache.find_canonical_article_by_any_format("zz 9")
    assert unknown.canonical_article == "ZZ9"
    assert unknown.found_via_synonym is False

    assert await cache.find_canonical_article_by_any_format("  ") is None


async def test_normalize_brand_through_synonym_table():
    cache = MasterDataCache(CountingLoader(synonyms={"bosch tools": "Bosch"}))
    assert await cache.normalize_brand("BOSCH  Tools") == "Bosch"
    assert await cache.normalize_brand("Makita") == "Makita"


async def test_db_loader_reads_entries_and_brand_synonyms(factory, master_data):
    await seed(
        factory,
        MasterDataEntry(id="ABC-1", brand="Bosch", correct_name="Drill", synonyms=["ABC1"]),
        BrandSynonym(old="Bosch Tools", canonical="Bosch"),
    )

    assert await master_data.normalize_brand("bosch tools") == "Bosch"
    found = await master_data.get_master_data("Bosch", "abc1")
    assert found is not None and found.correct_name == "Drill"
