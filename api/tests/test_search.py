from portal_hub.db_models import Product
from portal_hub.services.search import _like_literal, search_products_by_article

from conftest import make_offer, seed_product


async def _add_synonyms(factory, doc_id, synonyms):
    async with factory() as db:
        product = await db.get(Product, doc_id)
        product.synonyms = synonyms
        await db.commit()


def test_like_wildcards_escaped():
    assert _like_literal("A_1%") == "A\\_1\\%"
    assert _like_literal("ABC-1") == "ABC-1"


async def test_direct_match_wins_over_synonym(factory):
    await seed_product(factory, "Bosch", "ABC-1", make_offer())
    other = await seed_product(factory, "Makita", "M-9", make_offer())
    await _add_synonyms(factory, other, ["ABC-1"])

    found = await search_products_by_article(factory, "abc-1")

    assert found.count == 2
    assert found.found_via_synonym is False
    assert found.canonical_article == "ABC-1"


async def test_underscore_in_synonym_matches_only_itself(factory):
    exact = await seed_product(factory, "Bosch", "P-1", make_offer())
    lookalike = await seed_product(factory, "Bosch", "P-2", make_offer())
    await _add_synonyms(factory, exact, ["A_1"])
    await _add_synonyms(factory, lookalike, ["AX1"])

    found = await search_products_by_article(factory, "a_1")

    assert [p["docId"] for p in found.products] == [exact]
    assert found.found_via_synonym is True


async def test_search_rejects_empty_article(factory):
    assert (await search_products_by_article(factory, "")).ok is False
    assert (await search_products_by_article(factory, " / ")).ok is False
