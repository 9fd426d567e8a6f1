from decimal import Decimal

from portal_hub.services.normalize import (
    ceil2, normalize_article, normalize_brand, normalize_brand_key,
    product_doc_id, product_key, round2, to_decimal,
)

SYNONYMS = {"bosch tools": "Bosch"}


def test_article_uppercased_and_stripped():
    assert normalize_article("  abc 1/2 ") == "ABC12"
    assert normalize_article("ab.c-1_x") == "AB.C-1_X"
    assert normalize_article("Ж-12") == "-12"
    assert normalize_article(None) == ""


def test_brand_key_folds_unicode_spaces():
    assert normalize_brand_key("  Bosch  Tools ") == "bosch tools"
    assert normalize_brand_key("BOSCH\tTOOLS") == "bosch tools"


def test_normalize_brand_uses_synonyms():
    assert normalize_brand("  bosch   tools ", SYNONYMS) == "Bosch"
    assert normalize_brand("Makita", SYNONYMS) == "Makita"
    assert normalize_brand("", SYNONYMS) == ""


def test_same_product_key_across_case_whitespace_and_synonym():
    spellings = ["Bosch", "BOSCH", " bosch ", "Bosch  Tools", "bosch tools"]
    keys = {product_key(normalize_brand(b, SYNONYMS), "abc-1") for b in spellings}
    assert keys == {"bosch-ABC-1"}


def test_doc_id_keeps_cyrillic_letters():
    assert product_doc_id(product_key("Зубр", "x1")) == "зубр-X1"
    assert product_doc_id("black decker-A1") == "black-decker-A1"
    assert product_doc_id("a/b-C") == "a_b-C"


def test_money_rounding_policies():
    assert round2("10.005") == Decimal("10.01")
    assert round2("10.004") == Decimal("10.00")
    assert ceil2("10.001") == Decimal("10.01")
    assert ceil2("10.00") == Decimal("10.00")


def test_to_decimal_takes_first_number():
    assert to_decimal("1 234,50 грн") == Decimal("1234.50")
    assert to_decimal("n/a") is None
    assert to_decimal(7) == Decimal(7)
