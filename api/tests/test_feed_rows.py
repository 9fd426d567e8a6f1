from decimal import Decimal

import pytest

from portal_hub.errors import InvalidArgument
from portal_hub.services.feed_rows import extract_feed_row, rows_from_table, to_price, to_stock


def test_stock_parsing():
    assert to_stock(5) == 5
    assert to_stock(4.9) == 4
    assert to_stock(-3) == 0
    assert to_stock("12 шт") == 12
    assert to_stock("чекаємо") == 0
    assert to_stock("Відсутній") == 0
    assert to_stock("") == 0
    assert to_stock(None) == 0


def test_price_parsing():
    assert to_price("1 299,90") == Decimal("1299.90")
    assert to_price(100) == Decimal("100.00")
    assert to_price("ціна договірна") == Decimal("0.00")


def test_aliases_first_present_wins():
    row = extract_feed_row({
        "Бренд": "Bosch", "article": "", "code": "abc-1", "Назва": "Drill",
        "Наявність": "7", "Ціна": "100,5",
    })
    assert row.brand == "Bosch"
    assert row.article == "abc-1"
    assert row.name == "Drill"
    assert row.stock == 7
    assert row.price == Decimal("100.50")
    assert row.public_prices is None


def test_tier_prices_only_when_all_five_present():
    full = {"роздріб": "120", "ціна 1": "110", "ціна 2": "105", "ціна 3": "100", "ціна опт": "90"}
    row = extract_feed_row({"brand": "B", "id": "1", "stock": 1, **full})
    assert row.public_prices["ціна опт"] == Decimal("90.00")

    partial = dict(full)
    partial.pop("ціна 3")
    assert extract_feed_row({"brand": "B", "id": "1", "stock": 1, **partial}).public_prices is None


def test_rows_from_table_applies_mapping():
    table = [
        ["Виробник", "Код товару", "Опис", "Залишок", "Вартість"],
        ["Bosch", "abc-1", "Drill", "5", "100"],
        ["Makita", "m-2", "Saw", None],
    ]
    mapping = {"brand": "Виробник", "id": "Код товару", "name": "Опис", "stock": "Залишок", "price": "Вартість"}

    rows = rows_from_table(table, mapping)

    assert rows[0] == {"brand": "Bosch", "id": "abc-1", "name": "Drill", "stock": "5", "price": "100"}
    assert rows[1]["brand"] == "Makita"
    assert rows[1]["price"] is None
    assert extract_feed_row(rows[0]).stock == 5


def test_rows_from_table_rejects_unknown_columns():
    with pytest.raises(InvalidArgument):
        rows_from_table([["a", "b"], [1, 2]], {"brand": "x"})
