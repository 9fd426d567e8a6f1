# portal_hub/services/feed_rows.py
"""
Feed row extraction.

Supplier feeds name their columns inconsistently ("brand" / "Бренд",
"stock" / "Наявність", ...). Each logical field has an ordered list of
accepted column names; the first non-blank one wins.
"""
from __future__ import annotations
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from portal_hub.errors import InvalidArgument
from portal_hub.models import PRICE_TIERS
from portal_hub.services.normalize import round2, to_decimal
from portal_hub.services.pricing_rules import pick

BRAND_ALIASES = ("brand", "Бренд", "бренд")
ARTICLE_ALIASES = ("id", "article", "code", "Артикул", "Код", "артикул", "код")
NAME_ALIASES = ("name", "Назва", "Найменування", "найменування")
STOCK_ALIASES = ("stock", "amount", "qty", "Наявність", "Кількість", "кількість", "наличие")
PRICE_ALIASES = ("price", "Ціна", "purchase", "base_price", "cost", "ціна")
EXTERNAL_ID_ALIASES = ("external_id", "externalId", "sku")
MIN_STOCK_ALIASES = ("min_stock", "minStock")

MAPPING_FIELDS = ("brand", "id", "name", "stock", "price")

_OUT_OF_STOCK = re.compile(r"(чека|ожида|нет|відсут)")
_NUMBER = re.compile(r"-?\d+(?:[.,]\d+)?")


@dataclass
class FeedRow:
    brand: str
    article: str
    name: str
    stock: int
    price: Decimal
    public_prices: Optional[Dict[str, Decimal]] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip() == ""


def to_stock(value: Any) -> int:
    """Whole units >= 0; "чекаємо", "нет", "відсутній" and the like mean 0."""
    if _is_blank(value) or isinstance(value, bool):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    if isinstance(value, (int, float, Decimal)):
        return max(0, math.floor(value))
    s = str(value).lower()
    if _OUT_OF_STOCK.search(s):
        return 0
    m = _NUMBER.search(s)
    if not m:
        return 0
    return max(0, math.floor(Decimal(m.group(0).replace(",", "."))))


def to_price(value: Any) -> Decimal:
    """First number in the cell, comma decimal allowed, nearest cent."""
    if _is_blank(value):
        return Decimal("0.00")
    return round2(to_decimal(value) or 0)


def tier_prices(row: Mapping[str, Any]) -> Optional[Dict[str, Decimal]]:
    """Public prices supplied directly; only when all five tiers are present and positive."""
    prices: Dict[str, Decimal] = {}
    for tier in PRICE_TIERS:
        value = row.get(tier)
        if _is_blank(value):
            return None
        price = to_price(value)
        if price <= 0:
            return None
        prices[tier] = price
    return prices


def _clean_text(value: Any) -> str:
    return "" if _is_blank(value) else str(value).strip()


def extract_feed_row(row: Mapping[str, Any]) -> FeedRow:
    """Pull logical fields out of one raw row. Does not validate presence."""
    extra: Dict[str, Any] = {}
    external_id = pick(row, EXTERNAL_ID_ALIASES)
    if not _is_blank(external_id):
        extra["external_id"] = str(external_id).strip()
    min_stock = pick(row, MIN_STOCK_ALIASES)
    if not _is_blank(min_stock):
        extra["min_stock"] = to_stock(min_stock)

    return FeedRow(
        brand=_clean_text(pick(row, BRAND_ALIASES)),
        article=_clean_text(pick(row, ARTICLE_ALIASES)),
        name=_clean_text(pick(row, NAME_ALIASES)),
        stock=to_stock(pick(row, STOCK_ALIASES)),
        price=to_price(pick(row, PRICE_ALIASES)),
        public_prices=tier_prices(row),
        extra=extra,
    )


# ---------------------------------------------------------------------------
# Manual upload: raw table + column mapping
# ---------------------------------------------------------------------------

def _clean_headers_inplace(df: pd.DataFrame) -> None:
    df.columns = [str(c).replace("\u00a0", " ").strip() for c in df.columns]


def rows_from_table(table: Sequence[Sequence[Any]], mapping: Mapping[str, str]) -> List[Dict[str, Any]]:
    """
    Turn ``[header, *rows]`` into feed row dicts.

    ``mapping`` maps logical fields (brand, id, name, stock, price) to header
    names; unmapped fields keep their default column name. Tier columns with
    the canonical tier names are carried over as-is.
    """
    if not table:
        return []
    header, body = list(table[0]), [list(r) for r in table[1:]]
    if not header:
        raise InvalidArgument("Table header row is empty")

    width = len(header)
    body = [(r + [None] * width)[:width] for r in body]
    df = pd.DataFrame(body, columns=header, dtype=object)
    _clean_headers_inplace(df)

    columns: Dict[str, str] = {}
    for logical in MAPPING_FIELDS:
        source = str(mapping.get(logical) or logical).strip()
        if source in df.columns:
            columns[source] = logical
    for tier in PRICE_TIERS:
        if tier in df.columns and tier not in columns:
            columns[tier] = tier

    if not columns:
        raise InvalidArgument("Column mapping matches no table columns")

    out = df[list(columns)].rename(columns=columns)
    out = out.astype(object).where(out.notna(), None)
    return out.to_dict(orient="records")
