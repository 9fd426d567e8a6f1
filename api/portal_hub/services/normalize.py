# portal_hub/services/normalize.py
"""
Key normalization for brands, articles and suppliers, plus money helpers.

Every component builds product keys through these functions so that two
feed rows differing only in case, whitespace or a declared brand synonym
land on the same canonical product.
"""
from __future__ import annotations
import re
from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP
from typing import Any, Mapping, Optional

CENT = Decimal("0.01")

_WS_RUN = re.compile(r"\s+")
_BRAND_KEY_WS = re.compile(r"[\s\u00a0\u202f\ufeff]+")
_ARTICLE_DROP = re.compile(r"[^\w.-]", re.ASCII)
_DOC_ID_DROP = re.compile(r"[^\w.-]")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def clean_str(value: Any, max_len: int = 500) -> str:
    s = "" if value is None else str(value).strip()
    return s[:max_len]


def normalize_article(raw: Any) -> str:
    """Uppercase, no whitespace, only ``[A-Za-z0-9_.-]``."""
    s = clean_str(raw, 200).upper()
    s = _WS_RUN.sub("", s)
    return _ARTICLE_DROP.sub("", s)


def normalize_brand_key(raw: Any) -> str:
    """Lookup key for a brand: unicode spaces folded, trimmed, lowercase."""
    if raw is None:
        return ""
    return _BRAND_KEY_WS.sub(" ", str(raw)).strip().lower()


def clean_brand(raw: Any) -> str:
    return _WS_RUN.sub(" ", clean_str(raw, 120)).strip()


def normalize_brand(raw: Any, synonyms: Mapping[str, str]) -> str:
    """Display brand: cleaned input, or its canonical name from the synonym table."""
    display = clean_brand(raw)
    if not display:
        return display
    return synonyms.get(normalize_brand_key(display)) or display


def normalize_supplier(raw: Any) -> str:
    return _WS_RUN.sub(" ", clean_str(raw, 120)).strip()


def product_key(brand: str, article: str) -> str:
    """Canonical ``brand-article`` key; brand compared case-insensitively."""
    return f"{normalize_brand_key(brand)}-{normalize_article(article)}"


def product_doc_id(key: str) -> str:
    return _DOC_ID_DROP.sub("_", _WS_RUN.sub("-", key))


# ---------------------------------------------------------------------------
# Numbers & money
# ---------------------------------------------------------------------------

def to_decimal(value: Any) -> Optional[Decimal]:
    """First number found in ``value`` (comma decimal separator allowed)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        try:
            d = Decimal(str(value))
        except InvalidOperation:
            return None
        return d if d.is_finite() else None
    s = _WS_RUN.sub("", str(value)).replace(",", ".")
    m = _NUMBER.search(s)
    return Decimal(m.group(0)) if m else None


def round2(value: Any) -> Decimal:
    """Nearest cent, halves away from zero."""
    d = to_decimal(value) or Decimal("0")
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def ceil2(value: Any) -> Decimal:
    """Next cent up; the client never gets under-charged by rounding."""
    d = to_decimal(value) or Decimal("0")
    return d.quantize(CENT, rounding=ROUND_CEILING)


def percent_factor(pct: Any) -> Decimal:
    d = to_decimal(pct)
    if d is None:
        return Decimal("1")
    return Decimal("1") + d / Decimal("100")
