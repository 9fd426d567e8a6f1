from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any, List, Literal, Iterator
from pydantic import BaseModel, Field, ConfigDict, AliasChoices


class PriceTier(str, Enum):
    retail = "роздріб"
    price1 = "ціна 1"
    price2 = "ціна 2"
    price3 = "ціна 3"
    wholesale = "ціна опт"


PRICE_TIERS: List[str] = [t.value for t in PriceTier]
RETAIL = PriceTier.retail.value


def is_price_tier(value: Any) -> bool:
    return isinstance(value, str) and value in PRICE_TIERS


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Offer(BaseModel):
    supplier: str
    stock: int = Field(default=0, ge=0)
    public_prices: Dict[str, Decimal] = Field(default_factory=dict)
    external_id: Optional[str] = None
    min_stock: Optional[int] = None
    updated_at: Optional[datetime] = None

    def price(self, tier: str) -> Optional[Decimal]:
        return self.public_prices.get(tier)

    def same_as(self, other: Optional["Offer"]) -> bool:
        """Equal apart from the timestamp."""
        if other is None:
            return False
        return self.model_dump(exclude={"updated_at"}) == other.model_dump(exclude={"updated_at"})

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class OfferSet:
    """
    Offers of one product keyed by supplier.

    Stored as an ordered list; replacing a supplier's offer keeps its position,
    new suppliers are appended.
    """

    def __init__(self, offers: Optional[List[Offer]] = None):
        self._by_supplier: Dict[str, Offer] = {}
        for offer in offers or []:
            self.put(offer)

    @classmethod
    def from_storage(cls, raw: Optional[List[Dict[str, Any]]]) -> "OfferSet":
        return cls([Offer.model_validate(item) for item in (raw or []) if isinstance(item, dict)])

    def to_storage(self) -> List[Dict[str, Any]]:
        return [offer.to_storage() for offer in self._by_supplier.values()]

    def put(self, offer: Offer) -> Optional[Offer]:
        previous = self._by_supplier.get(offer.supplier)
        self._by_supplier[offer.supplier] = offer
        return previous

    def remove(self, supplier: str) -> Optional[Offer]:
        return self._by_supplier.pop(supplier, None)

    def get(self, supplier: str) -> Optional[Offer]:
        return self._by_supplier.get(supplier)

    def suppliers(self) -> List[str]:
        return list(self._by_supplier)

    def __contains__(self, supplier: object) -> bool:
        return supplier in self._by_supplier

    def __len__(self) -> int:
        return len(self._by_supplier)

    def __iter__(self) -> Iterator[Offer]:
        return iter(list(self._by_supplier.values()))


class ProductRef(BaseModel):
    brand: str
    article: str


class MasterData(BaseModel):
    id: str
    brand: str
    correct_name: Optional[str] = None
    categories: Optional[List[Any]] = None
    pack: Optional[Any] = None
    tolerances: Optional[Any] = None
    synonyms: List[str] = Field(default_factory=list)


class CanonicalArticle(BaseModel):
    canonical_article: str
    found_via_synonym: bool = False


class ReconcileFailure(BaseModel):
    key: str
    operation: Literal["upsert", "remove", "cleanup"]
    error: str


class ReconcileResult(BaseModel):
    supplier: str
    total: int = 0
    ok: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    removed: int = 0
    stale_removed: int = 0
    failures: List[ReconcileFailure] = Field(default_factory=list)


class FeedUploadIn(BaseModel):
    supplier_name: Optional[str] = None
    rows: Optional[List[Dict[str, Any]]] = None
    # manual upload: first row is the header, mapping is logical field -> column name
    table: Optional[List[List[Any]]] = None
    mapping: Optional[Dict[str, str]] = None


class ProductSearchOut(BaseModel):
    ok: bool
    products: List[Dict[str, Any]] = Field(default_factory=list)
    found_via_synonym: bool = False
    searched_article: str = ""
    canonical_article: str = ""
    count: int = 0
    error: Optional[str] = None


class BrandGroup(BaseModel):
    key: str
    canonical: str
    variants: List[str]
    count: int


class BrandDuplicatesOut(BaseModel):
    ok: bool = True
    duplicates: List[BrandGroup] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Client pricing
# ---------------------------------------------------------------------------

class ClientPricingRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["product", "brand", "supplier"]
    price_group: str = Field(alias="priceGroup")
    adjustment: Decimal = Decimal("0")
    brand: Optional[str] = None
    id: Optional[str] = None
    supplier: Optional[str] = None


class ClientPricingRules(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    global_adjustment: Decimal = Field(default=Decimal("0"), alias="globalAdjustment")
    rules: List[ClientPricingRule] = Field(default_factory=list)


class ResolvedPrice(BaseModel):
    price: Decimal
    price_group: str
    default_price_group: str
    has_adjustment: bool = False


class ResolvePriceIn(BaseModel):
    client_id: Optional[str] = None
    brand: str
    article: str
    supplier: str
    price_tier: Optional[str] = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class CartItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doc_id: Optional[str] = Field(default=None, max_length=255, alias="docId")
    supplier: str = Field(default="", max_length=120)
    brand: Optional[str] = Field(default=None, max_length=120)
    id: Optional[str] = Field(default=None, max_length=200)
    qty: int = Field(default=1, validation_alias=AliasChoices("qty", "quantity"))


class PlaceOrderIn(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list)
    client_request_id: Optional[str] = Field(default=None, max_length=128, alias="clientRequestId")
    price_category: Optional[str] = Field(default=None, alias="priceCategory")
    client_name: str = Field(default="", max_length=200, alias="clientName")
    client_phone: str = Field(default="", max_length=50, alias="clientPhone")
    client_email: str = Field(default="", max_length=200, alias="clientEmail")
    note: str = Field(default="", max_length=2000)

    model_config = ConfigDict(populate_by_name=True)


class OrderLine(BaseModel):
    id: str
    doc_id: str
    name: str = ""
    brand: str
    supplier: str
    price: Decimal
    quantity: int
    line_status: str = "Очікує підтвердження"
    quantity_confirmed: int
    quantity_cancelled: int = 0
    price_group: str
    default_price_group: str
    has_adjustment: bool = False


class PlaceOrderOut(BaseModel):
    order_id: str
    order_number: Optional[int] = None
    total: Optional[Decimal] = None
    reused: bool = False
