# portal_hub/db_models.py
"""
SQLAlchemy ORM Models for Portal Hub.

Catalog (products, costs, supplier index), reference data (master data,
brand synonyms, pricing rules, suppliers, clients) and orders.
"""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional
import enum

from sqlalchemy import (
    String, Integer, BigInteger, Boolean, Text, DateTime,
    Numeric, Index, UniqueConstraint, JSON, func
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from portal_hub.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Order numbers outgrow 32 bits long before BigInteger matters, but SQLite
# only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

# ============================================================================
# ENUMS
# ============================================================================

class OrderStatus(str, enum.Enum):
    new = "Нове"
    partial = "Частково"
    completed = "Виконано"
    cancelled = "Скасовано"


ORDER_SEQUENCE = "orderSeq"


# ============================================================================
# MIXIN for updated_at
# ============================================================================

class TimestampMixin:
    """Mixin for created_at and updated_at columns."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


# ============================================================================
# 1. PRODUCTS (canonical, one offer per supplier)
# ============================================================================

class Product(TimestampMixin, Base):
    __tablename__ = "products"

    doc_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    product_key: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[str] = mapped_column(String(120), nullable=False)
    article: Mapped[str] = mapped_column(String(200), nullable=False)
    name: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    categories: Mapped[Optional[list]] = mapped_column(JSONType)
    pack: Mapped[Optional[dict]] = mapped_column(JSONType)
    tolerances: Mapped[Optional[dict]] = mapped_column(JSONType)
    synonyms: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    offers: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_products_article", "article"),
        Index("idx_products_key", "product_key"),
    )


# ============================================================================
# 2. PRODUCT COSTS (private, parallel to products)
# ============================================================================

class ProductCost(TimestampMixin, Base):
    __tablename__ = "product_costs"

    doc_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    purchase_by_supplier: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)


# ============================================================================
# 3. SUPPLIER PRODUCTS (supplier -> product reverse index)
# ============================================================================

class SupplierProductIndex(Base):
    __tablename__ = "supplier_products"

    id: Mapped[str] = mapped_column(String(400), primary_key=True)
    supplier: Mapped[str] = mapped_column(String(120), nullable=False)
    product_key: Mapped[str] = mapped_column(String(255), nullable=False)
    product_doc_id: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_supplier_products_supplier", "supplier"),
    )

    @staticmethod
    def make_id(supplier: str, product_key: str) -> str:
        return f"{supplier}-{product_key}"


# ============================================================================
# 4. PRODUCT MASTER DATA
# ============================================================================

class MasterDataEntry(TimestampMixin, Base):
    __tablename__ = "product_master_data"

    pk: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(200), nullable=False)
    brand: Mapped[str] = mapped_column(String(120), nullable=False)
    correct_name: Mapped[Optional[str]] = mapped_column(String(500))
    categories: Mapped[Optional[list]] = mapped_column(JSONType)
    pack: Mapped[Optional[dict]] = mapped_column(JSONType)
    tolerances: Mapped[Optional[dict]] = mapped_column(JSONType)
    synonyms: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    __table_args__ = (
        UniqueConstraint("brand", "id", name="uq_master_data_brand_id"),
    )


# ============================================================================
# 5. BRAND SYNONYMS
# ============================================================================

class BrandSynonym(Base):
    __tablename__ = "brand_synonyms"

    pk: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    old: Mapped[str] = mapped_column(String(120), nullable=False)
    canonical: Mapped[str] = mapped_column(String(120), nullable=False)


class BrandVariants(Base):
    """Spelling variants of one brand, grouped by lowercase key. Rebuilt from products."""
    __tablename__ = "brands"

    key: Mapped[str] = mapped_column(String(150), primary_key=True)
    canonical: Mapped[str] = mapped_column(String(120), nullable=False)
    variants: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False
    )


# ============================================================================
# 6. SUPPLIER PRICING RULES (markups from purchase cost)
# ============================================================================

class PricingRuleRecord(TimestampMixin, Base):
    __tablename__ = "pricing_rules"

    id: Mapped[str] = mapped_column(String(120), primary_key=True)
    supplier_id: Mapped[Optional[str]] = mapped_column(String(120))
    supplier: Mapped[Optional[str]] = mapped_column(String(120))
    code: Mapped[Optional[str]] = mapped_column(String(120))
    name: Mapped[Optional[str]] = mapped_column(String(255))
    data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    __table_args__ = (
        Index("idx_pricing_rules_supplier_id", "supplier_id"),
    )


# ============================================================================
# 7. SUPPLIERS
# ============================================================================

class Supplier(TimestampMixin, Base):
    __tablename__ = "suppliers"

    id: Mapped[str] = mapped_column(String(120), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)


# ============================================================================
# 8. CLIENTS + PERSONAL PRICING RULES
# ============================================================================

class Client(TimestampMixin, Base):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price_type: Mapped[Optional[str]] = mapped_column(String(50))


class ClientPricingRulesRecord(TimestampMixin, Base):
    __tablename__ = "client_pricing_rules"

    client_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    global_adjustment: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 3))
    # legacy fields, read only for migration
    global_discount: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 3))
    global_markup: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 3))
    rules: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)


# ============================================================================
# 9. ORDERS
# ============================================================================

class Order(TimestampMixin, Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    items: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default=OrderStatus.new.value, nullable=False)
    order_number: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Indexed but NOT unique: the duplicate check is read-then-write.
    client_request_id: Mapped[Optional[str]] = mapped_column(String(128))
    client_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    client_phone: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    client_email: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    note: Mapped[str] = mapped_column(Text, default="", nullable=False)
    source: Mapped[str] = mapped_column(String(50), default="portal-v2", nullable=False)

    __table_args__ = (
        Index("idx_orders_client_request_id", "client_request_id"),
        Index("idx_orders_client", "client_id"),
    )


# ============================================================================
# 10. COUNTERS
# ============================================================================

class Counter(Base):
    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)


class OrderStatusCount(Base):
    __tablename__ = "order_status_counts"

    status: Mapped[str] = mapped_column(String(50), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False
    )
