"""
Test configuration and fixtures for the Portal Hub test suite.

Provides:
- SQLite (aiosqlite) test database in a temp file, isolated per test
- Master data cache, reconciliation engine, pricing and order services
- Factory helpers for seeding products, rules and clients
"""
import os
import tempfile

# Must be set before portal_hub.settings is imported anywhere
os.environ.setdefault("PORTAL_DATA_ROOT", tempfile.mkdtemp(prefix="portal-hub-tests-"))
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")

from decimal import Decimal
from typing import Dict, Optional

import pytest

from portal_hub.database import make_engine, make_session_factory, create_schema
from portal_hub.db_models import Product, SupplierProductIndex
from portal_hub.models import Offer, PRICE_TIERS
from portal_hub.services.master_data import MasterDataCache, db_loader
from portal_hub.services.normalize import product_doc_id, product_key
from portal_hub.services.pricing import PricingService
from portal_hub.services.orders import OrderService
from portal_hub.services.reconciliation import ReconciliationEngine

ADMIN_TOKEN = os.environ["ADMIN_TOKEN"]


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'portal.db'}"


@pytest.fixture
async def engine(db_url):
    eng = make_engine(db_url)
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def factory(engine):
    return make_session_factory(engine)


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def master_data(factory) -> MasterDataCache:
    return MasterDataCache(db_loader(factory))


@pytest.fixture
def reconciler(factory, master_data) -> ReconciliationEngine:
    # SQLite serializes writers; one operation in flight keeps tests deterministic
    return ReconciliationEngine(factory, master_data, concurrency=1)


@pytest.fixture
def pricing(factory) -> PricingService:
    return PricingService(factory)


@pytest.fixture
def orders(factory, master_data, pricing) -> OrderService:
    return OrderService(factory, master_data, pricing)


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------

async def seed(factory, *objects) -> None:
    async with factory() as db:
        db.add_all(objects)
        await db.commit()


def make_prices(base: str = "100", overrides: Optional[Dict[str, str]] = None) -> Dict[str, Decimal]:
    prices = {tier: Decimal(base) for tier in PRICE_TIERS}
    for tier, value in (overrides or {}).items():
        prices[tier] = Decimal(value)
    return prices


def make_offer(supplier: str = "S1", stock: int = 5, prices: Optional[Dict[str, Decimal]] = None) -> Offer:
    return Offer(supplier=supplier, stock=stock, public_prices=prices if prices is not None else make_prices())


async def seed_product(factory, brand: str, article: str, *offers: Offer, name: str = "") -> str:
    key = product_key(brand, article)
    doc_id = product_doc_id(key)
    objects = [Product(
        doc_id=doc_id,
        product_key=key,
        brand=brand,
        article=article,
        name=name,
        synonyms=[],
        offers=[o.to_storage() for o in offers],
        needs_review=True,
    )]
    for offer in offers:
        objects.append(SupplierProductIndex(
            id=SupplierProductIndex.make_id(offer.supplier, key),
            supplier=offer.supplier,
            product_key=key,
            product_doc_id=doc_id,
        ))
    await seed(factory, *objects)
    return doc_id
