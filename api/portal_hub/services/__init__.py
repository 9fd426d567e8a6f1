# portal_hub/services/__init__.py
"""
Business logic services for Portal Hub.
"""
from portal_hub.services.master_data import MasterDataCache, load_master_data_from_db, db_loader
from portal_hub.services.pricing_rules import PricingRulesCache, TierPercentages, parse_rule_object
from portal_hub.services.reconciliation import ReconciliationEngine
from portal_hub.services.pricing import PricingService, resolve_unit_price
from portal_hub.services.orders import OrderService
from portal_hub.services.search import search_products_by_article
from portal_hub.services.brands import find_brand_duplicates, rebuild_brands_cache

__all__ = [
    "MasterDataCache",
    "load_master_data_from_db",
    "db_loader",
    "PricingRulesCache",
    "TierPercentages",
    "parse_rule_object",
    "ReconciliationEngine",
    "PricingService",
    "resolve_unit_price",
    "OrderService",
    "search_products_by_article",
    "find_brand_duplicates",
    "rebuild_brands_cache",
]
