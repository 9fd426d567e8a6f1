import pytest
from fastapi.testclient import TestClient

from portal_hub import database
from portal_hub.main import app
from portal_hub.settings import settings

from conftest import ADMIN_TOKEN

ADMIN = {"X-Admin-Token": ADMIN_TOKEN}
FEED = {"rows": [
    {"brand": "Bosch", "article": "abc-1", "name": "Drill", "stock": 5, "price": 100},
    {"brand": "Makita", "id": "m-2", "stock": 0, "price": 50},
]}


@pytest.fixture
def client(monkeypatch, db_url):
    monkeypatch.setattr(settings, "DATABASE_URL", db_url)
    monkeypatch.setattr(settings, "FEED_CONCURRENCY", 1)
    assert database._engine is None
    with TestClient(app) as c:
        yield c


def test_health_reports_database(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["database"]["status"] == "healthy"


def test_feed_upload_requires_admin_token(client):
    resp = client.post("/catalog/suppliers/S1/feed", json=FEED)
    assert resp.status_code == 403
    assert resp.json()["error"] == "permission-denied"

    resp = client.post("/catalog/suppliers/S1/feed", json=FEED, headers={"X-Admin-Token": "wrong"})
    assert resp.status_code == 403


def test_feed_upload_then_search(client):
    resp = client.post("/catalog/suppliers/S1/feed", json=FEED, headers=ADMIN)
    assert resp.status_code == 200
    result = resp.json()
    assert result["supplier"] == "S1"
    assert result["created"] == 1
    assert result["removed"] == 0
    assert result["total"] == 2

    found = client.get("/catalog/search", params={"article": "ABC-1"}).json()
    assert found["ok"] is True
    assert found["count"] == 1
    product = found["products"][0]
    assert product["docId"] == "bosch-ABC-1"
    assert "purchase_by_supplier" not in product


def test_manual_table_upload(client):
    payload = {
        "table": [["Бренд", "Артикул", "Залишок", "Ціна"], ["Bosch", "abc-1", "3", "10"]],
        "mapping": {"brand": "Бренд", "id": "Артикул", "stock": "Залишок", "price": "Ціна"},
    }
    resp = client.post("/catalog/suppliers/S1/feed", json=payload, headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["created"] == 1


def test_feed_without_rows_is_invalid(client):
    resp = client.post("/catalog/suppliers/S1/feed", json={}, headers=ADMIN)
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid-argument"


def test_search_without_article(client):
    body = client.get("/catalog/search").json()
    assert body["ok"] is False
    assert body["error"]


def test_master_data_cache_clear(client):
    assert client.post("/catalog/master-data/cache/clear").status_code == 403
    resp = client.post("/catalog/master-data/cache/clear", headers=ADMIN)
    assert resp.json()["success"] is True


def test_client_rules_roundtrip_and_resolve(client):
    client.post("/catalog/suppliers/S1/feed", json=FEED, headers=ADMIN)
    rules = {
        "globalAdjustment": 0,
        "rules": [{"type": "brand", "brand": "Bosch", "priceGroup": "ціна 1", "adjustment": -10}],
    }

    assert client.put("/pricing/clients/c1/rules", json=rules).status_code == 403
    saved = client.put("/pricing/clients/c1/rules", json=rules, headers=ADMIN).json()
    assert saved["success"] is True

    stored = client.get("/pricing/clients/c1/rules").json()
    assert stored["rules"][0]["priceGroup"] == "ціна 1"

    resolved = client.post("/pricing/resolve", json={
        "client_id": "c1", "brand": "bosch", "article": "ABC-1", "supplier": "S1",
    }).json()
    assert resolved["price"] == "90.00"
    assert resolved["has_adjustment"] is True


def test_resolve_unknown_product_is_not_found(client):
    resp = client.post("/pricing/resolve", json={"brand": "Nope", "article": "X", "supplier": "S1"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "not-found"


def test_place_order_with_client_header(client):
    client.post("/catalog/suppliers/S1/feed", json=FEED, headers=ADMIN)
    order = {
        "clientRequestId": "req-1",
        "items": [{"docId": "bosch-ABC-1", "supplier": "S1", "qty": 2}],
    }

    assert client.post("/orders", json=order).status_code == 400

    first = client.post("/orders", json=order, headers={"X-Client-Id": "c1"}).json()
    again = client.post("/orders", json=order, headers={"X-Client-Id": "c1"}).json()

    assert first["order_number"] == 1
    assert first["total"] == "200.00"
    assert again["reused"] is True
    assert again["order_id"] == first["order_id"]


def test_brand_maintenance_is_admin_only(client):
    assert client.get("/catalog/brands/duplicates").status_code == 403
    assert client.post("/catalog/brands/rebuild").status_code == 403

    client.post("/catalog/suppliers/S1/feed", json={"rows": [
        {"brand": "Bosch", "article": "a-1", "stock": 1, "price": 10},
        {"brand": "BOSCH", "article": "a-2", "stock": 1, "price": 10},
    ]}, headers=ADMIN)

    dupes = client.get("/catalog/brands/duplicates", headers=ADMIN).json()
    assert dupes["ok"] is True
    assert dupes["duplicates"][0]["variants"] == ["BOSCH", "Bosch"]

    rebuilt = client.post("/catalog/brands/rebuild", headers=ADMIN).json()
    assert rebuilt == {"success": True, "written": 1}
