import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from via.api.deps import http_dep, settings_dep
from via.core.config import Settings
from via.domain.services import intent_svc
from via.main import app
from via.utils.tokens import decode_token

from conftest import FakeStore, raise_connect, routed_client, text_block

HELMETS = {"products": [{
    "title": "Commuter Helmet",
    "price": {"amount": "45.00", "currencyCode": "GBP"},
    "image": {"url": "https://cdn.example.com/h.jpg"},
    "handle": "commuter-helmet",
}]}


@pytest.fixture
def registry(tmp_path):
    path = tmp_path / "stores.json"
    path.write_text(json.dumps({"stores": [
        {"id": "rapha", "name": "Rapha", "category": "cycling", "domain": "rapha.example.com",
         "mcpUrl": "https://rapha.example.com/api/mcp", "enabled": True, "weight": 120},
        {"id": "down", "name": "Down Bikes", "category": "bike",
         "mcpUrl": "https://down.example.com/api/mcp", "enabled": True},
    ]}))
    return path


@pytest.fixture
def client(registry):
    settings = Settings(_env_file=None, STORE_REGISTRY_PATH=str(registry), OPENAI_API_KEY="")
    http = routed_client({
        "rapha.example.com": FakeStore(search=text_block(HELMETS)),
        "down.example.com": raise_connect,
    })
    app.dependency_overrides[settings_dep] = lambda: settings
    app.dependency_overrides[http_dep] = lambda: http
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, text="road bike helmet", **extra):
    r = client.post("/api/demo/thread", json={"requestText": text, **extra})
    assert r.status_code == 200, r.text
    return r.json()


def test_health_reports_registry(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["checks"]["registry_stores"] == 2
    assert body["checks"]["openai_api_key_set"] is False


def test_create_thread_with_live_offer_and_debug(client):
    body = _create(client, debug=True)
    thread = decode_token(body["token"])
    assert [o.seller_id for o in thread.offers] == ["rapha"]
    assert thread.offers[0].price_text_override == "£45"
    assert thread.offers[0].product_url == "https://rapha.example.com/products/commuter-helmet"
    # first offer lands after its arrival delay, so nothing is visible yet
    assert body["offers"] == [] and body["kpis"]["offersCount"] == 0

    debug = body["debug"]
    assert debug["contacted"] == 2
    assert [r["outcome"] for r in debug["store_results"]] == ["accepted", "transport_error"]


def test_create_thread_without_debug_has_no_trace(client):
    assert _create(client)["debug"] is None


def test_create_thread_requires_text(client):
    assert client.post("/api/demo/thread", json={"requestText": "  "}).status_code == 400


def test_create_thread_survives_missing_registry(client, registry):
    registry.unlink()
    body = _create(client, debug=True)
    assert len(decode_token(body["token"]).offers) == 3
    assert "not found" in body["debug"]["fatal"]


def test_full_buyer_flow(client):
    body = _create(client, text="waterproof hiking jacket")
    token, tid = body["token"], body["threadId"]
    offer_id = decode_token(token).offers[1].id

    r = client.post(f"/api/demo/thread/{tid}/select-offer", json={"offerId": offer_id}, headers={"x-demo-token": token})
    assert r.json()["status"] == "OFFER_SELECTED"

    r = client.post(f"/api/demo/thread/{tid}/message", json={"text": "next day?"}, headers={"x-demo-token": r.json()["token"]})
    assert r.json()["status"] == "AGREED"

    r = client.post(f"/api/demo/thread/{tid}/confirm", headers={"x-demo-token": r.json()["token"]})
    assert r.json()["status"] == "COMPLETED"
    assert r.json()["kpis"]["confirmed"] is True


def test_token_errors(client):
    body = _create(client)
    tid = body["threadId"]
    assert client.get(f"/api/demo/thread/{tid}").status_code == 400
    assert client.get(f"/api/demo/thread/{tid}", headers={"x-demo-token": "junk"}).status_code == 401
    assert client.get("/api/demo/thread/t_other", headers={"x-demo-token": body["token"]}).status_code == 404
    assert client.get(f"/api/demo/thread/{tid}", headers={"x-demo-token": body["token"]}).status_code == 200


def test_clarify_without_key(client):
    r = client.post("/api/llm/clarify", json={"userText": "trainers", "history": []})
    assert r.status_code == 500


def test_clarify_with_key(client):
    app.dependency_overrides[settings_dep] = lambda: Settings(_env_file=None, OPENAI_API_KEY="sk-test")
    reply = json.dumps({"category": "SNEAKERS", "core_item": "white trainers", "missing_fields": ["size"]})
    with patch.object(intent_svc, "_call_llm", AsyncMock(return_value=reply)):
        r = client.post("/api/llm/clarify", json={"userText": "trainers", "history": []})
    assert r.status_code == 200
    assert r.json()["next_action"] == "ASK_ONE_QUESTION"
    assert r.json()["intent_plan"]["category"] == "SNEAKERS"

    with patch.object(intent_svc, "_call_llm", AsyncMock(side_effect=RuntimeError("down"))):
        r = client.post("/api/llm/clarify", json={"userText": "trainers", "history": []})
    assert r.status_code == 502


def test_mcp_health_checks_enabled_stores(client):
    body = client.get("/api/demo/mcp/health").json()
    by_id = {r["id"]: r for r in body["results"]}
    assert by_id["rapha"]["has_search_shop_catalog"] and by_id["rapha"]["search_ok"]
    assert by_id["rapha"]["sample"]["title"] == "Commuter Helmet"
    assert not by_id["down"]["tools_ok"] and not by_id["down"]["search_ok"]


def test_mcp_health_reports_registry_failure(client, registry):
    registry.unlink()
    r = client.get("/api/demo/mcp/health")
    assert r.status_code == 500
    assert r.json()["ok"] is False


def test_create_thread_category_follows_intent_plan(client):
    """The plan's category picks both the store pool and the thread's own category."""
    plan = {"category": "CYCLING", "core_item": "helmet", "required_terms": ["helmet"]}
    body = _create(client, text="something nice", intentPlan=plan, debug=True)
    thread = decode_token(body["token"])
    assert thread.category == "cycling"
    assert body["kpis"]["category"] == "Cycling"
    assert [o.seller_id for o in thread.offers] == ["rapha"]
    assert body["debug"]["category"] == "cycling"
