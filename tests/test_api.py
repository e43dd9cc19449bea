"""HTTP tests for the FastAPI adapter."""

import pytest
from fastapi.testclient import TestClient

from voice_ordering.main import create_app


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


@pytest.fixture
def context_payload(context):
    return context.model_dump(mode="json")


class TestRootAndHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["health"] == "/health"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "operational"
        assert body["queue_size"] == 0

    def test_service_runs_inside_lifespan(self, service):
        with TestClient(create_app(service)):
            assert service.running
        assert not service.running


class TestVoiceEndpoints:
    def test_interpret(self, client, context_payload):
        response = client.post("/voice/interpret", json={
            "text": "Ich möchte zwei Pizza bestellen",
            "context": context_payload,
        })
        assert response.status_code == 200
        body = response.json()
        assert body["intent"]["name"] == "order"
        assert {e["type"] for e in body["entities"]} >= {"quantity", "product"}

    @pytest.mark.parametrize("path", ["/voice/interpret", "/voice/process"])
    def test_empty_text_is_rejected(self, client, path):
        response = client.post(path, json={"text": "   "})
        assert response.status_code == 422

    def test_process(self, client, callbacks, context_payload):
        response = client.post("/voice/process", json={
            "text": "Ich möchte zwei Pizza bestellen",
            "context": context_payload,
        })
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["success"] is True
        assert result["action"] == "product_added"
        assert len(callbacks.calls_to("on_product_add")) == 1

    def test_execute_error_result(self, client, context_payload):
        response = client.post("/voice/execute", json={
            "intent": {"name": "checkout"},
            "context": context_payload,
        })
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "CART_EMPTY"

    def test_checkout_then_commit(self, client, context_payload, filled_cart):
        context_payload["cart"] = filled_cart.model_dump(mode="json")
        started = client.post("/voice/execute", json={
            "intent": {"name": "checkout"},
            "context": context_payload,
        }).json()
        assert started["action"] == "checkout_started"

        committed = client.post("/voice/transactions/commit", json={
            "transaction_id": started["data"]["transaction_id"],
        }).json()
        assert committed["action"] == "order_completed"

        unknown = client.post("/voice/transactions/commit", json={"transaction_id": "tx_missing"}).json()
        assert unknown["code"] == "NO_PENDING_TRANSACTION"

    def test_feedback(self, client, context_payload):
        response = client.post("/voice/feedback", json={
            "text": "zum menü",
            "predicted_intent": "navigation",
            "expected_intent": "order",
            "context": context_payload,
        })
        assert response.status_code == 200
        assert response.json() == {"success": True, "correct": False, "rules_created": 0}

    def test_end_session(self, client, context_payload):
        client.post("/voice/interpret", json={"text": "Hilfe", "context": context_payload})

        ended = client.post("/voice/sessions/client-1/end")
        assert ended.status_code == 200
        assert ended.json()["success"] is True

        assert client.post("/voice/sessions/client-1/end").status_code == 404

    def test_metrics(self, client, context_payload):
        client.post("/voice/execute", json={"intent": {"name": "help"}, "context": context_payload})

        body = client.get("/voice/metrics").json()
        assert body["total_commands"] == 1
        assert body["action_counts"] == {"help": 1}
        assert body["adaptation_rules"] == 2
