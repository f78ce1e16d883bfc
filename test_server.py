"""Tests for the HTTP API.

Run:
    pytest test_server.py -v
"""

import pytest
from fastapi.testclient import TestClient

from biztone.llm.mock_backend import MockToneBackend
from server import create_app


@pytest.fixture
def client(make_engine):
    with TestClient(create_app(make_engine(mode="convert"))) as test_client:
        yield test_client


def result(response):
    body = response.json()
    assert body["ok"] is True
    return body["result"]


def error_code(response):
    body = response.json()
    assert body["ok"] is False
    return body["error"]["code"]


class TestGuardEndpoints:
    def test_health(self, client):
        data = result(client.get("/health"))
        assert data["status"] == "ok"
        assert data["compilers"][0]["compiled"] is True

    def test_assess_stages(self, client):
        quick = result(client.post("/assess", json={"text": "젠장", "stage": "quick"}))
        enhanced = result(client.post("/assess", json={"text": "젠장"}))
        assert quick["score"] == 2
        assert enhanced["score"] == 1

        response = client.post("/assess", json={"text": "젠장", "stage": "slow"})
        assert response.status_code == 400

    def test_evaluate(self, client):
        data = result(client.post("/guard/evaluate", json={"context_id": "tab-1", "text": "씨발 이자식아"}))
        assert data["action"] == "replace"
        assert data["convertedText"] == "확인 부탁드립니다."
        assert data["assessment"]["riskLevel"] == "HIGH"

    def test_evaluate_uses_url_domain(self, client):
        client.put("/domains/mail.example.com", json={"enabled": False})
        data = result(client.post("/guard/evaluate", json={
            "text": "씨발 이자식아",
            "url": "https://mail.example.com/compose",
        }))
        assert data["action"] == "send"
        assert data["stage"] == "domain"

    def test_acknowledge_and_cancel(self, client):
        entry = result(client.post("/guard/acknowledge", json={"text": "씨발 이자식아"}))
        assert entry["mode"] == "warningAcknowledged"
        data = result(client.post("/guard/evaluate", json={"text": "씨발 이자식아"}))
        assert data["stage"] == "cache"

        assert result(client.post("/guard/cancel", json={"context_id": "tab-9"})) == {"cancelled": False}

    def test_convert(self, client):
        assert result(client.post("/convert", json={"text": "빨리 해"})) == {"convertedText": "확인 부탁드립니다."}
        assert client.post("/convert", json={"text": "  "}).status_code == 400

    def test_convert_failure(self, make_engine):
        engine = make_engine(tone_backend=MockToneBackend(fail_convert=True))
        with TestClient(create_app(engine)) as failing:
            response = failing.post("/convert", json={"text": "빨리 해"})
        assert response.status_code == 502
        assert error_code(response) == "REMOTE_SERVICE_ERROR"

    def test_metrics(self, client):
        client.post("/guard/evaluate", json={"text": "안녕하세요"})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "biztone_evaluations_total" in response.text


class TestSettingsEndpoints:
    def test_guard_mode(self, client):
        assert result(client.get("/settings/guard-mode")) == {"mode": "convert"}
        assert result(client.put("/settings/guard-mode", json={"mode": "warn"})) == {"mode": "warn"}

        response = client.put("/settings/guard-mode", json={"mode": "shout"})
        assert response.status_code == 400
        assert error_code(response) == "VALIDATION_ERROR"

    def test_list_crud(self, client):
        item = result(client.post("/lists/blacklist/items", json={"text": "보고서", "weight": 3}))
        assert item["weight"] == 3

        duplicate = client.post("/lists/blacklist/items", json={"text": "보고서", "weight": 2})
        assert duplicate.status_code == 409

        invalid = client.post("/lists/blacklist/items", json={"text": "보고서 늦음"})
        assert invalid.status_code == 400

        assert [i["id"] for i in result(client.get("/lists/blacklist"))] == [item["id"]]

        removed = result(client.delete(f"/lists/blacklist/items/{item['id']}"))
        assert removed == {"removed": True, "reason": None}
        missing = result(client.delete(f"/lists/blacklist/items/{item['id']}"))
        assert missing == {"removed": False, "reason": "not found"}

    def test_list_replace_export_import(self, client):
        items = result(client.put("/lists/whitelist", json={"items": [{"text": "개발자"}, {"text": "열정"}]}))
        assert len(items) == 2

        document = result(client.get("/lists/whitelist/export"))
        assert document["type"] == "BIZTONE_WHITELIST"

        client.put("/lists/whitelist", json={"items": []})
        assert result(client.post("/lists/whitelist/import", json=document)) == {"imported": 2}
        assert len(result(client.get("/lists/whitelist"))) == 2

        wrong = client.post("/lists/blacklist/import", json=document)
        assert wrong.status_code == 400

    def test_unknown_list_kind(self, client):
        assert client.get("/lists/greylist").status_code == 400

    def test_domain_rules(self, client):
        assert result(client.post("/domains/chat.example.com/toggle")) == {"enabled": False}
        assert result(client.post("/domains/chat.example.com/toggle")) == {"enabled": True}

        status = result(client.post("/domains/chat.example.com/pause", json={"minutes": 10}))
        assert status["paused"] is True
        assert status["pauseRemaining"] == 10

        status = result(client.post("/domains/chat.example.com/resume"))
        assert status["paused"] is False

        assert "chat.example.com" in result(client.get("/domains"))
        assert result(client.delete("/domains/chat.example.com")) == {"removed": True}
        assert result(client.get("/domains/chat.example.com"))["rule"] is None

    def test_invalid_pause(self, client):
        response = client.post("/domains/chat.example.com/pause", json={"minutes": 0})
        assert response.status_code == 400
