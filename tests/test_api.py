"""Tests for the report API."""

import pytest
from fastapi.testclient import TestClient

from fin_recon import api
from fin_recon.config import Settings

STORED = {"TIN": "12345678", "Y": 2024, "M": 12, "FC": "S0110014", "R1195G4": 3000, "R1695G4": 2000}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(api, "get_config", lambda: Settings(api_key="secret"))
    return TestClient(api.app)


@pytest.fixture
def store(monkeypatch):
    documents = {("rep_2024_12", "12345678"): STORED}
    calls = []

    def fake_get_report(period, company):
        calls.append((period, company))
        return documents.get((period, company))

    monkeypatch.setattr(api, "get_report", fake_get_report)
    return calls


def test_ping(client):
    response = client.get("/api/ping")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert "time" in body


def test_missing_key_is_unauthorized(client, store):
    response = client.get("/api/report/rep_2024_12/12345678")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert store == []


def test_wrong_key_is_unauthorized(client, store):
    response = client.get("/api/report/rep_2024_12/12345678", headers={"x-api-key": "nope"})
    assert response.status_code == 401


def test_unconfigured_key_rejects_everything(monkeypatch, store):
    monkeypatch.setattr(api, "get_config", lambda: Settings(api_key=""))
    response = TestClient(api.app).get("/api/report/rep_2024_12/12345678", headers={"x-api-key": ""})
    assert response.status_code == 401


def test_report_found(client, store):
    response = client.get("/api/report/rep_2024_12/12345678", headers={"x-api-key": "secret"})
    assert response.status_code == 200
    assert response.json() == {"data": STORED}
    assert store == [("rep_2024_12", "12345678")]


def test_report_not_found(client, store):
    response = client.get("/api/report/rep_2024_12/00000000", headers={"x-api-key": "secret"})
    assert response.status_code == 404
    assert response.json() == {"error": "Not found"}


def test_store_failure_is_server_error(client, monkeypatch):
    def broken(period, company):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(api, "get_report", broken)
    response = client.get("/api/report/rep_2024_12/12345678", headers={"x-api-key": "secret"})
    assert response.status_code == 500
    assert response.json() == {"error": "Server error"}


def test_formatted_report(client, store):
    response = client.get(
        "/api/report/rep_2024_12/12345678",
        params={"formatted": "true"},
        headers={"x-api-key": "secret"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["Report type"] == "Short"
    assert data["Current ratio"] == "1.50"


def test_non_ascii_key_is_unauthorized(client, store):
    response = client.get(
        "/api/report/rep_2024_12/12345678",
        headers={"x-api-key": "caf\xe9".encode("latin-1")},
    )
    assert response.status_code == 401
    assert store == []


def test_non_ascii_configured_key(monkeypatch, store):
    monkeypatch.setattr(api, "get_config", lambda: Settings(api_key="caf\xe9"))
    response = TestClient(api.app).get(
        "/api/report/rep_2024_12/12345678",
        headers={"x-api-key": "caf\xe9".encode("latin-1")},
    )
    assert response.status_code == 200
