from __future__ import annotations

import json
import os

import pytest
from fastapi.testclient import TestClient

from gatekeeper.core.runtime import GatekeeperRuntime
from gatekeeper.web.api import create_app, hash_api_key

from .helpers.fakes import DummyLogger


API_KEY = "test-key-123"


@pytest.fixture
def client(tmp_path, clock):
    os.makedirs(tmp_path / "config")
    with open(tmp_path / "config" / "gatekeeper.json", "w", encoding="utf-8") as f:
        json.dump({"web": {"api_key_hashes": [hash_api_key(API_KEY)]}}, f)
    rt = GatekeeperRuntime(str(tmp_path), logger=DummyLogger(), now=clock.time)
    rt.start()
    c = TestClient(create_app(rt, logger=DummyLogger()))
    c.headers.update({"X-API-Key": API_KEY})
    yield c
    rt.shutdown()


def test_health_needs_no_key(client):
    r = client.get("/health", headers={"X-API-Key": ""})
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_missing_or_wrong_key_is_401(client):
    r = client.get("/v1/whitelist", headers={"X-API-Key": ""})
    assert r.status_code == 401
    assert r.json()["code"] == "auth_required"
    r = client.get("/v1/whitelist", headers={"X-API-Key": "nope"})
    assert r.status_code == 401


def test_no_configured_hashes_rejects_everything(tmp_path):
    rt = GatekeeperRuntime(str(tmp_path), logger=DummyLogger())
    rt.start()
    try:
        c = TestClient(create_app(rt, logger=DummyLogger()))
        assert c.get("/v1/whitelist", headers={"X-API-Key": API_KEY}).status_code == 401
    finally:
        rt.shutdown()


def test_grant_list_get_and_revoke(client):
    r = client.post("/v1/whitelist", json={"name": "Steve"})
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["grant"]["name"] == "Steve"
    assert body["grant"]["permanent"] is True

    r = client.post("/v1/whitelist", json={"name": "steve"})
    assert r.json()["ok"] is False
    assert r.json()["status"] == "ALREADY_EXISTS"

    assert client.get("/v1/whitelist").json() == {"count": 1, "players": ["Steve"]}
    assert client.get("/v1/whitelist/STEVE").json()["name"] == "Steve"

    assert client.delete("/v1/whitelist/steve").status_code == 200
    r = client.delete("/v1/whitelist/steve")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"
    assert client.get("/v1/whitelist/steve").status_code == 404


def test_temporary_grant_and_extend(client, clock):
    r = client.post("/v1/whitelist", json={"name": "Alex", "duration": "1h"})
    assert r.json()["grant"]["expires_at_ms"] == clock.ms() + 3_600_000

    r = client.post("/v1/whitelist/alex/extend", json={"duration": "1d"})
    body = r.json()
    assert body["status"] == "APPLIED"
    assert body["grant"]["expires_at_ms"] == clock.ms() + 3_600_000 + 86_400_000

    clock.advance(3 * 86_400)
    r = client.post("/v1/whitelist/alex/extend", json={"duration": "1d"})
    assert r.json()["status"] == "EXPIRED"
    assert r.json()["grant"]["expired"] is True

    r = client.post("/v1/whitelist/alex/extend", json={"duration": "1d", "mode": "replace"})
    assert r.json()["grant"]["expires_at_ms"] == clock.ms() + 86_400_000

    r = client.post("/v1/whitelist/ghost/extend", json={"duration": "1d"})
    assert r.json()["status"] == "NOT_FOUND"


def test_permanent_extend_can_be_rejected(client):
    client.post("/v1/whitelist", json={"name": "Steve"})
    r = client.post("/v1/whitelist/Steve/extend", json={"duration": "1d", "permanent_policy": "reject"})
    assert r.json()["status"] == "REJECTED"
    assert r.json()["grant"]["permanent"] is True


def test_bad_requests_are_400(client):
    for payload in [{"name": "a|b"}, {"name": "Alex", "duration": "soon"}, {}]:
        r = client.post("/v1/whitelist", json=payload)
        assert r.status_code == 400
        assert r.json()["code"] == "validation_error"
    r = client.post("/v1/whitelist/Alex/extend", json={"duration": "1d", "mode": "sideways"})
    assert r.status_code == 400


def test_admission_check(client):
    client.post("/v1/whitelist", json={"name": "Steve"})
    assert client.get("/v1/admission/steve").json()["allowed"] is True
    body = client.get("/v1/admission/Mallory").json()
    assert body["allowed"] is False
    assert body["kick_message"] == "You are not whitelisted on this server!"
