import json
import os

import pytest
from fastapi.testclient import TestClient

import main
from fsr.remotes import HttpRemote

EXAMPLE = os.path.join(os.path.dirname(os.path.dirname(__file__)), "examples", "atlas_mine.json")


def _descriptor():
    with open(EXAMPLE, encoding="utf-8") as fh:
        return json.load(fh)


@pytest.fixture
def client(monkeypatch, target_app):
    target_client = TestClient(target_app.app)
    monkeypatch.setattr(
        main, "remote_factory", lambda target: HttpRemote("http://testserver", target, client=target_client)
    )
    with TestClient(main.app) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}


def test_run_converges_then_is_idempotent(client, target_app):
    r = client.post("/runs", json={"descriptor": _descriptor()})
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert [f["outcome"] for f in body["fields"]] == ["updated"] * 4
    assert body["fields"][0]["new_value"] == "0x6333F38F98f5c46dA6F873aCbF25DCf8748DDc2c"
    assert target_app.APP_STATE["writes"] == 4

    r = client.post("/runs", json={"descriptor": _descriptor()})
    assert r.status_code == 200
    assert r.json()["counts"] == {"unchanged": 4, "updated": 0, "failed": 0}
    assert target_app.APP_STATE["writes"] == 4

    runs = client.get("/runs", params={"target": "AtlasMine"}).json()
    assert [run["updated"] for run in runs] == [0, 4]

    detail = client.get(f"/runs/{body['run_id']}").json()
    assert [f["field"] for f in detail["fields"]][:3] == ["treasure", "legion", "legionMetadataStore"]
    assert detail["fields"][0]["old_value"] == "0x" + "00" * 20

    events = client.get("/events", params={"target": "AtlasMine", "limit": 50}).json()
    assert any(e["field"] == "treasure" and e["message"].startswith("Updated") for e in events)


def test_failed_writes_return_multi_status(client, target_app):
    target_app.APP_STATE["fail_writes"] = 100

    r = client.post("/runs", json={"descriptor": _descriptor(), "max_retries": 1})

    assert r.status_code == 207
    body = r.json()
    assert body["ok"] is False
    assert [f["outcome"] for f in body["fields"]] == ["failed"] * 4
    assert all(f["attempts"] == 2 for f in body["fields"])


def test_target_override(client, target_app):
    r = client.post("/runs", json={"descriptor": _descriptor(), "target": "AtlasMineV2"})
    assert r.status_code == 200
    assert r.json()["target"] == "AtlasMineV2"
    assert "AtlasMineV2" in target_app.TARGETS


def test_duplicate_fields_are_rejected(client, target_app):
    d = _descriptor()
    d["fields"].append(dict(d["fields"][0]))

    r = client.post("/runs", json={"descriptor": d})

    assert r.status_code == 422
    assert "duplicate" in r.json()["detail"]
    assert target_app.APP_STATE["writes"] == 0


def test_busy_target_conflict(client):
    with main.runtime.hold("AtlasMine"):
        r = client.post("/runs", json={"descriptor": _descriptor()})
    assert r.status_code == 409


def test_unknown_run(client):
    assert client.get("/runs/999").status_code == 404


def test_cancel_without_active_run(client):
    r = client.post("/targets/AtlasMine/cancel")
    assert r.status_code == 200
    assert r.json() == {"target": "AtlasMine", "cancelled": False}
    assert client.get("/active").json() == []


def test_no_remote_configured():
    with TestClient(main.app) as c:
        r = c.post("/runs", json={"descriptor": _descriptor()})
    assert r.status_code == 422
    assert "no remote configured" in r.json()["detail"]
