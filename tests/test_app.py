import json
import re

import pytest

from app import create_app
from conftest import PIN, make_settings
from json_file_handler import MemoryStorage
from ledger import Ledger


def create(client, text="Label created"):
    r = client.post("/api/create", json={"pin": PIN, "initialText": text})
    assert r.status_code == 200
    return r.json["code"]


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json == {"ok": True, "records": 0}

    create(client)
    assert client.get("/health").json["records"] == 1


def test_create_requires_pin(monkeypatch, tmp_path):
    monkeypatch.setenv("PIN", "")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    with pytest.raises(RuntimeError):
        create_app()


def test_create_app_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("PIN", "s3cret")
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    client = create_app().test_client()

    r = client.post("/api/create", json={"pin": "s3cret"})
    assert r.status_code == 200
    assert (tmp_path / "data" / "db.json").exists()


class TestCreate:
    def test_create(self, client):
        r = client.post("/api/create", json={"pin": PIN, "initialText": "Label created"})
        assert r.status_code == 200
        assert re.fullmatch(r"CHM-\d{3}-\d{8}", r.json["code"])
        assert [u["text"] for u in r.json["updates"]] == ["Label created"]
        assert isinstance(r.json["updates"][0]["ts"], int)

    def test_wrong_pin(self, client, records):
        r = client.post("/api/create", json={"pin": "9999", "initialText": "x"})
        assert r.status_code == 403
        assert r.json == {"error": "Invalid PIN"}
        assert records.data == {}

    def test_missing_body(self, client):
        r = client.post("/api/create", data="not json", content_type="text/plain")
        assert r.status_code == 403

    def test_generation_exhausted(self, tmp_path):
        class Stuck:
            def randint(self, a, b):
                return 1

        records = MemoryStorage({"CHM-001-00000001": {"updates": []}})
        ledger = Ledger(PIN, records, MemoryStorage(), rng=Stuck(), max_attempts=5)
        client = create_app(make_settings(tmp_path), ledger=ledger).test_client()

        r = client.post("/api/create", json={"pin": PIN})
        assert r.status_code == 500
        assert r.json == {"error": "Could not generate unique code"}


class TestAdd:
    def test_add(self, client):
        code = create(client)
        r = client.post("/api/add", json={"pin": PIN, "code": code, "text": "In transit"})
        assert r.status_code == 200
        assert r.json["ok"] is True
        assert [u["text"] for u in r.json["updates"]] == ["Label created", "In transit"]
        assert r.json["updates"][1]["ts"] >= r.json["updates"][0]["ts"]

    def test_wrong_pin(self, client):
        code = create(client)
        r = client.post("/api/add", json={"pin": "0000", "code": code, "text": "In transit"})
        assert r.status_code == 403
        assert len(client.get(f"/api/track/{code}").json["updates"]) == 1

    def test_invalid_code(self, client):
        r = client.post("/api/add", json={"pin": PIN, "code": "CHM-12-345", "text": "x"})
        assert r.status_code == 400
        assert r.json == {"error": "Invalid code format"}

    def test_unknown_code(self, client):
        r = client.post("/api/add", json={"pin": PIN, "code": "CHM-000-00000000", "text": "x"})
        assert r.status_code == 404
        assert r.json == {"error": "Code not found"}

    def test_missing_text(self, client):
        code = create(client)
        r = client.post("/api/add", json={"pin": PIN, "code": code, "text": "   "})
        assert r.status_code == 400
        assert r.json == {"error": "Missing update text"}


class TestTrack:
    def test_track(self, client):
        code = create(client)
        r = client.get(f"/api/track/{code}")
        assert r.status_code == 200
        assert r.json["code"] == code
        assert len(r.json["updates"]) == 1

    def test_invalid_code(self, client):
        r = client.get("/api/track/ABC-123")
        assert r.status_code == 400

    def test_unknown_code(self, client):
        r = client.get("/api/track/CHM-000-00000000")
        assert r.status_code == 404
        assert r.json == {"error": "Not found"}


class TestShareLinks:
    def test_share_link_and_redeem(self, client):
        code = create(client)
        r = client.get("/api/share-link", query_string={"code": code})
        assert r.status_code == 200

        token = r.json["token"]
        assert r.json["url"] == f"/?Tracking/tools/trackingcode={code}/token={token}"
        assert r.json["fullUrl"] == f"http://localhost{r.json['url']}"

        shared = client.get("/api/shared", query_string={"trackingcode": code, "token": token})
        assert shared.status_code == 200
        assert shared.json == client.get(f"/api/track/{code}").json

    def test_forwarded_proto(self, client):
        code = create(client)
        r = client.get(
            "/api/share-link",
            query_string={"code": code},
            headers={"X-Forwarded-Proto": "https, http"},
        )
        assert r.json["fullUrl"].startswith("https://localhost/?Tracking/tools/")

    def test_share_link_errors(self, client):
        assert client.get("/api/share-link").status_code == 400
        assert client.get("/api/share-link?code=CHM-000-00000000").status_code == 404

    def test_mismatched_code_is_forbidden(self, client):
        code = create(client)
        other = create(client)
        token = client.get("/api/share-link", query_string={"code": code}).json["token"]

        r = client.get("/api/shared", query_string={"trackingcode": other, "token": token})
        assert r.status_code == 403
        assert r.json == {"error": "Invalid or expired token"}

    def test_missing_token_is_forbidden(self, client):
        code = create(client)
        assert client.get("/api/shared", query_string={"trackingcode": code}).status_code == 403

    def test_invalid_code(self, client):
        assert client.get("/api/shared?trackingcode=nope&token=abc").status_code == 400


class TestFallbacks:
    def test_unknown_route(self, client):
        r = client.get("/api/nothing-here")
        assert r.status_code == 404
        assert r.json == {"error": "Not found"}

    def test_wrong_method(self, client):
        r = client.get("/api/create")
        assert r.status_code == 404
        assert r.json == {"error": "Not found"}

    def test_unexpected_error(self, tmp_path):
        class Broken(MemoryStorage):
            def save(self, data):
                raise RuntimeError("boom")

        ledger = Ledger(PIN, Broken(), MemoryStorage())
        client = create_app(make_settings(tmp_path), ledger=ledger).test_client()

        r = client.post("/api/create", json={"pin": PIN})
        assert r.status_code == 500
        assert r.json == {"error": "Internal server error"}

    def test_cors_allows_any_origin(self, client):
        r = client.get("/health", headers={"Origin": "https://front.example.com"})
        assert r.headers["Access-Control-Allow-Origin"] == "*"

    def test_cors_restricted_origins(self, tmp_path, ledger):
        settings = make_settings(tmp_path, cors_origins=("https://a.example",))
        client = create_app(settings, ledger=ledger).test_client()

        allowed = client.get("/health", headers={"Origin": "https://a.example"})
        assert allowed.headers["Access-Control-Allow-Origin"] == "https://a.example"

        other = client.get("/health", headers={"Origin": "https://b.example"})
        assert other.status_code == 200
        assert "Access-Control-Allow-Origin" not in other.headers


def test_snapshots_persist_across_restarts(tmp_path):
    settings = make_settings(tmp_path, location_label="Centerville, TN")
    client = create_app(settings).test_client()
    code = create(client)
    client.post("/api/add", json={"pin": PIN, "code": code, "text": "In transit"})
    token = client.get("/api/share-link", query_string={"code": code}).json["token"]

    with open(tmp_path / "db.json", encoding="utf-8") as file:
        db = json.load(file)
    with open(tmp_path / "tokens.json", encoding="utf-8") as file:
        tokens = json.load(file)
    assert [u["text"] for u in db[code]["updates"]] == ["Label created", "In transit"]
    assert db[code]["updates"][0]["location"] == "Centerville, TN"
    assert tokens[token]["code"] == code

    restarted = create_app(settings).test_client()
    r = restarted.get("/api/shared", query_string={"trackingcode": code, "token": token})
    assert r.status_code == 200
    assert len(r.json["updates"]) == 2
