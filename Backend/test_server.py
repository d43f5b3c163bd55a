"""HTTP surface, exercised through FastAPI's TestClient.

Spotify calls are replaced by a stub catalog; PocketBase by the in-memory
fake from conftest.

Run:
    pytest Backend/test_server.py
"""

from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import registrations
import server
from conftest import FakePocketBase, make_track
from models import GenerationResult
from session import create_session_token
from spotify_client import AUDIO_FEATURES
from weather import WeatherUnavailable


class StubCatalog:
    def __init__(self, library_ok: bool = True) -> None:
        self.library_ok = library_ok
        self.saved: list[str] = []
        self.removed: list[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def contains_saved(self, ids):
        return [i.startswith("liked") for i in ids]

    async def save_track(self, track_id):
        self.saved.append(track_id)
        return self.library_ok

    async def remove_saved_track(self, track_id):
        self.removed.append(track_id)
        return self.library_ok


@pytest.fixture
def catalog(monkeypatch):
    stub = StubCatalog()
    monkeypatch.setattr(server, "_catalog", lambda ctx: stub)
    return stub


@pytest.fixture
def client(monkeypatch, tmp_path, catalog):
    pb = FakePocketBase()
    monkeypatch.setattr(registrations, "_get_client", lambda: pb)
    monkeypatch.setattr(server, "_sessions", {})
    monkeypatch.setattr(server, "_shown_stores", {})
    monkeypatch.setattr(server, "path_for_user", lambda user_id: tmp_path / f"{user_id}.json")
    return TestClient(server.app)


def _login(client: TestClient, email: str = "ana@example.com", spotify_token: str = "sp-token") -> dict:
    user = client.post("/register", json={"username": "ana", "email": email}).json()["user"]
    client.put(f"/users/{user['id']}/status", json={"status": "approved"})
    resp = client.post("/session", json={"email": email, "spotify_token": spotify_token})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def _fake_generation(tracks):
    async def fake(ctx, catalog, store, mood):
        ctx.current_tracks = list(tracks)
        ctx.all_tracks = list(tracks)
        ctx.mood = mood
        return GenerationResult(title="Similar Happy Songs Based On Your Taste", strategy="stub", tracks=list(tracks))

    return fake


def test_root(client):
    assert client.get("/").json()["status"] == "ok"


# ── Registration / approval ──────────────────────────────────────────────
def test_register_validation_and_duplicates(client):
    created = client.post("/register", json={"username": "ana", "email": "ana@example.com"})
    assert created.status_code == 201
    assert created.json()["user"]["status"] == "pending"
    assert created.json()["user"]["registeredAt"]

    assert client.post("/register", json={"username": "ana", "email": "ana@example.com"}).status_code == 409
    assert client.post("/register", json={"username": "", "email": "x@y.z"}).status_code == 400
    assert client.post("/register", json={"username": "bo", "email": "nope"}).status_code == 400


def test_admin_status_update_and_delete(client):
    user = client.post("/register", json={"username": "ana", "email": "ana@example.com"}).json()["user"]

    assert client.put(f"/users/{user['id']}/status", json={"status": "approved"}).json()["user"]["status"] == "approved"
    assert client.put(f"/users/{user['id']}/status", json={"status": "maybe"}).status_code == 400
    assert client.put("/users/missing/status", json={"status": "approved"}).status_code == 404
    assert [u["email"] for u in client.get("/users").json()["users"]] == ["ana@example.com"]

    assert client.delete(f"/users/{user['id']}").status_code == 200
    assert client.delete(f"/users/{user['id']}").status_code == 404
    assert client.get("/users").json()["users"] == []


# ── Session ──────────────────────────────────────────────────────────────
def test_session_requires_approval(client):
    assert client.post("/session", json={"email": "ghost@example.com", "spotify_token": "t"}).status_code == 404
    client.post("/register", json={"username": "ana", "email": "ana@example.com"})
    assert client.post("/session", json={"email": "ana@example.com", "spotify_token": "t"}).status_code == 403


def test_protected_routes_need_a_session(client):
    assert client.post("/generate", json={"mood": "happy"}).status_code == 401
    assert client.get("/liked", headers={"Authorization": "Bearer garbage"}).status_code == 401
    orphan = create_session_token("no-such-user", "nobody")
    assert client.post("/shuffle/stop", headers={"Authorization": f"Bearer {orphan}"}).status_code == 401


def test_reopening_session_with_new_token_resets_capabilities(client):
    _login(client, spotify_token="first")
    (user_id, ctx), = server._sessions.items()
    ctx.capabilities.deny(AUDIO_FEATURES)

    client.post("/session", json={"email": "ana@example.com", "spotify_token": "second"})
    assert server._sessions[user_id] is ctx
    assert ctx.token == "second"
    assert ctx.capabilities.is_enabled(AUDIO_FEATURES)


def test_rejecting_user_drops_session(client):
    headers = _login(client)
    (user_id, _), = server._sessions.items()
    client.put(f"/users/{user_id}/status", json={"status": "rejected"})
    assert client.post("/shuffle/stop", headers=headers).status_code == 401


# ── Generation ───────────────────────────────────────────────────────────
def test_generate_returns_tracks_with_liked_flags(client, monkeypatch):
    tracks = [make_track("liked-1", title="Happy One"), make_track("t2", title="Happy Two")]
    monkeypatch.setattr(server, "generate_playlist", _fake_generation(tracks))
    headers = _login(client)

    body = client.post("/generate", json={"mood": "happy"}, headers=headers).json()
    assert body["title"] == "Similar Happy Songs Based On Your Taste"
    assert [(t["spotify_id"], t["liked"]) for t in body["tracks"]] == [("liked-1", True), ("t2", False)]
    assert body["stale"] is False


def test_generate_rejects_unknown_mood(client):
    headers = _login(client)
    assert client.post("/generate", json={"mood": "confused"}, headers=headers).status_code == 422


def test_refilter_after_generation_records_shown(client, monkeypatch, tmp_path):
    tracks = [make_track("a", title="Calm Sea"), make_track("b", title="Rage Machine")]
    monkeypatch.setattr(server, "generate_playlist", _fake_generation(tracks))
    headers = _login(client)
    client.post("/generate", json={"mood": "happy"}, headers=headers)

    body = client.post("/tracks/filter", json={"mood": "chill"}, headers=headers).json()
    assert [t["spotify_id"] for t in body["tracks"]] == ["a"]
    (user_id,) = server._sessions
    saved = json.loads((tmp_path / f"{user_id}.json").read_text())
    assert saved == {"shown_track_ids_chill": ["a"]}


def test_liked_songs_are_flagged_liked(client, monkeypatch):
    async def fake_liked(ctx, catalog, store):
        return GenerationResult(title="Your Liked Songs", strategy="liked_songs", tracks=[make_track("l1")])

    monkeypatch.setattr(server, "show_liked_songs", fake_liked)
    headers = _login(client)
    body = client.get("/liked", headers=headers).json()
    assert body["title"] == "Your Liked Songs"
    assert body["tracks"][0]["liked"] is True


# ── Library ──────────────────────────────────────────────────────────────
def test_like_and_unlike(client, catalog):
    headers = _login(client)
    assert client.put("/library/t1", headers=headers).json() == {"track_id": "t1", "liked": True}
    assert client.delete("/library/t1", headers=headers).json() == {"track_id": "t1", "liked": False}
    assert catalog.saved == ["t1"] and catalog.removed == ["t1"]


def test_library_failure_is_reported(client, catalog):
    catalog.library_ok = False
    headers = _login(client)
    assert client.put("/library/t1", headers=headers).status_code == 502


# ── Preview queue ────────────────────────────────────────────────────────
def test_shuffle_queue_lifecycle(client, monkeypatch):
    tracks = [
        make_track("a", title="Happy A", preview_url="https://p/a.mp3"),
        make_track("b", title="Happy B"),
        make_track("c", title="Happy C", preview_url="https://p/c.mp3"),
    ]
    monkeypatch.setattr(server, "generate_playlist", _fake_generation(tracks))
    headers = _login(client)

    assert client.post("/shuffle/start", headers=headers).status_code == 404
    client.post("/generate", json={"mood": "happy"}, headers=headers)

    started = client.post("/shuffle/start", headers=headers).json()
    assert started["queue_length"] == 2
    nxt = client.post("/shuffle/next", headers=headers).json()
    assert {started["track"]["spotify_id"], nxt["track"]["spotify_id"]} == {"a", "c"}

    assert client.post("/shuffle/stop", headers=headers).json() == {"status": "ok"}
    assert client.post("/shuffle/next", headers=headers).status_code == 409


# ── Weather ──────────────────────────────────────────────────────────────
def test_weather_routes(client, monkeypatch):
    async def by_city(city):
        return {"weather": {"city": city}, "mood": "happy", "recommendedGenres": ["pop"]}

    async def by_coords(lat, lon):
        raise WeatherUnavailable("OpenWeather API key not configured")

    monkeypatch.setattr(server, "weather_by_city", by_city)
    monkeypatch.setattr(server, "weather_by_coords", by_coords)

    assert client.get("/weather/Paris").json()["mood"] == "happy"
    resp = client.get("/weather-coords/48.8/2.3")
    assert resp.status_code == 502
    assert resp.json()["detail"] == "OpenWeather API key not configured"


# ── Packaging ────────────────────────────────────────────────────────────
def test_server_stack_is_declared():
    tomllib = pytest.importorskip("tomllib")
    pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    with pyproject.open("rb") as f:
        deps = tomllib.load(f)["project"]["dependencies"]
    names = {re.split(r"[<>=\[ ]", d, maxsplit=1)[0].lower() for d in deps}
    assert {"fastapi", "pydantic", "uvicorn", "pyjwt"} <= names
