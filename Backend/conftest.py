"""Shared test helpers: a fake Spotify Web API served by aiohttp.

Tests drive async code with ``asyncio.run`` inside plain test functions::

    def test_something():
        fake = FakeSpotify({"/search": search_payload([...])})

        async def scenario():
            async with fake.catalog() as catalog:
                return await catalog.search_tracks("happy")

        assert asyncio.run(scenario())
"""

from __future__ import annotations

import json
import re
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, Callable, Optional, Union

from aiohttp import web
from aiohttp.test_utils import TestServer
from pocketbase.utils import ClientResponseError

from models import Artist, AudioFeatures, Track
from spotify_client import CapabilitySet, RetryPolicy, SpotifyCatalog

Responder = Union[int, str, dict, list, Callable[[web.Request], Any]]

NO_BACKOFF = RetryPolicy(max_retries=1, backoff_seconds=0, shrink_batch_to=10)


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def track_json(
    track_id: str,
    name: str = "Song",
    artist: str = "Artist",
    artist_id: Optional[str] = None,
    album: str = "Album",
    preview_url: Optional[str] = None,
) -> dict:
    return {
        "id": track_id,
        "name": name,
        "artists": [{"id": artist_id or f"artist-{artist.lower()}", "name": artist}],
        "album": {"name": album, "images": [{"url": f"https://img/{track_id}.jpg"}]},
        "duration_ms": 180000,
        "preview_url": preview_url,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "uri": f"spotify:track:{track_id}",
    }


def search_payload(tracks: list[dict]) -> dict:
    return {"tracks": {"items": tracks}}


def items_payload(tracks: list[dict], wrap: bool = True) -> dict:
    """``{"items": [{"track": ...}]}`` as returned by history and playlist endpoints."""
    return {"items": [{"track": t} for t in tracks] if wrap else tracks}


def make_track(
    track_id: str,
    title: str = "Song",
    artist: str = "Artist",
    artist_id: Optional[str] = None,
    album: str = "Album",
    preview_url: Optional[str] = None,
    features: Optional[AudioFeatures] = None,
) -> Track:
    return Track(
        spotify_id=track_id,
        title=title,
        artists=(Artist(name=artist, spotify_id=artist_id or f"artist-{artist.lower()}"),),
        album_name=album,
        preview_url=preview_url,
        audio_features=features,
    )


# ---------------------------------------------------------------------------
# Fake service
# ---------------------------------------------------------------------------

class FakeSpotify:
    """Catch-all aiohttp app answering from a ``path → responder`` table.

    A responder is a JSON payload (dict/list), an HTTP status (int), a raw
    text body (str), or a callable taking the request and returning any of
    those.  Unknown paths answer 404.  Every request is recorded in
    ``calls`` as ``(method, path, query)``.
    """

    def __init__(self, routes: Optional[dict[str, Responder]] = None) -> None:
        self.routes: dict[str, Responder] = dict(routes or {})
        self.calls: list[tuple[str, str, dict[str, str]]] = []

    def count(self, path: str, method: Optional[str] = None) -> int:
        return sum(1 for m, p, _ in self.calls if p == path and (method is None or m == method))

    def queries(self, path: str) -> list[dict[str, str]]:
        return [q for _, p, q in self.calls if p == path]

    async def _handle(self, request: web.Request) -> web.Response:
        path = "/" + request.match_info["tail"]
        self.calls.append((request.method, path, dict(request.query)))
        responder = self.routes.get(path, 404)
        if callable(responder):
            responder = responder(request)
        if isinstance(responder, web.Response):
            return responder
        if isinstance(responder, int):
            return web.Response(status=responder)
        if isinstance(responder, str):
            return web.Response(text=responder, content_type="application/json")
        return web.Response(text=json.dumps(responder), content_type="application/json")

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/v1/{tail:.*}", self._handle)
        return app

    @asynccontextmanager
    async def catalog(
        self,
        capabilities: Optional[CapabilitySet] = None,
        policy: RetryPolicy = NO_BACKOFF,
        batch_size: int = 50,
    ):
        async with TestServer(self.app()) as server:
            base_url = str(server.make_url("/v1"))
            async with SpotifyCatalog(
                "test-token", capabilities, base_url=base_url, policy=policy, batch_size=batch_size
            ) as catalog:
                yield catalog


# ---------------------------------------------------------------------------
# Fake PocketBase client (registrations collection)
# ---------------------------------------------------------------------------

class FakeCollection:
    """Just enough of the SDK record service for the registration store."""

    def __init__(self) -> None:
        self.records: dict[str, SimpleNamespace] = {}
        self._next = 0

    def get_list(self, page, per_page, query_params=None):
        items = list(self.records.values())
        flt = (query_params or {}).get("filter")
        if flt:
            match = re.fullmatch(r'email="(.*)"', flt)
            items = [r for r in items if r.email == match.group(1)]
        start = (page - 1) * per_page
        return SimpleNamespace(items=items[start : start + per_page])

    def get_one(self, record_id):
        if record_id not in self.records:
            raise ClientResponseError("not found", status=404)
        return self.records[record_id]

    def create(self, body):
        self._next += 1
        record = SimpleNamespace(id=f"rec{self._next}", **body)
        self.records[record.id] = record
        return record

    def update(self, record_id, body):
        record = self.get_one(record_id)
        for key, value in body.items():
            setattr(record, key, value)
        return record

    def delete(self, record_id):
        self.get_one(record_id)
        del self.records[record_id]
        return True


class FakePocketBase:
    def __init__(self) -> None:
        self.registrations = FakeCollection()

    def collection(self, name):
        assert name == "registrations"
        return self.registrations
