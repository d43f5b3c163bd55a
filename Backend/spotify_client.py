"""Spotify Web API catalog client – search, artists, browse, history, library.

Every call returns data or an explicit empty/failure marker; nothing raised
by aiohttp or by a malformed payload escapes this module.  The pipeline
stages can therefore always proceed with whatever partial data they got.

Failure policy (applied uniformly to every endpoint by :meth:`SpotifyCatalog.request`):

* 403 – the capability is not granted to this token.  Never retried, and
  the capability is disabled on the session's :class:`CapabilitySet` so
  later calls short-circuit without touching the network.
* 429 – retried ``RetryPolicy.max_retries`` times after a fixed backoff,
  shrinking the id batch if the call carries one; then given up silently.
* 401 / 404 / 5xx / network / timeout / bad JSON – logged, treated as empty.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, TypeVar

from aiohttp import ClientError, ClientSession, ClientTimeout

import config
from models import Artist, AudioFeatures, Category, Playlist, Track

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failure kinds
UNAUTHORIZED = "unauthorized"
FORBIDDEN = "forbidden"
RATE_LIMITED = "rate_limited"
NOT_FOUND = "not_found"
SERVER_ERROR = "server_error"
NETWORK_ERROR = "network_error"
MALFORMED = "malformed"

# Capabilities (named API permissions a token may or may not carry)
SEARCH = "search"
ARTISTS = "artists"
AUDIO_FEATURES = "audio_features"
PLAYLISTS = "playlists"
BROWSE = "browse"
RECENTLY_PLAYED = "recently_played"
SAVED_TRACKS = "saved_tracks"
TOP_TRACKS = "top_tracks"
USER_PLAYLISTS = "user_playlists"
LIBRARY = "library"

TIME_RANGES = ("short_term", "medium_term", "long_term")


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _failure_for_status(status: int) -> str:
    if status == 401:
        return UNAUTHORIZED
    if status == 403:
        return FORBIDDEN
    if status == 429:
        return RATE_LIMITED
    if status >= 500:
        return SERVER_ERROR
    return NOT_FOUND


@dataclass
class CatalogResult:
    """Outcome of one catalog call: ``data`` on success, ``failure`` otherwise."""

    data: Any = None
    failure: Optional[str] = None
    status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def kind(self) -> str:
        """Collapse the failure into ``ok | empty | capability_denied | rate_limited | transient``."""
        if self.failure is None:
            return "ok" if self.data else "empty"
        if self.failure == FORBIDDEN:
            return "capability_denied"
        if self.failure == RATE_LIMITED:
            return "rate_limited"
        return "transient"


class CapabilitySet:
    """Capabilities denied to the current token for the rest of the session."""

    def __init__(self) -> None:
        self._denied: set[str] = set()

    def is_enabled(self, capability: str) -> bool:
        return capability not in self._denied

    def deny(self, capability: str) -> bool:
        """Disable *capability*.  Returns True if it was enabled before."""
        if capability in self._denied:
            return False
        self._denied.add(capability)
        return True

    def reset(self) -> None:
        self._denied.clear()

    @property
    def denied(self) -> frozenset[str]:
        return frozenset(self._denied)


@dataclass(frozen=True)
class RetryPolicy:
    """Single rate-limit policy shared by every endpoint category."""

    max_retries: int = config.RATE_LIMIT_MAX_RETRIES
    backoff_seconds: float = config.RATE_LIMIT_BACKOFF_SECONDS
    shrink_batch_to: int = config.RATE_LIMIT_BATCH_SHRINK


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def parse_artist(raw: dict) -> Optional[Artist]:
    if not raw or not raw.get("name"):
        return None
    return Artist(
        name=raw["name"],
        spotify_id=raw.get("id"),
        genres=tuple(g for g in raw.get("genres") or [] if g),
    )


def parse_track(raw: Optional[dict]) -> Optional[Track]:
    """Build a :class:`Track`, or None for local files / id-less entries."""
    if not raw or not raw.get("id"):
        return None
    album = raw.get("album") or {}
    images = album.get("images") or []
    return Track(
        spotify_id=raw["id"],
        title=raw.get("name") or "",
        artists=tuple(
            Artist(name=a.get("name", ""), spotify_id=a.get("id"))
            for a in raw.get("artists") or []
        ),
        album_name=album.get("name") or "",
        duration_ms=raw.get("duration_ms") or 0,
        album_image_url=images[0].get("url") if images else None,
        preview_url=raw.get("preview_url"),
        external_url=(raw.get("external_urls") or {}).get("spotify"),
        uri=raw.get("uri"),
    )


def parse_playlist(raw: dict) -> Optional[Playlist]:
    if not raw or not raw.get("id"):
        return None
    tracks_field = raw.get("tracks")
    if isinstance(tracks_field, dict):
        track_count = tracks_field.get("total", 0)
    elif isinstance(tracks_field, int):
        track_count = tracks_field
    else:
        track_count = 0

    images = raw.get("images") or []
    return Playlist(
        spotify_id=raw["id"],
        name=raw.get("name") or "",
        total_tracks=track_count or 0,
        owner=(raw.get("owner") or {}).get("display_name") or "",
        description=raw.get("description"),
        image_url=images[0].get("url") if images else None,
    )


def parse_audio_features(raw: Optional[dict]) -> Optional[AudioFeatures]:
    if not raw:
        return None
    return AudioFeatures(
        valence=float(raw["valence"]),
        energy=float(raw["energy"]),
        danceability=float(raw["danceability"]),
        acousticness=float(raw["acousticness"]),
    )


def _dig(data: Any, *keys: str, what: str) -> list[Any]:
    """Walk nested dict *keys* down to a list of items.  Wrong shapes → []."""
    node = data
    for key in keys:
        if not isinstance(node, dict):
            logger.warning(f"[catalog] Malformed {what} payload: expected object at '{key}'")
            return []
        node = node.get(key)
    if node is None:
        return []
    if not isinstance(node, list):
        logger.warning(f"[catalog] Malformed {what} payload: expected list, got {type(node).__name__}")
        return []
    return node


def _parse_all(items: Iterable[Any], parser: Callable[[Any], Optional[T]], what: str) -> list[T]:
    """Apply *parser* to every item, dropping Nones.  Malformed payloads → []."""
    try:
        return [obj for obj in (parser(item) for item in items or []) if obj is not None]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        logger.warning(f"[catalog] Malformed {what} payload: {type(exc).__name__}: {exc}")
        return []


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SpotifyCatalog:
    """Authenticated read/write access to the catalog for one bearer token.

    Use as an async context manager so the underlying ``ClientSession`` is
    opened and closed around a unit of work::

        async with SpotifyCatalog(token, ctx.capabilities) as catalog:
            tracks = await catalog.recently_played()
    """

    def __init__(
        self,
        token: str,
        capabilities: Optional[CapabilitySet] = None,
        *,
        base_url: str = config.SPOTIFY_API_URL,
        policy: Optional[RetryPolicy] = None,
        timeout: float = config.REQUEST_TIMEOUT_SECONDS,
        batch_size: int = config.BATCH_SIZE,
    ) -> None:
        self.token = token
        self.capabilities = capabilities if capabilities is not None else CapabilitySet()
        self.base_url = base_url.rstrip("/")
        self.policy = policy or RetryPolicy()
        self.batch_size = batch_size
        self._timeout = ClientTimeout(total=timeout)
        self._session: Optional[ClientSession] = None

    async def __aenter__(self) -> "SpotifyCatalog":
        self._session = ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    # -- transport -----------------------------------------------------------

    async def _send(self, method: str, endpoint: str, params: dict[str, Any]) -> CatalogResult:
        if self._session is None:
            raise RuntimeError("SpotifyCatalog used outside 'async with'")
        url = endpoint if endpoint.startswith("http") else f"{self.base_url}{endpoint}"
        try:
            async with self._session.request(
                method, url, params=params or None, headers=_auth_header(self.token)
            ) as resp:
                if resp.status >= 300:
                    if resp.status == 429:
                        retry_after = resp.headers.get("Retry-After")
                        logger.debug(f"[catalog] 429 on {endpoint} (Retry-After={retry_after})")
                    return CatalogResult(failure=_failure_for_status(resp.status), status=resp.status)
                body = await resp.text()
                data = json.loads(body) if body.strip() else {}
                return CatalogResult(data=data, status=resp.status)
        except ValueError as exc:
            logger.warning(f"[catalog] Bad JSON from {endpoint}: {exc}")
            return CatalogResult(failure=MALFORMED)
        except asyncio.TimeoutError:
            logger.warning(f"[catalog] Timed out on {endpoint}")
            return CatalogResult(failure=NETWORK_ERROR)
        except ClientError as exc:
            logger.warning(f"[catalog] Request to {endpoint} failed: {type(exc).__name__}: {exc}")
            return CatalogResult(failure=NETWORK_ERROR)

    async def request(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        *,
        capability: str,
        method: str = "GET",
        batch_param: Optional[str] = None,
    ) -> CatalogResult:
        """Issue one call under the shared failure policy.

        *batch_param* names the comma-separated id parameter to shrink when
        retrying after a 429.
        """
        if not self.capabilities.is_enabled(capability):
            return CatalogResult(failure=FORBIDDEN, status=403)

        params = dict(params or {})
        retries = 0
        while True:
            result = await self._send(method, endpoint, params)

            if result.failure == FORBIDDEN:
                if self.capabilities.deny(capability):
                    logger.info(
                        f"[catalog] {capability} unavailable (403) – disabled for this session"
                    )
                return result

            if result.failure == RATE_LIMITED and retries < self.policy.max_retries:
                retries += 1
                if batch_param and params.get(batch_param):
                    ids = str(params[batch_param]).split(",")
                    params[batch_param] = ",".join(ids[: self.policy.shrink_batch_to])
                logger.warning(
                    f"[catalog] Rate limited (429) on {endpoint}. Waiting "
                    f"{self.policy.backoff_seconds}s (retry {retries}/{self.policy.max_retries})"
                )
                await asyncio.sleep(self.policy.backoff_seconds)
                continue

            if not result.ok:
                logger.warning(f"[catalog] {endpoint} → {result.failure} ({result.status})")
            return result

    async def _batched(
        self,
        endpoint: str,
        ids: list[str],
        *,
        capability: str,
        key: str,
    ) -> list[Any]:
        """Chunk *ids* into provider batches, concatenating successful chunks."""
        items: list[Any] = []
        for i in range(0, len(ids), self.batch_size):
            chunk = ids[i : i + self.batch_size]
            result = await self.request(
                endpoint, {"ids": ",".join(chunk)}, capability=capability, batch_param="ids"
            )
            if result.failure == FORBIDDEN:
                break
            if not result.ok:
                continue
            items.extend(_dig(result.data, key, what=endpoint))
        return items

    # -- search / artists ----------------------------------------------------

    async def search_tracks(
        self,
        query: str,
        *,
        limit: int = config.SEARCH_PAGE_SIZE,
        market: str = config.DEFAULT_MARKET,
        offset: int = 0,
    ) -> list[Track]:
        result = await self.request(
            "/search",
            {"q": query, "type": "track", "limit": limit, "market": market, "offset": offset},
            capability=SEARCH,
        )
        if not result.ok:
            return []
        items = _dig(result.data, "tracks", "items", what="search")
        return _parse_all(items, parse_track, "search")

    async def get_artist(self, artist_id: str) -> Optional[Artist]:
        result = await self.request(f"/artists/{artist_id}", capability=ARTISTS)
        if not result.ok:
            return None
        parsed = _parse_all([result.data], parse_artist, "artist")
        return parsed[0] if parsed else None

    async def get_artists(self, artist_ids: list[str]) -> dict[str, Artist]:
        """Bulk artist lookup, ``{artist_id: Artist}`` for every artist found."""
        raw = await self._batched("/artists", artist_ids, capability=ARTISTS, key="artists")
        return {a.spotify_id: a for a in _parse_all(raw, parse_artist, "artists") if a.spotify_id}

    async def artist_top_tracks(
        self, artist_id: str, market: str = config.DEFAULT_MARKET
    ) -> list[Track]:
        result = await self.request(
            f"/artists/{artist_id}/top-tracks", {"market": market}, capability=ARTISTS
        )
        if not result.ok:
            return []
        return _parse_all(_dig(result.data, "tracks", what="artist-top-tracks"), parse_track, "artist-top-tracks")

    async def audio_features(self, track_ids: list[str]) -> dict[str, AudioFeatures]:
        """``{track_id: AudioFeatures}``; empty when the capability is denied."""
        raw = await self._batched(
            "/audio-features", track_ids, capability=AUDIO_FEATURES, key="audio_features"
        )
        features: dict[str, AudioFeatures] = {}
        for item in raw:
            parsed = _parse_all([item], parse_audio_features, "audio-features")
            if parsed and item.get("id"):
                features[item["id"]] = parsed[0]
        return features

    # -- playlists / browse --------------------------------------------------

    async def playlist_tracks(self, playlist_id: str, limit: int = 20) -> list[Track]:
        result = await self.request(
            f"/playlists/{playlist_id}/tracks", {"limit": limit}, capability=PLAYLISTS
        )
        if not result.ok:
            return []
        items = _dig(result.data, "items", what="playlist-tracks")
        return _parse_all(items, lambda item: parse_track(item.get("track")), "playlist-tracks")

    async def categories(self, market: Optional[str] = None, limit: int = 20) -> Optional[list[Category]]:
        """Browse categories; None when the call failed (so callers can try another market)."""
        params: dict[str, Any] = {"limit": limit}
        if market:
            params["country"] = market
        result = await self.request("/browse/categories", params, capability=BROWSE)
        if not result.ok:
            return None
        items = _dig(result.data, "categories", "items", what="categories")
        return _parse_all(
            items,
            lambda c: Category(spotify_id=c["id"], name=c.get("name") or "") if c else None,
            "categories",
        )

    async def category_playlists(
        self, category_id: str, market: Optional[str] = None, limit: int = 10
    ) -> Optional[list[Playlist]]:
        params: dict[str, Any] = {"limit": limit}
        if market:
            params["country"] = market
        result = await self.request(
            f"/browse/categories/{category_id}/playlists", params, capability=BROWSE
        )
        if not result.ok:
            return None
        items = _dig(result.data, "playlists", "items", what="category-playlists")
        return _parse_all(items, parse_playlist, "category-playlists")

    async def featured_playlists(
        self, market: Optional[str] = None, limit: int = 20
    ) -> Optional[list[Playlist]]:
        params: dict[str, Any] = {"limit": limit}
        if market:
            params["country"] = market
        result = await self.request("/browse/featured-playlists", params, capability=BROWSE)
        if not result.ok:
            return None
        items = _dig(result.data, "playlists", "items", what="featured-playlists")
        return _parse_all(items, parse_playlist, "featured-playlists")

    # -- user history --------------------------------------------------------

    async def recently_played(self, limit: int = config.HISTORY_PAGE_SIZE) -> list[Track]:
        result = await self.request(
            "/me/player/recently-played", {"limit": limit}, capability=RECENTLY_PLAYED
        )
        if not result.ok:
            return []
        items = _dig(result.data, "items", what="recently-played")
        return _parse_all(items, lambda item: parse_track(item.get("track")), "recently-played")

    async def saved_tracks(self, limit: int = config.HISTORY_PAGE_SIZE) -> list[Track]:
        result = await self.request("/me/tracks", {"limit": limit}, capability=SAVED_TRACKS)
        if not result.ok:
            return []
        items = _dig(result.data, "items", what="saved-tracks")
        return _parse_all(items, lambda item: parse_track(item.get("track")), "saved-tracks")

    async def top_tracks(
        self, time_range: str = "medium_term", limit: int = config.HISTORY_PAGE_SIZE
    ) -> list[Track]:
        result = await self.request(
            "/me/top/tracks", {"limit": limit, "time_range": time_range}, capability=TOP_TRACKS
        )
        if not result.ok:
            return []
        return _parse_all(_dig(result.data, "items", what="top-tracks"), parse_track, "top-tracks")

    async def user_playlists(self, limit: int = 20) -> list[Playlist]:
        result = await self.request("/me/playlists", {"limit": limit}, capability=USER_PLAYLISTS)
        if not result.ok:
            return []
        return _parse_all(_dig(result.data, "items", what="user-playlists"), parse_playlist, "user-playlists")

    # -- library -------------------------------------------------------------

    async def contains_saved(self, track_ids: list[str]) -> list[bool]:
        """Saved flags aligned with *track_ids*; [] if any chunk fails."""
        flags: list[bool] = []
        for i in range(0, len(track_ids), self.batch_size):
            chunk = track_ids[i : i + self.batch_size]
            result = await self.request(
                "/me/tracks/contains", {"ids": ",".join(chunk)}, capability=LIBRARY
            )
            if not result.ok or not isinstance(result.data, list) or len(result.data) != len(chunk):
                return []
            flags.extend(bool(x) for x in result.data)
        return flags

    async def save_track(self, track_id: str) -> bool:
        result = await self.request(
            "/me/tracks", {"ids": track_id}, capability=LIBRARY, method="PUT"
        )
        return result.ok

    async def remove_saved_track(self, track_id: str) -> bool:
        result = await self.request(
            "/me/tracks", {"ids": track_id}, capability=LIBRARY, method="DELETE"
        )
        return result.ok
