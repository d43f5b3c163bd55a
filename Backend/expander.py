"""Multi-strategy expansion of a seed set into a broad candidate list.

Four independent producers, each ``(catalog, seeds, mood, language, rng)
→ list[Track]``:

1. :func:`expand_by_own_artists` – top tracks of the seeds' most frequent artists.
2. :func:`expand_by_genres` – searches pairing the seed artists' genres with mood words.
3. :func:`expand_by_search` – free-text searches pairing mood and language words.
4. :func:`expand_by_curated_playlists` – browse categories / featured playlists,
   with per-market fallback and a random-query last resort.

They run one after another (never concurrently) to bound the request volume
hitting the provider.  None of them raises; a failed source yields [].
"""

from __future__ import annotations

import logging
import random
from collections import Counter
from datetime import date
from typing import Awaitable, Callable, Optional, TypeVar

import config
from models import CandidatePool, Playlist, Track
from mood import filter_by_genre_heuristic, filter_by_mood
from mood_lexicon import (
    BASE_MARKETS,
    CATEGORY_HINTS,
    DEFAULT_LANGUAGE,
    FEATURED_KEYWORDS,
    GENRE_QUERY_KEYWORDS,
    LANGUAGE_GENRE_QUERIES,
    LANGUAGE_MARKETS,
    LANGUAGE_RANDOM_WORDS,
    LANGUAGE_SEARCH_WORDS,
    MOOD_GENRE_QUERIES,
    SEARCH_KEYWORDS,
    lookup,
)
from spotify_client import SpotifyCatalog

logger = logging.getLogger(__name__)

T = TypeVar("T")

Strategy = Callable[
    [SpotifyCatalog, list[Track], str, str, random.Random], Awaitable[list[Track]]
]

TOP_ARTISTS = 5
GENRE_ARTIST_LOOKUPS = 10
GENRE_LIMIT = 10
TOP_GENRES = 5
KEYWORDS_PER_GENRE = 3
MAX_GENRE_QUERIES = 8
GENRE_POOL_CAP = 60
HEURISTIC_ARTIST_LOOKUPS = 50

MAX_SEARCH_QUERIES = 6
SEARCH_POOL_CAP = 40

CATEGORIES_PER_MOOD = 3
PLAYLISTS_PER_SOURCE = 3
CATEGORY_POOL_CAP = 30
FEATURED_POOL_CAP = 50
CURATED_MIN_TRACKS = 10

MAX_RANDOM_QUERIES = 8
RANDOM_POOL_CAP = 40


def recent_year_filter(today: Optional[date] = None) -> str:
    """Search qualifier for the last five calendar years, e.g. ``year:2022-2026``."""
    year = (today or date.today()).year
    return f"year:{year - 4}-{year}"


def markets_for(language: str) -> list[str]:
    """Markets to try in order: the language's own market first."""
    markets = list(BASE_MARKETS)
    lang_market = LANGUAGE_MARKETS.get(language)
    if lang_market:
        if lang_market in markets:
            markets.remove(lang_market)
        markets.insert(0, lang_market)
    return markets


async def search_tracks_by_query(
    catalog: SpotifyCatalog, query: str, rng: random.Random
) -> list[Track]:
    """One search page at a random offset (0–40) so repeat runs differ."""
    offset = rng.randrange(5) * config.SEARCH_PAGE_SIZE
    return await catalog.search_tracks(query, offset=offset)


async def _run_queries(
    catalog: SpotifyCatalog,
    queries: list[str],
    rng: random.Random,
    cap: int,
) -> list[Track]:
    pool = CandidatePool()
    for query in queries:
        tracks = await search_tracks_by_query(catalog, query, rng)
        pool.extend(tracks)
        if len(pool) > cap:
            break
    return pool.tracks()


def _unique_artist_ids(tracks: list[Track]) -> list[str]:
    ids: list[str] = []
    for t in tracks:
        for a in t.artists:
            if a.spotify_id and a.spotify_id not in ids:
                ids.append(a.spotify_id)
    return ids


# ---------------------------------------------------------------------------
# 1. Own-artist top tracks
# ---------------------------------------------------------------------------

async def expand_by_own_artists(
    catalog: SpotifyCatalog,
    seeds: list[Track],
    mood: str,
    language: str,
    rng: random.Random,
) -> list[Track]:
    counts: Counter[str] = Counter(
        a.spotify_id for t in seeds for a in t.artists if a.spotify_id
    )
    top_artist_ids = [artist_id for artist_id, _ in counts.most_common(TOP_ARTISTS)]

    pool = CandidatePool()
    for artist_id in top_artist_ids:
        pool.extend(await catalog.artist_top_tracks(artist_id))
    logger.info(
        f"[expand:artists] {len(pool)} track(s) from {len(top_artist_ids)} top artist(s)"
    )
    return pool.tracks()


# ---------------------------------------------------------------------------
# 2. Genre expansion
# ---------------------------------------------------------------------------

async def _seed_genres(catalog: SpotifyCatalog, artist_ids: list[str]) -> list[str]:
    genres: list[str] = []
    for artist_id in artist_ids:
        artist = await catalog.get_artist(artist_id)
        if artist is not None:
            for g in artist.genres:
                if g not in genres:
                    genres.append(g)
        if len(genres) > GENRE_LIMIT:
            break
    return genres


async def expand_by_genres(
    catalog: SpotifyCatalog,
    seeds: list[Track],
    mood: str,
    language: str,
    rng: random.Random,
) -> list[Track]:
    """Search ``<mood word> genre:<seed genre>`` and keep what looks on-mood.

    Filtering falls back in three steps: the genre include/exclude heuristic,
    then plain keyword matching, then the unfiltered search results.
    """
    genres = await _seed_genres(catalog, _unique_artist_ids(seeds)[:GENRE_ARTIST_LOOKUPS])
    if not genres:
        logger.info("[expand:genre] no genres known for seed artists")
        return []

    keywords = lookup(GENRE_QUERY_KEYWORDS, mood, "chill")[:KEYWORDS_PER_GENRE]
    queries = [f"{kw} genre:{g}" for g in genres[:TOP_GENRES] for kw in keywords]
    aggregated = await _run_queries(catalog, queries[:MAX_GENRE_QUERIES], rng, GENRE_POOL_CAP)
    if not aggregated:
        return []

    artists = await catalog.get_artists(
        _unique_artist_ids(aggregated)[:HEURISTIC_ARTIST_LOOKUPS]
    )
    genre_map = {artist_id: a.genres for artist_id, a in artists.items()}

    genre_filtered = filter_by_genre_heuristic(aggregated, mood, genre_map)
    if genre_filtered:
        logger.info(f"[expand:genre] {len(genre_filtered)}/{len(aggregated)} pass genre heuristic")
        return genre_filtered
    keyword_filtered = filter_by_mood(aggregated, mood)
    if keyword_filtered:
        logger.info(f"[expand:genre] {len(keyword_filtered)}/{len(aggregated)} pass keyword filter")
        return keyword_filtered
    return aggregated


# ---------------------------------------------------------------------------
# 3. Free-text search expansion
# ---------------------------------------------------------------------------

async def expand_by_search(
    catalog: SpotifyCatalog,
    seeds: list[Track],
    mood: str,
    language: str,
    rng: random.Random,
) -> list[Track]:
    mood_words = lookup(SEARCH_KEYWORDS, mood, "happy")[:3]
    lang_words = lookup(LANGUAGE_SEARCH_WORDS, language, DEFAULT_LANGUAGE)[:2]
    years = recent_year_filter()

    queries: list[str] = []
    for mood_word in mood_words:
        for lang_word in lang_words:
            queries.append(f"{mood_word} {lang_word}")
            queries.append(f"{years} {mood_word} {lang_word}")

    tracks = await _run_queries(catalog, queries[:MAX_SEARCH_QUERIES], rng, SEARCH_POOL_CAP)
    logger.info(f"[expand:search] {len(tracks)} track(s)")
    return tracks


# ---------------------------------------------------------------------------
# 4. Curated / featured playlists
# ---------------------------------------------------------------------------

async def _first_market_hit(
    fetch: Callable[[Optional[str]], Awaitable[Optional[T]]],
    markets: list[str],
    what: str,
) -> Optional[T]:
    """Try *fetch* for each market, then once without a market."""
    for market in markets:
        result = await fetch(market)
        if result is not None:
            return result
    logger.info(f"[expand:curated] {what} failed for all markets – trying global")
    return await fetch(None)


async def _harvest(
    catalog: SpotifyCatalog,
    playlists: list[Playlist],
    pool: CandidatePool,
    rng: random.Random,
    cap: int,
) -> None:
    picks = rng.sample(playlists, min(PLAYLISTS_PER_SOURCE, len(playlists)))
    for playlist in picks:
        pool.extend(await catalog.playlist_tracks(playlist.spotify_id))
        if len(pool) > cap:
            break


async def expand_by_curated_playlists(
    catalog: SpotifyCatalog,
    seeds: list[Track],
    mood: str,
    language: str,
    rng: random.Random,
) -> list[Track]:
    markets = markets_for(language)
    pool = CandidatePool()

    categories = await _first_market_hit(catalog.categories, markets, "categories")
    hints = lookup(CATEGORY_HINTS, mood, "happy")
    relevant = [c for c in categories or [] if any(h in c.name.lower() for h in hints)]
    logger.info(f"[expand:curated] {len(relevant)} category(ies) match {mood}")

    for category in relevant[:CATEGORIES_PER_MOOD]:
        playlists = await _first_market_hit(
            lambda market: catalog.category_playlists(category.spotify_id, market),
            markets,
            f"category {category.name}",
        )
        if playlists:
            await _harvest(catalog, playlists, pool, rng, CATEGORY_POOL_CAP)

    featured = await _first_market_hit(catalog.featured_playlists, markets, "featured playlists")
    if featured:
        keywords = lookup(FEATURED_KEYWORDS, mood, "happy")
        on_mood = [
            p for p in featured
            if any(kw in (p.name or "").lower() or kw in (p.description or "").lower()
                   for kw in keywords)
        ]
        await _harvest(catalog, on_mood or featured, pool, rng, FEATURED_POOL_CAP)

    if len(pool) < CURATED_MIN_TRACKS:
        logger.info(
            f"[expand:curated] only {len(pool)} track(s) from playlists – generating by query"
        )
        pool.extend(await generate_random_tracks(catalog, seeds, mood, language, rng))

    logger.info(f"[expand:curated] {len(pool)} track(s)")
    return pool.tracks()


async def generate_random_tracks(
    catalog: SpotifyCatalog,
    seeds: list[Track],
    mood: str,
    language: str,
    rng: random.Random,
) -> list[Track]:
    """Last resort: shuffled mood × language × genre queries."""
    mood_words = lookup(SEARCH_KEYWORDS, mood, "happy")[:3]
    lang_words = lookup(LANGUAGE_RANDOM_WORDS, language, DEFAULT_LANGUAGE)[:2]
    years = recent_year_filter()

    queries: list[str] = []
    for mood_word in mood_words:
        for lang_word in lang_words:
            queries.append(f"{mood_word} {lang_word}")
            queries.append(f"{years} {mood_word} {lang_word}")
    queries.extend(MOOD_GENRE_QUERIES.get(mood, []))
    queries.extend(LANGUAGE_GENRE_QUERIES.get(language, []))

    shuffled_queries = rng.sample(queries, len(queries))
    return await _run_queries(
        catalog, shuffled_queries[:MAX_RANDOM_QUERIES], rng, RANDOM_POOL_CAP
    )


STRATEGIES: list[tuple[str, Strategy]] = [
    ("own_artists", expand_by_own_artists),
    ("genres", expand_by_genres),
    ("search", expand_by_search),
    ("curated_playlists", expand_by_curated_playlists),
]
