"""Aggregation & ranking: history → seeds → expansion → filtered, novel display list.

Public entry point: :func:`generate_mood_similar`.
"""

from __future__ import annotations

import logging
import random
from typing import Collection, Iterable, Optional

import config
from expander import STRATEGIES
from history import collect_history
from models import CandidatePool, GenerationResult, Track
from mood import (
    attach_audio_features,
    dedupe_tracks,
    detect_language,
    filter_by_audio_features,
    filter_by_mood,
    filter_by_mood_and_language,
)
from spotify_client import SpotifyCatalog

logger = logging.getLogger(__name__)

SEED_COUNT = 20
SEED_AUDIO_LOOKUPS = 100
SEED_KEYWORD_MATCHES = 50


def mood_similar_title(mood: str) -> str:
    return f"Similar {mood.capitalize()} Songs Based On Your Taste"


async def select_seeds(catalog: SpotifyCatalog, history: list[Track], mood: str) -> list[Track]:
    """Pick up to 20 history tracks that already fit *mood*.

    Audio-feature matches (from the first 100 tracks) come first, then
    keyword matches.  With no on-mood history the first 20 tracks are used.
    """
    head = history[:SEED_AUDIO_LOOKUPS]
    features = await catalog.audio_features([t.spotify_id for t in head])
    audio_matches = filter_by_audio_features(attach_audio_features(head, features), mood)
    keyword_matches = filter_by_mood(history, mood)[:SEED_KEYWORD_MATCHES]

    seeds = dedupe_tracks(audio_matches + keyword_matches)[:SEED_COUNT]
    if not seeds:
        logger.info(f"[pipeline] no {mood} tracks in history – seeding from recent history")
        seeds = history[:SEED_COUNT]
    return seeds


def shuffle_tracks(tracks: Iterable[Track], rng: random.Random) -> list[Track]:
    """Return a uniformly shuffled copy of *tracks* (Fisher–Yates)."""
    shuffled = list(tracks)
    rng.shuffle(shuffled)
    return shuffled


def rank_for_display(
    tracks: list[Track],
    shown_ids: Collection[str],
    rng: random.Random,
    budget: int = config.DISPLAY_BUDGET,
) -> list[Track]:
    """Prefer unseen tracks, shuffle, truncate to *budget*.

    When every track was shown before the exclusion is ignored for this
    render only; *shown_ids* is never modified here.
    """
    unseen = [t for t in tracks if t.spotify_id not in shown_ids]
    if not unseen and tracks:
        logger.info(f"[pipeline] all {len(tracks)} candidate(s) already shown – reusing them")
        unseen = tracks
    return shuffle_tracks(unseen, rng)[:budget]


def aggregate_and_rank(
    candidates: Iterable[Track],
    mood: str,
    language: str,
    shown_ids: Collection[str],
    rng: random.Random,
    budget: int = config.DISPLAY_BUDGET,
) -> list[Track]:
    """Dedupe, mood/language filter, drop already-shown, shuffle, truncate."""
    unique = dedupe_tracks(candidates)
    filtered = filter_by_mood_and_language(unique, mood, language)
    logger.info(
        f"[pipeline] {len(filtered)}/{len(unique)} candidate(s) match {mood}/{language}"
    )
    return rank_for_display(filtered, shown_ids, rng, budget)


async def expand_candidates(
    catalog: SpotifyCatalog,
    seeds: list[Track],
    mood: str,
    language: str,
    rng: random.Random,
) -> CandidatePool:
    """Run every expansion strategy in turn and merge their output.

    A strategy that raises is logged and skipped; the others still run.
    """
    pool = CandidatePool()
    for name, strategy in STRATEGIES:
        try:
            found = await strategy(catalog, seeds, mood, language, rng)
        except Exception:
            logger.exception(f"[pipeline] {name} expansion failed")
            continue
        added = pool.extend(found)
        logger.info(f"[pipeline] {name}: {len(found)} found, {added} new (pool={len(pool)})")
    return pool


async def generate_mood_similar(
    catalog: SpotifyCatalog,
    mood: str,
    rng: random.Random,
    shown_ids: Collection[str] = (),
    budget: int = config.DISPLAY_BUDGET,
) -> Optional[GenerationResult]:
    """Mood-similar tracks built from the user's own listening history.

    Returns None when there is no history to start from (new account) or
    when nothing survives filtering, so the caller can fall back.
    """
    history = await collect_history(catalog)
    if not history:
        logger.info("[pipeline] no listening history – mood-similar not applicable")
        return None

    language = detect_language(history)
    seeds = await select_seeds(catalog, history, mood)
    logger.info(f"[pipeline] {len(seeds)} seed(s), language={language}")

    pool = await expand_candidates(catalog, seeds, mood, language, rng)
    if not pool:
        return None

    candidates = pool.tracks()
    features = await catalog.audio_features([t.spotify_id for t in candidates])
    candidates = attach_audio_features(candidates, features)

    tracks = aggregate_and_rank(candidates, mood, language, shown_ids, rng, budget)
    if not tracks:
        return None
    return GenerationResult(
        title=mood_similar_title(mood),
        strategy="mood_similar_from_history",
        tracks=tracks,
        language=language,
        candidates=candidates,
    )
