"""Fallback orchestrator: an ordered list of named generation strategies.

Stages, tried in order until one produces something to show::

    mood_similar_from_history
    user_playlists_matching_mood
    recommendations            (recently played → saved → top tracks, mood-filtered)
    top_tracks_direct
    saved_tracks_fallback
    static_guidance

Every stage has the same signature, ``(GenerationRun) → Optional[GenerationResult]``,
and returning None means "fall through".  The last stage always answers, so
:func:`generate_playlist` never ends in an error.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Collection, Optional

import config
from models import GenerationResult, Track
from mood import dedupe_tracks, filter_by_mood
from pipeline import generate_mood_similar, rank_for_display
from session import SessionContext
from shown_tracks import ShownTrackStore
from spotify_client import SpotifyCatalog

logger = logging.getLogger(__name__)

RECOMMENDATION_LIMIT = 20
TOP_TRACKS_DIRECT_LIMIT = 10
LIKED_SONGS_LIMIT = 50
TOP_TRACK_RANGES = ("medium_term", "short_term", "long_term")

GUIDANCE_TITLE = "Welcome to Spotify!"
GUIDANCE_MESSAGE = (
    "It looks like you're new to Spotify or don't have enough listening history yet. "
    "Listen to more music, like songs you enjoy and create some playlists, "
    "then come back in a few days for personalized recommendations."
)
NO_LIKED_SONGS_MESSAGE = (
    "You haven't liked any songs on Spotify yet. "
    "Start liking songs on Spotify to see them here!"
)
NO_MOOD_TRACKS_MESSAGE = "No tracks found for this mood."


@dataclass
class GenerationRun:
    """Inputs shared by every stage of one orchestrated generation."""

    catalog: SpotifyCatalog
    mood: str
    rng: random.Random
    shown_ids: Collection[str] = ()
    budget: int = config.DISPLAY_BUDGET

    def display(self, tracks: list[Track]) -> list[Track]:
        return rank_for_display(dedupe_tracks(tracks), self.shown_ids, self.rng, self.budget)


Stage = Callable[[GenerationRun], Awaitable[Optional[GenerationResult]]]


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

async def mood_similar_from_history(run: GenerationRun) -> Optional[GenerationResult]:
    return await generate_mood_similar(run.catalog, run.mood, run.rng, run.shown_ids, run.budget)


async def user_playlists_matching_mood(run: GenerationRun) -> Optional[GenerationResult]:
    playlists = await run.catalog.user_playlists(limit=20)
    matching = [
        p for p in playlists
        if run.mood in (p.name or "").lower() or run.mood in (p.description or "").lower()
    ]
    if not matching:
        return None
    return GenerationResult(
        title="Your Mood Playlists", strategy="user_playlists_matching_mood", playlists=matching
    )


async def recommendations(run: GenerationRun) -> Optional[GenerationResult]:
    """Mood-filtered slices of the user's own history, most recent first."""
    catalog, mood = run.catalog, run.mood

    recent = filter_by_mood(await catalog.recently_played(RECOMMENDATION_LIMIT), mood)
    if recent:
        return GenerationResult(
            title="Recently Played Tracks for Your Mood",
            strategy="recommendations",
            tracks=run.display(recent),
        )

    saved = filter_by_mood(await catalog.saved_tracks(RECOMMENDATION_LIMIT), mood)
    if saved:
        return GenerationResult(
            title="Your Liked Songs for This Mood",
            strategy="recommendations",
            tracks=run.display(saved),
        )

    # first range with mood matches wins
    for time_range in TOP_TRACK_RANGES:
        top = filter_by_mood(await catalog.top_tracks(time_range, RECOMMENDATION_LIMIT), mood)
        if top:
            return GenerationResult(
                title=f"Your Top {mood.capitalize()} Tracks",
                strategy="recommendations",
                tracks=run.display(top),
            )
    return None


async def top_tracks_direct(run: GenerationRun) -> Optional[GenerationResult]:
    top = await run.catalog.top_tracks("medium_term", TOP_TRACKS_DIRECT_LIMIT)
    if not top:
        return None
    return GenerationResult(title="Your Top Tracks", strategy="top_tracks_direct", tracks=run.display(top))


async def saved_tracks_fallback(run: GenerationRun) -> Optional[GenerationResult]:
    saved = await run.catalog.saved_tracks(RECOMMENDATION_LIMIT)
    if not saved:
        return None
    on_mood = filter_by_mood(saved, run.mood)
    if on_mood:
        return GenerationResult(
            title="Your Liked Songs for This Mood",
            strategy="saved_tracks_fallback",
            tracks=run.display(on_mood),
            candidates=saved,
        )
    return GenerationResult(
        title="Your Liked Songs",
        strategy="saved_tracks_fallback",
        tracks=run.display(saved),
        candidates=saved,
    )


async def static_guidance(run: GenerationRun) -> Optional[GenerationResult]:
    return GenerationResult(title=GUIDANCE_TITLE, strategy="static_guidance", message=GUIDANCE_MESSAGE)


STAGES: list[tuple[str, Stage]] = [
    ("mood_similar_from_history", mood_similar_from_history),
    ("user_playlists_matching_mood", user_playlists_matching_mood),
    ("recommendations", recommendations),
    ("top_tracks_direct", top_tracks_direct),
    ("saved_tracks_fallback", saved_tracks_fallback),
    ("static_guidance", static_guidance),
]


async def run_stages(run: GenerationRun, stages: list[tuple[str, Stage]]) -> GenerationResult:
    """Try each stage in order; the first non-empty result wins."""
    for name, stage in stages:
        try:
            result = await stage(run)
        except Exception:
            logger.exception(f"[orchestrator] stage {name} failed – falling through")
            continue
        if result is not None and not result.is_empty:
            logger.info(f"[orchestrator] {name} produced '{result.title}'")
            return result
        logger.info(f"[orchestrator] {name} produced nothing")
    return GenerationResult(title=GUIDANCE_TITLE, strategy="static_guidance", message=GUIDANCE_MESSAGE)


# ---------------------------------------------------------------------------
# Session-level operations
# ---------------------------------------------------------------------------

async def _commit(
    ctx: SessionContext,
    token: int,
    result: GenerationResult,
    shown_store: ShownTrackStore,
    mood: str,
) -> GenerationResult:
    """Publish *result* to the session unless a newer generation was started."""
    if not ctx.guard.is_current(token):
        logger.info(f"[orchestrator] discarding stale generation #{token} (latest #{ctx.guard.latest})")
        result.stale = True
        return result

    if result.tracks:
        await shown_store.mark_shown(mood, [t.spotify_id for t in result.tracks])
        ctx.current_tracks = list(result.tracks)
        ctx.all_tracks = list(result.candidates or result.tracks)
    if result.language:
        ctx.language = result.language
    ctx.mood = mood
    return result


async def generate_playlist(
    ctx: SessionContext,
    catalog: SpotifyCatalog,
    shown_store: ShownTrackStore,
    mood: str,
) -> GenerationResult:
    """Run the fallback chain for *mood* and commit the result to *ctx*."""
    token = ctx.guard.issue()
    shown_ids = await shown_store.load(mood)
    logger.info(f"[orchestrator] generation #{token}: mood={mood}, {len(shown_ids)} shown id(s)")

    run = GenerationRun(catalog=catalog, mood=mood, rng=ctx.rng, shown_ids=shown_ids)
    result = await run_stages(run, STAGES)
    return await _commit(ctx, token, result, shown_store, mood)


async def show_liked_songs(
    ctx: SessionContext,
    catalog: SpotifyCatalog,
    shown_store: ShownTrackStore,
) -> GenerationResult:
    token = ctx.guard.issue()
    mood = ctx.mood or "liked"
    shown_ids = await shown_store.load(mood)
    liked = await catalog.saved_tracks(LIKED_SONGS_LIMIT)
    if not liked:
        result = GenerationResult(
            title="No Liked Songs Found", strategy="liked_songs", message=NO_LIKED_SONGS_MESSAGE
        )
    else:
        run = GenerationRun(catalog=catalog, mood=mood, rng=ctx.rng, shown_ids=shown_ids)
        result = GenerationResult(
            title="Your Liked Songs", strategy="liked_songs", tracks=run.display(liked), candidates=liked
        )
    return await _commit(ctx, token, result, shown_store, mood)


async def refilter_current(
    ctx: SessionContext,
    shown_store: ShownTrackStore,
    mood: str,
) -> GenerationResult:
    """Keyword-filter the last fetched pool for *mood* without any catalog call.

    The matches go through the same display path as a generation: unseen
    tracks first, shuffled, truncated, then recorded as shown.
    """
    matching = filter_by_mood(ctx.all_tracks, mood)
    ctx.mood = mood
    if not matching:
        return GenerationResult(
            title=f"{mood.capitalize()} Tracks", strategy="refilter", message=NO_MOOD_TRACKS_MESSAGE
        )
    shown_ids = await shown_store.load(mood)
    tracks = rank_for_display(dedupe_tracks(matching), shown_ids, ctx.rng, config.DISPLAY_BUDGET)
    await shown_store.mark_shown(mood, [t.spotify_id for t in tracks])
    ctx.current_tracks = tracks
    return GenerationResult(title=f"{mood.capitalize()} Tracks", strategy="refilter", tracks=tracks)


async def saved_flags(catalog: SpotifyCatalog, tracks: list[Track]) -> list[bool]:
    """Liked state per track, all False if the lookup fails."""
    flags = await catalog.contains_saved([t.spotify_id for t in tracks])
    if len(flags) != len(tracks):
        return [False] * len(tracks)
    return flags
