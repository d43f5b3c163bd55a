"""Listening-history collection – the seed material for mood generation.

Public entry point: :func:`collect_history`.
"""

from __future__ import annotations

import logging

from models import Track
from mood import dedupe_tracks
from spotify_client import TIME_RANGES, SpotifyCatalog

logger = logging.getLogger(__name__)


async def collect_history(catalog: SpotifyCatalog) -> list[Track]:
    """Return the user's recently-played, saved and top tracks, deduplicated.

    Sources, each tolerated to fail on its own:

    1. recently played (last 50)
    2. saved / liked tracks (first 50)
    3. top tracks for short, medium and long term (50 each)

    First occurrence of a track id wins.  An empty list is a valid outcome
    for a brand-new account.
    """
    aggregated: list[Track] = []

    aggregated.extend(await catalog.recently_played())
    aggregated.extend(await catalog.saved_tracks())
    for time_range in TIME_RANGES:
        aggregated.extend(await catalog.top_tracks(time_range))

    history = dedupe_tracks(aggregated)
    logger.info(f"[history] {len(history)} unique track(s) from {len(aggregated)} history entries")
    return history
