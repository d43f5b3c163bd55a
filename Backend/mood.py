"""Mood and language classifiers – pure functions over :class:`Track` lists.

Two independent mood signals are combined:

* lexical: the mood's keywords looked for in ``title + artists + album``;
* numeric: a fixed predicate over the track's audio features, when the
  features could be fetched.  Missing features mean "unknown", which never
  counts as a match and never fails.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable, Mapping, Optional

import config
from models import AudioFeatures, Track
from mood_lexicon import (
    DEFAULT_LANGUAGE,
    LANGUAGE_KEYWORDS,
    MOOD_GENRE_SETS,
    MOOD_KEYWORDS,
    lookup,
)

AUDIO_PREDICATES: dict[str, Callable[[AudioFeatures], bool]] = {
    # High valence, good energy, danceable
    "happy": lambda f: (
        f.valence >= 0.6 and f.energy >= 0.5 and f.danceability >= 0.5 and f.acousticness <= 0.7
    ),
    # Low valence, low energy, more acoustic
    "sad": lambda f: f.valence <= 0.4 and f.energy <= 0.5 and f.acousticness >= 0.3,
    # Low energy, acoustic, moderate valence
    "chill": lambda f: (
        f.energy <= 0.5 and f.acousticness >= 0.4 and 0.3 <= f.valence <= 0.7
    ),
    # High energy, low valence, not acoustic
    "angry": lambda f: (
        f.energy >= 0.7 and f.valence <= 0.5 and f.acousticness <= 0.3 and f.danceability >= 0.4
    ),
}


def dedupe_tracks(tracks: Iterable[Track]) -> list[Track]:
    """First occurrence wins; id-less tracks are dropped."""
    seen: set[str] = set()
    out: list[Track] = []
    for t in tracks:
        if t.spotify_id and t.spotify_id not in seen:
            seen.add(t.spotify_id)
            out.append(t)
    return out


def attach_audio_features(
    tracks: Iterable[Track], features: Mapping[str, AudioFeatures]
) -> list[Track]:
    """Copies of *tracks* carrying their audio features where known."""
    return [
        replace(t, audio_features=features[t.spotify_id]) if t.spotify_id in features else t
        for t in tracks
    ]


# ---------------------------------------------------------------------------
# Mood
# ---------------------------------------------------------------------------

def score_by_keyword(track: Track, mood: str) -> bool:
    text = track.lexical_text
    return any(kw in text for kw in lookup(MOOD_KEYWORDS, mood, "chill"))


def score_by_audio_features(track: Track, mood: str) -> Optional[bool]:
    """True/False from the mood's numeric predicate, None when features are unknown."""
    if track.audio_features is None:
        return None
    predicate = AUDIO_PREDICATES.get(mood) or AUDIO_PREDICATES["chill"]
    return bool(predicate(track.audio_features))


def matches_mood(track: Track, mood: str) -> bool:
    return score_by_keyword(track, mood) or score_by_audio_features(track, mood) is True


def filter_by_mood(tracks: Iterable[Track], mood: str) -> list[Track]:
    """Keyword-only mood filter."""
    return [t for t in tracks if score_by_keyword(t, mood)]


def filter_by_audio_features(tracks: Iterable[Track], mood: str) -> list[Track]:
    return [t for t in tracks if score_by_audio_features(t, mood) is True]


def filter_by_genre_heuristic(
    tracks: Iterable[Track],
    mood: str,
    artist_genres: Mapping[str, Iterable[str]],
) -> list[Track]:
    """Include/exclude filter over track text and the artists' genre tags.

    Exclusion is checked first; a track then needs one include keyword in
    its title/album text or in any of its artists' genres.
    """
    sets = MOOD_GENRE_SETS.get(mood) or MOOD_GENRE_SETS["chill"]
    include, exclude = sets["include"], sets["exclude"]

    matches: list[Track] = []
    for t in tracks:
        genres: list[str] = []
        for a in t.artists:
            for g in artist_genres.get(a.spotify_id or "", ()):
                if g not in genres:
                    genres.append(g)
        text = f"{t.title} {t.album_name}".lower()

        def _hit(word: str) -> bool:
            return word in text or any(word in g for g in genres)

        if any(_hit(x) for x in exclude):
            continue
        if any(_hit(x) for x in include):
            matches.append(t)
    return matches


# ---------------------------------------------------------------------------
# Language
# ---------------------------------------------------------------------------

def detect_language(tracks: Iterable[Track]) -> str:
    """Most common language by keyword evidence; ``english`` on a tie or no evidence."""
    counts: dict[str, int] = {}
    for t in tracks:
        text = t.lexical_text
        for lang, keywords in LANGUAGE_KEYWORDS.items():
            if any(kw in text for kw in keywords):
                counts[lang] = counts.get(lang, 0) + 1

    if not counts:
        return DEFAULT_LANGUAGE
    best = max(counts.values())
    leaders = [lang for lang, n in counts.items() if n == best]
    return leaders[0] if len(leaders) == 1 else DEFAULT_LANGUAGE


def filter_by_language(tracks: Iterable[Track], language: str) -> list[Track]:
    keywords = lookup(LANGUAGE_KEYWORDS, language, DEFAULT_LANGUAGE)
    return [t for t in tracks if any(kw in t.lexical_text for kw in keywords)]


def filter_by_mood_and_language(
    tracks: Iterable[Track],
    mood: str,
    language: str,
    min_language_tracks: int = config.LANGUAGE_MIN_TRACKS,
) -> list[Track]:
    """Mood filter (keyword ∪ audio), then language filter, relaxed when too strict.

    With fewer than *min_language_tracks* language matches the result is the
    language matches followed by the remaining mood matches.
    """
    mood_filtered = [t for t in dedupe_tracks(tracks) if matches_mood(t, mood)]
    language_filtered = filter_by_language(mood_filtered, language)
    if len(language_filtered) >= min_language_tracks:
        return language_filtered

    kept = {t.spotify_id for t in language_filtered}
    return language_filtered + [t for t in mood_filtered if t.spotify_id not in kept]
