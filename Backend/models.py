"""Data classes shared across modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Literal, Optional

Mood = Literal["happy", "sad", "chill", "angry"]
MOODS: tuple[str, ...] = ("happy", "sad", "chill", "angry")

RegistrationStatus = Literal["pending", "approved", "rejected"]


@dataclass(frozen=True)
class Artist:
    name: str
    spotify_id: Optional[str] = None
    genres: tuple[str, ...] = ()


@dataclass(frozen=True)
class AudioFeatures:
    """Provider-computed descriptors, each in [0, 1]."""

    valence: float
    energy: float
    danceability: float
    acousticness: float


@dataclass(frozen=True)
class Track:
    """A catalog track.  Never mutated once parsed; filtering copies."""

    spotify_id: str
    title: str
    artists: tuple[Artist, ...]
    album_name: str
    duration_ms: int = 0
    album_image_url: Optional[str] = None
    preview_url: Optional[str] = None
    external_url: Optional[str] = None
    uri: Optional[str] = None
    audio_features: Optional[AudioFeatures] = None

    @property
    def lexical_text(self) -> str:
        """Case-folded ``title + artist names + album name``."""
        names = " ".join(a.name for a in self.artists)
        return f"{self.title} {names} {self.album_name}".lower()


@dataclass
class Playlist:
    """Basic Spotify playlist metadata (without tracks)."""

    spotify_id: str
    name: str
    total_tracks: int
    owner: str
    description: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class Category:
    """A browse category (``/browse/categories``)."""

    spotify_id: str
    name: str


@dataclass
class GenerationResult:
    """What the orchestrator hands to the display layer."""

    title: str
    strategy: str
    tracks: List[Track] = field(default_factory=list)
    playlists: List[Playlist] = field(default_factory=list)
    message: Optional[str] = None
    language: Optional[str] = None
    stale: bool = False
    # Pool the display was drawn from; kept for re-filtering by another mood.
    candidates: List[Track] = field(default_factory=list, repr=False)

    @property
    def is_empty(self) -> bool:
        return not self.tracks and not self.playlists and not self.message


@dataclass
class Registration:
    """A user registration awaiting (or past) admin approval."""

    id: str
    username: str
    email: str
    registered_at: str
    status: RegistrationStatus = "pending"


class CandidatePool:
    """Insertion-ordered ``track id → Track`` accumulator for one generation run.

    Holds at most one copy of a track however many strategies found it.
    """

    def __init__(self) -> None:
        self._tracks: dict[str, Track] = {}

    def add(self, track: Track) -> bool:
        if not track.spotify_id or track.spotify_id in self._tracks:
            return False
        self._tracks[track.spotify_id] = track
        return True

    def extend(self, tracks: Iterable[Track]) -> int:
        """Add *tracks*, returning how many were new."""
        return sum(1 for t in tracks if self.add(t))

    def tracks(self) -> list[Track]:
        return list(self._tracks.values())

    def __contains__(self, spotify_id: object) -> bool:
        return spotify_id in self._tracks

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(self._tracks.values())
