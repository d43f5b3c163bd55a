"""Per-user session state and JWT session tokens.

The frontend receives a JWT from ``POST /session`` and sends it on every
request as::

    Authorization: Bearer <jwt>

The JWT payload carries only the registration id.  Everything a generation
run needs (the Spotify bearer token, denied capabilities, the generation
counter, the preview queue) lives in a :class:`SessionContext` on the server.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Optional

import jwt  # PyJWT

import config
from models import Track
from mood import dedupe_tracks
from spotify_client import CapabilitySet

_ALGORITHM = "HS256"
_DEFAULT_TTL = 60 * 60 * 24 * 7  # 7 days


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_session_token(
    user_id: str,
    username: str,
    ttl: int = _DEFAULT_TTL,
) -> str:
    """Create a signed JWT for the given registration."""
    now = int(time.time())
    payload = {
        "sub": user_id,
        "name": username,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=_ALGORITHM)


def verify_session_token(token: str) -> Optional[dict]:
    """Verify and decode a JWT.

    Returns the decoded payload dict on success, or None if the token
    is invalid / expired.
    """
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


# ---------------------------------------------------------------------------
# Generation token
# ---------------------------------------------------------------------------

class GenerationGuard:
    """Monotonic counter; only the most recently issued token may commit."""

    def __init__(self) -> None:
        self._latest = 0

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest

    @property
    def latest(self) -> int:
        return self._latest


# ---------------------------------------------------------------------------
# Preview queue
# ---------------------------------------------------------------------------

class ShuffleQueue:
    """Shuffled queue of the current tracks that have a preview clip.

    ``next`` wraps around to the start; ``stop`` clears the queue.
    """

    def __init__(self) -> None:
        self.tracks: list[Track] = []
        self.position = -1

    @property
    def active(self) -> bool:
        return bool(self.tracks) and self.position >= 0

    @property
    def current(self) -> Optional[Track]:
        return self.tracks[self.position] if self.active else None

    def start(self, tracks: list[Track], rng: random.Random) -> Optional[Track]:
        """Build a new queue from *tracks*; None if none are previewable."""
        playable = [t for t in dedupe_tracks(tracks) if t.preview_url]
        if not playable:
            self.stop()
            return None
        rng.shuffle(playable)
        self.tracks = playable
        self.position = 0
        return self.tracks[0]

    def next(self) -> Optional[Track]:
        if not self.tracks:
            return None
        self.position = (self.position + 1) % len(self.tracks)
        return self.tracks[self.position]

    def stop(self) -> None:
        self.tracks = []
        self.position = -1


# ---------------------------------------------------------------------------
# Session context
# ---------------------------------------------------------------------------

@dataclass
class SessionContext:
    """Everything one user's generation runs share.

    Passed explicitly into the orchestrator instead of living in globals.
    """

    user_id: str
    token: str
    mood: Optional[str] = None
    language: Optional[str] = None
    capabilities: CapabilitySet = field(default_factory=CapabilitySet)
    current_tracks: list[Track] = field(default_factory=list)
    # Last fetched pool; re-filtered locally when only the mood changes.
    all_tracks: list[Track] = field(default_factory=list)
    rng: random.Random = field(default_factory=random.Random)
    guard: GenerationGuard = field(default_factory=GenerationGuard)
    queue: ShuffleQueue = field(default_factory=ShuffleQueue)

    def set_token(self, token: str) -> None:
        """Replace the Spotify credential.  A new token may carry new scopes."""
        if token != self.token:
            self.capabilities.reset()
        self.token = token
