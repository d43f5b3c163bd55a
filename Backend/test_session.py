"""Session context, generation guard, preview queue and JWTs.

Run:
    pytest Backend/test_session.py
"""

from __future__ import annotations

import random
import time

import jwt

import config
from conftest import make_track
from session import (
    GenerationGuard,
    SessionContext,
    ShuffleQueue,
    create_session_token,
    verify_session_token,
)
from spotify_client import AUDIO_FEATURES, BROWSE


def test_guard_only_latest_token_is_current():
    guard = GenerationGuard()
    first = guard.issue()
    second = guard.issue()
    assert second > first
    assert guard.is_current(second)
    assert not guard.is_current(first)


def test_new_token_reenables_denied_capabilities():
    ctx = SessionContext(user_id="u1", token="old")
    ctx.capabilities.deny(AUDIO_FEATURES)
    ctx.set_token("old")
    assert not ctx.capabilities.is_enabled(AUDIO_FEATURES)

    ctx.set_token("new")
    assert ctx.token == "new"
    assert ctx.capabilities.is_enabled(AUDIO_FEATURES)


def test_capability_deny_reports_first_transition():
    ctx = SessionContext(user_id="u1", token="t")
    assert ctx.capabilities.deny(BROWSE) is True
    assert ctx.capabilities.deny(BROWSE) is False


# ── Preview queue ────────────────────────────────────────────────────────
def test_queue_without_previews_does_not_start():
    queue = ShuffleQueue()
    assert queue.start([make_track("a"), make_track("b")], random.Random(0)) is None
    assert not queue.active
    assert queue.next() is None


def test_queue_dedupes_and_wraps_around():
    tracks = [
        make_track("a", preview_url="https://p/a.mp3"),
        make_track("b"),
        make_track("c", preview_url="https://p/c.mp3"),
        make_track("a", preview_url="https://p/a.mp3"),
    ]
    queue = ShuffleQueue()
    first = queue.start(tracks, random.Random(1))
    assert sorted(t.spotify_id for t in queue.tracks) == ["a", "c"]
    second = queue.next()
    third = queue.next()
    assert {first.spotify_id, second.spotify_id} == {"a", "c"}
    assert third.spotify_id == first.spotify_id
    assert queue.current is third


def test_queue_stop_resets():
    queue = ShuffleQueue()
    queue.start([make_track("a", preview_url="https://p/a.mp3")], random.Random(0))
    queue.stop()
    assert not queue.active and queue.current is None and queue.tracks == []


# ── JWT ──────────────────────────────────────────────────────────────────
def test_session_token_round_trip():
    token = create_session_token("rec123", "alice")
    payload = verify_session_token(token)
    assert payload["sub"] == "rec123"
    assert payload["name"] == "alice"
    assert payload["exp"] - payload["iat"] == 60 * 60 * 24 * 7


def test_tampered_or_expired_tokens_are_rejected():
    assert verify_session_token("not-a-jwt") is None
    forged = jwt.encode({"sub": "x"}, "some-other-secret", algorithm="HS256")
    assert verify_session_token(forged) is None
    expired = jwt.encode(
        {"sub": "x", "exp": int(time.time()) - 10}, config.JWT_SECRET, algorithm="HS256"
    )
    assert verify_session_token(expired) is None
