"""FastAPI server for mood playlist generation.

Endpoints
---------
GET    /                          → health check

POST   /register                  → create a pending registration
GET    /users                     → list registrations (admin)
PUT    /users/{id}/status         → approve / reject a registration (admin)
DELETE /users/{id}                → delete a registration (admin)

POST   /session                   → approved email + Spotify bearer token → session JWT

POST   /generate                  → run the fallback chain for a mood
POST   /tracks/filter             → re-filter the current tracks for another mood
GET    /liked                     → show the user's liked songs
PUT    /library/{track_id}        → like a track
DELETE /library/{track_id}        → unlike a track

POST   /shuffle/start             → start a shuffled preview queue
POST   /shuffle/next              → next track in the queue
POST   /shuffle/stop              → stop the queue

GET    /weather/{city}            → weather → mood by city
GET    /weather-coords/{lat}/{lon} → weather → mood by coordinates

Protected routes use the ``require_auth`` dependency to extract the
registration id from the JWT.  The Spotify OAuth handshake happens in the
frontend; the backend only ever receives the resulting bearer token.

Run with::

    uvicorn server:app --host 0.0.0.0 --port 8888 --reload
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import uvicorn

import config
import registrations
from models import GenerationResult, Mood, Registration, Track
from orchestrator import generate_playlist, refilter_current, saved_flags, show_liked_songs
from registrations import DuplicateRegistration, InvalidRegistration, RegistrationNotFound
from session import SessionContext, create_session_token, verify_session_token
from shown_tracks import ShownTrackStore, path_for_user
from spotify_client import SpotifyCatalog
from weather import WeatherUnavailable, weather_by_city, weather_by_coords

# Set up logging
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
)
# Silence noisy HTTP libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

# In-memory per-user state.  Lost on restart; the user just opens a new session.
_sessions: dict[str, SessionContext] = {}
_shown_stores: dict[str, ShownTrackStore] = {}


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(title="Moodlist API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Middleware to log incoming requests
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"[request] {request.method} {request.url.path}")
    return await call_next(request)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    username: str = ""
    email: str = ""


class StatusRequest(BaseModel):
    status: str = ""


class SessionRequest(BaseModel):
    email: str
    spotify_token: str


class MoodRequest(BaseModel):
    mood: Mood


# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------

async def require_auth(request: Request) -> str:
    """FastAPI dependency that validates the JWT and returns the registration id.

    Raises 401 if the token is missing or invalid.
    """
    auth = request.headers.get("Authorization", "")
    token: Optional[str] = auth[7:] if auth.startswith("Bearer ") else None
    if not token:
        raise HTTPException(status_code=401, detail="Missing or invalid session token")
    payload = verify_session_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Missing or invalid session token")
    return payload["sub"]


async def require_session(user_id: str = Depends(require_auth)) -> SessionContext:
    ctx = _sessions.get(user_id)
    if ctx is None:
        raise HTTPException(status_code=401, detail="No active Spotify session, sign in again")
    return ctx


def _shown_store(user_id: str) -> ShownTrackStore:
    store = _shown_stores.get(user_id)
    if store is None:
        store = ShownTrackStore(path_for_user(user_id))
        _shown_stores[user_id] = store
    return store


def _catalog(ctx: SessionContext) -> SpotifyCatalog:
    return SpotifyCatalog(ctx.token, ctx.capabilities, base_url=config.SPOTIFY_API_URL)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _track_to_dict(track: Track, liked: bool = False) -> dict:
    d = asdict(track)
    d["liked"] = liked
    return d


def _result_to_dict(result: GenerationResult, flags: Optional[list[bool]] = None) -> dict:
    flags = flags or [False] * len(result.tracks)
    return {
        "title": result.title,
        "strategy": result.strategy,
        "tracks": [_track_to_dict(t, liked) for t, liked in zip(result.tracks, flags)],
        "playlists": [asdict(p) for p in result.playlists],
        "message": result.message,
        "language": result.language,
        "stale": result.stale,
    }


def _registration_to_dict(reg: Registration) -> dict:
    return {
        "id": reg.id,
        "username": reg.username,
        "email": reg.email,
        "registeredAt": reg.registered_at,
        "status": reg.status,
    }


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/")
async def root():
    """Health check / root endpoint."""
    return {
        "status": "ok",
        "service": "Moodlist API",
        "docs": "/docs",
    }


# ---------------------------------------------------------------------------
# Registration / approval
# ---------------------------------------------------------------------------

@app.post("/register", status_code=201)
async def register(body: RegisterRequest):
    try:
        reg = await registrations.register(body.username, body.email)
    except InvalidRegistration as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateRegistration as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": "User registered successfully", "user": _registration_to_dict(reg)}


@app.get("/users")
async def list_users():
    regs = await registrations.list_registrations()
    return {"users": [_registration_to_dict(r) for r in regs]}


@app.put("/users/{user_id}/status")
async def update_user_status(user_id: str, body: StatusRequest):
    try:
        reg = await registrations.update_status(user_id, body.status)
    except InvalidRegistration as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RegistrationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    if reg.status != "approved":
        _sessions.pop(reg.id, None)
    return {"message": f"User status updated to {reg.status}", "user": _registration_to_dict(reg)}


@app.delete("/users/{user_id}")
async def delete_user(user_id: str):
    try:
        removed = await registrations.delete(user_id)
    except RegistrationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    _sessions.pop(removed.id, None)
    return {"message": "User deleted successfully", "user": _registration_to_dict(removed)}


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@app.post("/session")
async def open_session(body: SessionRequest):
    """Exchange an approved email and a Spotify bearer token for a session JWT.

    Opening a session again with a new Spotify token re-enables every
    capability a previous token was denied.
    """
    if not body.spotify_token.strip():
        raise HTTPException(status_code=400, detail="Spotify token is required")
    reg = await registrations.get_by_email(body.email)
    if reg is None:
        raise HTTPException(status_code=404, detail="User not found")
    if reg.status != "approved":
        raise HTTPException(status_code=403, detail=f"Registration is {reg.status}")

    ctx = _sessions.get(reg.id)
    if ctx is None:
        _sessions[reg.id] = SessionContext(user_id=reg.id, token=body.spotify_token)
    else:
        ctx.set_token(body.spotify_token)

    return {"token": create_session_token(reg.id, reg.username), "user": _registration_to_dict(reg)}


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

@app.post("/generate")
async def generate(body: MoodRequest, ctx: SessionContext = Depends(require_session)):
    """Run the fallback chain for a mood.

    Always answers 200: when nothing can be generated the body carries a
    guidance message instead of tracks.
    """
    async with _catalog(ctx) as catalog:
        result = await generate_playlist(ctx, catalog, _shown_store(ctx.user_id), body.mood)
        flags = await saved_flags(catalog, result.tracks) if result.tracks else []
    return _result_to_dict(result, flags)


@app.post("/tracks/filter")
async def filter_tracks(body: MoodRequest, ctx: SessionContext = Depends(require_session)):
    result = await refilter_current(ctx, _shown_store(ctx.user_id), body.mood)
    return _result_to_dict(result)


@app.get("/liked")
async def liked_songs(ctx: SessionContext = Depends(require_session)):
    async with _catalog(ctx) as catalog:
        result = await show_liked_songs(ctx, catalog, _shown_store(ctx.user_id))
        flags = [True] * len(result.tracks)
    return _result_to_dict(result, flags)


@app.put("/library/{track_id}")
async def like_track(track_id: str, ctx: SessionContext = Depends(require_session)):
    async with _catalog(ctx) as catalog:
        ok = await catalog.save_track(track_id)
    if not ok:
        raise HTTPException(status_code=502, detail="Failed to update library")
    return {"track_id": track_id, "liked": True}


@app.delete("/library/{track_id}")
async def unlike_track(track_id: str, ctx: SessionContext = Depends(require_session)):
    async with _catalog(ctx) as catalog:
        ok = await catalog.remove_saved_track(track_id)
    if not ok:
        raise HTTPException(status_code=502, detail="Failed to update library")
    return {"track_id": track_id, "liked": False}


# ---------------------------------------------------------------------------
# Preview queue
# ---------------------------------------------------------------------------

@app.post("/shuffle/start")
async def shuffle_start(ctx: SessionContext = Depends(require_session)):
    track = ctx.queue.start(ctx.current_tracks, ctx.rng)
    if track is None:
        raise HTTPException(status_code=404, detail="No previewable tracks in the current list")
    return {"track": _track_to_dict(track), "queue_length": len(ctx.queue.tracks)}


@app.post("/shuffle/next")
async def shuffle_next(ctx: SessionContext = Depends(require_session)):
    track = ctx.queue.next()
    if track is None:
        raise HTTPException(status_code=409, detail="Shuffle is not running")
    return {"track": _track_to_dict(track), "position": ctx.queue.position}


@app.post("/shuffle/stop")
async def shuffle_stop(ctx: SessionContext = Depends(require_session)):
    ctx.queue.stop()
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------

@app.get("/weather/{city}")
async def weather_city(city: str):
    try:
        return await weather_by_city(city)
    except WeatherUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/weather-coords/{lat}/{lon}")
async def weather_coords(lat: float, lon: float):
    try:
        return await weather_by_coords(lat, lon)
    except WeatherUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run("server:app", host="0.0.0.0", port=8888, reload=True)
