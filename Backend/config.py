"""Environment configuration loaded from .env file."""

import os
from dotenv import load_dotenv

load_dotenv()

SPOTIFY_API_URL: str = os.environ.get("SPOTIFY_API_URL", "https://api.spotify.com/v1")

# PocketBase (registration / approval records)
POCKETBASE_URL: str = os.environ.get("POCKETBASE_URL", "http://127.0.0.1:8090")
POCKETBASE_ADMIN_EMAIL: str = os.environ.get("POCKETBASE_ADMIN_EMAIL", "admin@example.com")
POCKETBASE_ADMIN_PASSWORD: str = os.environ.get("POCKETBASE_ADMIN_PASSWORD", "admin12345678")

# JWT session secret – generate a strong random value for production
JWT_SECRET: str = os.environ.get("JWT_SECRET", "change-me-to-a-real-secret")

# Frontend URL for CORS
FRONTEND_URL: str = os.environ.get("FRONTEND_URL", "http://localhost:5173")

OPENWEATHER_API_KEY: str = os.environ.get("OPENWEATHER_API_KEY", "")

# One JSON file per user holding the per-mood "already shown" track ids
SHOWN_TRACKS_DIR: str = os.environ.get("SHOWN_TRACKS_DIR", "data/shown_tracks")

# ---------------------------------------------------------------------------
# Catalog limits (provider-imposed)
# ---------------------------------------------------------------------------

BATCH_SIZE = 50
SEARCH_PAGE_SIZE = 10
HISTORY_PAGE_SIZE = 50
DEFAULT_MARKET = "US"

# ---------------------------------------------------------------------------
# Request policy
# ---------------------------------------------------------------------------

REQUEST_TIMEOUT_SECONDS: float = float(os.environ.get("REQUEST_TIMEOUT_SECONDS", "10"))
RATE_LIMIT_MAX_RETRIES = 1
RATE_LIMIT_BACKOFF_SECONDS: float = float(os.environ.get("RATE_LIMIT_BACKOFF_SECONDS", "1.0"))
RATE_LIMIT_BATCH_SHRINK = 10

# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

DISPLAY_BUDGET = 20
# Below this many language-matched tracks the language filter is relaxed.
LANGUAGE_MIN_TRACKS = 10
