"""Per-user, per-mood record of track ids already displayed.

One JSON file per user::

    {
      "shown_track_ids_chill": ["4uLU6hMCjMI75M1A2tKUQC", ...],
      "shown_track_ids_happy": [...]
    }

Each mood is read from disk at most once per store instance and then served
from memory.  ``mark_shown`` is a single read-modify-write under a lock, so
two generations for the same mood finishing together cannot lose ids.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Union

import config

logger = logging.getLogger(__name__)


def _key(mood: str) -> str:
    return f"shown_track_ids_{mood}"


def path_for_user(user_id: str, root: Union[str, Path] = config.SHOWN_TRACKS_DIR) -> Path:
    return Path(root) / f"{user_id}.json"


# ---------------------------------------------------------------------------
# Synchronous helpers (run inside asyncio.to_thread)
# ---------------------------------------------------------------------------

def _read_sync(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning(f"[shown] Unreadable store {path}: {exc} – starting empty")
        return {}
    return data if isinstance(data, dict) else {}


def _write_sync(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    tmp.replace(path)


# ---------------------------------------------------------------------------
# Async store
# ---------------------------------------------------------------------------

class ShownTrackStore:
    """Ordered, de-duplicated ``mood → [track ids]`` backed by a JSON file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._loaded: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()

    async def _load_unlocked(self, mood: str) -> list[str]:
        if mood not in self._loaded:
            data = await asyncio.to_thread(_read_sync, self.path)
            ids = data.get(_key(mood)) or []
            self._loaded[mood] = [str(i) for i in ids if i]
        return self._loaded[mood]

    async def load(self, mood: str) -> set[str]:
        """Ids already shown for *mood* (a copy; mutate via :meth:`mark_shown`)."""
        async with self._lock:
            return set(await self._load_unlocked(mood))

    async def mark_shown(self, mood: str, track_ids: Iterable[str]) -> int:
        """Append unseen *track_ids* for *mood* and persist.  Returns how many were new."""
        async with self._lock:
            ids = await self._load_unlocked(mood)
            known = set(ids)
            new = []
            for tid in track_ids:
                if tid and tid not in known:
                    known.add(tid)
                    new.append(tid)
            if not new:
                return 0

            ids.extend(new)
            data = await asyncio.to_thread(_read_sync, self.path)
            data[_key(mood)] = list(ids)
            await asyncio.to_thread(_write_sync, self.path, data)
            logger.info(f"[shown] {mood}: +{len(new)} id(s), {len(ids)} total")
            return len(new)
