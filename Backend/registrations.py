"""Registration / approval records stored in PocketBase via the official SDK.

A user registers with a username and email and starts out ``pending``; an
admin approves or rejects them.  Only approved users may open a session.

The ``registrations`` collection (a plain *base* collection) should have:

    username        (text)
    email           (text, unique)
    registered_at   (text)           – ISO-8601 timestamp
    status          (select)         – pending | approved | rejected

Uses: https://pypi.org/project/pocketbase/
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from pocketbase import PocketBase
from pocketbase.utils import ClientResponseError

import config
from models import Registration

logger = logging.getLogger(__name__)

_client = PocketBase(config.POCKETBASE_URL)
_COLLECTION = "registrations"
_admin_token_expires_at: float = 0.0

STATUSES = ("pending", "approved", "rejected")


class RegistrationError(Exception):
    """Base class for registration store errors the HTTP layer reports."""


class InvalidRegistration(RegistrationError):
    pass


class DuplicateRegistration(RegistrationError):
    pass


class RegistrationNotFound(RegistrationError):
    pass


def _ensure_admin_auth(force: bool = False) -> None:
    """Authenticate as a PocketBase superuser if not already authenticated.

    Admin tokens expire after about a day; re-authenticate 5 minutes early.
    """
    global _admin_token_expires_at

    current_time = time.time()
    needs_auth = (
        not _client.auth_store.token
        or current_time >= (_admin_token_expires_at - 300)
        or force
    )
    if needs_auth:
        _client.collection("_superusers").auth_with_password(
            config.POCKETBASE_ADMIN_EMAIL,
            config.POCKETBASE_ADMIN_PASSWORD,
        )
        _admin_token_expires_at = current_time + (23 * 3600)


def _get_client() -> PocketBase:
    _ensure_admin_auth()
    return _client


def _with_retry(func, *args, **kwargs):
    """Run *func*, re-authenticating once on a 401/403 from PocketBase."""
    try:
        return func(*args, **kwargs)
    except ClientResponseError as e:
        if e.status in (401, 403):
            _ensure_admin_auth(force=True)
            return func(*args, **kwargs)
        raise


def validate(username: str, email: str) -> None:
    if not username or not email:
        raise InvalidRegistration("Username and email are required")
    if "@" not in email or "." not in email:
        raise InvalidRegistration("Invalid email format")


def _record_to_registration(record: Any) -> Registration:
    status = getattr(record, "status", None) or "pending"
    return Registration(
        id=getattr(record, "id", ""),
        username=getattr(record, "username", "") or "",
        email=getattr(record, "email", "") or "",
        registered_at=getattr(record, "registered_at", "") or "",
        status=status if status in STATUSES else "pending",
    )


# ---------------------------------------------------------------------------
# Synchronous helpers (run inside asyncio.to_thread)
# ---------------------------------------------------------------------------

def _find_by_email_sync(email: str) -> Optional[Registration]:
    client = _get_client()
    quoted = email.replace("\\", "\\\\").replace('"', '\\"')
    result = _with_retry(
        client.collection(_COLLECTION).get_list, 1, 1, {"filter": f'email="{quoted}"'}
    )
    return _record_to_registration(result.items[0]) if result.items else None


def _register_sync(username: str, email: str) -> Registration:
    validate(username, email)
    if _find_by_email_sync(email) is not None:
        raise DuplicateRegistration("User with this email already exists")

    client = _get_client()
    payload = {
        "username": username,
        "email": email,
        "registered_at": datetime.now(timezone.utc).isoformat(),
        "status": "pending",
    }
    record = _with_retry(client.collection(_COLLECTION).create, payload)
    return _record_to_registration(record)


def _list_sync() -> list[Registration]:
    client = _get_client()
    registrations: list[Registration] = []
    page = 1
    while True:
        result = _with_retry(
            client.collection(_COLLECTION).get_list, page, 50, {"sort": "registered_at"}
        )
        registrations.extend(_record_to_registration(rec) for rec in result.items)
        if len(result.items) < 50:
            break
        page += 1
    return registrations


def _get_one_sync(registration_id: str) -> Registration:
    client = _get_client()
    try:
        record = _with_retry(client.collection(_COLLECTION).get_one, registration_id)
    except ClientResponseError as e:
        if e.status == 404:
            raise RegistrationNotFound("User not found") from e
        raise
    return _record_to_registration(record)


def _update_status_sync(registration_id: str, status: str) -> Registration:
    if status not in STATUSES:
        raise InvalidRegistration("Invalid status value")
    _get_one_sync(registration_id)
    client = _get_client()
    record = _with_retry(
        client.collection(_COLLECTION).update, registration_id, {"status": status}
    )
    return _record_to_registration(record)


def _delete_sync(registration_id: str) -> Registration:
    removed = _get_one_sync(registration_id)
    client = _get_client()
    _with_retry(client.collection(_COLLECTION).delete, registration_id)
    return removed


# ---------------------------------------------------------------------------
# Async public API (wraps sync SDK calls via to_thread)
# ---------------------------------------------------------------------------

async def register(username: str, email: str) -> Registration:
    """Create a pending registration.

    Raises InvalidRegistration on missing/invalid input and
    DuplicateRegistration when the email is already registered.
    """
    registration = await asyncio.to_thread(_register_sync, username.strip(), email.strip())
    logger.info(f"[registrations] {registration.email} registered ({registration.id})")
    return registration


async def list_registrations() -> list[Registration]:
    return await asyncio.to_thread(_list_sync)


async def get_registration(registration_id: str) -> Registration:
    return await asyncio.to_thread(_get_one_sync, registration_id)


async def get_by_email(email: str) -> Optional[Registration]:
    return await asyncio.to_thread(_find_by_email_sync, email.strip())


async def update_status(registration_id: str, status: str) -> Registration:
    registration = await asyncio.to_thread(_update_status_sync, registration_id, status)
    logger.info(f"[registrations] {registration.email} → {status}")
    return registration


async def delete(registration_id: str) -> Registration:
    removed = await asyncio.to_thread(_delete_sync, registration_id)
    logger.info(f"[registrations] {removed.email} deleted")
    return removed
