from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any

from dailystreak.core.config import settings
from dailystreak.services.supabase_rest import get_http

_CACHE_TTL_SECONDS = 30.0
_CACHE_MAX_ENTRIES = 2048

# token -> (expires_at, user); oldest entries are evicted first.
_USER_CACHE: OrderedDict[str, tuple[float, dict[str, Any]]] = OrderedDict()


def _cached_user(token: str) -> dict[str, Any] | None:
    entry = _USER_CACHE.get(token)
    if entry is None:
        return None
    expires_at, user = entry
    if expires_at <= time.monotonic():
        del _USER_CACHE[token]
        return None
    return user


def _remember_user(token: str, user: dict[str, Any]) -> None:
    _USER_CACHE[token] = (time.monotonic() + _CACHE_TTL_SECONDS, user)
    _USER_CACHE.move_to_end(token)
    while len(_USER_CACHE) > _CACHE_MAX_ENTRIES:
        _USER_CACHE.popitem(last=False)


async def get_current_user(*, access_token: str, use_cache: bool = True) -> dict[str, Any]:
    """Resolve the caller's Supabase user from their access token.

    Lookups are cached for a short TTL per token, since a client refreshing
    its streak and then reading the calendar sends the same token twice.
    """
    if use_cache:
        cached = _cached_user(access_token)
        if cached is not None:
            return cached

    resp = await get_http().get(
        str(settings.supabase_url).rstrip("/") + "/auth/v1/user",
        headers={
            "apikey": settings.supabase_anon_key,
            "authorization": f"Bearer {access_token}",
            "accept": "application/json",
        },
    )
    resp.raise_for_status()
    user = resp.json()
    if not isinstance(user, dict) or not user.get("id"):
        raise ValueError("Supabase auth response carries no user id")

    if use_cache:
        _remember_user(access_token, user)
    return user
