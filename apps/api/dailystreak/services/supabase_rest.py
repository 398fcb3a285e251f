from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_http: httpx.AsyncClient | None = None

# Statuses worth another attempt: timeouts, throttling and gateway trouble.
TRANSIENT_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})
_UNIQUE_VIOLATION = "23505"


class SupabaseRestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: str | None = None,
        hint: str | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.hint = hint
        self.details = details

    @property
    def is_transient(self) -> bool:
        return self.status_code in TRANSIENT_STATUSES

    @property
    def is_conflict(self) -> bool:
        if self.status_code == 409 or self.code == _UNIQUE_VIOLATION:
            return True
        return "duplicate key" in str(self).lower()


def get_http() -> httpx.AsyncClient:
    global _http
    if _http is None:
        _http = httpx.AsyncClient(timeout=httpx.Timeout(30.0))
    return _http


async def close_http() -> None:
    global _http
    if _http is not None:
        await _http.aclose()
        _http = None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _error_from_response(resp: httpx.Response) -> SupabaseRestError:
    try:
        payload = resp.json()
    except ValueError:
        payload = None

    fields: dict[str, Any] = {}
    if isinstance(payload, dict):
        fields = {
            "code": _str_or_none(payload.get("code")),
            "hint": _str_or_none(payload.get("hint")),
            "details": payload.get("details"),
        }
        message = _str_or_none(payload.get("message"))
    else:
        message = _str_or_none(payload)

    message = message or resp.text.strip() or f"Supabase request failed ({resp.status_code})"
    return SupabaseRestError(status_code=resp.status_code, message=message, **fields)


def _first_row(data: Any) -> dict[str, Any]:
    if isinstance(data, list):
        return data[0] if data else {}
    return data if isinstance(data, dict) else {}


class SupabaseRest:
    """Thin PostgREST client; every call runs under the given bearer token."""

    def __init__(self, supabase_url: str, api_key: str):
        self._rest_base = supabase_url.rstrip("/") + "/rest/v1"
        self._api_key = api_key

    def _headers(
        self, bearer_token: str, *, prefer: str | None = None
    ) -> dict[str, str]:
        h = {
            "apikey": self._api_key,
            "authorization": f"Bearer {bearer_token}",
            "accept": "application/json",
        }
        if prefer:
            h["prefer"] = prefer
        return h

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code >= 400:
            raise _error_from_response(resp)

    async def select(
        self,
        table: str,
        *,
        bearer_token: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        resp = await get_http().get(
            f"{self._rest_base}/{table}",
            headers=self._headers(bearer_token),
            params=params,
        )
        self._raise_for_error(resp)
        data = resp.json()
        return data if isinstance(data, list) else [data]

    async def select_all(
        self,
        table: str,
        *,
        bearer_token: str,
        params: dict[str, Any],
        page_size: int = 1000,
    ) -> list[dict[str, Any]]:
        """Page through every matching row; PostgREST caps a single response."""
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = await self.select(
                table,
                bearer_token=bearer_token,
                params={**params, "limit": page_size, "offset": offset},
            )
            rows.extend(page)
            if len(page) < page_size:
                logger.debug("Read %s rows from %s in pages of %s", len(rows), table, page_size)
                return rows
            offset += page_size

    async def upsert_one(
        self,
        table: str,
        *,
        bearer_token: str,
        row: dict[str, Any],
        on_conflict: str,
    ) -> dict[str, Any]:
        # merge-duplicates overwrites every column sent in ``row``.
        resp = await get_http().post(
            f"{self._rest_base}/{table}",
            headers=self._headers(
                bearer_token,
                prefer="resolution=merge-duplicates,return=representation",
            ),
            params={"on_conflict": on_conflict},
            json=row,
        )
        self._raise_for_error(resp)
        return _first_row(resp.json())

    async def insert_one(
        self,
        table: str,
        *,
        bearer_token: str,
        row: dict[str, Any],
    ) -> dict[str, Any]:
        resp = await get_http().post(
            f"{self._rest_base}/{table}",
            headers=self._headers(bearer_token, prefer="return=representation"),
            json=row,
        )
        self._raise_for_error(resp)
        return _first_row(resp.json())
