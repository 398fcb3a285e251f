from __future__ import annotations

import os
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

# Ensure CI can import app settings without a local .env file.
_ENV_DEFAULTS = {
    "APP_ENV": "test",
    "FRONTEND_URL": "http://localhost:3000",
    "SUPABASE_URL": "https://example.supabase.co",
    "SUPABASE_ANON_KEY": "test-anon-key",
    "SUPABASE_SERVICE_ROLE_KEY": "test-service-role-key",
}
for _key, _value in _ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _value)

from dailystreak.core.security import AuthContext, verify_token
from dailystreak.main import app
from dailystreak.routes.streaks import get_pipeline
from dailystreak.services.pipeline import StreakPipeline
from dailystreak.services.supabase_rest import SupabaseRest
from tests.fixtures.streak_fakes import (
    NO_WAIT,
    TEST_EMAIL,
    TEST_TOKEN,
    TEST_USER_ID,
    FakeAggregateStore,
    FakeTaskSource,
    at,
)


@pytest.fixture(autouse=True)
def reset_test_state() -> None:
    app.dependency_overrides.clear()


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture
def fake_auth_context() -> AuthContext:
    return AuthContext(user_id=TEST_USER_ID, email=TEST_EMAIL, access_token=TEST_TOKEN)


@pytest.fixture
def fake_store() -> FakeAggregateStore:
    return FakeAggregateStore()


@pytest.fixture
def fake_source() -> FakeTaskSource:
    return FakeTaskSource()


@pytest.fixture
def now() -> datetime:
    return at("2024-01-03", 18)


@pytest.fixture
def pipeline(
    fake_source: FakeTaskSource, fake_store: FakeAggregateStore, now: datetime
) -> StreakPipeline:
    return StreakPipeline(fake_source, fake_store, retry=NO_WAIT, clock=lambda: now)


@pytest.fixture
def authenticated_client(
    client: TestClient, fake_auth_context: AuthContext, pipeline: StreakPipeline
) -> TestClient:
    async def _override_verify_token() -> AuthContext:
        return fake_auth_context

    app.dependency_overrides[verify_token] = _override_verify_token
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return client


@pytest.fixture
def supabase_mock(monkeypatch: pytest.MonkeyPatch) -> dict[str, AsyncMock]:
    mocks = {
        "select": AsyncMock(return_value=[]),
        "select_all": AsyncMock(return_value=[]),
        "upsert_one": AsyncMock(return_value={}),
        "insert_one": AsyncMock(return_value={}),
    }

    async def _select(self: SupabaseRest, table: str, *, bearer_token: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        return await mocks["select"](table=table, bearer_token=bearer_token, params=params)

    async def _select_all(
        self: SupabaseRest,
        table: str,
        *,
        bearer_token: str,
        params: dict[str, Any],
        page_size: int = 1000,
    ) -> list[dict[str, Any]]:
        return await mocks["select_all"](
            table=table, bearer_token=bearer_token, params=params, page_size=page_size
        )

    async def _upsert_one(
        self: SupabaseRest,
        table: str,
        *,
        bearer_token: str,
        row: dict[str, Any],
        on_conflict: str,
    ) -> dict[str, Any]:
        return await mocks["upsert_one"](
            table=table,
            bearer_token=bearer_token,
            row=row,
            on_conflict=on_conflict,
        )

    async def _insert_one(
        self: SupabaseRest,
        table: str,
        *,
        bearer_token: str,
        row: dict[str, Any],
    ) -> dict[str, Any]:
        return await mocks["insert_one"](table=table, bearer_token=bearer_token, row=row)

    monkeypatch.setattr(SupabaseRest, "select", _select)
    monkeypatch.setattr(SupabaseRest, "select_all", _select_all)
    monkeypatch.setattr(SupabaseRest, "upsert_one", _upsert_one)
    monkeypatch.setattr(SupabaseRest, "insert_one", _insert_one)
    return mocks
