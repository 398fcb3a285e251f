from __future__ import annotations

import logging
from datetime import date as Date
from typing import Any, Protocol

from dailystreak.schemas.streaks import DEFAULT_STREAK_THRESHOLD, DailyStats, StreakData
from dailystreak.services.supabase_rest import SupabaseRest, SupabaseRestError

logger = logging.getLogger(__name__)

DAILY_STATS_TABLE = "daily_stats"
STREAK_DATA_TABLE = "streak_data"


class AggregateStore(Protocol):
    async def put_daily_stats(self, user_id: str, day: Date, stats: DailyStats) -> None: ...

    async def get_daily_stats(self, user_id: str, day: Date) -> DailyStats | None: ...

    async def get_all_daily_stats(self, user_id: str) -> list[DailyStats]: ...

    async def get_daily_stats_range(
        self, user_id: str, start: Date, end: Date
    ) -> list[DailyStats]: ...

    async def put_streak_data(self, user_id: str, data: StreakData) -> None: ...

    async def get_streak_data(self, user_id: str) -> StreakData: ...


def _read_daily_rows(rows: list[dict[str, Any]]) -> list[DailyStats]:
    out: list[DailyStats] = []
    for row in rows:
        try:
            out.append(DailyStats.from_row(row))
        except ValueError:
            logger.warning("Skipping daily_stats row with unreadable date %r", row.get("date"))
    return out


class SupabaseAggregateStore:
    """Per-user daily stats and streak records in Supabase.

    Every put writes the full row, so an upsert replaces whatever the previous
    computation stored for the same key.
    """

    def __init__(
        self,
        sb: SupabaseRest,
        *,
        bearer_token: str,
        page_size: int = 1000,
        default_threshold: int = DEFAULT_STREAK_THRESHOLD,
    ):
        self._sb = sb
        self._bearer_token = bearer_token
        self._page_size = page_size
        self._default_threshold = default_threshold

    async def put_daily_stats(self, user_id: str, day: Date, stats: DailyStats) -> None:
        row = {**stats.to_row(), "user_id": user_id, "date": day.isoformat()}
        await self._sb.upsert_one(
            DAILY_STATS_TABLE,
            bearer_token=self._bearer_token,
            row=row,
            on_conflict="user_id,date",
        )

    async def get_daily_stats(self, user_id: str, day: Date) -> DailyStats | None:
        rows = await self._sb.select(
            DAILY_STATS_TABLE,
            bearer_token=self._bearer_token,
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "date": f"eq.{day.isoformat()}",
                "limit": 1,
            },
        )
        stats = _read_daily_rows(rows)
        return stats[0] if stats else None

    async def get_all_daily_stats(self, user_id: str) -> list[DailyStats]:
        rows = await self._sb.select_all(
            DAILY_STATS_TABLE,
            bearer_token=self._bearer_token,
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "order": "date.asc",
            },
            page_size=self._page_size,
        )
        return _read_daily_rows(rows)

    async def get_daily_stats_range(
        self, user_id: str, start: Date, end: Date
    ) -> list[DailyStats]:
        rows = await self._sb.select_all(
            DAILY_STATS_TABLE,
            bearer_token=self._bearer_token,
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "and": f"(date.gte.{start.isoformat()},date.lte.{end.isoformat()})",
                "order": "date.asc",
            },
            page_size=self._page_size,
        )
        return _read_daily_rows(rows)

    async def put_streak_data(self, user_id: str, data: StreakData) -> None:
        row = {**data.to_row(), "user_id": user_id}
        await self._sb.upsert_one(
            STREAK_DATA_TABLE,
            bearer_token=self._bearer_token,
            row=row,
            on_conflict="user_id",
        )

    async def _select_streak_row(self, user_id: str) -> dict[str, Any] | None:
        rows = await self._sb.select(
            STREAK_DATA_TABLE,
            bearer_token=self._bearer_token,
            params={"select": "*", "user_id": f"eq.{user_id}", "limit": 1},
        )
        return rows[0] if rows else None

    async def get_streak_data(self, user_id: str) -> StreakData:
        row = await self._select_streak_row(user_id)
        if row is not None:
            return StreakData.from_row(row, default_threshold=self._default_threshold)

        initial = StreakData.default(user_id, self._default_threshold)
        try:
            await self._sb.insert_one(
                STREAK_DATA_TABLE,
                bearer_token=self._bearer_token,
                row=initial.to_row(),
            )
        except SupabaseRestError as exc:
            if not exc.is_conflict:
                raise
            # Another request created the record between our select and insert.
            row = await self._select_streak_row(user_id)
            if row is not None:
                return StreakData.from_row(row, default_threshold=self._default_threshold)
        return initial
