"""Daily-stats → streak refresh pipeline.

A refresh aggregates one day from the task/session source, stores that day,
then rebuilds the user's streak from their entire stored history. The
rebuild never trusts the previous streak record, so a refresh that loses a
race or follows a failed one repairs the stored streak on its own.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date as Date
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from dailystreak.core.single_flight import RefreshGate
from dailystreak.schemas.streaks import (
    DailyStats,
    MonthlyStreakView,
    StreakData,
)
from dailystreak.services.aggregator import compute_daily_stats, require_day, require_user_id
from dailystreak.services.calendar import build_monthly_view, month_bounds
from dailystreak.services.errors import (
    InvalidInputError,
    StatsInvariantError,
    StoreUnavailableError,
)
from dailystreak.services.retry import RetryPolicy
from dailystreak.services.streak_store import AggregateStore
from dailystreak.services.streaks import reconstruct_streak
from dailystreak.services.supabase_rest import SupabaseRestError
from dailystreak.services.task_source import TaskSource

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ErrorReporter = Callable[..., Awaitable[None]]

_REFRESH_FAILURES = (
    StoreUnavailableError,
    SupabaseRestError,
    StatsInvariantError,
    httpx.HTTPError,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(name: str | None, default: str = "UTC") -> ZoneInfo:
    key = (name or "").strip() or default
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidInputError(f"Unknown time zone: {key!r}") from exc


class StreakPipeline:
    def __init__(
        self,
        source: TaskSource,
        store: AggregateStore,
        *,
        retry: RetryPolicy | None = None,
        gate: RefreshGate | None = None,
        clock: Clock = utc_now,
        default_timezone: str = "UTC",
        report_error: ErrorReporter | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._retry = retry or RetryPolicy()
        self._gate = gate
        self._clock = clock
        self._default_timezone = default_timezone
        self._report_error = report_error

    def zone(self, name: str | None = None) -> ZoneInfo:
        return resolve_timezone(name, self._default_timezone)

    def today(self, tz: ZoneInfo) -> Date:
        return self._clock().astimezone(tz).date()

    async def refresh_user_streak(
        self,
        user_id: str,
        day: Date | str | None = None,
        *,
        tz: str | None = None,
    ) -> tuple[DailyStats, StreakData]:
        uid = require_user_id(user_id)
        zone = self.zone(tz)
        target = require_day(day) if day is not None else self.today(zone)

        if self._gate is None:
            return await self._refresh(uid, target, zone)
        return await self._gate.run(
            (uid, target.isoformat(), zone.key), lambda: self._refresh(uid, target, zone)
        )

    async def refresh_user_streak_quietly(
        self,
        user_id: str,
        day: Date | str | None = None,
        *,
        tz: str | None = None,
    ) -> StreakData | None:
        """Refresh for triggers that must not fail because of the streak.

        Store and consistency failures are logged and reported, and ``None``
        is returned; the next successful refresh rebuilds the record.
        """
        try:
            _, streak = await self.refresh_user_streak(user_id, day, tz=tz)
            return streak
        except _REFRESH_FAILURES as exc:
            logger.warning("Streak refresh deferred for user %s: %s", user_id, exc)
            if self._report_error is not None:
                await self._report_error(
                    route="pipeline.refresh_user_streak",
                    message="streak refresh failed (non-blocking)",
                    user_id=user_id,
                    err=exc,
                    meta={"date": str(day) if day is not None else None},
                )
            return None

    async def _refresh(self, uid: str, target: Date, zone: ZoneInfo) -> tuple[DailyStats, StreakData]:
        current = await self._retry.call(
            "get_streak_data", lambda: self._store.get_streak_data(uid)
        )
        threshold = current.streak_threshold

        tasks = await self._retry.call(
            "list_tasks_relevant_to_date",
            lambda: self._source.list_tasks_relevant_to_date(uid, target, zone),
        )
        sessions = await self._retry.call(
            "list_focus_sessions",
            lambda: self._source.list_focus_sessions(uid, day=target, tz=zone),
        )

        stats = compute_daily_stats(
            uid, target, tasks, sessions, threshold=threshold, tz=zone
        )
        await self._retry.call(
            "put_daily_stats", lambda: self._store.put_daily_stats(uid, target, stats)
        )

        streak = await self._rebuild(uid, threshold, zone, fresh=stats)
        logger.info(
            "Refreshed streak for user %s on %s: current=%s longest=%s",
            uid,
            stats.date,
            streak.current_streak,
            streak.longest_streak,
        )
        return stats, streak

    async def _rebuild(
        self,
        uid: str,
        threshold: int,
        zone: ZoneInfo,
        *,
        fresh: DailyStats | None = None,
    ) -> StreakData:
        history: list[Any] = await self._retry.call(
            "get_all_daily_stats", lambda: self._store.get_all_daily_stats(uid)
        )
        if fresh is not None:
            # The store may not return the row we just wrote yet.
            history = [s for s in history if s.date != fresh.date] + [fresh]

        streak = reconstruct_streak(uid, history, today=self.today(zone), threshold=threshold)
        await self._retry.call(
            "put_streak_data", lambda: self._store.put_streak_data(uid, streak)
        )
        return streak

    async def get_streak(self, user_id: str) -> StreakData:
        uid = require_user_id(user_id)
        return await self._retry.call(
            "get_streak_data", lambda: self._store.get_streak_data(uid)
        )

    async def set_streak_threshold(
        self, user_id: str, threshold: int, *, tz: str | None = None
    ) -> StreakData:
        """Store a new threshold; it classifies days aggregated from now on."""
        uid = require_user_id(user_id)
        if not (0 <= threshold <= 100):
            raise InvalidInputError("threshold must be 0..100")
        return await self._rebuild(uid, threshold, self.zone(tz))

    async def get_daily_stats(self, user_id: str, day: Date | str) -> DailyStats | None:
        uid = require_user_id(user_id)
        target = require_day(day)
        return await self._retry.call(
            "get_daily_stats", lambda: self._store.get_daily_stats(uid, target)
        )

    async def get_daily_stats_range(
        self, user_id: str, start: Date | str, end: Date | str
    ) -> list[DailyStats]:
        uid = require_user_id(user_id)
        first, last = require_day(start), require_day(end)
        if first > last:
            raise InvalidInputError("start must be on or before end")
        return await self._retry.call(
            "get_daily_stats_range",
            lambda: self._store.get_daily_stats_range(uid, first, last),
        )

    async def get_monthly_view(
        self, user_id: str, year: int, month: int, *, tz: str | None = None
    ) -> MonthlyStreakView:
        uid = require_user_id(user_id)
        first, last = month_bounds(year, month)
        zone = self.zone(tz)
        stats = await self._retry.call(
            "get_daily_stats_range",
            lambda: self._store.get_daily_stats_range(uid, first, last),
        )
        return build_monthly_view(year, month, stats, today=self.today(zone))
