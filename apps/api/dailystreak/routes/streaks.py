from __future__ import annotations

from datetime import date as Date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from dailystreak.core.config import settings
from dailystreak.core.security import AuthDep
from dailystreak.schemas.streaks import (
    DailyStats,
    MonthlyStreakView,
    RefreshStreakRequest,
    RefreshStreakResponse,
    StreakData,
    UpdateThresholdRequest,
)
from dailystreak.services.error_log import log_system_error
from dailystreak.services.pipeline import StreakPipeline
from dailystreak.services.retry import RetryPolicy
from dailystreak.services.streak_store import SupabaseAggregateStore
from dailystreak.services.supabase_rest import SupabaseRest
from dailystreak.services.task_source import SupabaseTaskSource

router = APIRouter()


def get_pipeline(request: Request, auth: AuthDep) -> StreakPipeline:
    # Anon key + the caller's token: RLS scopes every row to the caller.
    sb = SupabaseRest(str(settings.supabase_url), settings.supabase_anon_key)
    gate = (
        getattr(request.app.state, "refresh_gate", None)
        if settings.refresh_single_flight
        else None
    )
    return StreakPipeline(
        SupabaseTaskSource(
            sb,
            bearer_token=auth.access_token,
            page_size=settings.daily_stats_page_size,
        ),
        SupabaseAggregateStore(
            sb,
            bearer_token=auth.access_token,
            page_size=settings.daily_stats_page_size,
            default_threshold=settings.streak_default_threshold,
        ),
        retry=RetryPolicy.from_settings(settings),
        gate=gate,
        default_timezone=settings.streak_default_timezone,
        report_error=log_system_error,
    )


PipelineDep = Annotated[StreakPipeline, Depends(get_pipeline)]


@router.get("/streak", response_model=StreakData)
async def get_streak(auth: AuthDep, pipeline: PipelineDep) -> StreakData:
    return await pipeline.get_streak(auth.user_id)


@router.post("/streak/refresh", response_model=RefreshStreakResponse)
async def refresh_streak(
    auth: AuthDep,
    pipeline: PipelineDep,
    body: RefreshStreakRequest | None = None,
) -> RefreshStreakResponse:
    req = body or RefreshStreakRequest()
    daily_stats, streak = await pipeline.refresh_user_streak(
        auth.user_id, req.date, tz=req.timezone
    )
    return RefreshStreakResponse(daily_stats=daily_stats, streak=streak)


@router.put("/streak/threshold", response_model=StreakData)
async def update_threshold(
    body: UpdateThresholdRequest, auth: AuthDep, pipeline: PipelineDep
) -> StreakData:
    return await pipeline.set_streak_threshold(
        auth.user_id, body.threshold, tz=body.timezone
    )


@router.get("/streak/calendar", response_model=MonthlyStreakView)
async def get_calendar(
    auth: AuthDep,
    pipeline: PipelineDep,
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    timezone: str | None = Query(default=None, max_length=64),
) -> MonthlyStreakView:
    return await pipeline.get_monthly_view(auth.user_id, year, month, tz=timezone)


@router.get("/daily-stats", response_model=DailyStats | None)
async def get_daily_stats(
    auth: AuthDep,
    pipeline: PipelineDep,
    date: Date = Query(..., description="YYYY-MM-DD"),
) -> DailyStats | None:
    return await pipeline.get_daily_stats(auth.user_id, date)


@router.get("/daily-stats/range", response_model=list[DailyStats])
async def get_daily_stats_range(
    auth: AuthDep,
    pipeline: PipelineDep,
    start: Date = Query(..., description="YYYY-MM-DD"),
    end: Date = Query(..., description="YYYY-MM-DD"),
) -> list[DailyStats]:
    return await pipeline.get_daily_stats_range(auth.user_id, start, end)
