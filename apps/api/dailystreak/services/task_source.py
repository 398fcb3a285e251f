from __future__ import annotations

import logging
from datetime import date as Date
from datetime import datetime, timezone, tzinfo
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from dailystreak.schemas.tasks import FocusSession, Task
from dailystreak.services.aggregator import day_window
from dailystreak.services.supabase_rest import SupabaseRest

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_TASK_FIELDS = (
    "id,title,completed,created_at,last_modified,due_date,completed_at,snoozed_until,hidden"
)
_SESSION_FIELDS = "id,task_id,start_time,end_time,duration,pomodoro_count"


class TaskSource(Protocol):
    async def list_tasks_relevant_to_date(
        self, user_id: str, day: Date, tz: tzinfo = timezone.utc
    ) -> list[Task]: ...

    async def list_focus_sessions(
        self, user_id: str, *, day: Date | None = None, tz: tzinfo = timezone.utc
    ) -> list[FocusSession]: ...


def _utc_iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat()


def _parse_rows(model: type[ModelT], rows: list[dict[str, Any]], *, table: str) -> list[ModelT]:
    out: list[ModelT] = []
    for row in rows:
        try:
            out.append(model.model_validate(row))
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable %s row %s: %s error(s)",
                table,
                row.get("id"),
                exc.error_count(),
            )
    return out


class SupabaseTaskSource:
    """Reads tasks and focus sessions for one caller under row-level security."""

    def __init__(self, sb: SupabaseRest, *, bearer_token: str, page_size: int = 1000):
        self._sb = sb
        self._bearer_token = bearer_token
        self._page_size = page_size

    async def list_tasks_relevant_to_date(
        self, user_id: str, day: Date, tz: tzinfo = timezone.utc
    ) -> list[Task]:
        start, end = day_window(day, tz)
        s, e = _utc_iso(start), _utc_iso(end)
        in_window = ",".join(
            f"and({col}.gte.{s},{col}.lt.{e})"
            for col in ("created_at", "completed_at", "last_modified")
        )
        rows = await self._sb.select_all(
            "tasks",
            bearer_token=self._bearer_token,
            params={
                "select": _TASK_FIELDS,
                "user_id": f"eq.{user_id}",
                "hidden": "not.is.true",
                "or": f"({in_window})",
                "order": "created_at.asc,id.asc",
            },
            page_size=self._page_size,
        )
        return _parse_rows(Task, rows, table="tasks")

    async def list_focus_sessions(
        self, user_id: str, *, day: Date | None = None, tz: tzinfo = timezone.utc
    ) -> list[FocusSession]:
        params: dict[str, Any] = {
            "select": _SESSION_FIELDS,
            "user_id": f"eq.{user_id}",
            "order": "start_time.asc,id.asc",
        }
        if day is not None:
            start, end = day_window(day, tz)
            params["and"] = f"(start_time.gte.{_utc_iso(start)},start_time.lt.{_utc_iso(end)})"
        rows = await self._sb.select_all(
            "focus_sessions",
            bearer_token=self._bearer_token,
            params=params,
            page_size=self._page_size,
        )
        return _parse_rows(FocusSession, rows, table="focus_sessions")
