from __future__ import annotations

from collections.abc import Sequence
from datetime import date as Date
from datetime import datetime, time, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import ValidationError

from dailystreak.schemas.streaks import (
    DEFAULT_STREAK_THRESHOLD,
    DailyStats,
    TaskDetail,
    parse_day_label,
)
from dailystreak.schemas.tasks import FocusSession, Task
from dailystreak.services.errors import InvalidInputError, StatsInvariantError
from dailystreak.services.streaks import is_streak_day


def require_user_id(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidInputError("user_id is required")
    return user_id.strip()


def require_day(value: Any) -> Date:
    try:
        return parse_day_label(value)
    except ValueError as exc:
        raise InvalidInputError(str(exc)) from exc


def day_window(day: Date, tz: tzinfo = timezone.utc) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` for ``day`` as aware datetimes in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def _in_window(ts: datetime | None, window: tuple[datetime, datetime]) -> bool:
    if ts is None:
        return False
    start, end = window
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=start.tzinfo)
    return start <= ts < end


def completion_percentage(completed: int, assigned: int) -> int:
    if assigned <= 0:
        return 0
    # Half-up rounding; round() would send 12.5 to 12.
    pct = Decimal(completed) * 100 / Decimal(assigned)
    return int(pct.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def is_task_relevant(task: Task, window: tuple[datetime, datetime]) -> bool:
    if task.hidden:
        return False
    return (
        _in_window(task.created_at, window)
        or _in_window(task.completed_at, window)
        or _in_window(task.last_modified, window)
    )


def is_task_completed_in(task: Task, window: tuple[datetime, datetime]) -> bool:
    return task.completed and _in_window(task.completed_at, window)


def compute_daily_stats(
    user_id: str,
    day: Date | str,
    tasks: Sequence[Task],
    focus_sessions: Sequence[FocusSession],
    *,
    threshold: int = DEFAULT_STREAK_THRESHOLD,
    tz: tzinfo = timezone.utc,
) -> DailyStats:
    uid = require_user_id(user_id)
    target = require_day(day)
    if not (0 <= threshold <= 100):
        raise InvalidInputError("threshold must be 0..100")

    window = day_window(target, tz)

    day_tasks = [t for t in tasks if is_task_relevant(t, window)]
    completed_tasks = [t for t in day_tasks if is_task_completed_in(t, window)]
    day_sessions = [s for s in focus_sessions if _in_window(s.start_time, window)]

    focus_by_task: dict[str, tuple[int, int]] = {}
    for session in day_sessions:
        if session.task_id is None:
            continue
        minutes, pomodoros = focus_by_task.get(session.task_id, (0, 0))
        focus_by_task[session.task_id] = (
            minutes + session.duration,
            pomodoros + session.pomodoro_count,
        )

    details = []
    for task in day_tasks:
        minutes, pomodoros = focus_by_task.get(task.id, (0, 0))
        details.append(
            TaskDetail(
                task_id=task.id,
                title=task.title,
                completed=task.completed,
                completed_at=task.completed_at,
                focus_time_minutes=minutes,
                pomodoro_count=pomodoros,
            )
        )

    assigned = len(day_tasks)
    completed = len(completed_tasks)
    try:
        stats = DailyStats(
            user_id=uid,
            date=target.isoformat(),
            tasks_assigned=assigned,
            tasks_completed=completed,
            completion_percentage=completion_percentage(completed, assigned),
            focus_time_minutes=sum(s.duration for s in day_sessions),
            focus_sessions=len(day_sessions),
            pomodoro_count=sum(s.pomodoro_count for s in day_sessions),
            tasks_details=details,
        )
    except ValidationError as exc:
        raise StatsInvariantError(f"daily stats for {target.isoformat()} are inconsistent") from exc

    return stats.model_copy(update={"streak_day": is_streak_day(stats, threshold)})
