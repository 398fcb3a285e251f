from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date as Date
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DEFAULT_STREAK_THRESHOLD = 50

_DAY_LABEL_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_day_label(value: Any) -> Date:
    """Parse a strict ``YYYY-MM-DD`` label (or pass a ``date`` through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, Date):
        return value
    if isinstance(value, str) and _DAY_LABEL_RE.match(value.strip()):
        return Date.fromisoformat(value.strip())
    raise ValueError(f"Invalid date label: {value!r} (expected YYYY-MM-DD)")


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return 0
    return 0


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def _day_or_empty(value: Any) -> str:
    try:
        return parse_day_label(value).isoformat()
    except ValueError:
        return ""


class TaskDetail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str
    title: str = ""
    completed: bool = False
    completed_at: datetime | None = None
    focus_time_minutes: int = Field(default=0, ge=0)
    pomodoro_count: int = Field(default=0, ge=0)


class DailyStats(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str
    date: str = Field(description="YYYY-MM-DD")
    tasks_assigned: int = Field(default=0, ge=0)
    tasks_completed: int = Field(default=0, ge=0)
    completion_percentage: int = Field(default=0, ge=0, le=100)
    focus_time_minutes: int = Field(default=0, ge=0)
    focus_sessions: int = Field(default=0, ge=0)
    pomodoro_count: int = Field(default=0, ge=0)
    streak_day: bool = False
    tasks_details: list[TaskDetail] = Field(default_factory=list)
    last_updated: datetime | None = None

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, value: Any) -> str:
        return parse_day_label(value).isoformat()

    @model_validator(mode="after")
    def validate_counts(self) -> "DailyStats":
        if self.tasks_completed > self.tasks_assigned:
            raise ValueError("tasks_completed must be <= tasks_assigned")
        return self

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DailyStats":
        """Lenient reader for stored rows.

        Historical rows may predate current validation, so counts are clamped
        into range and malformed detail entries are dropped. A row whose date
        cannot be parsed still raises ``ValueError``.
        """
        assigned = max(_as_int(row.get("tasks_assigned")), 0)
        completed = _clamp(_as_int(row.get("tasks_completed")), 0, assigned)

        details: list[TaskDetail] = []
        raw_details = row.get("tasks_details")
        if isinstance(raw_details, list):
            for item in raw_details:
                if not isinstance(item, Mapping):
                    continue
                try:
                    details.append(TaskDetail.model_validate(item))
                except ValidationError:
                    continue

        updated = row.get("last_updated") or row.get("updated_at")
        try:
            last_updated = datetime.fromisoformat(updated) if isinstance(updated, str) else None
        except ValueError:
            last_updated = None

        return cls(
            user_id=str(row.get("user_id") or ""),
            date=parse_day_label(row.get("date")).isoformat(),
            tasks_assigned=assigned,
            tasks_completed=completed,
            completion_percentage=_clamp(_as_int(row.get("completion_percentage")), 0, 100),
            focus_time_minutes=max(_as_int(row.get("focus_time_minutes")), 0),
            focus_sessions=max(_as_int(row.get("focus_sessions")), 0),
            pomodoro_count=max(_as_int(row.get("pomodoro_count")), 0),
            streak_day=bool(row.get("streak_day") or False),
            tasks_details=details,
            last_updated=last_updated,
        )

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"last_updated"})


class StreakRun(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start_date: str
    end_date: str
    length: int = Field(ge=1)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def normalize_dates(cls, value: Any) -> str:
        return parse_day_label(value).isoformat()


class StreakData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    total_days_active: int = Field(default=0, ge=0)
    last_active_date: str = ""
    streak_threshold: int = Field(default=DEFAULT_STREAK_THRESHOLD, ge=0, le=100)
    streak_history: list[StreakRun] = Field(default_factory=list)
    last_updated: datetime | None = None

    @field_validator("last_active_date", mode="before")
    @classmethod
    def normalize_last_active(cls, value: Any) -> str:
        if value is None or value == "":
            return ""
        return parse_day_label(value).isoformat()

    @model_validator(mode="after")
    def validate_streaks(self) -> "StreakData":
        if self.longest_streak < self.current_streak:
            raise ValueError("longest_streak must be >= current_streak")
        return self

    @classmethod
    def default(cls, user_id: str, threshold: int = DEFAULT_STREAK_THRESHOLD) -> "StreakData":
        return cls(user_id=user_id, streak_threshold=threshold)

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], *, default_threshold: int = DEFAULT_STREAK_THRESHOLD
    ) -> "StreakData":
        current = max(_as_int(row.get("current_streak")), 0)
        threshold = row.get("streak_threshold")
        threshold_int = _as_int(threshold) if threshold is not None else default_threshold
        if not (0 <= threshold_int <= 100):
            threshold_int = default_threshold

        history: list[StreakRun] = []
        raw_history = row.get("streak_history")
        if isinstance(raw_history, list):
            for item in raw_history:
                if not isinstance(item, Mapping):
                    continue
                try:
                    history.append(StreakRun.model_validate(item))
                except ValidationError:
                    continue

        updated = row.get("last_updated") or row.get("updated_at")
        try:
            last_updated = datetime.fromisoformat(updated) if isinstance(updated, str) else None
        except ValueError:
            last_updated = None

        return cls(
            user_id=str(row.get("user_id") or ""),
            current_streak=current,
            longest_streak=max(_as_int(row.get("longest_streak")), current),
            total_days_active=max(_as_int(row.get("total_days_active")), 0),
            last_active_date=_day_or_empty(row.get("last_active_date")),
            streak_threshold=threshold_int,
            streak_history=history,
            last_updated=last_updated,
        )

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"last_updated"})


class CalendarDay(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: str
    day_of_month: int = Field(ge=1, le=31)
    stats: DailyStats | None = None
    is_streak_day: bool = False
    is_today: bool = False
    is_current_month: bool = True


class MonthlyStreakView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    month: str = Field(description="YYYY-MM")
    year: int
    month_num: int = Field(ge=1, le=12)
    days: list[CalendarDay] = Field(default_factory=list)


class RefreshStreakRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: Date | None = None
    timezone: str | None = Field(default=None, max_length=64)


class RefreshStreakResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    daily_stats: DailyStats
    streak: StreakData


class UpdateThresholdRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    threshold: int = Field(ge=0, le=100)
    timezone: str | None = Field(default=None, max_length=64)
