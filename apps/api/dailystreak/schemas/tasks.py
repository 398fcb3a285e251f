from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _whole_minutes(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, float):
        return max(int(round(value)), 0)
    return value


class Task(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    completed: bool = False
    created_at: datetime
    last_modified: datetime
    due_date: datetime | None = None
    completed_at: datetime | None = None
    snoozed_until: datetime | None = None
    hidden: bool = False

    @field_validator("hidden", "completed", mode="before")
    @classmethod
    def none_is_false(cls, value: Any) -> Any:
        return False if value is None else value


class FocusSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    task_id: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    duration: int = Field(default=0, ge=0, description="minutes")
    pomodoro_count: int = Field(default=0, ge=0)

    @field_validator("duration", "pomodoro_count", mode="before")
    @classmethod
    def coerce_whole(cls, value: Any) -> Any:
        return _whole_minutes(value)
