from __future__ import annotations

from datetime import date as Date

import pytest
from pydantic import ValidationError

from dailystreak.schemas.streaks import (
    DailyStats,
    StreakData,
    StreakRun,
    parse_day_label,
)
from dailystreak.schemas.tasks import FocusSession, Task


def test_parse_day_label_is_strict() -> None:
    assert parse_day_label("2024-01-03") == Date(2024, 1, 3)
    assert parse_day_label(Date(2024, 1, 3)) == Date(2024, 1, 3)
    for bad in ("2024-1-3", "2024-01-03T00:00:00", "20240103", None, 20240103):
        with pytest.raises(ValueError):
            parse_day_label(bad)


def test_daily_stats_rejects_more_completed_than_assigned() -> None:
    with pytest.raises(ValidationError):
        DailyStats(user_id="u1", date="2024-01-03", tasks_assigned=1, tasks_completed=2)


def test_daily_stats_from_row_clamps_legacy_values() -> None:
    stats = DailyStats.from_row(
        {
            "user_id": "u1",
            "date": "2024-01-03",
            "tasks_assigned": "3",
            "tasks_completed": 7,
            "completion_percentage": -5,
            "focus_time_minutes": 12.9,
            "streak_day": None,
            "tasks_details": [{"task_id": "t1", "title": "ok"}, {"title": "no id"}, "junk"],
            "updated_at": "2024-01-03T10:00:00+00:00",
        }
    )

    assert stats.tasks_assigned == 3
    assert stats.tasks_completed == 3
    assert stats.completion_percentage == 0
    assert stats.focus_time_minutes == 12
    assert stats.streak_day is False
    assert [d.task_id for d in stats.tasks_details] == ["t1"]
    assert stats.last_updated is not None


def test_daily_stats_from_row_requires_a_date() -> None:
    with pytest.raises(ValueError):
        DailyStats.from_row({"user_id": "u1", "date": "Jan 3"})


def test_daily_stats_row_round_trips_through_store_format() -> None:
    stats = DailyStats(user_id="u1", date="2024-01-03", tasks_assigned=2, tasks_completed=1)
    assert DailyStats.from_row(stats.to_row()) == stats


def test_streak_data_enforces_longest_at_least_current() -> None:
    with pytest.raises(ValidationError):
        StreakData(user_id="u1", current_streak=3, longest_streak=2)


def test_streak_data_from_row_tolerates_bad_fields() -> None:
    data = StreakData.from_row(
        {
            "user_id": "u1",
            "current_streak": 4,
            "longest_streak": 1,
            "last_active_date": "not a date",
            "streak_threshold": 250,
            "streak_history": [
                {"start_date": "2023-12-01", "end_date": "2023-12-02", "length": 2},
                {"start_date": "2023-12-05", "end_date": "2023-12-05", "length": 0},
            ],
        },
        default_threshold=40,
    )

    assert data.longest_streak == 4
    assert data.last_active_date == ""
    assert data.streak_threshold == 40
    assert data.streak_history == [
        StreakRun(start_date="2023-12-01", end_date="2023-12-02", length=2)
    ]


def test_task_none_flags_read_as_false() -> None:
    task = Task.model_validate(
        {
            "id": "t1",
            "created_at": "2024-01-03T09:00:00Z",
            "last_modified": "2024-01-03T09:00:00Z",
            "completed": None,
            "hidden": None,
            "user_id": "ignored",
        }
    )

    assert task.completed is False
    assert task.hidden is False


def test_focus_session_rounds_fractional_minutes() -> None:
    session = FocusSession.model_validate(
        {"id": "s1", "start_time": "2024-01-03T14:00:00Z", "duration": 24.5, "pomodoro_count": None}
    )

    assert session.duration == 24
    assert session.pomodoro_count == 0
