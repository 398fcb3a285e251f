from __future__ import annotations

from datetime import date as Date
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from dailystreak.schemas.tasks import Task
from dailystreak.services.aggregator import (
    completion_percentage,
    compute_daily_stats,
    day_window,
)
from dailystreak.services.errors import InvalidInputError
from tests.fixtures.streak_fakes import at, make_session, make_task

USER = "user-1"


def test_task_created_one_day_completed_next_counts_only_where_completed() -> None:
    task = make_task("t1", created="2024-01-01", completed_on="2024-01-02")

    day_one = compute_daily_stats(USER, "2024-01-01", [task], [])
    day_two = compute_daily_stats(USER, "2024-01-02", [task], [])

    assert day_one.tasks_assigned == 1
    assert day_one.tasks_completed == 0
    assert day_one.completion_percentage == 0
    assert day_two.tasks_assigned == 1
    assert day_two.tasks_completed == 1
    assert day_two.completion_percentage == 100


def test_task_completed_yesterday_but_edited_today_is_not_completed_today() -> None:
    task = Task(
        id="t1",
        title="Write report",
        completed=True,
        created_at=at("2024-01-01", 9),
        completed_at=at("2024-01-01", 17),
        last_modified=at("2024-01-02", 8),
    )

    stats = compute_daily_stats(USER, "2024-01-02", [task], [])

    assert stats.tasks_assigned == 1
    assert stats.tasks_completed == 0
    assert stats.streak_day is False


def test_hidden_tasks_are_ignored() -> None:
    tasks = [
        make_task("t1", created="2024-01-02", completed_on="2024-01-02"),
        make_task("t2", created="2024-01-02", hidden=True),
    ]

    stats = compute_daily_stats(USER, "2024-01-02", tasks, [])

    assert stats.tasks_assigned == 1
    assert stats.completion_percentage == 100


def test_tasks_outside_the_day_are_ignored() -> None:
    tasks = [
        make_task("t1", created="2023-12-30"),
        make_task("t2", created="2024-01-03"),
    ]

    stats = compute_daily_stats(USER, "2024-01-02", tasks, [])

    assert stats.tasks_assigned == 0
    assert stats.tasks_details == []


def test_completion_percentage_rounds_half_up() -> None:
    assert completion_percentage(1, 8) == 13
    assert completion_percentage(2, 3) == 67
    assert completion_percentage(1, 3) == 33
    assert completion_percentage(0, 0) == 0


def test_focus_sessions_sum_into_day_and_task_details() -> None:
    tasks = [
        make_task("t1", created="2024-01-02", completed_on="2024-01-02"),
        make_task("t2", created="2024-01-02"),
    ]
    sessions = [
        make_session("s1", day="2024-01-02", minutes=25, pomodoros=1, task_id="t1"),
        make_session("s2", day="2024-01-02", minutes=50, pomodoros=2, task_id="t1"),
        make_session("s3", day="2024-01-02", minutes=15, task_id=None),
        make_session("s4", day="2024-01-01", minutes=99, pomodoros=4, task_id="t1"),
    ]

    stats = compute_daily_stats(USER, "2024-01-02", tasks, sessions)

    assert stats.focus_time_minutes == 90
    assert stats.focus_sessions == 3
    assert stats.pomodoro_count == 3
    assert [d.task_id for d in stats.tasks_details] == ["t1", "t2"]
    assert stats.tasks_details[0].focus_time_minutes == 75
    assert stats.tasks_details[0].pomodoro_count == 3
    assert stats.tasks_details[0].completed is True
    assert stats.tasks_details[1].focus_time_minutes == 0


def test_focus_only_day_is_a_streak_day() -> None:
    sessions = [make_session("s1", day="2024-01-02", minutes=45)]

    stats = compute_daily_stats(USER, "2024-01-02", [], sessions)

    assert stats.tasks_assigned == 0
    assert stats.completion_percentage == 0
    assert stats.streak_day is True


def test_threshold_is_applied_to_streak_flag() -> None:
    tasks = [
        make_task("t1", created="2024-01-02", completed_on="2024-01-02"),
        make_task("t2", created="2024-01-02"),
    ]

    assert compute_daily_stats(USER, "2024-01-02", tasks, []).streak_day is True
    assert compute_daily_stats(USER, "2024-01-02", tasks, [], threshold=60).streak_day is False


def test_day_window_follows_time_zone() -> None:
    seoul = ZoneInfo("Asia/Seoul")
    # 2024-01-02 16:30 UTC is already 2024-01-03 in Seoul.
    task = Task(
        id="t1",
        created_at=datetime(2024, 1, 2, 16, 30, tzinfo=timezone.utc),
        last_modified=datetime(2024, 1, 2, 16, 30, tzinfo=timezone.utc),
    )

    assert compute_daily_stats(USER, "2024-01-02", [task], []).tasks_assigned == 1
    assert compute_daily_stats(USER, "2024-01-02", [task], [], tz=seoul).tasks_assigned == 0
    assert compute_daily_stats(USER, "2024-01-03", [task], [], tz=seoul).tasks_assigned == 1


def test_day_window_is_half_open() -> None:
    start, end = day_window(Date(2024, 1, 2))
    midnight_task = Task(id="t1", created_at=end, last_modified=end)

    assert start == datetime(2024, 1, 2, tzinfo=timezone.utc)
    assert compute_daily_stats(USER, "2024-01-02", [midnight_task], []).tasks_assigned == 0
    assert compute_daily_stats(USER, "2024-01-03", [midnight_task], []).tasks_assigned == 1


def test_naive_timestamps_are_read_in_window_zone() -> None:
    task = Task(
        id="t1",
        created_at=datetime(2024, 1, 2, 23, 30),
        last_modified=datetime(2024, 1, 2, 23, 30),
    )

    stats = compute_daily_stats(USER, "2024-01-02", [task], [], tz=ZoneInfo("Asia/Seoul"))

    assert stats.tasks_assigned == 1


def test_aggregation_is_a_pure_function_of_inputs() -> None:
    tasks = [make_task("t1", created="2024-01-02", completed_on="2024-01-02")]
    sessions = [make_session("s1", day="2024-01-02", minutes=30, task_id="t1")]

    assert compute_daily_stats(USER, "2024-01-02", tasks, sessions) == compute_daily_stats(
        USER, Date(2024, 1, 2), tasks, sessions
    )


@pytest.mark.parametrize(
    ("user_id", "day"),
    [
        ("", "2024-01-02"),
        ("   ", "2024-01-02"),
        (None, "2024-01-02"),
        (USER, "2024/01/02"),
        (USER, "2024-13-01"),
        (USER, ""),
    ],
)
def test_invalid_input_is_rejected(user_id, day) -> None:
    with pytest.raises(InvalidInputError):
        compute_daily_stats(user_id, day, [], [])


def test_invalid_threshold_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        compute_daily_stats(USER, "2024-01-02", [], [], threshold=101)
