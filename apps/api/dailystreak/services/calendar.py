from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import date as Date

from dailystreak.schemas.streaks import CalendarDay, DailyStats, MonthlyStreakView
from dailystreak.services.errors import InvalidInputError


def month_bounds(year: int, month: int) -> tuple[Date, Date]:
    if not (1 <= month <= 12):
        raise InvalidInputError("month must be 1..12")
    if not (1 <= year <= 9999):
        raise InvalidInputError("year must be 1..9999")
    last_day = calendar.monthrange(year, month)[1]
    return Date(year, month, 1), Date(year, month, last_day)


def build_monthly_view(
    year: int,
    month: int,
    stats: Iterable[DailyStats],
    *,
    today: Date,
) -> MonthlyStreakView:
    first, last = month_bounds(year, month)
    by_date = {s.date: s for s in stats}

    days: list[CalendarDay] = []
    for day_num in range(1, last.day + 1):
        label = Date(year, month, day_num).isoformat()
        day_stats = by_date.get(label)
        days.append(
            CalendarDay(
                date=label,
                day_of_month=day_num,
                stats=day_stats,
                is_streak_day=bool(day_stats and day_stats.streak_day),
                is_today=label == today.isoformat(),
            )
        )

    return MonthlyStreakView(
        month=first.strftime("%Y-%m"),
        year=year,
        month_num=month,
        days=days,
    )
