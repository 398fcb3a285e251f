from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date as Date
from datetime import timedelta
from typing import Any, NamedTuple

from dailystreak.schemas.streaks import (
    DEFAULT_STREAK_THRESHOLD,
    DailyStats,
    StreakData,
    StreakRun,
    parse_day_label,
)
from dailystreak.services.errors import StatsInvariantError


class DayFlag(NamedTuple):
    date: Date
    streak_day: bool


@dataclass
class StreakSequence:
    start: Date
    end: Date
    length: int

    def to_run(self) -> StreakRun:
        return StreakRun(
            start_date=self.start.isoformat(),
            end_date=self.end.isoformat(),
            length=self.length,
        )


def is_streak_day(stats: DailyStats, threshold: int = DEFAULT_STREAK_THRESHOLD) -> bool:
    if stats.completion_percentage >= threshold:
        return True
    # Focus-only days count when there was nothing to complete.
    return stats.tasks_assigned == 0 and stats.focus_time_minutes > 0


def _coerce_date(value: Any) -> Date | None:
    try:
        return parse_day_label(value)
    except ValueError:
        return None


def _coerce_flag(item: Any) -> DayFlag | None:
    if isinstance(item, DayFlag):
        return item
    if isinstance(item, DailyStats):
        day = _coerce_date(item.date)
        return DayFlag(day, item.streak_day) if day is not None else None
    if isinstance(item, Mapping):
        day = _coerce_date(item.get("date"))
        if day is None:
            return None
        return DayFlag(day, bool(item.get("streak_day") or False))
    return None


def extract_day_flags(history: Iterable[Any] | None) -> list[DayFlag]:
    """Normalize stored history into one flag per calendar day.

    Unreadable entries are skipped. Duplicate dates collapse into a single
    day that counts when any of the duplicates counts.
    """
    if not history:
        return []
    by_day: dict[Date, bool] = {}
    for item in history:
        flag = _coerce_flag(item)
        if flag is None:
            continue
        by_day[flag.date] = by_day.get(flag.date, False) or flag.streak_day
    return [DayFlag(day, counted) for day, counted in by_day.items()]


def find_streak_sequences(flags: Iterable[DayFlag]) -> tuple[list[StreakSequence], int]:
    """Scan flags in date order; return maximal runs and the streak-day count."""
    sequences: list[StreakSequence] = []
    run: StreakSequence | None = None
    total_active = 0

    for flag in sorted(flags, key=lambda f: f.date):
        if not flag.streak_day:
            if run is not None:
                sequences.append(run)
                run = None
            continue

        total_active += 1
        if run is None:
            run = StreakSequence(start=flag.date, end=flag.date, length=1)
        elif run.end + timedelta(days=1) == flag.date:
            run.end = flag.date
            run.length += 1
        else:
            sequences.append(run)
            run = StreakSequence(start=flag.date, end=flag.date, length=1)

    if run is not None:
        sequences.append(run)

    return sequences, total_active


def reconstruct_streak(
    user_id: str,
    history: Iterable[Any] | None,
    *,
    today: Date,
    threshold: int = DEFAULT_STREAK_THRESHOLD,
) -> StreakData:
    """Rebuild a user's streak statistics from their complete day history.

    ``history`` may hold ``DailyStats``, ``DayFlag`` or raw store rows in any
    order. ``today`` is the evaluation date; it is the only input that
    depends on the wall clock, so the same history and ``today`` always
    produce the same result.
    """
    sequences, total_active = find_streak_sequences(extract_day_flags(history))
    if not sequences:
        return StreakData.default(user_id, threshold)

    longest = max(seq.length for seq in sequences)
    last = sequences[-1]
    yesterday = today - timedelta(days=1)
    is_current = last.end in (today, yesterday)

    current = last.length if is_current else 0
    closed = sequences[:-1] if is_current else sequences

    if longest < current:
        raise StatsInvariantError(
            f"longest streak {longest} is shorter than current streak {current}"
        )

    return StreakData(
        user_id=user_id,
        current_streak=current,
        longest_streak=longest,
        total_days_active=total_active,
        last_active_date=last.end.isoformat(),
        streak_threshold=threshold,
        streak_history=[seq.to_run() for seq in closed],
    )
