"""
Timeline views: the current-week summary and the error trend over time.

Weeks start on Monday. Card timestamps are converted to the timezone of
``now`` before bucketing when both are timezone-aware.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Literal

from errata.domain.analysis.models import ErrorCard
from errata.domain.constants import NO_SUBJECT_LABEL, TREND_MONTHS, TREND_WEEKS, WEEKDAY_LABELS

Period = Literal["week", "month"]


@dataclass(frozen=True)
class CountEntry:
    label: str
    count: int
    key: str | None = None


@dataclass
class WeekSummary:
    week_start: date
    week_end: date
    total: int = 0
    by_status: list[CountEntry] = field(default_factory=list)
    by_weekday: list[CountEntry] = field(default_factory=list)
    by_subject: list[CountEntry] = field(default_factory=list)


@dataclass(frozen=True)
class TrendBucket:
    label: str
    start: date
    count: int


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def week_summary(
    cards: Iterable[ErrorCard], statuses: Sequence[str], now: datetime
) -> WeekSummary:
    """
    Summarize the cards created during the week containing ``now``.

    Status counts follow ``statuses`` order and match names ignoring case
    and surrounding whitespace. Subjects are ranked by count, then name.
    """
    start = week_start(now.date())
    end = start + timedelta(days=6)

    week_cards = []
    for card in cards:
        day = _local_date(card.created_at, now)
        if day is not None and start <= day <= end:
            week_cards.append((card, day))

    by_status = []
    for name in statuses:
        wanted = name.strip().lower()
        count = sum(1 for card, _ in week_cards if card.status_name.strip().lower() == wanted)
        by_status.append(CountEntry(label=name, count=count))

    per_day = [0] * 7
    for _, day in week_cards:
        per_day[day.weekday()] += 1

    per_subject: dict[str, list] = {}
    for card, _ in week_cards:
        name = card.subject_name or NO_SUBJECT_LABEL
        entry = per_subject.setdefault(name, [card.subject_id, 0])
        entry[1] += 1
    by_subject = [
        CountEntry(label=name, count=count, key=subject_id)
        for name, (subject_id, count) in sorted(
            per_subject.items(), key=lambda item: (-item[1][1], item[0])
        )
    ]

    return WeekSummary(
        week_start=start,
        week_end=end,
        total=len(week_cards),
        by_status=by_status,
        by_weekday=[CountEntry(label=lbl, count=n) for lbl, n in zip(WEEKDAY_LABELS, per_day, strict=True)],
        by_subject=by_subject,
    )


def error_trend(cards: Iterable[ErrorCard], period: Period, now: datetime) -> list[TrendBucket]:
    """
    Count cards created per week (last 8) or per month (last 6).

    Buckets are zero-filled and ordered oldest first; cards outside the
    window are ignored.
    """
    if period == "week":
        current = week_start(now.date())
        starts = [current - timedelta(weeks=i) for i in range(TREND_WEEKS - 1, -1, -1)]
        bucket_of = week_start
    elif period == "month":
        starts = [_shift_month(now.date().replace(day=1), -i) for i in range(TREND_MONTHS - 1, -1, -1)]
        bucket_of = _month_start
    else:
        raise ValueError(f"Unknown trend period: {period!r}")

    counts = dict.fromkeys(starts, 0)
    for card in cards:
        day = _local_date(card.created_at, now)
        if day is None:
            continue
        key = bucket_of(day)
        if key in counts:
            counts[key] += 1

    fmt = "%Y-%m-%d" if period == "week" else "%Y-%m"
    return [TrendBucket(label=s.strftime(fmt), start=s, count=counts[s]) for s in starts]


def _local_date(ts: datetime | None, now: datetime) -> date | None:
    if ts is None:
        return None
    if ts.tzinfo is not None and now.tzinfo is not None:
        ts = ts.astimezone(now.tzinfo)
    return ts.date()


def _month_start(day: date) -> date:
    return day.replace(day=1)


def _shift_month(first_of_month: date, months: int) -> date:
    index = first_of_month.year * 12 + (first_of_month.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)
