"""Recurrence calendar.

Pure date arithmetic: maps a reference date and a recurrence pattern to the
canonical period containing it. Month-based patterns are aligned to calendar
boundaries (quarters start in Jan/Apr/Jul/Oct, halves in Jan/Jul). Yearly
periods are fiscal years beginning in ``fiscal_year_start_month``. Weekly
periods are 7-day blocks aligned to an anchor date, normally the obligation
start date.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, timedelta


logger = logging.getLogger("app.works.recurrence")

WEEKLY = "weekly"
MONTHLY = "monthly"
QUARTERLY = "quarterly"
HALF_YEARLY = "half_yearly"
YEARLY = "yearly"

PATTERNS: tuple[str, ...] = (WEEKLY, MONTHLY, QUARTERLY, HALF_YEARLY, YEARLY)
DEFAULT_PATTERN = MONTHLY
DEFAULT_FISCAL_YEAR_START_MONTH = 4

_PATTERN_MONTHS = {MONTHLY: 1, QUARTERLY: 3, HALF_YEARLY: 6, YEARLY: 12}
_PATTERN_RANK = {WEEKLY: 0, MONTHLY: 1, QUARTERLY: 2, HALF_YEARLY: 3, YEARLY: 4}
_ALIASES = {
    "week": WEEKLY,
    "month": MONTHLY,
    "quarter": QUARTERLY,
    "half-yearly": HALF_YEARLY,
    "halfyearly": HALF_YEARLY,
    "half yearly": HALF_YEARLY,
    "semi_annual": HALF_YEARLY,
    "semiannual": HALF_YEARLY,
    "year": YEARLY,
    "annual": YEARLY,
    "annually": YEARLY,
}


@dataclass(frozen=True, slots=True)
class PeriodBounds:
    start: date
    end: date
    name: str

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def normalize_pattern(raw: str | None) -> str:
    """Canonical pattern name; malformed values fall back to monthly."""
    if raw is None:
        return DEFAULT_PATTERN
    value = raw.strip().lower()
    if value in _PATTERN_RANK:
        return value
    alias = _ALIASES.get(value)
    if alias is not None:
        return alias
    logger.warning("recurrence_pattern_invalid", extra={"reason": f"unknown pattern {raw!r}, using {DEFAULT_PATTERN}"})
    return DEFAULT_PATTERN


def is_finer(granularity: str, pattern: str) -> bool:
    return _PATTERN_RANK[granularity] < _PATTERN_RANK[pattern]


def add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + (month_index // 12)
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def clamp_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def period_bounds_for(
    reference: date,
    pattern: str,
    *,
    fiscal_year_start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH,
    week_anchor: date | None = None,
) -> PeriodBounds:
    pattern = normalize_pattern(pattern)
    if pattern == WEEKLY:
        anchor = week_anchor or reference
        offset_weeks = (reference - anchor).days // 7
        start = anchor + timedelta(days=7 * offset_weeks)
        end = start + timedelta(days=6)
        return PeriodBounds(start=start, end=end, name=_period_name(start, end, pattern, fiscal_year_start_month))

    span = _PATTERN_MONTHS[pattern]
    base_month = fiscal_year_start_month if pattern == YEARLY else 1
    month_index = reference.year * 12 + (reference.month - 1) - (base_month - 1)
    start_index = month_index - (month_index % span) + (base_month - 1)
    start = date(start_index // 12, start_index % 12 + 1, 1)
    end = add_months(start, span) - timedelta(days=1)
    return PeriodBounds(start=start, end=end, name=_period_name(start, end, pattern, fiscal_year_start_month))


def next_period_after(
    period_end: date,
    pattern: str,
    *,
    fiscal_year_start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH,
    week_anchor: date | None = None,
) -> PeriodBounds:
    following = period_end + timedelta(days=1)
    return period_bounds_for(
        following,
        pattern,
        fiscal_year_start_month=fiscal_year_start_month,
        week_anchor=week_anchor or following,
    )


def previous_period_before(
    period_start: date,
    pattern: str,
    *,
    fiscal_year_start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH,
    week_anchor: date | None = None,
) -> PeriodBounds:
    return period_bounds_for(
        period_start - timedelta(days=1),
        pattern,
        fiscal_year_start_month=fiscal_year_start_month,
        week_anchor=week_anchor or period_start,
    )


def periods_between(
    start: date,
    end: date,
    pattern: str,
    *,
    fiscal_year_start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH,
    week_anchor: date | None = None,
) -> Iterator[PeriodBounds]:
    bounds = period_bounds_for(
        start,
        pattern,
        fiscal_year_start_month=fiscal_year_start_month,
        week_anchor=week_anchor or start,
    )
    while bounds.start <= end:
        yield bounds
        bounds = next_period_after(bounds.end, pattern, fiscal_year_start_month=fiscal_year_start_month)


def sub_periods(bounds: PeriodBounds, granularity: str, *, fiscal_year_start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH) -> list[PeriodBounds]:
    """Split a period into the finer-grained windows it spans, clipped to the period."""
    result: list[PeriodBounds] = []
    cursor = bounds.start
    while cursor <= bounds.end:
        unit = period_bounds_for(
            cursor,
            granularity,
            fiscal_year_start_month=fiscal_year_start_month,
            week_anchor=bounds.start,
        )
        start = max(unit.start, bounds.start)
        end = min(unit.end, bounds.end)
        result.append(PeriodBounds(start=start, end=end, name=unit.name))
        cursor = end + timedelta(days=1)
    return result


def sub_period_label(sub: PeriodBounds, granularity: str, index: int) -> str:
    if granularity == MONTHLY:
        return calendar.month_name[sub.start.month]
    if granularity == QUARTERLY:
        return f"Q{(sub.start.month - 1) // 3 + 1}"
    if granularity == HALF_YEARLY:
        return "H1" if sub.start.month <= 6 else "H2"
    if granularity == WEEKLY:
        return f"Week {index}"
    return sub.name


def _period_name(start: date, end: date, pattern: str, fiscal_year_start_month: int) -> str:
    if pattern == WEEKLY:
        return f"{_short(start)} - {_short(end)}"
    if pattern == MONTHLY:
        return f"{calendar.month_name[start.month]} {start.year}"
    if pattern == QUARTERLY:
        return f"Q{(start.month - 1) // 3 + 1} {start.year}"
    if pattern == HALF_YEARLY:
        return f"H{1 if start.month <= 6 else 2} {start.year}"
    if fiscal_year_start_month == 1:
        return str(start.year)
    return f"FY {start.year}-{(start.year + 1) % 100:02d}"


def _short(value: date) -> str:
    return f"{value.day:02d} {calendar.month_abbr[value.month]} {value.year}"
