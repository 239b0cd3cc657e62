from __future__ import annotations

import time
from datetime import UTC, date, datetime, timedelta

from trackcore.core.errors import InvalidQueryRange

DAY_MS = 86_400_000

# Widest calendar range a read path will expand day by day.
MAX_RANGE_DAYS = 3660


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_day(value: str | date) -> date:
    """
    Accepts a `date` or an ISO `YYYY-MM-DD` string (a full ISO datetime is
    truncated to its calendar day).
    """
    if isinstance(value, datetime):
        return value.astimezone(UTC).date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise InvalidQueryRange(f"Invalid calendar date: {value!r}") from exc


def day_start_ms(d: date) -> int:
    return int(datetime(d.year, d.month, d.day, tzinfo=UTC).timestamp() * 1000)


def day_of(ts_ms: int) -> date:
    return datetime.fromtimestamp(ts_ms // 1000, tz=UTC).date()


def day_index(ts_ms: int) -> int:
    # days since epoch; matches `timestamp // 86400000` in SQL
    return int(ts_ms) // DAY_MS


def date_from_index(idx: int) -> date:
    return date(1970, 1, 1) + timedelta(days=idx)


def day_bounds_ms(start: str | date, end: str | date) -> tuple[int, int]:
    """
    Inclusive calendar range -> half-open millisecond range [lo, hi).
    An inverted range yields lo >= hi, i.e. an empty window.
    """
    lo = day_start_ms(parse_day(start))
    hi = day_start_ms(parse_day(end)) + DAY_MS
    return lo, hi


def check_span(num_days: int) -> None:
    if num_days > MAX_RANGE_DAYS:
        raise InvalidQueryRange(
            f"Range spans {num_days} days; at most {MAX_RANGE_DAYS} are supported"
        )


def iter_days(start: str | date, end: str | date) -> list[date]:
    d0 = parse_day(start)
    d1 = parse_day(end)
    num_days = (d1 - d0).days + 1
    if num_days <= 0:
        return []
    check_span(num_days)
    # stepping past d1 would overflow on date.max
    return [d0 + timedelta(days=i) for i in range(num_days)]
