from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from trackcore.core.dates import (
    DAY_MS,
    check_span,
    date_from_index,
    day_bounds_ms,
    day_index,
)
from trackcore.core.errors import InvalidQueryRange
from trackcore.features.funnel.service import rate
from trackcore.features.persistence.schema import EVENTS_TABLE_NAME, USERS_TABLE_NAME


@dataclass(frozen=True)
class Cohort:
    cohort_date: str
    cohort_size: int
    retention: list[float]

    def as_dict(self) -> dict[str, Any]:
        return {
            "cohortDate": self.cohort_date,
            "cohortSize": self.cohort_size,
            "retention": list(self.retention),
        }


@dataclass(frozen=True)
class RetentionResult:
    cohorts: list[Cohort] = field(default_factory=list)
    average_retention: list[float] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "cohorts": [c.as_dict() for c in self.cohorts],
            "averageRetention": list(self.average_retention),
        }


class RetentionService:
    """
    Day-N cohort retention.

    Cohort(d) is every device whose ledger first_seen falls on UTC day d.
    retention[k] is the share of Cohort(d) with at least one stored event on
    day d+k. Offsets past the last day holding any data read as 0 in the
    cohort row and are left out of average_retention[k].
    """

    def get_retention_analysis(
        self,
        conn,
        start_date: str | date,
        end_date: str | date,
        days: int = 7,
    ) -> RetentionResult:
        days = int(days)
        if days < 0:
            raise InvalidQueryRange(f"days must be non-negative, got {days}")
        check_span(days)

        lo, hi = day_bounds_ms(start_date, end_date)
        if lo >= hi:
            return RetentionResult(average_retention=[0.0] * days)

        first_day = day_index(lo)
        num_cohorts = (hi - lo) // DAY_MS
        check_span(num_cohorts)

        # cohort day index -> devices
        cohorts: dict[int, set[str]] = defaultdict(set)
        for device_id, day_idx in conn.execute(
            f"""
            SELECT device_id, first_seen // {DAY_MS} FROM {USERS_TABLE_NAME}
            WHERE first_seen >= ? AND first_seen < ?
            """,
            [lo, hi],
        ).fetchall():
            cohorts[int(day_idx)].add(device_id)

        # (device_id, day index) activity over every window any cohort can reach
        active: dict[int, set[str]] = defaultdict(set)
        if cohorts and days > 0:
            members = set().union(*cohorts.values())
            for device_id, day_idx in conn.execute(
                f"""
                SELECT DISTINCT device_id, timestamp // {DAY_MS} FROM {EVENTS_TABLE_NAME}
                WHERE timestamp >= ? AND timestamp < ?
                """,
                [lo, hi + max(days - 1, 0) * DAY_MS],
            ).fetchall():
                if device_id in members:
                    active[int(day_idx)].add(device_id)

        last_data_day = self._last_data_day(conn)

        out: list[Cohort] = []
        sums = [0.0] * days
        contributors = [0] * days
        for c in range(num_cohorts):
            day_idx = first_day + c
            devices = cohorts.get(day_idx, set())
            size = len(devices)
            row: list[float] = []
            for k in range(days):
                target = day_idx + k
                if size == 0 or last_data_day is None or target > last_data_day:
                    row.append(0.0)
                    continue
                value = rate(len(devices & active.get(target, set())), size)
                row.append(value)
                sums[k] += value
                contributors[k] += 1
            out.append(
                Cohort(
                    cohort_date=date_from_index(day_idx).isoformat(),
                    cohort_size=size,
                    retention=row,
                )
            )

        average = [
            round(sums[k] / contributors[k], 2) if contributors[k] else 0.0 for k in range(days)
        ]
        return RetentionResult(cohorts=out, average_retention=average)

    @staticmethod
    def _last_data_day(conn) -> int | None:
        row = conn.execute(f"SELECT MAX(timestamp) FROM {EVENTS_TABLE_NAME}").fetchone()
        if row is None or row[0] is None:
            return None
        return day_index(row[0])
