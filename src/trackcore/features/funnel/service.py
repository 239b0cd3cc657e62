from __future__ import annotations

from bisect import bisect_left
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from trackcore.core.dates import day_bounds_ms
from trackcore.features.persistence.schema import EVENTS_TABLE_NAME


@dataclass(frozen=True)
class FunnelStep:
    step: int  # 1-indexed
    event_name: str
    users: int
    conversion_rate: float  # vs step 1
    dropoff_rate: float  # vs previous step

    def as_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "eventName": self.event_name,
            "users": self.users,
            "conversionRate": self.conversion_rate,
            "dropoffRate": self.dropoff_rate,
        }


@dataclass(frozen=True)
class FunnelResult:
    steps: list[FunnelStep] = field(default_factory=list)
    overall_conversion: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "steps": [s.as_dict() for s in self.steps],
            "overallConversion": self.overall_conversion,
        }


def rate(numerator: int, denominator: int) -> float:
    """Percentage rounded to 2 decimals; 0.0 for an empty denominator."""
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100.0, 2)


class FunnelService:
    """
    Strict in-order funnel over a calendar range.

    A device enters step 1 at its earliest `steps[0]` event in range. It enters
    step i at its earliest `steps[i]` event with timestamp >= its step i-1 time;
    that timestamp is carried forward to the next step.
    """

    def get_funnel_analysis(
        self,
        conn,
        steps: Sequence[str],
        start_date: str | date,
        end_date: str | date,
    ) -> FunnelResult:
        if not steps:
            return FunnelResult()

        lo, hi = day_bounds_ms(start_date, end_date)

        reached: dict[str, int] = {}
        counts: list[int] = []
        for i, name in enumerate(steps):
            if i > 0 and not reached:
                counts.append(0)
                continue
            occurrences = self._occurrences(conn, name, lo, hi)
            if i == 0:
                reached = {dev: ts[0] for dev, ts in occurrences.items()}
            else:
                reached = self._advance(reached, occurrences)
            counts.append(len(reached))

        first = counts[0]
        out: list[FunnelStep] = []
        for i, (name, users) in enumerate(zip(steps, counts, strict=True)):
            prev = counts[i - 1] if i > 0 else users
            out.append(
                FunnelStep(
                    step=i + 1,
                    event_name=name,
                    users=users,
                    conversion_rate=rate(users, first),
                    dropoff_rate=rate(prev - users, prev) if i > 0 else 0.0,
                )
            )

        return FunnelResult(steps=out, overall_conversion=rate(counts[-1], first))

    @staticmethod
    def _occurrences(conn, event_name: str, lo: int, hi: int) -> dict[str, list[int]]:
        """device_id -> ascending timestamps of `event_name` in [lo, hi)."""
        if lo >= hi:
            return {}
        rows = conn.execute(
            f"""
            SELECT device_id, timestamp FROM {EVENTS_TABLE_NAME}
            WHERE event_name = ? AND timestamp >= ? AND timestamp < ?
            ORDER BY device_id, timestamp
            """,
            [event_name, lo, hi],
        ).fetchall()
        out: dict[str, list[int]] = {}
        for device_id, ts in rows:
            out.setdefault(device_id, []).append(int(ts))
        return out

    @staticmethod
    def _advance(reached: dict[str, int], occurrences: dict[str, list[int]]) -> dict[str, int]:
        nxt: dict[str, int] = {}
        for device_id, since in reached.items():
            ts_list = occurrences.get(device_id)
            if not ts_list:
                continue
            idx = bisect_left(ts_list, since)
            if idx < len(ts_list):
                nxt[device_id] = ts_list[idx]
        return nxt
