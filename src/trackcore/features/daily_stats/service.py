from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from trackcore.core.dates import DAY_MS, day_bounds_ms, day_of, day_start_ms, iter_days
from trackcore.features.events.schema import PAGE_VIEW, Event
from trackcore.features.persistence.schema import DAILY_STATS_TABLE_NAME, EVENTS_TABLE_NAME


@dataclass(frozen=True)
class DailyStat:
    date: str
    pv: int
    uv: int
    event_count: int

    def as_dict(self) -> dict[str, Any]:
        return {"date": self.date, "pv": self.pv, "uv": self.uv, "eventCount": self.event_count}


@dataclass(frozen=True)
class TodayStats:
    pv: int = 0
    uv: int = 0
    event_count: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {"pv": self.pv, "uv": self.uv, "eventCount": self.event_count}


@dataclass(frozen=True)
class EventStat:
    event_name: str
    event_type: str
    count: int

    def as_dict(self) -> dict[str, Any]:
        return {"eventName": self.event_name, "eventType": self.event_type, "count": self.count}


class DailyStatsService:
    """
    Per-(UTC day, app_id) counters kept inside the insert transaction.

    pv and event_count are additive; uv is a distinct-device count and is
    recomputed from the events table on every write.
    """

    # ----------------------------
    # Write side
    # ----------------------------
    def apply(self, conn, event: Event) -> None:
        day = day_of(event.timestamp)
        date_s = day.isoformat()
        pv = 1 if event.event_type == PAGE_VIEW else 0

        existing = conn.execute(
            f"SELECT 1 FROM {DAILY_STATS_TABLE_NAME} WHERE date = ? AND app_id = ?",
            [date_s, event.app_id],
        ).fetchone()

        if existing is None:
            conn.execute(
                f"""
                INSERT INTO {DAILY_STATS_TABLE_NAME} (date, app_id, pv, uv, event_count)
                VALUES (?, ?, ?, 0, 1)
                """,
                [date_s, event.app_id, pv],
            )
        else:
            conn.execute(
                f"""
                UPDATE {DAILY_STATS_TABLE_NAME}
                SET pv = pv + ?, event_count = event_count + 1
                WHERE date = ? AND app_id = ?
                """,
                [pv, date_s, event.app_id],
            )

        lo = day_start_ms(day)
        res = conn.execute(
            f"""
            SELECT COUNT(DISTINCT device_id) FROM {EVENTS_TABLE_NAME}
            WHERE app_id = ? AND timestamp >= ? AND timestamp < ?
            """,
            [event.app_id, lo, lo + DAY_MS],
        ).fetchone()
        uv = int(res[0]) if res else 0

        conn.execute(
            f"UPDATE {DAILY_STATS_TABLE_NAME} SET uv = ? WHERE date = ? AND app_id = ?",
            [uv, date_s, event.app_id],
        )

    # ----------------------------
    # Read side
    # ----------------------------
    @staticmethod
    def get_overview_stats(
        conn, start_date: str | date, end_date: str | date, *, app_id: str | None = None
    ) -> list[DailyStat]:
        """
        One row per calendar day in [start_date, end_date], ascending, zero-filled.
        Sums across apps unless app_id is given.
        """
        days = iter_days(start_date, end_date)
        if not days:
            return []

        sql = f"""
            SELECT date, SUM(pv), SUM(uv), SUM(event_count)
            FROM {DAILY_STATS_TABLE_NAME}
            WHERE date >= ? AND date <= ?
        """
        params: list[Any] = [days[0].isoformat(), days[-1].isoformat()]
        if app_id is not None:
            sql += " AND app_id = ?"
            params.append(app_id)
        sql += " GROUP BY date"

        found = {r[0]: r for r in conn.execute(sql, params).fetchall()}

        out: list[DailyStat] = []
        for d in days:
            key = d.isoformat()
            r = found.get(key)
            if r is None:
                out.append(DailyStat(date=key, pv=0, uv=0, event_count=0))
            else:
                out.append(DailyStat(date=key, pv=int(r[1]), uv=int(r[2]), event_count=int(r[3])))
        return out

    @staticmethod
    def get_today_stats(conn, today: date) -> TodayStats:
        row = conn.execute(
            f"""
            SELECT COALESCE(SUM(pv), 0), COALESCE(SUM(uv), 0), COALESCE(SUM(event_count), 0)
            FROM {DAILY_STATS_TABLE_NAME}
            WHERE date = ?
            """,
            [today.isoformat()],
        ).fetchone()
        if row is None:
            return TodayStats()
        return TodayStats(pv=int(row[0]), uv=int(row[1]), event_count=int(row[2]))

    @staticmethod
    def get_event_stats(conn, start_date: str | date, end_date: str | date) -> list[EventStat]:
        lo, hi = day_bounds_ms(start_date, end_date)
        if lo >= hi:
            return []
        rows = conn.execute(
            f"""
            SELECT event_name, event_type, COUNT(*) AS cnt
            FROM {EVENTS_TABLE_NAME}
            WHERE timestamp >= ? AND timestamp < ?
            GROUP BY event_name, event_type
            ORDER BY cnt DESC, event_name ASC, event_type ASC
            """,
            [lo, hi],
        ).fetchall()
        return [EventStat(event_name=r[0], event_type=r[1], count=int(r[2])) for r in rows]
