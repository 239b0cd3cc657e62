from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from datetime import date

import duckdb

from trackcore.core.dates import day_bounds_ms, now_ms
from trackcore.core.errors import InvalidQueryRange, StorageError
from trackcore.core.logging import get_logger
from trackcore.features.daily_stats.service import DailyStatsService
from trackcore.features.events.schema import EVENT_COLUMNS, Event
from trackcore.features.users_state.service import UserLedgerService

from .duckdb_adapter import DuckDBAdapter
from .schema import EVENTS_TABLE_NAME

_INSERT_SQL = f"""
INSERT INTO {EVENTS_TABLE_NAME} ({", ".join(EVENT_COLUMNS)})
VALUES ({", ".join("?" for _ in EVENT_COLUMNS)})
"""


class EventStore:
    """
    Append-only event table plus its derived state.

    Each insert call is one write unit: the event rows, the user ledger and the
    daily counters commit together or not at all. A re-submitted event_id is
    absorbed without touching derived state.
    """

    def __init__(
        self,
        *,
        adapter: DuckDBAdapter,
        ledger: UserLedgerService,
        daily_stats: DailyStatsService,
        clock: Callable[[], int] = now_ms,
        log_level: str = "INFO",
    ) -> None:
        self.adapter = adapter
        self.ledger = ledger
        self.daily_stats = daily_stats
        self._clock = clock
        self._logger = get_logger(__name__, log_level)

    # ----------------------------
    # Write side
    # ----------------------------
    def insert(self, event: Event) -> int:
        """Returns 1 if the event was stored, 0 if its event_id was already present."""
        return self.insert_batch([event], reason="single")

    def insert_batch(self, events: Iterable[Event], *, reason: str = "batch") -> int:
        """
        Stores every new event of the batch atomically. Returns the number of
        newly stored events. Any storage failure rolls the whole batch back and
        surfaces as StorageError.
        """
        batch = list(events)
        if not batch:
            return 0

        server_time = int(self._clock())
        t0 = time.perf_counter()
        try:
            with self.adapter.transaction() as conn:
                inserted = 0
                for e in batch:
                    inserted += self._insert_one(conn, e.with_server_time(server_time))
        except duckdb.Error as exc:
            self._logger.error(
                "write_rolled_back",
                exc_info=True,
                extra={"feature": "persistence", "reason": reason, "num_events": len(batch)},
            )
            raise StorageError(f"Failed to store {len(batch)} event(s): {exc}") from exc

        dt_ms = (time.perf_counter() - t0) * 1000.0
        self._logger.info(
            "write",
            extra={
                "feature": "persistence",
                "reason": reason,
                "num_events": len(batch),
                "num_inserted": inserted,
                "num_duplicates": len(batch) - inserted,
                "duration_ms": dt_ms,
            },
        )
        return inserted

    def _insert_one(self, conn, event: Event) -> int:
        dup = conn.execute(
            f"SELECT 1 FROM {EVENTS_TABLE_NAME} WHERE event_id = ?",
            [event.event_id],
        ).fetchone()
        if dup is not None:
            self._logger.debug("duplicate_ignored", extra={"feature": "persistence"})
            return 0

        # Must be checked before the row itself lands in the table.
        new_session = self.ledger.is_new_session(conn, event)

        conn.execute(_INSERT_SQL, list(event.as_row()))
        self.ledger.apply(conn, event, new_session=new_session)
        self.daily_stats.apply(conn, event)
        return 1

    # ----------------------------
    # Read side
    # ----------------------------
    def query_events(
        self,
        *,
        start_date: str | date | None = None,
        end_date: str | date | None = None,
        event_name: str | None = None,
        event_type: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Event]:
        """
        Filtered listing, most recent first. Dates are inclusive UTC calendar days.
        """
        sql = f"SELECT {', '.join(EVENT_COLUMNS)} FROM {EVENTS_TABLE_NAME} WHERE 1=1"
        params: list = []

        if start_date is not None:
            lo, _ = day_bounds_ms(start_date, start_date)
            sql += " AND timestamp >= ?"
            params.append(lo)

        if end_date is not None:
            _, hi = day_bounds_ms(end_date, end_date)
            sql += " AND timestamp < ?"
            params.append(hi)

        if event_name is not None:
            sql += " AND event_name = ?"
            params.append(event_name)

        if event_type is not None:
            sql += " AND event_type = ?"
            params.append(event_type)

        sql += " ORDER BY timestamp DESC, event_id ASC"

        if limit is not None:
            if int(limit) < 0:
                raise InvalidQueryRange(f"limit must be non-negative, got {limit}")
            sql += " LIMIT ?"
            params.append(int(limit))

        if offset:
            if int(offset) < 0:
                raise InvalidQueryRange(f"offset must be non-negative, got {offset}")
            sql += " OFFSET ?"
            params.append(int(offset))

        with self.adapter.reader() as cur:
            rows = cur.execute(sql, params).fetchall()
        return [Event.from_row(r) for r in rows]

    def get_recent_events(self, limit: int = 20) -> list[Event]:
        return self.query_events(limit=limit)

    def count_events(self) -> int:
        """
        Convenience method for sanity checks/tests.
        """
        with self.adapter.reader() as cur:
            res = cur.execute(f"SELECT COUNT(*) FROM {EVENTS_TABLE_NAME}").fetchone()
        return int(res[0]) if res else 0
