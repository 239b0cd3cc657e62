from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import date

from trackcore.core.config import TrackConfig
from trackcore.core.dates import day_of, now_ms
from trackcore.core.logging import get_logger
from trackcore.features.daily_stats.service import (
    DailyStat,
    DailyStatsService,
    EventStat,
    TodayStats,
)
from trackcore.features.events.schema import Event
from trackcore.features.funnel.service import FunnelResult, FunnelService
from trackcore.features.persistence.duckdb_adapter import DuckDBAdapter
from trackcore.features.persistence.service import EventStore
from trackcore.features.retention.service import RetentionResult, RetentionService
from trackcore.features.users_state.service import UserLedgerService, UserRecord


class TrackStore:
    """
    Single entry point for the routing layer: ingestion plus every read path.
    """

    def __init__(
        self,
        cfg: TrackConfig,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.cfg = cfg
        self._clock = clock
        self._logger = get_logger("trackcore", cfg.logging.level)

        self.adapter = DuckDBAdapter(
            path=cfg.storage.duckdb_path, clean_slate=cfg.storage.clean_slate
        )
        self.ledger = UserLedgerService(cfg.ledger)
        self.daily_stats = DailyStatsService()
        self.funnel = FunnelService()
        self.retention = RetentionService()
        self.events = EventStore(
            adapter=self.adapter,
            ledger=self.ledger,
            daily_stats=self.daily_stats,
            clock=clock,
            log_level=cfg.logging.level,
        )

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def open(self) -> TrackStore:
        if not self.adapter.is_open:
            self.adapter.open()
            self._logger.info(
                "store_opened", extra={"feature": "bootstrap", "db_path": self.adapter.path}
            )
        return self

    def close(self) -> None:
        if self.adapter.is_open:
            self.adapter.close()
            self._logger.info(
                "store_closed", extra={"feature": "bootstrap", "db_path": self.adapter.path}
            )

    def __enter__(self) -> TrackStore:
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    # ----------------------------
    # Ingestion
    # ----------------------------
    def insert(self, event: Event) -> int:
        return self.events.insert(event)

    def insert_batch(self, events: Iterable[Event]) -> int:
        return self.events.insert_batch(events)

    # ----------------------------
    # Event listing
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
        return self.events.query_events(
            start_date=start_date,
            end_date=end_date,
            event_name=event_name,
            event_type=event_type,
            limit=limit,
            offset=offset,
        )

    def get_recent_events(self, limit: int | None = None) -> list[Event]:
        return self.events.get_recent_events(
            self.cfg.query.recent_limit if limit is None else limit
        )

    # ----------------------------
    # Aggregates
    # ----------------------------
    def get_overview_stats(
        self, start_date: str | date, end_date: str | date, *, app_id: str | None = None
    ) -> list[DailyStat]:
        with self.adapter.reader() as cur:
            return self.daily_stats.get_overview_stats(cur, start_date, end_date, app_id=app_id)

    def get_today_stats(self) -> TodayStats:
        with self.adapter.reader() as cur:
            return self.daily_stats.get_today_stats(cur, day_of(self._clock()))

    def get_event_stats(self, start_date: str | date, end_date: str | date) -> list[EventStat]:
        with self.adapter.reader() as cur:
            return self.daily_stats.get_event_stats(cur, start_date, end_date)

    # ----------------------------
    # Reports
    # ----------------------------
    def get_funnel_analysis(
        self, steps: Sequence[str], start_date: str | date, end_date: str | date
    ) -> FunnelResult:
        with self.adapter.reader() as cur:
            return self.funnel.get_funnel_analysis(cur, steps, start_date, end_date)

    def get_retention_analysis(
        self, start_date: str | date, end_date: str | date, days: int = 7
    ) -> RetentionResult:
        with self.adapter.reader() as cur:
            return self.retention.get_retention_analysis(cur, start_date, end_date, days)

    # ----------------------------
    # Ledger
    # ----------------------------
    def get_user(self, device_id: str) -> UserRecord | None:
        with self.adapter.reader() as cur:
            return self.ledger.get_user(cur, device_id)

    def list_users(self, *, limit: int = 100, offset: int = 0) -> list[UserRecord]:
        with self.adapter.reader() as cur:
            return self.ledger.list_users(cur, limit=limit, offset=offset)


def bootstrap_store(cfg: TrackConfig, *, clock: Callable[[], int] = now_ms) -> TrackStore:
    return TrackStore(cfg, clock=clock).open()
