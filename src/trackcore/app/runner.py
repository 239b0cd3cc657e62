from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from trackcore.core.config import load_config
from trackcore.features.bootstrap.service import bootstrap_store
from trackcore.features.events.schema import Event


@dataclass(frozen=True)
class IngestResult:
    num_events: int
    num_inserted: int
    duckdb_path: str


def read_jsonl(path: str | Path) -> Iterator[Event]:
    with open(path, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield Event.from_dict(json.loads(line))
            except ValueError as exc:
                raise ValueError(f"{path}:{lineno}: {exc}") from exc


def ingest(config_path: str, events_path: str) -> IngestResult:
    cfg = load_config(config_path)
    events = list(read_jsonl(events_path))
    with bootstrap_store(cfg) as store:
        inserted = store.insert_batch(events)
    return IngestResult(
        num_events=len(events), num_inserted=inserted, duckdb_path=cfg.storage.duckdb_path
    )


def overview(config_path: str, start_date: str, end_date: str) -> dict:
    cfg = load_config(config_path)
    with bootstrap_store(cfg) as store:
        return {
            "today": store.get_today_stats().as_dict(),
            "daily": [s.as_dict() for s in store.get_overview_stats(start_date, end_date)],
        }
