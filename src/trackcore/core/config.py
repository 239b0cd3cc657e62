from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

LAST_SEEN_POLICIES: set[str] = {"last_write", "monotonic"}


@dataclass(frozen=True)
class StorageConfig:
    duckdb_path: str
    clean_slate: bool = False


@dataclass(frozen=True)
class LedgerConfig:
    # "last_write": last_seen follows the most recently stored event
    # "monotonic": last_seen only advances, first_seen only recedes
    last_seen_policy: str = "last_write"


@dataclass(frozen=True)
class QueryConfig:
    recent_limit: int = 20


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class TrackConfig:
    storage: StorageConfig
    logging: LoggingConfig
    ledger: LedgerConfig = LedgerConfig()
    query: QueryConfig = QueryConfig()
    raw: dict[str, Any] | None = None  # original parsed YAML (for debugging)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text())
    if not isinstance(data, dict):
        raise ValueError("Config YAML must parse to a dict at the top level.")
    return data


def parse_config(data: dict[str, Any]) -> TrackConfig:
    for key in ["storage", "logging"]:
        if key not in data:
            raise ValueError(f"Missing required top-level config section: '{key}'")

    storage = data.get("storage") or {}
    logging_cfg = data.get("logging") or {}
    ledger = data.get("ledger") or {}
    query = data.get("query") or {}

    if "duckdb_path" not in storage:
        raise ValueError("storage.duckdb_path is required")

    storage_cfg = StorageConfig(
        duckdb_path=str(storage["duckdb_path"]),
        clean_slate=bool(storage.get("clean_slate", False)),
    )

    policy = str(ledger.get("last_seen_policy", "last_write")).strip().lower()
    if policy not in LAST_SEEN_POLICIES:
        raise ValueError(
            f"Unsupported ledger.last_seen_policy={policy!r}. "
            f"Allowed={sorted(LAST_SEEN_POLICIES)}"
        )

    query_cfg = QueryConfig(recent_limit=int(query.get("recent_limit", 20)))
    if query_cfg.recent_limit <= 0:
        raise ValueError("query.recent_limit must be positive")

    log_cfg = LoggingConfig(level=str(logging_cfg.get("level", "INFO")).upper())

    return TrackConfig(
        storage=storage_cfg,
        logging=log_cfg,
        ledger=LedgerConfig(last_seen_policy=policy),
        query=query_cfg,
        raw=data,
    )


def load_config(path: str | Path) -> TrackConfig:
    data = load_yaml(path)
    return parse_config(data)
