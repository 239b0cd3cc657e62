from __future__ import annotations

EVENTS_TABLE_NAME = "events"
DAILY_STATS_TABLE_NAME = "daily_stats"
USERS_TABLE_NAME = "users"

EVENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS {EVENTS_TABLE_NAME} (
    event_id TEXT PRIMARY KEY,
    event_name TEXT NOT NULL,
    event_type TEXT NOT NULL,

    timestamp BIGINT NOT NULL,
    server_time BIGINT NOT NULL,

    user_id TEXT,
    device_id TEXT NOT NULL,
    session_id TEXT NOT NULL,

    platform TEXT NOT NULL,
    app_id TEXT NOT NULL,
    app_version TEXT,
    sdk_version TEXT,

    page_url TEXT,
    page_title TEXT,
    referrer TEXT,

    properties TEXT
);
"""

DAILY_STATS_DDL = f"""
CREATE TABLE IF NOT EXISTS {DAILY_STATS_TABLE_NAME} (
    date TEXT NOT NULL,
    app_id TEXT NOT NULL,
    pv BIGINT NOT NULL DEFAULT 0,
    uv BIGINT NOT NULL DEFAULT 0,
    event_count BIGINT NOT NULL DEFAULT 0,
    PRIMARY KEY (date, app_id)
);
"""

USERS_DDL = f"""
CREATE TABLE IF NOT EXISTS {USERS_TABLE_NAME} (
    device_id TEXT PRIMARY KEY,
    user_id TEXT,
    first_seen BIGINT NOT NULL,
    last_seen BIGINT NOT NULL,
    session_count BIGINT NOT NULL DEFAULT 1
);
"""

EVENTS_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_events_timestamp ON {EVENTS_TABLE_NAME}(timestamp);",
    f"CREATE INDEX IF NOT EXISTS idx_events_event_name ON {EVENTS_TABLE_NAME}(event_name);",
    f"CREATE INDEX IF NOT EXISTS idx_events_device_id ON {EVENTS_TABLE_NAME}(device_id);",
    f"CREATE INDEX IF NOT EXISTS idx_events_user_id ON {EVENTS_TABLE_NAME}(user_id);",
]


def create_schema(conn) -> None:
    """
    Create tables/indexes. No migrations. Safe to call on every open.
    """
    conn.execute(EVENTS_DDL)
    conn.execute(DAILY_STATS_DDL)
    conn.execute(USERS_DDL)
    for ddl in EVENTS_INDEXES:
        conn.execute(ddl)
