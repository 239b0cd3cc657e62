from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from trackcore.core.config import LAST_SEEN_POLICIES, LedgerConfig
from trackcore.core.errors import InvalidQueryRange
from trackcore.features.events.schema import Event
from trackcore.features.persistence.schema import EVENTS_TABLE_NAME, USERS_TABLE_NAME


@dataclass(frozen=True)
class UserRecord:
    device_id: str
    user_id: str | None
    first_seen: int
    last_seen: int
    session_count: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "userId": self.user_id,
            "firstSeen": self.first_seen,
            "lastSeen": self.last_seen,
            "sessionCount": self.session_count,
        }


_USER_COLUMNS = "device_id, user_id, first_seen, last_seen, session_count"


class UserLedgerService:
    """
    Per-device ledger derived from the event stream.

    - Row created on the first stored event of a device.
    - session_count grows by one per (device_id, session_id) pair never seen before.
    - user_id is overwritten by any non-null incoming value.
    - last_seen follows cfg.last_seen_policy:
        "last_write": the latest stored event wins, even if its timestamp is older
        "monotonic":  last_seen = max(...), first_seen = min(...)

    `is_new_session()` must run before the event row is written, `apply()` after;
    both are called by the event store inside its write transaction.
    """

    def __init__(self, cfg: LedgerConfig | None = None) -> None:
        self.cfg = cfg or LedgerConfig()
        policy = (self.cfg.last_seen_policy or "").strip().lower()
        if policy not in LAST_SEEN_POLICIES:
            raise ValueError(f"Unsupported ledger.last_seen_policy={self.cfg.last_seen_policy!r}")
        self._policy = policy

    # ----------------------------
    # Write side
    # ----------------------------
    @staticmethod
    def is_new_session(conn, event: Event) -> bool:
        row = conn.execute(
            f"""
            SELECT 1 FROM {EVENTS_TABLE_NAME}
            WHERE device_id = ? AND session_id = ?
            LIMIT 1
            """,
            [event.device_id, event.session_id],
        ).fetchone()
        return row is None

    def apply(self, conn, event: Event, *, new_session: bool) -> None:
        existing = conn.execute(
            f"SELECT first_seen, last_seen FROM {USERS_TABLE_NAME} WHERE device_id = ?",
            [event.device_id],
        ).fetchone()

        ts = int(event.timestamp)
        if existing is None:
            conn.execute(
                f"""
                INSERT INTO {USERS_TABLE_NAME} ({_USER_COLUMNS})
                VALUES (?, ?, ?, ?, 1)
                """,
                [event.device_id, event.user_id, ts, ts],
            )
            return

        first_seen, last_seen = int(existing[0]), int(existing[1])
        if self._policy == "monotonic":
            first_seen = min(first_seen, ts)
            last_seen = max(last_seen, ts)
        else:
            last_seen = ts

        conn.execute(
            f"""
            UPDATE {USERS_TABLE_NAME} SET
                user_id = COALESCE(?, user_id),
                first_seen = ?,
                last_seen = ?,
                session_count = session_count + ?
            WHERE device_id = ?
            """,
            [event.user_id, first_seen, last_seen, 1 if new_session else 0, event.device_id],
        )

    # ----------------------------
    # Read side
    # ----------------------------
    @staticmethod
    def get_user(conn, device_id: str) -> UserRecord | None:
        row = conn.execute(
            f"SELECT {_USER_COLUMNS} FROM {USERS_TABLE_NAME} WHERE device_id = ?",
            [device_id],
        ).fetchone()
        return _row_to_user(row) if row is not None else None

    @staticmethod
    def list_users(conn, *, limit: int = 100, offset: int = 0) -> list[UserRecord]:
        if limit < 0 or offset < 0:
            raise InvalidQueryRange("limit and offset must be non-negative")
        rows = conn.execute(
            f"""
            SELECT {_USER_COLUMNS} FROM {USERS_TABLE_NAME}
            ORDER BY last_seen DESC, device_id ASC
            LIMIT ? OFFSET ?
            """,
            [int(limit), int(offset)],
        ).fetchall()
        return [_row_to_user(r) for r in rows]

    @staticmethod
    def count_users(conn) -> int:
        res = conn.execute(f"SELECT COUNT(*) FROM {USERS_TABLE_NAME}").fetchone()
        return int(res[0]) if res else 0


def _row_to_user(row: tuple) -> UserRecord:
    return UserRecord(
        device_id=row[0],
        user_id=row[1],
        first_seen=int(row[2]),
        last_seen=int(row[3]),
        session_count=int(row[4]),
    )
