from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Union

from trackcore.core.ids import canonical_json

# Open-ended property values: str | int | float | bool | None | nested map/array
JsonValue = Union[str, int, float, bool, None, dict[str, "JsonValue"], list["JsonValue"]]

EVENT_TYPES: frozenset[str] = frozenset(
    {"page_view", "click", "expose", "duration", "performance", "custom"}
)

PLATFORMS: frozenset[str] = frozenset({"web", "miniapp", "ios", "android", "rn", "flutter"})

PAGE_VIEW = "page_view"

# Column order of the events table; as_row() follows it
EVENT_COLUMNS: tuple[str, ...] = (
    "event_id",
    "event_name",
    "event_type",
    "timestamp",
    "server_time",
    "user_id",
    "device_id",
    "session_id",
    "platform",
    "app_id",
    "app_version",
    "sdk_version",
    "page_url",
    "page_title",
    "referrer",
    "properties",
)


@dataclass(frozen=True, slots=True)
class Event:
    event_id: str
    event_name: str
    event_type: str
    timestamp: int  # client epoch ms

    device_id: str
    session_id: str

    platform: str
    app_id: str
    app_version: str = ""
    sdk_version: str = ""

    user_id: str | None = None
    # Assigned by the store at ingestion; never taken from the client payload.
    server_time: int | None = None

    page_url: str | None = None
    page_title: str | None = None
    referrer: str | None = None

    properties: dict[str, JsonValue] = field(default_factory=dict)

    def with_server_time(self, server_time: int) -> Event:
        if self.server_time is not None:
            return self
        return replace(self, server_time=int(server_time))

    def as_row(self) -> tuple:
        """
        Positional row matching EVENT_COLUMNS.
        """
        return (
            self.event_id,
            self.event_name,
            self.event_type,
            int(self.timestamp),
            None if self.server_time is None else int(self.server_time),
            self.user_id,
            self.device_id,
            self.session_id,
            self.platform,
            self.app_id,
            self.app_version,
            self.sdk_version,
            self.page_url,
            self.page_title,
            self.referrer,
            dump_properties(self.properties),
        )

    @classmethod
    def from_row(cls, row: tuple) -> Event:
        values = dict(zip(EVENT_COLUMNS, row, strict=True))
        values["properties"] = load_properties(values["properties"])
        return cls(**values)

    def as_dict(self) -> dict[str, Any]:
        """
        camelCase wire shape, as produced by the SDKs and read by the dashboard.
        """
        return {
            "eventId": self.event_id,
            "eventName": self.event_name,
            "eventType": self.event_type,
            "timestamp": self.timestamp,
            "serverTime": self.server_time,
            "userId": self.user_id,
            "deviceId": self.device_id,
            "sessionId": self.session_id,
            "platform": self.platform,
            "appId": self.app_id,
            "appVersion": self.app_version,
            "sdkVersion": self.sdk_version,
            "pageUrl": self.page_url,
            "pageTitle": self.page_title,
            "referrer": self.referrer,
            "properties": self.properties,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """
        Parses the camelCase wire shape. Only checks the closed enumerations and
        required keys; business validation happens upstream. A client-supplied
        serverTime is dropped.
        """
        try:
            event_type = str(data["eventType"])
            platform = str(data["platform"])
            event = cls(
                event_id=str(data["eventId"]),
                event_name=str(data["eventName"]),
                event_type=event_type,
                timestamp=int(data["timestamp"]),
                device_id=str(data["deviceId"]),
                session_id=str(data["sessionId"]),
                platform=platform,
                app_id=str(data["appId"]),
                app_version=str(data.get("appVersion") or ""),
                sdk_version=str(data.get("sdkVersion") or ""),
                user_id=data.get("userId"),
                page_url=data.get("pageUrl"),
                page_title=data.get("pageTitle"),
                referrer=data.get("referrer"),
                properties=dict(data.get("properties") or {}),
            )
        except KeyError as exc:
            raise ValueError(f"Missing required event field: {exc.args[0]}") from exc

        if event_type not in EVENT_TYPES:
            raise ValueError(
                f"Unsupported eventType={event_type!r}. Allowed={sorted(EVENT_TYPES)}"
            )
        if platform not in PLATFORMS:
            raise ValueError(f"Unsupported platform={platform!r}. Allowed={sorted(PLATFORMS)}")
        return event


def dump_properties(properties: Mapping[str, JsonValue] | None) -> str:
    return canonical_json(dict(properties or {}))


def load_properties(blob: str | None) -> dict[str, JsonValue]:
    if not blob:
        return {}
    value = json.loads(blob)
    return value if isinstance(value, dict) else {}
