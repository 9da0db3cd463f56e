from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(slots=True)
class DaemonState:
    """Persisted record describing a daemon launched by this tool."""

    cdp_url: str
    profile_dir: str
    chrome_path: str
    headless: bool
    started_at: str
    pid: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DaemonState:
        pid = data.get("pid")
        return cls(
            cdp_url=str(data["cdp_url"]),
            profile_dir=str(data.get("profile_dir", "")),
            chrome_path=str(data.get("chrome_path", "")),
            headless=bool(data.get("headless", True)),
            started_at=str(data.get("started_at", "")),
            pid=pid if isinstance(pid, int) else None,
        )


@dataclass(slots=True)
class DaemonStatus:
    running: bool
    cdp_url: str
    pid: int | None = None
    pid_alive: bool | None = None
    profile_dir: str | None = None
    headless: bool | None = None
    started_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(asdict(self))


class ConversationType(str, Enum):
    CHANNEL = "channel"
    DM = "dm"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class ConversationRef:
    type: ConversationType
    url: str
    id: str | None = None
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"type": self.type.value, "id": self.id, "name": self.name, "url": self.url})


@dataclass(slots=True)
class MessageRecord:
    text: str
    user: str | None = None
    timestamp_label: str | None = None
    timestamp_unix: float | None = None
    timestamp_iso: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "user": self.user,
                "text": self.text,
                "timestamp_label": self.timestamp_label,
                "timestamp_unix": self.timestamp_unix,
                "timestamp_iso": self.timestamp_iso,
            }
        )


@dataclass(slots=True)
class MessageSnapshot(MessageRecord):
    """A rendered message row plus the flags only the post confirmation needs."""

    channel_id: str | None = None
    thread_ts: str | None = None
    placeholder: bool = False
    unprocessed: bool = False

    def to_record(self) -> MessageRecord:
        return MessageRecord(
            text=self.text,
            user=self.user,
            timestamp_label=self.timestamp_label,
            timestamp_unix=self.timestamp_unix,
            timestamp_iso=self.timestamp_iso,
        )


@dataclass(slots=True)
class SearchItem:
    message: str
    raw_text: str
    user: str | None = None
    channel: str | None = None
    timestamp_label: str | None = None
    timestamp_unix: float | None = None
    timestamp_iso: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(asdict(self))


@dataclass(slots=True)
class SearchResult:
    query: str
    results: list[SearchItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query, "results": [item.to_dict() for item in self.results]}


@dataclass(slots=True)
class Profile:
    logged_in: bool
    url: str
    name: str | None = None
    workspace: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(asdict(self))


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """Event relayed to webhook subscribers.

    ``type`` is ``"notification"`` (with ``options``) or ``"title"`` (page
    title change, no options).
    """

    type: str
    title: str
    options: dict[str, Any] | None = None

    @classmethod
    def notification(cls, title: str, options: dict[str, Any]) -> NotificationEvent:
        return cls(type="notification", title=title, options=dict(options))

    @classmethod
    def title_change(cls, title: str) -> NotificationEvent:
        return cls(type="title", title=title)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"title": self.title}
        if self.type == "notification":
            data["options"] = dict(self.options or {})
        return {"type": self.type, "data": data}
