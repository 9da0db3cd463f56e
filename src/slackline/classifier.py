"""Turns raw Slack real-time frames into notification events."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .models import NotificationEvent
from .text import is_direct_message_channel, is_user_id, trim_body
from .workspace import WorkspaceIdentity

logger = logging.getLogger("slackline.classifier")

BROADCAST_MENTION_RE = re.compile(r"<!channel>|<!here>|<!everyone>")
SUPPORTED_SUBTYPES = frozenset({"thread_broadcast"})

DEFAULT_SEEN_CAP = 5000
DEFAULT_BODY_LIMIT = 300


def parse_frame(payload: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(payload)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _string(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def text_mentions(text: str, current_user_id: str | None) -> bool:
    if current_user_id and f"<@{current_user_id}>" in text:
        return True
    return bool(BROADCAST_MENTION_RE.search(text))


def message_dedup_key(channel: str, user: str, text: str, ts: str | None) -> str:
    return f"{channel}:{ts}" if ts else f"{channel}:{user}:{text}"


class NotificationClassifier:
    """Decides which frames become notifications.

    A frame becomes an event only when it is a visible plain (or thread
    broadcast) message, not sent by the current user, not seen before, and
    either in a DM channel or mentioning the current user / the channel.
    The seen-set is cleared in one go once it grows past ``seen_cap``.
    """

    def __init__(
        self,
        identity: WorkspaceIdentity,
        seen_cap: int = DEFAULT_SEEN_CAP,
        body_limit: int = DEFAULT_BODY_LIMIT,
    ):
        self.identity = identity
        self.seen_cap = seen_cap
        self.body_limit = body_limit
        self._seen: set[str] = set()

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def process(self, payload: str) -> NotificationEvent | None:
        frame = parse_frame(payload)
        if frame is None:
            return None

        self.learn_current_user_id(frame)
        return self.classify(frame)

    def learn_current_user_id(self, frame: dict[str, Any]) -> None:
        if self.identity.current_user_id:
            return
        if _string(frame.get("type")) != "flannel" or _string(frame.get("subtype")) != "user_subscribe_response":
            return
        ids = frame.get("ids")
        if not isinstance(ids, list):
            return

        candidates = {value for value in ids if isinstance(value, str) and is_user_id(value)}
        if len(candidates) == 1:
            user_id = candidates.pop()
            logger.info("Learned current user id %s from subscribe response", user_id)
            self.identity.set_current_user_id(user_id)

    def classify(self, frame: dict[str, Any]) -> NotificationEvent | None:
        if _string(frame.get("type")) != "message":
            return None

        subtype = _string(frame.get("subtype"))
        if subtype and subtype not in SUPPORTED_SUBTYPES:
            return None
        if frame.get("hidden") is True:
            return None

        channel = _string(frame.get("channel"))
        if not channel:
            return None

        user = _string(frame.get("user")) or _string(frame.get("bot_id")) or "unknown"
        current_user_id = self.identity.current_user_id
        if current_user_id and user == current_user_id:
            return None

        text = _string(frame.get("text")) or ""
        ts = _string(frame.get("ts"))
        key = message_dedup_key(channel, user, text, ts)
        if key in self._seen:
            return None

        is_dm = is_direct_message_channel(channel)
        if not is_dm and not text_mentions(text, current_user_id):
            return None

        if len(self._seen) > self.seen_cap:
            logger.debug("Seen-set exceeded %s entries, clearing", self.seen_cap)
            self._seen.clear()
        self._seen.add(key)

        channel_name = self.identity.channel_name(channel)
        label = channel_name or channel
        if is_dm:
            title = f"Slack DM ({label})"
            body = trim_body(text, self.body_limit) or "New direct message"
        else:
            title = f"Slack mention ({label})"
            body = trim_body(text, self.body_limit) or "New mention"

        options: dict[str, Any] = {
            "body": body,
            "source": "websocket",
            "reason": "direct-message" if is_dm else "mention",
            "channel": channel,
            "user": user,
            "subtype": subtype,
            "ts": ts,
        }
        if channel_name:
            options["channelName"] = channel_name
        return NotificationEvent.notification(title, options)
