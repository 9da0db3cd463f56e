"""Shared text helpers for Slack ids, URLs and scraped strings."""

from __future__ import annotations

import math
import re

_USER_ID_RE = re.compile(r"^U[A-Z0-9]{8,}$")
_DM_CHANNEL_RE = re.compile(r"^D[A-Z0-9]+$")
_CONVERSATION_PATH_RE = re.compile(r"/client/[^/]+/([^/?#]+)")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize(value: str | None) -> str:
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip()


def parse_unix_seconds(value: str | None) -> float | None:
    try:
        numeric = float((value or "").strip())
    except ValueError:
        return None
    return numeric if math.isfinite(numeric) else None


def is_user_id(value: str) -> bool:
    return bool(_USER_ID_RE.match(value))


def is_direct_message_channel(channel: str) -> bool:
    return bool(_DM_CHANNEL_RE.match(channel))


def conversation_id_from_url(url: str) -> str | None:
    match = _CONVERSATION_PATH_RE.search(url or "")
    return match.group(1) if match else None


def trim_body(text: str, limit: int = 300) -> str:
    trimmed = text.strip()
    if len(trimmed) <= limit:
        return trimmed
    return f"{trimmed[: max(0, limit - 3)]}..."
