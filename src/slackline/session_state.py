from __future__ import annotations

import logging
import re

from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError

from .locators import LOGGED_IN_SELECTORS
from .text import normalize

logger = logging.getLogger("slackline.session_state")

_CLIENT_URL_RE = re.compile(r"/client/")
_AUTH_URL_RE = re.compile(r"workspace-signin|/signin|/auth(\?|/|$)|/login/")

_USER_LABEL_PATTERNS = (
    re.compile(r"^user:\s*(.+)$", re.IGNORECASE),
    re.compile(r"^benutzer:in:\s*(.+)$", re.IGNORECASE),
    re.compile(r"^account:\s*(.+)$", re.IGNORECASE),
    re.compile(r"^profil:\s*(.+)$", re.IGNORECASE),
    re.compile(r"^profile:\s*(.+)$", re.IGNORECASE),
)
_SEARCH_LABEL_GERMAN_RE = re.compile(r"^(.+?)\s+durchsuchen$", re.IGNORECASE)
_SEARCH_LABEL_ENGLISH_RE = re.compile(r"^search(?:\sin)?\s+(.+)$", re.IGNORECASE)
_TITLE_SLACK_SUFFIX_RE = re.compile(r"\s*\|\s*slack\s*$", re.IGNORECASE)

# Slack can bounce to the sign-in page right after the first paint.
_REDIRECT_SETTLE_MS = 250


def is_client_url(url: str) -> bool:
    return bool(_CLIENT_URL_RE.search(url or ""))


def is_auth_url(url: str) -> bool:
    return bool(_AUTH_URL_RE.search(url or ""))


def is_client_like_url(url: str) -> bool:
    return is_client_url(url) and not is_auth_url(url)


def extract_name_from_user_label(raw_label: str | None) -> str | None:
    """Strip the localized prefix from the user button's aria-label."""
    if not raw_label:
        return None
    label = normalize(raw_label)
    for pattern in _USER_LABEL_PATTERNS:
        match = pattern.match(label)
        if match and match.group(1):
            return normalize(match.group(1))
    return label or None


def _workspace_from_search_label(raw: str | None) -> str | None:
    label = normalize(raw)
    if not label:
        return None
    german = _SEARCH_LABEL_GERMAN_RE.match(label)
    if german:
        return normalize(german.group(1))
    english = _SEARCH_LABEL_ENGLISH_RE.match(label)
    if english:
        return normalize(english.group(1))
    return None


def _workspace_from_title(raw_title: str | None) -> str | None:
    title = normalize(raw_title)
    if not title:
        return None

    parts = [part for part in (normalize(piece) for piece in title.split(" - ")) if part]
    if len(parts) >= 2:
        candidate = parts[-2]
        if candidate.lower() != "slack":
            return candidate

    without_suffix = _TITLE_SLACK_SUFFIX_RE.sub("", title).strip()
    if without_suffix and without_suffix.lower() != "slack":
        return without_suffix
    return None


def extract_workspace_name(
    title: str | None,
    search_button_text: str | None = None,
    search_button_aria: str | None = None,
) -> str | None:
    return (
        _workspace_from_search_label(search_button_text)
        or _workspace_from_search_label(search_button_aria)
        or _workspace_from_title(title)
    )


async def is_logged_in_page(page: Page, timeout_seconds: float) -> bool:
    if page.is_closed() or not is_client_like_url(page.url):
        return False

    for selector in LOGGED_IN_SELECTORS:
        try:
            await page.locator(selector).first.wait_for(state="visible", timeout=timeout_seconds * 1000)
            await page.wait_for_timeout(_REDIRECT_SETTLE_MS)
        except PlaywrightError:
            continue
        return is_client_like_url(page.url)
    return False


async def is_logged_in_context(context: BrowserContext, timeout_seconds: float) -> bool:
    for page in list(context.pages):
        if await is_logged_in_page(page, timeout_seconds):
            return True
    return False
