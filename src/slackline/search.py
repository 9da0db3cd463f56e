from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from .errors import SearchUnavailable
from .locators import SEARCH_FIELD_SELECTORS, first_visible
from .messages import to_iso
from .models import SearchItem, SearchResult
from .text import normalize, parse_unix_seconds

logger = logging.getLogger("slackline.search")

SEARCH_BUTTON_SELECTOR = 'button[data-qa="top_nav_search"]'
SEARCH_CLEAR_SELECTOR = '[data-qa="top_nav_search_clear"]'
SEARCH_RESULT_SELECTOR = '[data-qa="search_result"]'
QUERY_OPTION_SELECTOR = '[data-qa="search-query-entity-text-content"]'
SEARCH_URL_GLOB = "**/search**"

READ_RESULTS_JS = r"""
(nodes) => {
  const normalize = (value) => (value || "").replace(/\s+/g, " ").trim();
  return nodes.map((node) => {
    const sibling = node.nextElementSibling;
    const tsNode = node.querySelector('[data-qa="timestamp_label"]');
    const anchor = tsNode ? tsNode.closest("[data-ts]") : null;
    return {
      rawText: normalize(node.textContent),
      user: normalize((node.querySelector('[data-qa="message_sender_name"]') || {}).textContent),
      channel:
        normalize((node.querySelector('[data-qa="search_result_channel_name"]') || {}).textContent) ||
        (sibling && sibling.getAttribute("data-qa") === "search_result_channel_name"
          ? normalize(sibling.textContent)
          : ""),
      label: normalize(tsNode ? tsNode.textContent : ""),
      dataTs: anchor ? anchor.getAttribute("data-ts") : null,
      message:
        normalize((node.querySelector('[data-qa="message-text"]') || {}).textContent) ||
        normalize((node.querySelector(".c-message__body") || {}).textContent),
    };
  });
}
"""


def open_search_shortcut() -> str:
    return "Meta+K" if sys.platform == "darwin" else "Control+K"


def items_from_rows(rows: Sequence[dict[str, Any]], query: str, limit: int) -> list[SearchItem]:
    """Keep rows that contain ``query``, dropping duplicates, up to ``limit``."""
    query_lower = query.lower()
    seen: set[str] = set()
    items: list[SearchItem] = []
    for row in rows:
        raw_text = normalize(row.get("rawText"))
        if not raw_text:
            continue
        message = normalize(row.get("message")) or raw_text
        if query_lower not in raw_text.lower() and query_lower not in message.lower():
            continue

        user = normalize(row.get("user")) or None
        channel = normalize(row.get("channel")) or None
        label = normalize(row.get("label")) or None
        key = "|".join([user or "", channel or "", label or "", message])
        if key in seen:
            continue
        seen.add(key)

        timestamp_unix = parse_unix_seconds(row.get("dataTs"))
        items.append(
            SearchItem(
                message=message,
                raw_text=raw_text,
                user=user,
                channel=channel,
                timestamp_label=label,
                timestamp_unix=timestamp_unix,
                timestamp_iso=to_iso(timestamp_unix),
            )
        )
    return items[: max(0, limit)]


class SearchManager:
    def __init__(self, page: Page):
        self.page = page

    async def search(self, query: str, limit: int = 10) -> SearchResult:
        field = await self.open_search_field()
        await field.click(force=True)
        await field.fill(query)
        await self._submit(field, query)

        await self.page.wait_for_timeout(2500)
        try:
            await self.page.locator(SEARCH_RESULT_SELECTOR).first.wait_for(state="visible", timeout=7000)
        except PlaywrightError:
            logger.info("No search results rendered for %r", query)

        rows = await self.page.locator(SEARCH_RESULT_SELECTOR).evaluate_all(READ_RESULTS_JS)
        return SearchResult(query=query, results=items_from_rows(rows or [], query, limit))

    async def open_search_field(self) -> Locator:
        button = self.page.locator(SEARCH_BUTTON_SELECTOR).first
        await button.wait_for(state="visible", timeout=15000)
        await self._clear_previous_query()

        attempts = (
            (lambda: self._click(button), 3500),
            (lambda: self._press_enter_on(button), 2500),
            (self._press_shortcut, 2500),
        )
        for action, timeout_ms in attempts:
            await action()
            field = await self._find_field(timeout_ms)
            if field is not None:
                return field
        raise SearchUnavailable()

    async def _click(self, button: Locator) -> None:
        try:
            await button.click(force=True)
        except PlaywrightError:
            logger.debug("Search button click failed", exc_info=True)

    async def _press_enter_on(self, button: Locator) -> None:
        try:
            await button.focus()
            await button.press("Enter")
        except PlaywrightError:
            logger.debug("Search button Enter failed", exc_info=True)

    async def _press_shortcut(self) -> None:
        try:
            await self.page.keyboard.press(open_search_shortcut())
        except PlaywrightError:
            logger.debug("Search shortcut failed", exc_info=True)

    async def _find_field(self, timeout_ms: float) -> Locator | None:
        for selector in SEARCH_FIELD_SELECTORS:
            field = await first_visible(self.page, selector, timeout_ms)
            if field is not None:
                return field
        return None

    async def _clear_previous_query(self) -> None:
        clear = self.page.locator(SEARCH_CLEAR_SELECTOR).first
        try:
            if await clear.count() == 0 or not await clear.is_visible():
                return
            await clear.click(force=True)
        except PlaywrightError:
            return
        await self.page.wait_for_timeout(350)

    async def _submit(self, field: Locator, query: str) -> None:
        await field.press("Enter")
        if await self._wait_for_search_url(3000):
            return

        option = self.page.locator(QUERY_OPTION_SELECTOR).filter(has_text=query).first
        try:
            await option.wait_for(state="visible", timeout=2500)
            await option.click(force=True)
        except PlaywrightError:
            await field.press("Enter")

        if not await self._wait_for_search_url(3000):
            await self.page.wait_for_url(SEARCH_URL_GLOB, timeout=30000)

    async def _wait_for_search_url(self, timeout_ms: float) -> bool:
        if "/search" in self.page.url:
            return True
        try:
            await self.page.wait_for_url(SEARCH_URL_GLOB, timeout=timeout_ms)
        except PlaywrightError:
            return False
        return True
