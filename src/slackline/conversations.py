from __future__ import annotations

import logging
import re
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .errors import ConversationNotFound
from .models import ConversationRef, ConversationType
from .text import normalize

logger = logging.getLogger("slackline.conversations")

SIDEBAR_NAME_SELECTOR = '[data-qa^="channel_sidebar_name_"]'
CONVERSATION_READY_SELECTOR = '[data-qa="message_pane"], [data-qa="message_input"]'
SIDEBAR_WAIT_MS = 12000
CONVERSATION_READY_MS = 15000
SETTLE_MS = 900

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_COMPOSER_LABEL_PREFIX_RE = re.compile(r"^(?:nachricht an|message\s+to)\s+", re.IGNORECASE)
_UNSAFE_SELECTOR_CHARS_RE = re.compile(r'["\\]')

ACTIVE_CONVERSATION_JS = r"""
() => {
  const normalize = (value) => (value || "").replace(/\s+/g, " ").trim();
  const match = window.location.pathname.match(/\/client\/[^/]+\/([^/?]+)/);
  const input = document.querySelector('[data-qa="message_input"] [data-qa="texty_input"]');
  return {
    url: window.location.href,
    id: match ? match[1] : null,
    header:
      normalize((document.querySelector('[data-qa="channel_name"]') || {}).textContent) ||
      normalize((document.querySelector('[data-qa="channel_name_button"]') || {}).textContent),
    inputLabel: normalize(input ? input.getAttribute("aria-label") : ""),
  };
}
"""


def is_absolute_url(value: str) -> bool:
    return bool(_ABSOLUTE_URL_RE.match(value))


def conversation_type_for(conversation_id: str | None) -> ConversationType:
    if not conversation_id:
        return ConversationType.UNKNOWN
    if conversation_id.startswith("D"):
        return ConversationType.DM
    if conversation_id.startswith(("C", "G")):
        return ConversationType.CHANNEL
    return ConversationType.UNKNOWN


def name_from_composer_label(label: str | None) -> str | None:
    cleaned = _COMPOSER_LABEL_PREFIX_RE.sub("", normalize(label)).strip()
    return cleaned or None


def conversation_from_details(details: dict[str, Any]) -> ConversationRef:
    conversation_id = details.get("id") or None
    name = normalize(details.get("header")) or name_from_composer_label(details.get("inputLabel"))
    return ConversationRef(
        type=conversation_type_for(conversation_id),
        url=str(details.get("url") or ""),
        id=conversation_id,
        name=name or None,
    )


class ConversationManager:
    def __init__(self, page: Page, workspace_url: str = ""):
        self.page = page
        self.workspace_url = workspace_url

    async def open(self, target: str | None = None) -> ConversationRef:
        """Open ``target``: empty, an absolute URL, or a sidebar name (``#``/``@`` optional)."""
        target = (target or "").strip()
        target_url = target if is_absolute_url(target) else self.workspace_url

        if target_url and self.page.url != target_url:
            await self.page.goto(target_url, wait_until="domcontentloaded")

        if target and not is_absolute_url(target):
            try:
                await self.page.wait_for_function(
                    f"() => document.querySelectorAll('{SIDEBAR_NAME_SELECTOR}').length > 0",
                    timeout=SIDEBAR_WAIT_MS,
                )
            except PlaywrightError:
                logger.debug("Sidebar did not render within %sms", SIDEBAR_WAIT_MS)
            if not await self._click_sidebar_entry(target):
                raise ConversationNotFound(target)

        await self.page.wait_for_timeout(SETTLE_MS)
        await self.page.locator(CONVERSATION_READY_SELECTOR).first.wait_for(
            state="visible", timeout=CONVERSATION_READY_MS
        )
        return await self.read_active()

    async def read_active(self) -> ConversationRef:
        details = await self.page.evaluate(ACTIVE_CONVERSATION_JS)
        return conversation_from_details(details or {})

    async def _click_sidebar_entry(self, target: str) -> bool:
        name = target.lstrip("@#").strip()
        if not name:
            return False

        exact = re.compile(f"^{re.escape(name)}$", re.IGNORECASE)
        selectors = [SIDEBAR_NAME_SELECTOR]
        if not _UNSAFE_SELECTOR_CHARS_RE.search(name):
            selectors.insert(0, f'[data-qa="channel_sidebar_name_{name}"]')
        for selector in selectors:
            for has_text in (exact, name):
                match = self.page.locator(selector).filter(has_text=has_text).first
                if await match.count() > 0:
                    await match.click(force=True)
                    return True
        return False
