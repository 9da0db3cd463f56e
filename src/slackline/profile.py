from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .models import Profile
from .session_state import extract_name_from_user_label, extract_workspace_name

logger = logging.getLogger("slackline.profile")

TITLE_READY_JS = "() => document.title.trim().length > 0 && document.title.trim().toLowerCase() !== 'slack'"

PROFILE_DETAILS_JS = r"""
() => {
  const normalize = (value) => (value || "").replace(/\s+/g, " ").trim();
  const userButton = document.querySelector('button[data-qa="user-button"]');
  const searchButton = document.querySelector('button[data-qa="top_nav_search"]');
  return {
    userLabel: normalize(userButton ? userButton.getAttribute("aria-label") : ""),
    searchButtonText: normalize(searchButton ? searchButton.textContent : ""),
    searchButtonAria: normalize(searchButton ? searchButton.getAttribute("aria-label") : ""),
    title: normalize(document.title),
  };
}
"""


class ProfileReader:
    def __init__(self, page: Page, is_logged_in: Callable[[], Awaitable[bool]]):
        self.page = page
        self.is_logged_in = is_logged_in

    async def read(self) -> Profile:
        url = self.page.url
        if not await self.is_logged_in():
            return Profile(logged_in=False, url=url)

        try:
            await self.page.wait_for_function(TITLE_READY_JS, timeout=5000)
        except PlaywrightError:
            logger.debug("Page title did not settle; reading profile anyway")

        details = await self.page.evaluate(PROFILE_DETAILS_JS) or {}
        return Profile(
            logged_in=True,
            url=url,
            name=extract_name_from_user_label(details.get("userLabel")),
            workspace=extract_workspace_name(
                details.get("title"),
                search_button_text=details.get("searchButtonText"),
                search_button_aria=details.get("searchButtonAria"),
            ),
        )
