"""Control channel connector.

Opens a Playwright session against the Slack web client in one of three
modes:

- ``daemon``: make sure the long-lived Chrome daemon is up, attach over CDP and
  reuse a page that is already on Slack when there is one.
- ``attach``: attach over CDP to a browser somebody else manages and work in a
  fresh page that is closed again on exit.
- ``persistent``: launch a private persistent context on the shared profile.
  Used by the interactive login flow.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from .config import BrowserMode, SlacklineSettings, normalize_cdp_url
from .daemon_manager import DaemonManager
from .errors import NoBrowserContextAvailable

logger = logging.getLogger("slackline.browser")

SLACK_APP_URL_RE = re.compile(r"https?://app\.slack\.com/", re.IGNORECASE)
PRIVATE_VIEWPORT = {"width": 1440, "height": 900}


@dataclass(slots=True)
class BrowserSession:
    context: BrowserContext
    page: Page
    mode: BrowserMode
    close_page_on_finish: bool = False


def select_page(context: BrowserContext, mode: BrowserMode) -> tuple[Page | None, bool]:
    """Pick an existing page for ``mode``.

    Returns ``(page, close_on_finish)``; ``page`` is None when a new page has to
    be created.
    """
    if mode == "attach":
        return None, True

    open_pages = [page for page in context.pages if not page.is_closed()]
    for page in open_pages:
        if SLACK_APP_URL_RE.search(page.url or ""):
            return page, False
    if open_pages:
        return open_pages[0], False
    return None, False


async def _close_quietly(target: Any, label: str) -> None:
    try:
        await target.close()
    except Exception:
        logger.debug("Ignoring error while closing %s", label, exc_info=True)


async def launch_private_context(
    playwright: Playwright,
    settings: SlacklineSettings,
    headless: bool,
) -> BrowserContext:
    profile_dir = settings.chrome_profile_dir
    profile_dir.mkdir(parents=True, exist_ok=True)
    options: dict[str, Any] = {
        "headless": headless,
        "viewport": PRIVATE_VIEWPORT,
        "args": ["--disable-features=DialMediaRouteProvider"],
    }
    if settings.chrome_path:
        options["executable_path"] = settings.chrome_path
    else:
        options["channel"] = "chrome"
    logger.info("Launching private browser session on %s (headless=%s)", profile_dir, headless)
    return await playwright.chromium.launch_persistent_context(str(profile_dir), **options)


@asynccontextmanager
async def open_session(
    settings: SlacklineSettings,
    headless: bool = True,
    keep_open: bool = False,
    mode: BrowserMode | None = None,
    manager: DaemonManager | None = None,
) -> AsyncIterator[BrowserSession]:
    mode = mode or settings.browser_mode

    async with async_playwright() as playwright:
        if mode == "persistent":
            context = await launch_private_context(playwright, settings, headless)
            page = context.pages[0] if context.pages else await context.new_page()
            try:
                yield BrowserSession(context=context, page=page, mode=mode)
            finally:
                if not keep_open:
                    await _close_quietly(context, "private browser context")
            return

        cdp_url = normalize_cdp_url(settings.cdp_url)
        if mode == "daemon":
            manager = manager or DaemonManager(settings)
            status = await manager.ensure_running(headless=headless, cdp_url=cdp_url)
            cdp_url = status.cdp_url

        browser: Browser = await playwright.chromium.connect_over_cdp(cdp_url)
        try:
            if not browser.contexts:
                raise NoBrowserContextAvailable(cdp_url)
            context = browser.contexts[0]

            page, close_on_finish = select_page(context, mode)
            if page is None:
                page = await context.new_page()

            session = BrowserSession(
                context=context,
                page=page,
                mode=mode,
                close_page_on_finish=close_on_finish,
            )
            try:
                yield session
            finally:
                if session.close_page_on_finish and not keep_open:
                    await _close_quietly(page, "attached page")
        finally:
            if not keep_open:
                # Drops the CDP connection only; the daemon process keeps running.
                await _close_quietly(browser, "CDP connection")
