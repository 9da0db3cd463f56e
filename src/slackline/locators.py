"""Ordered locator chains for Slack UI elements.

Slack's DOM is not ours, so no element has a single authoritative selector.
Each lookup is a list of strategies tried in order, each with its own wait.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

logger = logging.getLogger("slackline.locators")


@dataclass(frozen=True, slots=True)
class LocatorStrategy:
    selector: str
    timeout_ms: float
    widest: bool = False


COMPOSER_STRATEGIES: tuple[LocatorStrategy, ...] = (
    LocatorStrategy(
        '[data-qa="message_input"] [data-qa="texty_input"][contenteditable="true"]',
        7000,
        widest=True,
    ),
    LocatorStrategy(
        '[data-qa="texty_input"][data-input-metric-boundary="composer"][contenteditable="true"]',
        2500,
        widest=True,
    ),
)

SEARCH_FIELD_SELECTORS: tuple[str, ...] = (
    '[data-qa="search_input_box"] [data-qa="texty_input"][contenteditable="true"]',
    '[data-qa="focusable_search_input"] [data-qa="texty_input"][contenteditable="true"]',
)

LOGGED_IN_SELECTORS: tuple[str, ...] = (
    'button[data-qa="top_nav_search"]',
    'button[data-qa="user-button"]',
    '[data-qa="team_sidebar_scroll_container"]',
)


async def first_visible(page: Page, selector: str, timeout_ms: float) -> Locator | None:
    locator = page.locator(selector).first
    try:
        await locator.wait_for(state="visible", timeout=timeout_ms)
    except PlaywrightError:
        return None
    return locator


async def widest_visible(page: Page, selector: str, timeout_ms: float) -> Locator | None:
    """Among the visible matches of ``selector`` return the widest one."""
    candidates = page.locator(selector)
    try:
        await candidates.first.wait_for(state="visible", timeout=timeout_ms)
    except PlaywrightError:
        pass

    best_index = -1
    best_width = -1.0
    for index in range(await candidates.count()):
        candidate = candidates.nth(index)
        try:
            if not await candidate.is_visible():
                continue
            box = await candidate.bounding_box()
        except PlaywrightError:
            continue
        width = float(box["width"]) if box else 0.0
        if width > best_width:
            best_width = width
            best_index = index

    if best_index == -1:
        return None
    return candidates.nth(best_index)


async def locate(page: Page, strategies: Sequence[LocatorStrategy]) -> Locator | None:
    for strategy in strategies:
        if strategy.widest:
            found = await widest_visible(page, strategy.selector, strategy.timeout_ms)
        else:
            found = await first_visible(page, strategy.selector, strategy.timeout_ms)
        if found is not None:
            return found
        logger.debug("No visible match for %s", strategy.selector)
    return None
