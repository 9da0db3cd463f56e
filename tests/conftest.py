"""Shared test fixtures for slackline tests."""

from __future__ import annotations

import re
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from playwright.async_api import Error as PlaywrightError  # noqa: E402
from playwright.async_api import TimeoutError as PlaywrightTimeoutError  # noqa: E402

from slackline.config import SlacklineSettings  # noqa: E402


@dataclass
class FakeElement:
    """One DOM node as seen through a locator."""

    text: str = ""
    visible: bool = True
    width: float = 100.0
    disabled: bool = False
    attrs: dict[str, str] = field(default_factory=dict)


class FakeLocator:
    """Fake Playwright locator over a list of FakeElements held by the page."""

    def __init__(self, page: FakePage, selector: str, elements: list[FakeElement], index: int | None = None):
        self.page = page
        self.selector = selector
        self._elements = elements
        self._index = index

    def _selected(self) -> list[FakeElement]:
        if self._index is None:
            return list(self._elements)
        if self._index < len(self._elements):
            return [self._elements[self._index]]
        return []

    @property
    def first(self) -> FakeLocator:
        return self.nth(0)

    def nth(self, index: int) -> FakeLocator:
        return FakeLocator(self.page, self.selector, self._elements, index)

    def locator(self, selector: str) -> FakeLocator:
        return self.page.locator(selector)

    def filter(self, has_text: Any = None) -> FakeLocator:
        if has_text is None:
            return self
        if isinstance(has_text, re.Pattern):
            matched = [element for element in self._selected() if has_text.search(element.text)]
        else:
            matched = [element for element in self._selected() if str(has_text).lower() in element.text.lower()]
        return FakeLocator(self.page, self.selector, matched)

    async def count(self) -> int:
        return len(self._selected())

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        if not any(element.visible for element in self._selected()):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms waiting for {self.selector}")

    async def is_visible(self) -> bool:
        selected = self._selected()
        return bool(selected) and selected[0].visible

    async def is_disabled(self) -> bool:
        selected = self._selected()
        return bool(selected) and selected[0].disabled

    async def get_attribute(self, name: str) -> str | None:
        selected = self._selected()
        return selected[0].attrs.get(name) if selected else None

    async def bounding_box(self) -> dict[str, float] | None:
        selected = self._selected()
        if not selected:
            return None
        return {"x": 0.0, "y": 0.0, "width": selected[0].width, "height": 20.0}

    async def click(self, force: bool = False) -> None:
        self.page.actions.append(("click", self.selector))

    async def fill(self, text: str) -> None:
        self.page.actions.append(("fill", self.selector, text))

    async def focus(self) -> None:
        self.page.actions.append(("focus", self.selector))

    async def press(self, key: str) -> None:
        self.page.actions.append(("press", self.selector, key))
        if self.page.on_press is not None:
            self.page.on_press(key)

    async def evaluate_all(self, script: str) -> Any:
        return self.page.rows.get(self.selector, [])


class FakeKeyboard:
    def __init__(self, page: FakePage):
        self.page = page

    async def press(self, key: str) -> None:
        self.page.actions.append(("keyboard", key))


class FakeMouse:
    def __init__(self, page: FakePage):
        self.page = page

    async def wheel(self, delta_x: float, delta_y: float) -> None:
        self.page.actions.append(("wheel", delta_y))


class FakePage:
    """Scriptable stand-in for a Playwright page."""

    def __init__(self, url: str = "https://app.slack.com/client/T0001/C0001"):
        self.url = url
        self.closed = False
        self.elements: dict[str, list[FakeElement]] = {}
        self.rows: dict[str, list[dict[str, Any]]] = {}
        self.evaluate_results: dict[str, Any] = {}
        self.evaluate_error: Exception | None = None
        self.actions: list[tuple[Any, ...]] = []
        self.on_press: Callable[[str], None] | None = None
        self.listeners: dict[str, list[Callable[..., None]]] = {}
        self.keyboard = FakeKeyboard(self)
        self.mouse = FakeMouse(self)
        self.context: Any = None

    def is_closed(self) -> bool:
        return self.closed

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector, self.elements.setdefault(selector, []))

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if self.evaluate_error is not None:
            raise self.evaluate_error
        return self.evaluate_results.get(script)

    async def wait_for_timeout(self, timeout: float) -> None:
        self.actions.append(("wait", timeout))

    async def wait_for_function(self, script: str, timeout: float | None = None) -> None:
        return None

    async def wait_for_url(self, pattern: str, timeout: float | None = None) -> None:
        raise PlaywrightTimeoutError("Timeout waiting for url")

    async def goto(self, url: str, wait_until: str | None = None) -> None:
        self.actions.append(("goto", url))
        self.url = url

    async def close(self) -> None:
        self.closed = True

    def once(self, event: str, handler: Callable[..., None]) -> None:
        self.listeners.setdefault(event, []).append(handler)


class FakeCDPSession:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.handlers: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self.detached = False

    async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        self.sent.append(method)
        return {}

    def on(self, event: str, handler: Callable[[dict[str, Any]], None]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Callable[[dict[str, Any]], None]) -> None:
        self.handlers.get(event, []).remove(handler)

    async def detach(self) -> None:
        self.detached = True

    def emit(self, event: str, params: dict[str, Any]) -> None:
        for handler in list(self.handlers.get(event, [])):
            handler(params)


class FakeContext:
    def __init__(self, pages: list[FakePage] | None = None, session: FakeCDPSession | None = None):
        self.pages = pages or []
        self.session = session or FakeCDPSession()
        self.session_error: Exception | None = None
        for page in self.pages:
            page.context = self

    async def new_cdp_session(self, page: FakePage) -> FakeCDPSession:
        if self.session_error is not None:
            raise self.session_error
        return self.session

    async def new_page(self) -> FakePage:
        page = FakePage(url="about:blank")
        page.context = self
        self.pages.append(page)
        return page


@pytest.fixture
def settings(tmp_path, monkeypatch) -> SlacklineSettings:
    monkeypatch.chdir(tmp_path)
    for key in ("SLACKLINE_CDP_URL", "SLACKLINE_CHROME_PATH", "SLACKLINE_WORKSPACE_URL", "SLACKLINE_STATE_DIR"):
        monkeypatch.delenv(key, raising=False)
    return SlacklineSettings(
        state_dir=tmp_path / "state",
        workspace_url="https://acme.slack.com/",
        stop_timeout_seconds=0.05,
        stop_poll_interval_seconds=0.01,
        launch_timeout_seconds=0.05,
        probe_interval_seconds=0.01,
        post_confirm_timeout_seconds=0.2,
    )


@pytest.fixture
def fake_page() -> FakePage:
    page = FakePage()
    FakeContext([page])
    return page


@pytest.fixture
def playwright_error() -> type[PlaywrightError]:
    return PlaywrightError
