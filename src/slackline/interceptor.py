from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from playwright.async_api import CDPSession, Page
from playwright.async_api import Error as PlaywrightError

from .errors import AlreadyListening, InterceptionUnavailable

logger = logging.getLogger("slackline.interceptor")

FRAME_EVENT = "Network.webSocketFrameReceived"


class FrameInterceptor:
    """Receives the page's websocket frames through a CDP session.

    Uses the DevTools network domain instead of patching page globals, so it
    survives page reloads without re-injecting anything.
    """

    def __init__(self, page: Page, on_frame: Callable[[str], None]):
        self.page = page
        self.on_frame = on_frame
        self._session: CDPSession | None = None

    @property
    def listening(self) -> bool:
        return self._session is not None

    def _handle_frame(self, params: dict[str, Any]) -> None:
        response = params.get("response") if isinstance(params, dict) else None
        payload = response.get("payloadData") if isinstance(response, dict) else None
        if isinstance(payload, str):
            self.on_frame(payload)

    def _handle_page_close(self, *_: Any) -> None:
        self._session = None

    async def start(self) -> None:
        if self._session is not None:
            raise AlreadyListening()

        try:
            session = await self.page.context.new_cdp_session(self.page)
            await session.send("Network.enable")
        except PlaywrightError as exc:
            raise InterceptionUnavailable(
                f"Could not create CDP session for websocket interception: {exc}"
            ) from exc

        session.on(FRAME_EVENT, self._handle_frame)
        self.page.once("close", self._handle_page_close)
        self._session = session
        logger.info("Websocket frame interception enabled")

    async def stop(self) -> None:
        session = self._session
        if session is None:
            return
        self._session = None
        session.remove_listener(FRAME_EVENT, self._handle_frame)
        try:
            await session.detach()
        except PlaywrightError:
            logger.debug("CDP session already gone", exc_info=True)
        logger.info("Websocket frame interception stopped")
