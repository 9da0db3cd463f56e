from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from playwright.async_api import Page

from .browser import open_session
from .classifier import NotificationClassifier
from .config import BrowserMode, SlacklineSettings
from .conversations import ConversationManager
from .errors import NotLoggedIn, WorkspaceNotConfigured
from .events import EventBus
from .interceptor import FrameInterceptor
from .messages import MessageManager
from .models import NotificationEvent
from .profile import ProfileReader
from .search import SearchManager
from .session_state import is_logged_in_page
from .workspace import WorkspaceIdentity

logger = logging.getLogger("slackline.client")


class SlackClient:
    """Domain operations on one connected Slack page."""

    def __init__(self, page: Page, settings: SlacklineSettings):
        self.page = page
        self.settings = settings
        self.workspace = WorkspaceIdentity(page)
        self.events = EventBus()
        self.conversations = ConversationManager(page, settings.workspace_url)
        self.messages = MessageManager(page, confirm_timeout_seconds=settings.post_confirm_timeout_seconds)
        self.search = SearchManager(page)
        self.profile = ProfileReader(page, self.is_logged_in)
        self.classifier = NotificationClassifier(
            self.workspace,
            seen_cap=settings.seen_cap,
            body_limit=settings.notification_body_limit,
        )
        self._interceptor: FrameInterceptor | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self.events.on_raw_frame(self._classify_frame)

    def _classify_frame(self, payload: str) -> None:
        if self.workspace.current_user_id:
            self._emit(self.classifier.process(payload))
            return
        # Unknown self id: resolve it first so our own messages are filtered.
        task = asyncio.get_running_loop().create_task(self._classify_after_refresh(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _classify_after_refresh(self, payload: str) -> None:
        await self.workspace.get_current_user_id()
        self._emit(self.classifier.process(payload))

    def _emit(self, event: NotificationEvent | None) -> None:
        if event is not None:
            self.events.emit_event(event)

    async def navigate_to_workspace_root(self) -> None:
        if not self.settings.workspace_url:
            raise WorkspaceNotConfigured()
        await self.page.goto(self.settings.workspace_url, wait_until="domcontentloaded")

    async def is_logged_in(self, timeout_seconds: float | None = None) -> bool:
        if timeout_seconds is None:
            timeout_seconds = self.settings.login_check_timeout_seconds
        return await is_logged_in_page(self.page, timeout_seconds)

    async def ensure_logged_in(self, timeout_seconds: float | None = None) -> None:
        if not await self.is_logged_in(timeout_seconds):
            raise NotLoggedIn()

    async def start_real_time(self) -> None:
        if self._interceptor is not None:
            return

        await self.workspace.refresh()
        if not self.workspace.current_user_id:
            logger.warning(
                "Could not determine current Slack user ID. Mention detection may miss direct mentions."
            )

        interceptor = FrameInterceptor(self.page, self.events.emit_raw_frame)
        await interceptor.start()
        self._interceptor = interceptor

    async def stop_real_time(self) -> None:
        interceptor, self._interceptor = self._interceptor, None
        if interceptor is not None:
            await interceptor.stop()
        pending, self._pending = list(self._pending), set()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


@asynccontextmanager
async def with_slack_client(
    settings: SlacklineSettings,
    headless: bool = True,
    skip_login_check: bool = False,
    keep_open: bool = False,
    mode: BrowserMode | None = None,
) -> AsyncIterator[SlackClient]:
    async with open_session(settings, headless=headless, keep_open=keep_open, mode=mode) as session:
        client = SlackClient(session.page, settings)
        await client.navigate_to_workspace_root()
        if not skip_login_check:
            await client.ensure_logged_in()
        try:
            yield client
        finally:
            await client.stop_real_time()
