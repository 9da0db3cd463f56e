"""Interactive login into the shared browser profile.

Login runs in a headed private session on the daemon's profile directory.
Chrome refuses to share a profile between two processes, so a running daemon
is stopped first and started again afterwards in its previous mode.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sys
import time
from collections.abc import Callable

from playwright.async_api import BrowserContext
from playwright.async_api import Error as PlaywrightError

from .client import with_slack_client
from .config import SlacklineSettings, normalize_workspace_url, save_workspace_url
from .daemon_manager import DaemonManager
from .errors import LoginNotDetected
from .session_state import is_logged_in_context

logger = logging.getLogger("slackline.login")

LOGIN_POLL_SECONDS = 0.5
LOGIN_PROBE_SECONDS = 1.2
MIN_TIMEOUT_SECONDS = 10

_CLOSED_RE = re.compile(r"Target page, context or browser has been closed", re.IGNORECASE)


def is_closed_error(exc: BaseException) -> bool:
    return isinstance(exc, PlaywrightError) and bool(_CLOSED_RE.search(str(exc)))


async def poll_until_logged_in(context: BrowserContext, timeout_seconds: float) -> bool:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if await is_logged_in_context(context, LOGIN_PROBE_SECONDS):
            return True
        await asyncio.sleep(LOGIN_POLL_SECONDS)
    return False


async def wait_for_manual_confirmation(
    context: BrowserContext,
    timeout_seconds: float,
    prompt: Callable[[str], str] = input,
) -> bool:
    print("Complete login in the browser window.")
    print("When Slack is ready, press Enter here to verify.")

    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        remaining = max(1, int(deadline - time.monotonic()))
        answer = await asyncio.to_thread(
            prompt, f"Press Enter to verify login ({remaining}s left), or type q to cancel: "
        )
        if answer.strip().lower() == "q":
            return False
        if await is_logged_in_context(context, LOGIN_PROBE_SECONDS):
            return True
        print("Still not detected. Finish login in browser, then press Enter again.")
    return False


async def _profile_logged_in(settings: SlacklineSettings) -> bool:
    async with with_slack_client(settings, headless=True, skip_login_check=True, mode="persistent") as client:
        profile = await client.profile.read()
    return profile.logged_in


async def login(
    settings: SlacklineSettings,
    workspace_url: str,
    timeout_seconds: float = 300,
    manual_confirm: bool = True,
    manager: DaemonManager | None = None,
    prompt: Callable[[str], str] = input,
) -> str:
    """Run the interactive login and persist the workspace URL on success.

    Returns the normalized workspace URL.
    """
    normalized = normalize_workspace_url(workspace_url)
    session_settings = settings.model_copy(update={"workspace_url": normalized})
    timeout_seconds = max(MIN_TIMEOUT_SECONDS, timeout_seconds)

    manager = manager or DaemonManager(settings)
    previous = await manager.status()
    if previous.running:
        logger.info("Stopping daemon for interactive login")
        await manager.stop()

    detected = False
    closed_early = False
    try:
        print(
            f"Opening Slack login window for {normalized}. "
            "Complete login in browser and keep it open until CLI confirms."
        )
        try:
            async with with_slack_client(
                session_settings, headless=False, skip_login_check=True, mode="persistent"
            ) as client:
                context = client.page.context
                if manual_confirm and sys.stdin.isatty():
                    detected = await wait_for_manual_confirmation(context, timeout_seconds, prompt)
                else:
                    detected = await poll_until_logged_in(context, timeout_seconds)
        except PlaywrightError as exc:
            if not is_closed_error(exc):
                raise
            closed_early = True

        if not detected:
            detected = await _profile_logged_in(session_settings)
    finally:
        if previous.running:
            headless = previous.headless if previous.headless is not None else True
            logger.info("Restoring daemon (headless=%s)", headless)
            await manager.start(headless=headless)

    if not detected:
        if closed_early:
            raise LoginNotDetected(
                "Browser window was closed before login could be verified. "
                "Re-run `slackline login` and keep the window open until completion."
            )
        raise LoginNotDetected(
            "Login was not detected before timeout. Keep the browser window open until "
            "Slack workspace UI loads, then run `slackline whoami` to verify."
        )

    save_workspace_url(settings, normalized)
    return normalized
