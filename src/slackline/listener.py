"""Long-running notification listener.

Attaches to the Slack page, intercepts real-time frames and forwards every
classified event to a webhook until SIGINT/SIGTERM arrives.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from playwright.async_api import Error as PlaywrightError

from .client import SlackClient, with_slack_client
from .config import SlacklineSettings
from .forwarder import WebhookForwarder
from .launcher import spawn_detached
from .models import NotificationEvent

logger = logging.getLogger("slackline.listener")


def format_event_line(event: NotificationEvent, as_json: bool, now: datetime | None = None) -> str:
    timestamp = (now or datetime.now(UTC)).isoformat().replace("+00:00", "Z")
    if as_json:
        return json.dumps({"timestamp": timestamp, **event.to_dict()}, ensure_ascii=False)
    if event.type == "notification":
        return f"[{timestamp}] Notification: {event.title}"
    return f"[{timestamp}] Title changed: {event.title}"


def write_pid_file(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{os.getpid()}\n", encoding="utf-8")


def remove_pid_file(path: Path) -> None:
    try:
        if path.exists() and path.read_text(encoding="utf-8").strip() == str(os.getpid()):
            path.unlink()
    except OSError:
        logger.debug("Failed to remove listener pid file %s", path, exc_info=True)


class NotificationListener:
    def __init__(
        self,
        client: SlackClient,
        forwarder: WebhookForwarder,
        settings: SlacklineSettings,
        echo: Callable[[NotificationEvent], None] | None = None,
    ):
        self.client = client
        self.forwarder = forwarder
        self.settings = settings
        self.echo = echo
        self._keepalive: asyncio.Task[None] | None = None
        self._last_title: str | None = None

    async def run(self, stop: asyncio.Event) -> None:
        pid_path = self.settings.listener_pid_path
        write_pid_file(pid_path)
        try:
            if self.echo is not None:
                self.client.events.on_event(self.echo)
            self.client.events.on_event(self.forwarder.submit)
            await self.client.start_real_time()

            self._keepalive = asyncio.create_task(self._keep_alive(stop))
            logger.info("Listening for Slack events and forwarding to %s", self.forwarder.webhook_url)
            await stop.wait()
        finally:
            await self.shutdown()
            remove_pid_file(pid_path)

    async def shutdown(self) -> None:
        keepalive, self._keepalive = self._keepalive, None
        if keepalive is not None:
            keepalive.cancel()
            await asyncio.gather(keepalive, return_exceptions=True)
        await self.client.stop_real_time()
        if self.echo is not None:
            self.client.events.off_event(self.echo)
        self.client.events.off_event(self.forwarder.submit)
        # In-flight deliveries are abandoned, not drained.
        await self.forwarder.close()
        logger.info("Listener stopped")

    async def check_title(self) -> bool:
        """Read the page title once; emits a title event on change. False if the page is gone."""
        try:
            title = await self.client.page.evaluate("() => document.title")
        except PlaywrightError as exc:
            logger.warning("Slack page stopped answering: %s", exc)
            return False
        title = str(title or "")
        if self._last_title is not None and title != self._last_title:
            self.client.events.emit_event(NotificationEvent.title_change(title))
        self._last_title = title
        return True

    async def _keep_alive(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            await self.check_title()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.settings.keepalive_interval_seconds)
            except TimeoutError:
                continue


async def run_listener(
    settings: SlacklineSettings,
    webhook_url: str,
    as_json: bool = False,
    headless: bool = True,
) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("Received signal %s", sig.name)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    def echo(event: NotificationEvent) -> None:
        print(format_event_line(event, as_json), flush=True)

    def report_error(exc: Exception) -> None:
        print(f"Failed to send webhook: {exc}", file=sys.stderr, flush=True)

    try:
        async with with_slack_client(settings, headless=headless, keep_open=True) as client:
            forwarder = WebhookForwarder(
                webhook_url,
                timeout_seconds=settings.webhook_timeout_seconds,
                on_error=report_error,
            )
            if not as_json:
                print(f"Listening for Slack events and forwarding to {webhook_url}...")
                print("Press Ctrl+C to stop.", flush=True)
            await NotificationListener(client, forwarder, settings, echo=echo).run(stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def listener_command(settings: SlacklineSettings, webhook_url: str) -> list[str]:
    return [
        sys.executable,
        "-m",
        "slackline",
        "--cdp-url",
        settings.cdp_url,
        "listen",
        "--webhook",
        webhook_url,
    ]


def spawn_background_listener(settings: SlacklineSettings, webhook_url: str) -> int:
    pid = spawn_detached(listener_command(settings, webhook_url))
    logger.info("Started background listener pid=%s", pid)
    return pid
