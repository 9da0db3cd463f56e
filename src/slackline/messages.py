from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from .errors import ComposerNotLocatable, PostNotConfirmed
from .locators import COMPOSER_STRATEGIES, locate
from .models import MessageRecord, MessageSnapshot
from .text import conversation_id_from_url, normalize, parse_unix_seconds

logger = logging.getLogger("slackline.messages")

M = TypeVar("M", bound=MessageRecord)

MESSAGE_ROWS_SELECTOR = '[data-qa="message_pane"] [data-qa="message_container"]'
MESSAGE_PANE_SELECTOR = '[data-qa="message_pane"]'
SEND_BUTTON_SELECTOR = '[data-qa="texty_send_button"]'
SCOPED_SEND_BUTTON_XPATH = 'xpath=ancestor::*[@data-qa="message_input"][1]'

SEND_BUTTON_VISIBLE_MS = 6000
SEND_BUTTON_ENABLED_SECONDS = 8.0
SEND_BUTTON_POLL_MS = 120
CONFIRM_POLL_MS = 450
CONFIRM_SETTLE_MS = 650
FRESHNESS_SLACK_SECONDS = 1.0

READ_ROWS_JS = r"""
(nodes) => {
  const normalize = (value) => (value || "").replace(/\s+/g, " ").trim();
  const rows = [];
  for (const node of nodes) {
    const text =
      normalize((node.querySelector('[data-qa="message-text"]') || {}).textContent) ||
      normalize((node.querySelector(".c-message__body") || {}).textContent);
    if (!text) continue;
    const sender =
      normalize((node.querySelector('[data-qa="message_sender_name"]') || {}).textContent) ||
      normalize((node.querySelector('[data-qa*="-sender"]') || {}).textContent);
    const tsNode = node.querySelector("[data-ts]");
    rows.push({
      text,
      sender,
      label: normalize((node.querySelector('[data-qa="timestamp_label"]') || {}).textContent),
      msgTs: node.getAttribute("data-msg-ts"),
      dataTs: tsNode ? tsNode.getAttribute("data-ts") : null,
      channelId: normalize(node.getAttribute("data-msg-channel-id")),
      threadTs: normalize(node.getAttribute("data-msg-thread-ts")),
      placeholder: node.getAttribute("data-qa-placeholder") === "true",
      unprocessed: node.getAttribute("data-qa-unprocessed") === "true",
    });
  }
  return rows;
}
"""


def to_iso(timestamp_unix: float | None) -> str | None:
    if timestamp_unix is None:
        return None
    return datetime.fromtimestamp(timestamp_unix, tz=UTC).isoformat().replace("+00:00", "Z")


def snapshots_from_rows(rows: Sequence[dict[str, Any]]) -> list[MessageSnapshot]:
    """Build snapshots from scraped rows; a row without a sender inherits the previous one."""
    snapshots: list[MessageSnapshot] = []
    last_user: str | None = None
    for row in rows:
        text = normalize(row.get("text"))
        if not text:
            continue

        sender = normalize(row.get("sender")).removesuffix(":").strip() or None
        if sender:
            last_user = sender
        user = sender or last_user

        timestamp_unix = parse_unix_seconds(row.get("msgTs"))
        if timestamp_unix is None:
            timestamp_unix = parse_unix_seconds(row.get("dataTs"))

        snapshots.append(
            MessageSnapshot(
                text=text,
                user=user,
                timestamp_label=normalize(row.get("label")) or None,
                timestamp_unix=timestamp_unix,
                timestamp_iso=to_iso(timestamp_unix),
                channel_id=normalize(row.get("channelId")) or None,
                thread_ts=normalize(row.get("threadTs")) or None,
                placeholder=bool(row.get("placeholder")),
                unprocessed=bool(row.get("unprocessed")),
            )
        )
    return snapshots


def _dedupe(messages: Sequence[M]) -> list[M]:
    seen: set[tuple[str, str, str]] = set()
    deduped: list[M] = []
    for message in messages:
        when = repr(message.timestamp_unix) if message.timestamp_unix is not None else (message.timestamp_label or "")
        key = (message.user or "", when, message.text)
        if key in seen:
            continue
        seen.add(key)
        deduped.append(message)
    return deduped


def pick_latest(messages: Sequence[M], limit: int) -> list[M]:
    """Return at most ``limit`` distinct messages, most recent first.

    Messages with a timestamp sort after those without one; ties keep their
    original relative order.
    """
    deduped = _dedupe(messages)
    ordered = sorted(
        enumerate(deduped),
        key=lambda item: (
            item[1].timestamp_unix is not None,
            item[1].timestamp_unix or 0.0,
            item[0],
        ),
    )
    safe_limit = max(0, limit)
    if safe_limit == 0:
        return []
    latest = [message for _, message in ordered[-safe_limit:]]
    latest.reverse()
    return latest


def message_key(message: MessageRecord) -> str:
    timestamp = repr(message.timestamp_unix) if message.timestamp_unix is not None else ""
    return "|".join([message.user or "", timestamp, message.timestamp_label or "", message.text])


class MessageManager:
    def __init__(self, page: Page, confirm_timeout_seconds: float = 15.0):
        self.page = page
        self.confirm_timeout_seconds = confirm_timeout_seconds

    async def read_visible(self) -> list[MessageRecord]:
        return [snapshot.to_record() for snapshot in await self.read_snapshots()]

    async def read_snapshots(self) -> list[MessageSnapshot]:
        rows = await self.page.locator(MESSAGE_ROWS_SELECTOR).evaluate_all(READ_ROWS_JS)
        return snapshots_from_rows(rows or [])

    async def recent(self, limit: int) -> list[MessageRecord]:
        await self.ensure_latest_visible()
        return [snapshot.to_record() for snapshot in pick_latest(await self.read_snapshots(), limit)]

    async def post(self, text: str) -> MessageRecord:
        """Type ``text`` into the composer, send it and wait until it shows up.

        Raises PostNotConfirmed when no matching new message is rendered in
        time; the message may still have been sent.
        """
        await self.ensure_latest_visible()

        before = pick_latest(await self.read_snapshots(), 10)
        previous_keys = {message_key(message) for message in before}
        sent_at = time.time()
        expected_conversation_id = conversation_id_from_url(self.page.url)

        composer = await self.locate_composer()
        await composer.click(force=True)
        await composer.fill(text)
        await self.send(composer)

        await self.ensure_latest_visible()
        posted = await self.wait_for_posted(
            text,
            previous_keys=previous_keys,
            sent_at=sent_at,
            expected_conversation_id=expected_conversation_id,
        )
        logger.info("Post confirmed in conversation %s", expected_conversation_id or "unknown")
        return posted.to_record()

    async def locate_composer(self) -> Locator:
        composer = await locate(self.page, COMPOSER_STRATEGIES)
        if composer is None:
            raise ComposerNotLocatable()
        return composer

    async def send(self, composer: Locator) -> None:
        scoped = composer.locator(SCOPED_SEND_BUTTON_XPATH).locator(SEND_BUTTON_SELECTOR).first
        button = scoped if await scoped.count() > 0 else self.page.locator(SEND_BUTTON_SELECTOR).first

        if await button.count() > 0:
            try:
                await button.wait_for(state="visible", timeout=SEND_BUTTON_VISIBLE_MS)
            except PlaywrightError:
                logger.debug("Send button never became visible")
            else:
                deadline = time.monotonic() + SEND_BUTTON_ENABLED_SECONDS
                while time.monotonic() < deadline:
                    if await self._button_enabled(button):
                        await button.click(force=True)
                        return
                    await self.page.wait_for_timeout(SEND_BUTTON_POLL_MS)

        # Some workspaces hide the send button.
        await composer.press("Enter")

    async def _button_enabled(self, button: Locator) -> bool:
        try:
            disabled = await button.is_disabled()
        except PlaywrightError:
            disabled = False
        aria_disabled = await button.get_attribute("aria-disabled")
        return not disabled and aria_disabled != "true"

    def _is_candidate(
        self,
        message: MessageSnapshot,
        expected_text: str,
        previous_keys: set[str],
        sent_at: float,
        expected_conversation_id: str | None,
    ) -> bool:
        if message_key(message) in previous_keys:
            return False
        if message.text.strip() != expected_text.strip():
            return False
        if expected_conversation_id and message.channel_id and message.channel_id != expected_conversation_id:
            return False
        if message.thread_ts:
            return False
        if message.timestamp_unix is not None and message.timestamp_unix + FRESHNESS_SLACK_SECONDS < sent_at:
            return False
        return not message.placeholder and not message.unprocessed

    async def wait_for_posted(
        self,
        expected_text: str,
        previous_keys: set[str],
        sent_at: float,
        expected_conversation_id: str | None = None,
    ) -> MessageSnapshot:
        deadline = time.monotonic() + self.confirm_timeout_seconds

        while time.monotonic() < deadline:
            latest = pick_latest(await self.read_snapshots(), 8)
            for candidate in latest:
                if not self._is_candidate(
                    candidate, expected_text, previous_keys, sent_at, expected_conversation_id
                ):
                    continue

                # Optimistic renders can be swapped out; make sure it sticks.
                await self.page.wait_for_timeout(CONFIRM_SETTLE_MS)
                key = message_key(candidate)
                confirmation = pick_latest(await self.read_snapshots(), 12)
                if any(
                    message_key(message) == key and not message.placeholder and not message.unprocessed
                    for message in confirmation
                ):
                    return candidate

            await self.ensure_latest_visible()
            await self.page.wait_for_timeout(CONFIRM_POLL_MS)

        logger.warning("Posted message not seen within %.1fs", self.confirm_timeout_seconds)
        raise PostNotConfirmed()

    async def ensure_latest_visible(self) -> None:
        pane = self.page.locator(MESSAGE_PANE_SELECTOR).first
        try:
            if not await pane.is_visible():
                return
            await pane.click(force=True)
        except PlaywrightError:
            return

        for _ in range(2):
            await self.page.mouse.wheel(0, 7000)
            try:
                await self.page.keyboard.press("End")
            except PlaywrightError:
                pass
            await self.page.wait_for_timeout(120)
