import asyncio
import json
import os
import sys
from datetime import UTC, datetime

import httpx
import pytest

from slackline import listener as listener_module
from slackline.client import SlackClient
from slackline.forwarder import WebhookForwarder
from slackline.interceptor import FRAME_EVENT
from slackline.listener import (
    NotificationListener,
    format_event_line,
    listener_command,
    remove_pid_file,
    spawn_background_listener,
    write_pid_file,
)
from slackline.models import NotificationEvent
from slackline.workspace import USER_ID_FROM_STORAGE_JS

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
TITLE_JS = "() => document.title"


async def _until(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition never became true")


def test_format_event_line_text():
    notification = NotificationEvent.notification("New mention in #general", {"body": "hi"})

    assert format_event_line(notification, False, NOW) == "[2024-05-01T12:00:00Z] Notification: New mention in #general"
    assert format_event_line(NotificationEvent.title_change("(2) Slack"), False, NOW) == (
        "[2024-05-01T12:00:00Z] Title changed: (2) Slack"
    )


def test_format_event_line_json():
    line = format_event_line(NotificationEvent.title_change("Slack"), True, NOW)

    assert json.loads(line) == {"timestamp": "2024-05-01T12:00:00Z", "type": "title", "data": {"title": "Slack"}}


def test_pid_file_only_removed_by_owner(tmp_path):
    path = tmp_path / "state" / "listener.pid"
    write_pid_file(path)
    assert path.read_text().strip() == str(os.getpid())

    remove_pid_file(path)
    assert not path.exists()

    path.write_text("1\n")
    remove_pid_file(path)
    assert path.exists()


def test_background_listener_command(settings, monkeypatch):
    calls = []
    monkeypatch.setattr(listener_module, "spawn_detached", lambda command: calls.append(command) or 4242)

    assert spawn_background_listener(settings, "https://hooks.test/x") == 4242
    assert calls == [listener_command(settings, "https://hooks.test/x")]
    assert calls[0][:3] == [sys.executable, "-m", "slackline"]
    assert calls[0][-3:] == ["listen", "--webhook", "https://hooks.test/x"]


@pytest.mark.asyncio
async def test_listener_forwards_events_until_stopped(fake_page, settings):
    fake_page.evaluate_results[USER_ID_FROM_STORAGE_JS] = "U0SELF0001"
    fake_page.evaluate_results[TITLE_JS] = "Slack"
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    client = SlackClient(fake_page, settings)
    forwarder = WebhookForwarder("https://hooks.test/x", transport=httpx.MockTransport(handler))
    echoed = []
    listener = NotificationListener(client, forwarder, settings, echo=echoed.append)
    stop = asyncio.Event()
    session = fake_page.context.session

    task = asyncio.create_task(listener.run(stop))
    await _until(lambda: session.handlers.get(FRAME_EVENT))
    assert settings.listener_pid_path.exists()

    frame = {"type": "message", "channel": "D0DIRECT01", "user": "U0OTHER001", "text": "hey", "ts": "5.0"}
    session.emit(FRAME_EVENT, {"response": {"payloadData": json.dumps(frame)}})
    await _until(lambda: bodies)

    stop.set()
    await task

    assert bodies[0]["type"] == "notification"
    assert bodies[0]["data"]["options"]["body"] == "hey"
    assert [event.type for event in echoed] == ["notification"]
    assert session.detached
    assert not settings.listener_pid_path.exists()

    client.events.emit_event(NotificationEvent.title_change("after stop"))
    assert len(echoed) == 1
    assert forwarder.inflight == 0


@pytest.mark.asyncio
async def test_title_change_is_emitted(fake_page, settings):
    client = SlackClient(fake_page, settings)
    forwarder = WebhookForwarder("https://hooks.test/x", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    listener = NotificationListener(client, forwarder, settings)
    seen = []
    client.events.on_event(seen.append)

    fake_page.evaluate_results[TITLE_JS] = "Slack"
    assert await listener.check_title()
    fake_page.evaluate_results[TITLE_JS] = "Slack"
    await listener.check_title()
    fake_page.evaluate_results[TITLE_JS] = "(1) Slack"
    await listener.check_title()
    await forwarder.close()

    assert seen == [NotificationEvent.title_change("(1) Slack")]


@pytest.mark.asyncio
async def test_title_check_reports_dead_page(fake_page, settings, playwright_error):
    client = SlackClient(fake_page, settings)
    forwarder = WebhookForwarder("https://hooks.test/x")
    fake_page.evaluate_error = playwright_error("Target closed")

    assert await NotificationListener(client, forwarder, settings).check_title() is False
    await forwarder.close()
