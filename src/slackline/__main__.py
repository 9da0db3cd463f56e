from __future__ import annotations

import argparse
import asyncio
import importlib.metadata
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from .client import with_slack_client
from .config import SlacklineSettings, load_settings
from .daemon_manager import DaemonManager
from .listener import run_listener, spawn_background_listener
from .login import login
from .models import DaemonStatus

logger = logging.getLogger("slackline.cli")


def _get_version() -> str:
    try:
        return importlib.metadata.version("slackline")
    except importlib.metadata.PackageNotFoundError:
        return "0.1.0 (dev)"


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def _headless(args: argparse.Namespace) -> bool:
    return True if args.headless is None else args.headless


def _print_status(status: DaemonStatus, verbose: bool = True) -> None:
    print(f"Running: {_yes_no(status.running)}")
    print(f"CDP URL: {status.cdp_url}")
    if status.pid is not None:
        print(f"PID: {status.pid}")
    if not verbose:
        return
    if status.pid_alive is not None:
        print(f"PID alive: {_yes_no(status.pid_alive)}")
    if status.profile_dir:
        print(f"Profile dir: {status.profile_dir}")
    if status.headless is not None:
        print(f"Headless: {_yes_no(status.headless)}")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------

async def _daemon_start(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    status = await DaemonManager(settings).start(headless=_headless(args))
    if args.json_output:
        _print_json(status.to_dict())
    else:
        _print_status(status, verbose=False)


async def _daemon_stop(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    status = await DaemonManager(settings).stop()
    if args.json_output:
        _print_json(status.to_dict())
    else:
        print(f"Running: {_yes_no(status.running)}")


async def _daemon_status(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    status = await DaemonManager(settings).status()
    if args.json_output:
        _print_json(status.to_dict())
    else:
        _print_status(status)


async def _listen(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    if getattr(args, "background", False):
        await DaemonManager(settings).ensure_running(headless=_headless(args))
        pid = spawn_background_listener(settings, args.webhook)
        if args.json_output:
            _print_json({"background": True, "pid": pid, "webhook": args.webhook})
        else:
            print(f"Listener started in background (PID {pid}), forwarding to {args.webhook}.")
        return
    await run_listener(settings, args.webhook, as_json=args.json_output, headless=_headless(args))


async def _login(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    workspace_url = await login(
        settings,
        args.workspace_url,
        timeout_seconds=args.timeout_seconds,
        manual_confirm=args.manual_confirm,
    )
    if args.json_output:
        _print_json({"ok": True, "workspace_url": workspace_url})
    else:
        print("Login flow completed. Persistent browser profile is ready.")


async def _whoami(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    async with with_slack_client(settings, headless=_headless(args), skip_login_check=True) as client:
        profile = await client.profile.read()

    if args.json_output:
        _print_json(profile.to_dict())
        return
    print(f"Logged in: {_yes_no(profile.logged_in)}")
    if profile.name:
        print(f"Name: {profile.name}")
    if profile.workspace:
        print(f"Workspace: {profile.workspace}")
    print(f"URL: {profile.url}")


async def _messages(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    async with with_slack_client(settings, headless=_headless(args)) as client:
        conversation = await client.conversations.open(args.target)
        messages = await client.messages.recent(args.limit)

    if args.json_output:
        _print_json(
            {
                "target": args.target,
                "conversation": conversation.to_dict(),
                "messages": [message.to_dict() for message in messages],
            }
        )
        return

    print(f"Conversation: {conversation.name or args.target} ({conversation.type.value})")
    print(f"Messages: {len(messages)} (latest first)")
    if not messages:
        print("No visible messages found in current viewport.")
        return
    for message in messages:
        when = message.timestamp_label or message.timestamp_iso or "unknown-time"
        print(f"- {when} | {message.user or 'unknown-user'} | {message.text}")


async def _post(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    async with with_slack_client(settings, headless=_headless(args)) as client:
        conversation = await client.conversations.open(args.target)
        posted = await client.messages.post(args.message)

    if args.json_output:
        _print_json(
            {
                "target": args.target,
                "conversation": conversation.to_dict(),
                "posted": posted.to_dict(),
            }
        )
        return
    when = posted.timestamp_label or posted.timestamp_iso or "just now"
    print(f"Posted to {conversation.name or args.target} ({conversation.type.value}) at {when}.")


async def _search(args: argparse.Namespace, settings: SlacklineSettings) -> None:
    async with with_slack_client(settings, headless=_headless(args)) as client:
        result = await client.search.search(args.query, args.limit)

    if args.json_output:
        _print_json(result.to_dict())
        return
    print(f"Query: {result.query}")
    print(f"Matches: {len(result.results)}")
    if not result.results:
        print("No matches found.")
        return
    for item in result.results:
        when = item.timestamp_label or item.timestamp_iso or "unknown-time"
        print(f"- [{item.channel or 'unknown-channel'}] {item.user or 'unknown-user'} | {when} | {item.message}")


Handler = Callable[[argparse.Namespace, SlacklineSettings], Awaitable[None]]

HANDLERS: dict[tuple[str, str], Handler] = {
    ("daemon", "start"): _daemon_start,
    ("daemon", "stop"): _daemon_stop,
    ("daemon", "status"): _daemon_status,
    ("daemon", "listen"): _listen,
    ("login", ""): _login,
    ("whoami", ""): _whoami,
    ("profile", ""): _whoami,
    ("messages", ""): _messages,
    ("tail", ""): _messages,
    ("post", ""): _post,
    ("search", ""): _search,
    ("listen", ""): _listen,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _add_webhook_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--webhook", required=True, help="Webhook URL to forward notifications to")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slackline", description="Drive the Slack web client from the command line")
    parser.add_argument("--version", "-V", action="version", version=f"slackline {_get_version()}")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--json", dest="json_output", action="store_true", help="Emit machine-readable JSON")
    parser.add_argument("--cdp-url", dest="cdp_url", default=None, help="Chrome DevTools endpoint")
    parser.add_argument("--chrome-path", dest="chrome_path", default=None, help="Path to Chrome executable")
    parser.add_argument("--headless", dest="headless", action="store_true", default=None, help="Run Chrome headless")
    parser.add_argument("--headed", dest="headless", action="store_false", help="Run Chrome with a visible window")

    commands = parser.add_subparsers(dest="command", required=True)

    daemon = commands.add_parser("daemon", help="Manage the background Chrome daemon")
    daemon_commands = daemon.add_subparsers(dest="subcommand", required=True)
    daemon_commands.add_parser("start", help="Start the daemon browser")
    daemon_commands.add_parser("stop", help="Stop the daemon browser and any background listener")
    daemon_commands.add_parser("status", help="Probe the daemon browser")
    daemon_listen = daemon_commands.add_parser("listen", help="Forward notifications to a webhook")
    _add_webhook_option(daemon_listen)
    daemon_listen.add_argument("--background", action="store_true", help="Detach the listener into its own process")

    login_parser = commands.add_parser("login", help="Interactive login to establish a session")
    login_parser.add_argument("workspace_url", help="Slack workspace URL (e.g. https://myteam.slack.com)")
    login_parser.add_argument("--timeout-seconds", dest="timeout_seconds", type=float, default=300)
    login_parser.add_argument("--manual-confirm", dest="manual_confirm", action="store_true", default=True)
    login_parser.add_argument("--no-manual-confirm", dest="manual_confirm", action="store_false")

    for name in ("whoami", "profile"):
        commands.add_parser(name, help="Show login status and profile details")

    for name in ("messages", "tail"):
        messages = commands.add_parser(name, help="Latest messages from a channel or DM")
        messages.add_argument("--target", "-t", required=True, help="Channel/DM name or full Slack URL")
        messages.add_argument("--limit", "-n", type=int, default=20, help="How many messages (latest first)")

    post = commands.add_parser("post", help="Post a message to a channel or DM")
    post.add_argument("--target", "-t", required=True, help="Channel/DM name or full Slack URL")
    post.add_argument("--message", "-m", required=True, help="Message text to post")

    search = commands.add_parser("search", help="Search Slack messages")
    search.add_argument("--query", "-q", required=True, help="Search query text")
    search.add_argument("--limit", type=int, default=10, help="Maximum number of matches")

    listen = commands.add_parser("listen", help="Forward notifications to a webhook")
    _add_webhook_option(listen)

    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    handler = HANDLERS[(args.command, getattr(args, "subcommand", None) or "")]
    try:
        settings = load_settings(cdp_url=args.cdp_url, chrome_path=args.chrome_path)
        asyncio.run(handler(args, settings))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        logger.debug("Command failed", exc_info=True)
        print(str(exc), file=sys.stderr)
        return 1
    return 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
