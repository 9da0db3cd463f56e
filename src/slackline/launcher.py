from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys
from pathlib import Path
from urllib.parse import urlparse

from .errors import ExecutableNotFound, SlacklineError

logger = logging.getLogger("slackline.launcher")

MACOS_CHROME = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
WINDOWS_CHROME = r"C:\Program Files\Google\Chrome\Application\chrome.exe"
LINUX_CHROME_BINARIES = ("google-chrome", "google-chrome-stable", "chromium", "chromium-browser")


def platform_default_executable() -> str:
    if sys.platform == "darwin":
        return MACOS_CHROME
    if sys.platform.startswith("win"):
        return WINDOWS_CHROME
    for binary in LINUX_CHROME_BINARIES:
        found = shutil.which(binary)
        if found:
            return found
    return "/usr/bin/google-chrome"


def resolve_executable(explicit: str | None = None, configured: str | None = None) -> str:
    """Pick the browser executable: explicit override, then configured/env value, then platform default."""
    chrome_path = (explicit or "").strip() or (configured or "").strip() or platform_default_executable()
    if not Path(chrome_path).exists():
        raise ExecutableNotFound(chrome_path)
    return chrome_path


def parse_cdp_endpoint(cdp_url: str) -> tuple[str, int]:
    parsed = urlparse(cdp_url)
    host = parsed.hostname or "127.0.0.1"
    try:
        port = parsed.port or 9222
    except ValueError as exc:
        raise SlacklineError(f"Invalid CDP URL port: {cdp_url}") from exc
    return host, port


def build_launch_args(cdp_url: str, profile_dir: Path, headless: bool) -> list[str]:
    host, port = parse_cdp_endpoint(cdp_url)
    args = [
        f"--remote-debugging-port={port}",
        f"--remote-debugging-address={host}",
        f"--user-data-dir={profile_dir}",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-features=DialMediaRouteProvider",
    ]
    if headless:
        args.append("--headless=new")
    args.append("about:blank")
    return args


def spawn_detached(command: list[str]) -> int:
    """Start ``command`` in its own session so it outlives this process."""
    logger.info("Launching detached process: %s", command[0])
    proc = subprocess.Popen(
        command,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        close_fds=True,
    )
    return int(proc.pid)


def pid_alive(pid: int | None) -> bool:
    if not isinstance(pid, int) or pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else.
        return True
    except OSError:
        return False
    return True


def send_signal(pid: int, sig: signal.Signals) -> bool:
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        return False
    except Exception:
        logger.debug("Failed to send %s to pid=%s", sig.name, pid, exc_info=True)
        return False
    return True
