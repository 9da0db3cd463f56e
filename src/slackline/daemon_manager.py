from __future__ import annotations

import logging
import signal
from datetime import UTC, datetime
from pathlib import Path

from .config import SlacklineSettings, normalize_cdp_url
from .launcher import build_launch_args, pid_alive, resolve_executable, send_signal, spawn_detached
from .liveness import LivenessProber
from .models import DaemonState, DaemonStatus
from .state_store import DaemonStateStore

logger = logging.getLogger("slackline.daemon_manager")

_SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


class DaemonManager:
    """Start, stop and inspect the long-lived Chrome daemon.

    Whether the daemon is running is always observed by probing the CDP
    endpoint. The persisted state file is descriptive metadata only: it can be
    missing (daemon started elsewhere) or stale (browser crashed).
    """

    def __init__(
        self,
        settings: SlacklineSettings,
        prober: LivenessProber | None = None,
        store: DaemonStateStore | None = None,
    ):
        self.settings = settings
        self.prober = prober or LivenessProber(
            timeout_seconds=settings.probe_timeout_seconds,
            interval_seconds=settings.probe_interval_seconds,
        )
        self.store = store or DaemonStateStore(settings.daemon_state_path)

    async def status(self, cdp_url: str | None = None) -> DaemonStatus:
        state = self.store.load()
        endpoint = normalize_cdp_url(cdp_url or (state.cdp_url if state else "") or self.settings.cdp_url)
        running = await self.prober.reachable(endpoint)
        if state is None:
            return DaemonStatus(running=running, cdp_url=endpoint)
        return DaemonStatus(
            running=running,
            cdp_url=endpoint,
            pid=state.pid,
            pid_alive=pid_alive(state.pid) if state.pid is not None else None,
            profile_dir=state.profile_dir,
            headless=state.headless,
            started_at=state.started_at,
        )

    async def start(
        self,
        headless: bool = True,
        cdp_url: str | None = None,
        chrome_path: str | None = None,
    ) -> DaemonStatus:
        endpoint = normalize_cdp_url(cdp_url or self.settings.cdp_url)
        existing = await self.status(endpoint)
        if existing.running:
            if existing.headless == headless:
                return existing
            logger.info(
                "Daemon running with headless=%s, restarting with headless=%s",
                existing.headless,
                headless,
            )
            await self.stop()

        executable = resolve_executable(chrome_path, self.settings.chrome_path)
        profile_dir = self.settings.chrome_profile_dir
        self.settings.state_dir.mkdir(parents=True, exist_ok=True)
        profile_dir.mkdir(parents=True, exist_ok=True)

        args = build_launch_args(endpoint, profile_dir, headless)
        pid = spawn_detached([executable, *args])
        logger.info("Spawned Chrome daemon pid=%s headless=%s endpoint=%s", pid, headless, endpoint)

        await self.prober.wait_until_reachable(endpoint, self.settings.launch_timeout_seconds)

        state = DaemonState(
            cdp_url=endpoint,
            profile_dir=str(profile_dir),
            chrome_path=executable,
            headless=headless,
            started_at=datetime.now(UTC).isoformat(),
            pid=pid,
        )
        self.store.save(state)

        return DaemonStatus(
            running=True,
            cdp_url=endpoint,
            pid=pid,
            pid_alive=pid_alive(pid),
            profile_dir=state.profile_dir,
            headless=headless,
            started_at=state.started_at,
        )

    async def ensure_running(self, headless: bool = True, cdp_url: str | None = None) -> DaemonStatus:
        """Reuse a reachable daemon in whatever mode it runs, otherwise start one."""
        current = await self.status(cdp_url)
        if current.running:
            return current
        return await self.start(headless=headless, cdp_url=cdp_url)

    async def stop(self) -> DaemonStatus:
        stop_listener(self.settings.listener_pid_path)

        state = self.store.load()
        if state is None:
            return DaemonStatus(running=False, cdp_url=normalize_cdp_url(self.settings.cdp_url))

        if state.pid is not None and pid_alive(state.pid):
            logger.info("Sending SIGTERM to Chrome daemon pid=%s", state.pid)
            send_signal(state.pid, signal.SIGTERM)

        went_away = await self.prober.wait_until_unreachable(
            state.cdp_url,
            self.settings.stop_timeout_seconds,
            self.settings.stop_poll_interval_seconds,
        )
        if not went_away and state.pid is not None and pid_alive(state.pid):
            logger.warning("Chrome daemon pid=%s still reachable, escalating to SIGKILL", state.pid)
            send_signal(state.pid, _SIGKILL)

        self.store.delete()

        return DaemonStatus(
            running=False,
            cdp_url=state.cdp_url,
            pid=state.pid,
            pid_alive=False,
            profile_dir=state.profile_dir,
            headless=state.headless,
            started_at=state.started_at,
        )


def stop_listener(pid_path: Path) -> None:
    """Terminate a background listener recorded in ``pid_path``; errors are ignored."""
    try:
        if not pid_path.exists():
            return
        content = pid_path.read_text(encoding="utf-8").strip()
        pid = int(content) if content.isdigit() else None
        if pid is not None and pid_alive(pid):
            logger.info("Stopping background listener pid=%s", pid)
            send_signal(pid, signal.SIGTERM)
        pid_path.unlink(missing_ok=True)
    except Exception:
        logger.debug("Failed to stop listener from %s", pid_path, exc_info=True)
