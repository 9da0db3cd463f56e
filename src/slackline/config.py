from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import InvalidWorkspaceUrl

logger = logging.getLogger("slackline.config")

DEFAULT_CDP_URL = "http://127.0.0.1:9222"

BrowserMode = Literal["daemon", "attach", "persistent"]


class SlacklineSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="slackline_",
        extra="ignore",
        env_file=".env",
    )

    cdp_url: str = DEFAULT_CDP_URL
    chrome_path: str = ""
    workspace_url: str = ""
    state_dir: Path = Path.home() / ".config" / "slackline"
    browser_mode: BrowserMode = "daemon"

    # Daemon lifecycle
    launch_timeout_seconds: float = 25.0
    stop_timeout_seconds: float = 7.0
    probe_timeout_seconds: float = 2.0
    probe_interval_seconds: float = 0.3
    stop_poll_interval_seconds: float = 0.25

    # Session facade
    login_check_timeout_seconds: float = 15.0
    post_confirm_timeout_seconds: float = 15.0

    # Listener
    keepalive_interval_seconds: float = 30.0
    webhook_timeout_seconds: float = 10.0
    seen_cap: int = 5000
    notification_body_limit: int = 300

    @field_validator("cdp_url", mode="before")
    @classmethod
    def _normalize_cdp_url(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_CDP_URL
        if isinstance(value, str):
            return normalize_cdp_url(value)
        return value

    @field_validator("state_dir", mode="before")
    @classmethod
    def _expand_state_dir(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = Path(value)
        if isinstance(value, Path):
            value = value.expanduser()
            if not value.is_absolute():
                raise ValueError("slackline_state_dir must be an absolute path")
        return value

    @property
    def daemon_state_path(self) -> Path:
        return self.state_dir / "daemon-state.json"

    @property
    def chrome_profile_dir(self) -> Path:
        return self.state_dir / "chrome-profile"

    @property
    def listener_pid_path(self) -> Path:
        return self.state_dir / "listener.pid"

    @property
    def config_path(self) -> Path:
        return self.state_dir / "config.json"


def normalize_cdp_url(raw: str) -> str:
    normalized = raw.strip() or DEFAULT_CDP_URL
    return normalized.rstrip("/")


def normalize_workspace_url(raw: str) -> str:
    """Return ``scheme://host/`` for a Slack workspace URL or raise InvalidWorkspaceUrl."""
    candidate = (raw or "").strip()
    if not candidate:
        raise InvalidWorkspaceUrl(raw, "A workspace URL is required.")
    if not candidate.startswith(("http://", "https://")):
        candidate = f"https://{candidate}"

    parsed = urlparse(candidate)
    host = (parsed.hostname or "").lower()
    if not host.endswith(".slack.com"):
        raise InvalidWorkspaceUrl(
            candidate, "It must be a Slack workspace (e.g., https://name.slack.com)"
        )
    return f"{parsed.scheme}://{host}/"


def read_saved_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_settings(**overrides: Any) -> SlacklineSettings:
    """Build settings: explicit overrides, then env/.env, then the saved config file."""
    clean = {key: value for key, value in overrides.items() if value is not None}
    settings = SlacklineSettings(**clean)
    if "workspace_url" in settings.model_fields_set:
        return settings

    saved = read_saved_config(settings.config_path)
    workspace_url = saved.get("workspaceUrl")
    if isinstance(workspace_url, str) and workspace_url.strip():
        return settings.model_copy(update={"workspace_url": workspace_url.strip()})
    return settings


def save_workspace_url(settings: SlacklineSettings, workspace_url: str) -> Path:
    path = settings.config_path
    path.parent.mkdir(parents=True, exist_ok=True)
    data = read_saved_config(path)
    data["workspaceUrl"] = workspace_url
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path
