from __future__ import annotations

import json
import logging
from pathlib import Path

from .models import DaemonState

logger = logging.getLogger("slackline.state_store")


class DaemonStateStore:
    """JSON file holding the last daemon launched by this tool.

    There is no locking: concurrent start/stop from separate processes is
    last-writer-wins.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> DaemonState | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read daemon state %s: %s", self.path, exc)
            return None
        try:
            data = json.loads(raw)
            return DaemonState.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring malformed daemon state %s: %s", self.path, exc)
            return None

    def save(self, state: DaemonState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logger.debug("Failed to remove daemon state %s", self.path, exc_info=True)
