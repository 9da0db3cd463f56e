"""Error types raised by slackline components.

Every failure that reaches the command layer is a ``SlacklineError`` so the
CLI can print a readable message and exit non-zero.
"""

from __future__ import annotations


class SlacklineError(RuntimeError):
    """Base class for all slackline failures."""


class ExecutableNotFound(SlacklineError):
    def __init__(self, path: str):
        super().__init__(f"Chrome executable not found at: {path}")
        self.path = path


class LaunchTimeout(SlacklineError):
    def __init__(self, endpoint: str, timeout_seconds: float):
        super().__init__(
            f"Timed out after {timeout_seconds:.0f}s waiting for daemon CDP endpoint: {endpoint}"
        )
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds


class NoBrowserContextAvailable(SlacklineError):
    def __init__(self, endpoint: str):
        super().__init__(f"No browser context available at CDP endpoint {endpoint}")
        self.endpoint = endpoint


class ComposerNotLocatable(SlacklineError):
    def __init__(self) -> None:
        super().__init__("Could not locate Slack message composer for this conversation.")


class PostNotConfirmed(SlacklineError):
    """The message may or may not have been posted; the caller has to check."""

    def __init__(self) -> None:
        super().__init__(
            "Message may not have been posted yet. Please verify in Slack and retry if needed."
        )


class AlreadyListening(SlacklineError):
    def __init__(self) -> None:
        super().__init__("Already listening for notifications.")


class NotLoggedIn(SlacklineError):
    def __init__(self) -> None:
        super().__init__("Not logged in to Slack. Run `slackline login <workspace-url>` first.")


class InvalidWorkspaceUrl(SlacklineError):
    def __init__(self, url: str, reason: str = ""):
        detail = f" {reason}" if reason else ""
        super().__init__(f"Invalid workspace URL: {url}.{detail}")
        self.url = url


class WorkspaceNotConfigured(SlacklineError):
    def __init__(self) -> None:
        super().__init__(
            "No Slack workspace URL configured. Run `slackline login <workspace-url>` first."
        )


class ConversationNotFound(SlacklineError):
    def __init__(self, target: str):
        super().__init__(f"Could not find Slack channel or DM in sidebar: {target}")
        self.target = target


class SearchUnavailable(SlacklineError):
    def __init__(self) -> None:
        super().__init__("Could not locate Slack search field. Slack UI may have changed.")


class InterceptionUnavailable(SlacklineError):
    pass


class LoginNotDetected(SlacklineError):
    pass
