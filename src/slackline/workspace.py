from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .text import is_user_id, normalize

logger = logging.getLogger("slackline.workspace")

_CHANNEL_ID_RE = re.compile(r"^[CDG][A-Z0-9]+$")

USER_ID_FROM_STORAGE_JS = r"""
() => {
  const userIdPattern = /^U[A-Z0-9]{8,}$/;
  const teamId = (window.location.pathname.match(/\/client\/([^/]+)/) || [])[1] || null;

  const fromLocalConfig = () => {
    const raw = window.localStorage.getItem("localConfig_v2");
    if (!raw) return null;
    try {
      const teams = (JSON.parse(raw) || {}).teams;
      if (!teams || typeof teams !== "object") return null;
      if (teamId && teams[teamId] && userIdPattern.test(teams[teamId].user_id || "")) {
        return teams[teamId].user_id;
      }
      for (const team of Object.values(teams)) {
        if (team && userIdPattern.test(team.user_id || "")) return team.user_id;
      }
    } catch (err) {
      return null;
    }
    return null;
  };

  const fromKeys = (pattern, needle) => {
    for (let index = 0; index < window.localStorage.length; index += 1) {
      const key = window.localStorage.key(index);
      if (!key || (needle && !key.includes(needle))) continue;
      const match = key.match(pattern);
      if (match && userIdPattern.test(match[1])) return match[1];
    }
    return null;
  };

  const persist = /^persist-v1::T[A-Z0-9]+::(U[A-Z0-9]{8,})::/;
  const experiment = /^experiment-storage-v1-T[A-Z0-9]+-(U[A-Z0-9]{8,})$/;
  return (
    fromLocalConfig() ||
    fromKeys(persist, teamId ? `::${teamId}::` : null) ||
    fromKeys(experiment, teamId ? `-${teamId}-` : null) ||
    fromKeys(persist, null) ||
    fromKeys(experiment, null)
  );
}
"""

USER_ID_FROM_AVATAR_JS = r"""
() => {
  const image = document.querySelector('button[data-qa="user-button"] img');
  if (!image) return null;
  const srcset = (image.getAttribute("srcset") || "").split(",")[0].trim().split(" ")[0];
  for (const candidate of [image.getAttribute("src"), srcset]) {
    if (!candidate) continue;
    const match = candidate.match(/-([UW][A-Z0-9]{8,})-/);
    if (match) return match[1];
  }
  return null;
}
"""

CHANNEL_NAMES_JS = r"""
() => {
  const normalize = (value) => (value || "").replace(/\s+/g, " ").trim();
  const entries = [];
  const add = (id, name) => {
    id = normalize(id);
    name = normalize(name);
    if (id && name) entries.push({ id, name });
  };
  for (const label of document.querySelectorAll('[data-qa^="channel_sidebar_name_"]')) {
    const anchor = label.closest('a[href*="/client/"]');
    const href = (anchor && anchor.getAttribute("href")) || "";
    add((href.match(/\/client\/[^/]+\/([^/?]+)/) || [])[1], label.textContent);
  }
  const active = (window.location.pathname.match(/\/client\/[^/]+\/([^/?]+)/) || [])[1];
  const header =
    normalize((document.querySelector('[data-qa="channel_name"]') || {}).textContent) ||
    normalize((document.querySelector('[data-qa="channel_name_button"]') || {}).textContent);
  add(active, header);
  return entries;
}
"""


class WorkspaceIdentity:
    """Who "we" are in this workspace plus a channel id -> name cache.

    Filled lazily from the rendered page and from real-time frames; lives as
    long as the owning ``SlackClient``.
    """

    def __init__(self, page: Page):
        self.page = page
        self.current_user_id: str | None = None
        self.channel_names_by_id: dict[str, str] = {}

    async def refresh(self) -> None:
        await asyncio.gather(self.refresh_current_user_id(), self.refresh_channel_names())

    async def get_current_user_id(self) -> str | None:
        if not self.current_user_id:
            await self.refresh_current_user_id()
        return self.current_user_id

    def set_current_user_id(self, user_id: str) -> None:
        if is_user_id(user_id):
            self.current_user_id = user_id

    def channel_name(self, channel_id: str) -> str | None:
        return self.channel_names_by_id.get(channel_id)

    def remember_channel(self, channel_id: str, name: str) -> None:
        channel_id = normalize(channel_id)
        name = normalize(name)
        if channel_id and name and _CHANNEL_ID_RE.match(channel_id):
            self.channel_names_by_id[channel_id] = name

    async def refresh_current_user_id(self) -> str | None:
        for script in (USER_ID_FROM_STORAGE_JS, USER_ID_FROM_AVATAR_JS):
            value = await self._evaluate(script)
            if isinstance(value, str) and is_user_id(value):
                self.current_user_id = value
                return value
        return None

    async def refresh_channel_names(self) -> None:
        entries = await self._evaluate(CHANNEL_NAMES_JS)
        if not isinstance(entries, list):
            return
        for entry in entries:
            if isinstance(entry, dict):
                self.remember_channel(str(entry.get("id") or ""), str(entry.get("name") or ""))

    async def _evaluate(self, script: str) -> Any:
        try:
            return await self.page.evaluate(script)
        except PlaywrightError:
            logger.debug("Workspace identity script failed", exc_info=True)
            return None
