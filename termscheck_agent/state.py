from __future__ import annotations

import asyncio
import logging

from .models import Analysis, TabSession

logger = logging.getLogger(__name__)


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class SessionStore:
    """The engine's three caches plus the watchdog registry, all keyed by tab id.

    ``sessions`` holds discovered links and fetched documents, ``analyses`` the
    finished results, ``domain_index`` a best-effort domain -> tab lookup used only
    for settings reactions.
    """

    def __init__(self) -> None:
        self.sessions: dict[int, TabSession] = {}
        self.analyses: dict[int, Analysis] = {}
        self.domain_index: dict[str, int] = {}
        self.watchdogs: dict[int, asyncio.Task] = {}

    def get_analysis(self, tab_id: int) -> Analysis | None:
        return self.analyses.get(tab_id)

    def is_current(self, session: TabSession) -> bool:
        return self.sessions.get(session.tab_id) is session

    def tab_ids(self) -> set[int]:
        return set(self.sessions) | set(self.analyses) | set(self.domain_index.values())

    def cancel_watchdog(self, tab_id: int) -> None:
        task = self.watchdogs.pop(tab_id, None)
        # A watchdog completing its own session must not cancel itself.
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        session = self.sessions.get(tab_id)
        if session is not None and session.watchdog is task:
            session.watchdog = None

    def remove_tab(self, tab_id: int) -> None:
        logger.debug("Dropping cached state for tab %s", tab_id)
        self.cancel_watchdog(tab_id)
        self.sessions.pop(tab_id, None)
        self.analyses.pop(tab_id, None)
        for domain in [d for d, t in self.domain_index.items() if t == tab_id]:
            del self.domain_index[domain]
