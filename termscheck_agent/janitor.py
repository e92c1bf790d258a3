from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from .models import utcnow
from .sink import PresentationSink
from .state import SessionStore

logger = logging.getLogger(__name__)


class CacheJanitor:
    """Tab-close cleanup (eager) and hourly age-based eviction of the tab caches."""

    def __init__(
        self,
        store: SessionStore,
        sink: PresentationSink | None = None,
        *,
        max_age_s: float = 24 * 60 * 60,
        interval_s: float = 3600.0,
    ):
        self._store = store
        self._sink = sink
        self._max_age = timedelta(seconds=max_age_s)
        self._interval_s = interval_s
        self._task: asyncio.Task | None = None

    def handle_tab_closed(self, tab_id: int) -> None:
        self._store.remove_tab(tab_id)
        if self._sink is not None:
            self._sink.forget(tab_id)

    def sweep(self, now: datetime | None = None) -> int:
        """Evict entries older than the max age; returns how many cache entries were dropped."""
        cutoff = (now or utcnow()) - self._max_age
        store = self._store
        evicted = 0

        for tab_id, analysis in list(store.analyses.items()):
            if analysis.timestamp < cutoff:
                del store.analyses[tab_id]
                evicted += 1

        for tab_id, session in list(store.sessions.items()):
            if session.last_touched_at < cutoff:
                store.cancel_watchdog(tab_id)
                del store.sessions[tab_id]
                evicted += 1

        for tab_id, task in list(store.watchdogs.items()):
            session = store.sessions.get(tab_id)
            if session is None or session.watchdog is not task or task.done():
                if not task.done():
                    task.cancel()
                del store.watchdogs[tab_id]

        live_tabs = set(store.sessions) | set(store.analyses)
        for domain, tab_id in list(store.domain_index.items()):
            if tab_id not in live_tabs:
                del store.domain_index[domain]

        if evicted:
            logger.info("Evicted %d stale cache entries", evicted)
        return evicted

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
