from __future__ import annotations

import logging

from .orchestrator import Orchestrator
from .settings import SettingsChanges, SettingsStore
from .sink import PresentationSink
from .state import SessionStore

logger = logging.getLogger(__name__)


class SettingsReactor:
    def __init__(self, settings: SettingsStore, store: SessionStore, orchestrator: Orchestrator, sink: PresentationSink):
        self._store = store
        self._orchestrator = orchestrator
        self._sink = sink
        settings.subscribe(self.on_change)

    def on_change(self, changes: SettingsChanges) -> None:
        if "credential" in changes:
            # Judgment availability changed: every tab has to re-derive its analysis.
            cleared = list(self._store.analyses)
            self._store.analyses.clear()
            logger.info("API key changed, cleared %d cached analyses", len(cleared))
            for tab_id in cleared:
                self._orchestrator.refresh_badge(tab_id)

        if "auto_analyze" in changes:
            _, enabled = changes["auto_analyze"]
            if enabled:
                logger.info("Auto-analyze enabled, starting analysis for active tab")
                self._orchestrator.rediscover_active_tab()
            else:
                logger.info("Auto-analyze disabled, clearing badges")
                for tab_id in self._store.tab_ids():
                    self._sink.set_badge(tab_id, "none")
