"""
Discovery -> fetch -> analysis orchestration, one cycle per tab.

A cycle walks idle -> discovering -> fetching -> done. Whatever reaches
``done`` first (normal completion or the watchdog) wins; later results for the
same cycle, or for a cycle that was replaced or closed, are discarded. This is
the only place that writes TabSession and Analysis state.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

from .ai_judge import Judge, truncate_for_judgment
from .config import EngineConfig
from .discovery import DiscoveryProvider
from .domain import is_web_url, normalize_domain
from .errors import DiscoveryUnavailable, MalformedJudgmentResponse, MissingCredential, TimeoutExceeded
from .fallback import (
    ANALYSIS_ERROR_MESSAGE,
    ANALYSIS_ERROR_SCORE,
    API_FAILURE_MESSAGE,
    NO_CONTENT_MESSAGE,
    NO_CONTENT_SCORE,
    NO_DOCUMENTS_MESSAGE,
    NO_DOCUMENTS_SCORE,
    TIMEOUT_MESSAGE,
    TIMEOUT_SCORE,
    fallback_from_heuristics,
    placeholder_analysis,
)
from .heuristics import score_text
from .models import Analysis, CandidateLinks, DocType, TabSession, URLCandidate
from .racer import CandidateRacer, guess_candidates
from .settings import SettingsStore
from .sink import PresentationSink, badge_for, build_notification
from .state import SessionStore

logger = logging.getLogger(__name__)


def combine_documents(terms: str | None, privacy: str | None) -> str:
    combined = ""
    if terms:
        combined += "TERMS OF SERVICE:\n\n" + terms + "\n\n"
    if privacy:
        combined += "PRIVACY POLICY:\n\n" + privacy
    return combined


class Orchestrator:
    def __init__(
        self,
        store: SessionStore,
        settings: SettingsStore,
        discovery: DiscoveryProvider,
        racer: CandidateRacer,
        judge: Judge,
        sink: PresentationSink,
        config: EngineConfig | None = None,
    ):
        self._store = store
        self._settings = settings
        self._discovery = discovery
        self._racer = racer
        self._judge = judge
        self._sink = sink
        self._config = config or EngineConfig()
        self._tasks: set[asyncio.Task] = set()
        self.active_tab_id: int | None = None
        self.active_url: str | None = None

    # --- queries ---

    def get_analysis(self, tab_id: int) -> Analysis | None:
        return self._store.get_analysis(tab_id)

    def badge_state(self, tab_id: int):
        session = self._store.sessions.get(tab_id)
        pending = session is not None and not session.done and session.state != "idle"
        return badge_for(self._store.get_analysis(tab_id), pending=pending)

    def get_links(self, tab_id: int) -> CandidateLinks | None:
        session = self._store.sessions.get(tab_id)
        if session is None or session.links.is_empty():
            return None
        return session.links

    def refresh_badge(self, tab_id: int) -> None:
        self._sink.set_badge(tab_id, self.badge_state(tab_id))

    async def drain(self) -> None:
        """Wait for every task this orchestrator has spawned so far (tests, shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- events ---

    def handle_navigation(self, tab_id: int, url: str, status: str = "complete") -> asyncio.Task | None:
        """Navigation finished in a tab. Returns the spawned discovery task, if any."""
        if status != "complete" or not is_web_url(url):
            return None

        domain = normalize_domain(url)
        self._store.domain_index[domain] = tab_id

        if tab_id == self.active_tab_id:
            self.active_url = url

        if not self._settings.auto_analyze:
            self._sink.set_badge(tab_id, "none")
            return None

        cached = self._store.get_analysis(tab_id)
        if cached is not None and cached.domain == domain:
            self.refresh_badge(tab_id)
            return None

        session = self._store.sessions.get(tab_id)
        if session is not None and session.domain == domain and not session.done:
            # A cycle for this domain is already in flight.
            return None

        if cached is not None:
            # Result for the site the tab just left.
            del self._store.analyses[tab_id]

        session = self._new_session(tab_id, url, domain)
        return self._spawn(self._discover(session))

    def handle_activated(self, tab_id: int, url: str | None = None) -> None:
        self.active_tab_id = tab_id
        session = self._store.sessions.get(tab_id)
        self.active_url = url or (session.url if session else None)
        self.refresh_badge(tab_id)

    def trigger_manual(self, tab_id: int, url: str) -> asyncio.Task | None:
        """User asked for a fresh analysis: drop whatever is cached and probe well-known paths."""
        if not is_web_url(url):
            return None
        domain = normalize_domain(url)
        self._store.analyses.pop(tab_id, None)
        self._store.domain_index[domain] = tab_id
        session = self._new_session(tab_id, url, domain)
        self._sink.set_badge(tab_id, "pending")
        return self._spawn(self._probe_well_known(session))

    def rediscover_active_tab(self) -> asyncio.Task | None:
        """Re-run discovery for the active tab unless it already has a result for its site."""
        tab_id, url = self.active_tab_id, self.active_url
        if tab_id is None or not is_web_url(url):
            return None
        domain = normalize_domain(url)
        cached = self._store.get_analysis(tab_id)
        if cached is not None and cached.domain == domain:
            self.refresh_badge(tab_id)
            return None
        session = self._store.sessions.get(tab_id)
        if session is not None and session.domain == domain and not session.done:
            return None
        session = self._new_session(tab_id, url, domain)
        return self._spawn(self._probe_well_known(session))

    async def analyze_page(self, tab_id: int, url: str) -> Analysis | None:
        """Judge the page's own text. Requires a credential; raises MissingCredential otherwise."""
        credential = self._settings.credential
        if not credential:
            raise MissingCredential()

        domain = normalize_domain(url)
        self._store.analyses.pop(tab_id, None)
        session = self._new_session(tab_id, url, domain)
        session.fetch_started = True
        self._enter(session, "fetching")

        try:
            text = await self._discovery.extract_page_text(url)
        except DiscoveryUnavailable as e:
            logger.warning("Could not read page text for %s: %s", url, e)
            self._complete(session, placeholder_analysis(domain, NO_CONTENT_SCORE, NO_CONTENT_MESSAGE))
            return self._store.get_analysis(tab_id)
        except Exception:
            logger.exception("Error reading page text for %s", url)
            self._complete(session, placeholder_analysis(domain, ANALYSIS_ERROR_SCORE, ANALYSIS_ERROR_MESSAGE))
            return self._store.get_analysis(tab_id)

        analysis = await self._judge_with_fallback(domain, text, credential)
        self._complete(session, analysis)
        return self._store.get_analysis(tab_id)

    # --- cycle ---

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _new_session(self, tab_id: int, url: str, domain: str) -> TabSession:
        self._store.cancel_watchdog(tab_id)
        session = TabSession(tab_id=tab_id, domain=domain, url=url)
        self._store.sessions[tab_id] = session
        return session

    def _is_live(self, session: TabSession) -> bool:
        return not session.done and self._store.is_current(session)

    def _enter(self, session: TabSession, state) -> None:
        session.touch(state)
        self._arm_watchdog(session)

    def _arm_watchdog(self, session: TabSession) -> None:
        self._store.cancel_watchdog(session.tab_id)
        task = asyncio.create_task(self._watchdog(session))
        session.watchdog = task
        self._store.watchdogs[session.tab_id] = task

    async def _watchdog(self, session: TabSession) -> None:
        await asyncio.sleep(self._config.watchdog_timeout_s)
        if not self._is_live(session):
            return
        timeout = TimeoutExceeded(f"no result after {self._config.watchdog_timeout_s}s in state {session.state}")
        logger.warning("Analysis for tab %s (%s) abandoned: %s", session.tab_id, session.domain, timeout)
        self._complete(session, placeholder_analysis(session.domain, TIMEOUT_SCORE, TIMEOUT_MESSAGE))

    async def _discover(self, session: TabSession) -> None:
        self._enter(session, "discovering")
        self._sink.set_badge(session.tab_id, "pending")

        if self._config.discovery_grace_s:
            await asyncio.sleep(self._config.discovery_grace_s)
        if not self._is_live(session):
            return

        links: CandidateLinks | None
        try:
            links = await self._discovery.discover(session.url)
        except DiscoveryUnavailable as e:
            logger.info("Discovery unavailable for %s, using direct search instead: %s", session.url, e)
            links = None
        except Exception:
            logger.exception("Discovery failed for %s, using direct search instead", session.url)
            links = None

        if not self._is_live(session):
            return

        if links is None:
            links = guess_candidates(session.domain)
        elif links.is_empty():
            self._complete(
                session,
                placeholder_analysis(session.domain, NO_DOCUMENTS_SCORE, NO_DOCUMENTS_MESSAGE),
            )
            return

        await self._fetch(session, links)

    async def _probe_well_known(self, session: TabSession) -> None:
        self._enter(session, "discovering")
        await self._fetch(session, guess_candidates(session.domain))

    async def _race(self, session: TabSession, candidates: list[URLCandidate], doc_type: DocType) -> str | None:
        try:
            content = await self._racer.race(candidates, doc_type)
        except Exception:
            logger.exception("Error fetching %s for %s", doc_type, session.domain)
            return None
        if content and self._is_live(session):
            if doc_type == "terms":
                session.terms_content = content
            else:
                session.privacy_content = content
        return content

    async def _join(self, session: TabSession, racers: dict[str, asyncio.Task]) -> dict[str, str | None]:
        if not racers:
            return {}
        # Racers are not cancelled on deadline; their late results are simply ignored.
        done, _ = await asyncio.wait(set(racers.values()), timeout=self._config.join_timeout_s)
        if len(done) < len(racers):
            raise TimeoutExceeded(f"{self._config.join_timeout_s}s fetch deadline passed for tab {session.tab_id}")
        return {doc_type: task.result() for doc_type, task in racers.items()}

    async def _fetch(self, session: TabSession, links: CandidateLinks) -> None:
        if session.fetch_started or not self._is_live(session):
            return
        session.fetch_started = True
        session.links = links
        self._enter(session, "fetching")

        racers: dict[str, asyncio.Task] = {}
        if links.terms:
            racers["terms"] = self._spawn(self._race(session, links.terms, "terms"))
        if links.privacy:
            racers["privacy"] = self._spawn(self._race(session, links.privacy, "privacy"))

        results: dict[str, str | None] = {}
        try:
            results = await self._join(session, racers)
        except TimeoutExceeded as e:
            logger.warning("Policy fetch for %s gave up: %s", session.domain, e)

        if not self._is_live(session):
            logger.info("Dropping fetch results for tab %s (%s): cycle already finished", session.tab_id, session.domain)
            return

        minimum = self._config.min_content_chars
        if not any(text and len(text) > minimum for text in results.values()):
            self._complete(session, placeholder_analysis(session.domain, NO_CONTENT_SCORE, NO_CONTENT_MESSAGE))
            return

        combined = combine_documents(session.terms_content, session.privacy_content)
        try:
            analysis = await self._score(session.domain, combined)
        except Exception:
            logger.exception("Error during analysis for %s", session.domain)
            analysis = placeholder_analysis(session.domain, ANALYSIS_ERROR_SCORE, ANALYSIS_ERROR_MESSAGE)
        self._complete(session, analysis)

    async def _score(self, domain: str, text: str) -> Analysis:
        credential = self._settings.credential
        if not credential:
            return fallback_from_heuristics(domain, score_text(text))
        return await self._judge_with_fallback(domain, text, credential)

    async def _judge_with_fallback(self, domain: str, text: str, credential: str) -> Analysis:
        findings = score_text(truncate_for_judgment(text, self._config.judge_input_chars))
        try:
            return await self._judge.judge(text, domain, findings, credential)
        except MalformedJudgmentResponse as e:
            logger.warning("Unusable judgment for %s: %s", domain, e)
            return fallback_from_heuristics(domain, findings, message=ANALYSIS_ERROR_MESSAGE)
        except Exception as e:
            logger.warning("Judgment provider failed for %s: %s", domain, e)
            return fallback_from_heuristics(domain, findings, message=API_FAILURE_MESSAGE)

    def _complete(self, session: TabSession, analysis: Analysis) -> bool:
        """One-shot latch: the first completion of a live cycle is stored, later ones are dropped."""
        if not self._is_live(session):
            logger.info("Discarding late analysis for tab %s (%s)", session.tab_id, session.domain)
            return False

        session.touch("done")
        self._store.cancel_watchdog(session.tab_id)
        self._store.analyses[session.tab_id] = analysis

        self._sink.on_analysis_ready(session.tab_id, analysis)
        self._sink.set_badge(session.tab_id, badge_for(analysis))
        if self._settings.show_notifications:
            notification = build_notification(analysis.domain, analysis.risk_score)
            if notification is not None:
                self._sink.notify(notification)
        return True
