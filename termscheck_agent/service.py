from __future__ import annotations

from dataclasses import dataclass

import httpx

from .ai_judge import GeminiJudge, Judge, OpenAIJudge
from .browser import BrowserDiscoveryProvider
from .config import EngineConfig, default_credential
from .discovery import DiscoveryProvider, HttpDiscoveryProvider
from .janitor import CacheJanitor
from .orchestrator import Orchestrator
from .racer import CandidateRacer
from .reactor import SettingsReactor
from .settings import SettingsStore
from .sink import InMemorySink
from .state import SessionStore


@dataclass
class Engine:
    config: EngineConfig
    client: httpx.AsyncClient
    store: SessionStore
    settings: SettingsStore
    sink: InMemorySink
    orchestrator: Orchestrator
    janitor: CacheJanitor
    reactor: SettingsReactor

    async def start(self) -> None:
        self.janitor.start()

    async def aclose(self) -> None:
        await self.janitor.stop()
        await self.client.aclose()


def build_engine(
    config: EngineConfig | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    settings: SettingsStore | None = None,
    discovery: DiscoveryProvider | None = None,
    racer: CandidateRacer | None = None,
    judge: Judge | None = None,
    sink: InMemorySink | None = None,
) -> Engine:
    """Wire the engine together; any collaborator can be swapped out (tests, other hosts)."""
    config = config or EngineConfig()
    client = client or httpx.AsyncClient(follow_redirects=True, headers={"user-agent": config.user_agent})
    settings = settings or SettingsStore(config.settings_path, credential=default_credential(config.judge_provider))
    sink = sink or InMemorySink()
    store = SessionStore()

    if discovery is None:
        if config.discovery_backend == "browser":
            discovery = BrowserDiscoveryProvider(
                timeout_ms=int(config.fetch_timeout_s * 1000),
                user_agent=config.user_agent,
            )
        else:
            discovery = HttpDiscoveryProvider(client, timeout_s=config.fetch_timeout_s, user_agent=config.user_agent)

    if racer is None:
        racer = CandidateRacer(
            client,
            fetch_timeout_s=config.fetch_timeout_s,
            min_chars=config.min_content_chars,
            max_chars=config.max_content_chars,
            container_min_chars=config.container_min_chars,
            min_paragraphs=config.min_paragraphs,
            user_agent=config.user_agent,
        )

    if judge is None:
        if config.judge_provider == "gemini":
            judge = GeminiJudge(model=config.gemini_model, input_chars=config.judge_input_chars)
        else:
            judge = OpenAIJudge(
                client,
                model=config.openai_model,
                base_url=config.openai_base_url,
                timeout_s=config.judge_timeout_s,
                input_chars=config.judge_input_chars,
            )

    orchestrator = Orchestrator(store, settings, discovery, racer, judge, sink, config)
    janitor = CacheJanitor(store, sink, max_age_s=config.max_age_s, interval_s=config.sweep_interval_s)
    reactor = SettingsReactor(settings, store, orchestrator, sink)
    return Engine(
        config=config,
        client=client,
        store=store,
        settings=settings,
        sink=sink,
        orchestrator=orchestrator,
        janitor=janitor,
        reactor=reactor,
    )
