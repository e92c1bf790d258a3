from __future__ import annotations

import asyncio

import pytest

from termscheck_agent.config import EngineConfig
from termscheck_agent.errors import DiscoveryUnavailable
from termscheck_agent.models import Analysis, CandidateLinks, HeuristicResult, RiskFactor, URLCandidate
from termscheck_agent.orchestrator import Orchestrator
from termscheck_agent.settings import SettingsStore
from termscheck_agent.sink import InMemorySink
from termscheck_agent.state import SessionStore

FILLER = "Lorem ipsum dolor sit amet, consectetur adipiscing elit. " * 20


def policy_text(*phrases: str) -> str:
    return " ".join(phrases) + " " + FILLER


class FakeDiscovery:
    def __init__(self, links: CandidateLinks | None = None, page_text: str = ""):
        # None means the collaborator cannot be reached.
        self.links = links
        self.page_text = page_text
        self.calls: list[str] = []

    async def discover(self, url: str) -> CandidateLinks:
        self.calls.append(url)
        if self.links is None:
            raise DiscoveryUnavailable("content script not ready")
        return self.links

    async def extract_page_text(self, url: str) -> str:
        if self.links is None and not self.page_text:
            raise DiscoveryUnavailable("content script not ready")
        return self.page_text


class FakeRacer:
    def __init__(self, results: dict[str, str | None] | None = None, gate: asyncio.Event | None = None):
        self.results = results or {}
        self.gate = gate
        self.calls: list[tuple[str, list[URLCandidate]]] = []

    async def race(self, candidates: list[URLCandidate], doc_type: str) -> str | None:
        self.calls.append((doc_type, candidates))
        if self.gate is not None:
            await self.gate.wait()
        return self.results.get(doc_type)


class FakeJudge:
    def __init__(self, score: int = 80, error: Exception | None = None):
        self.score = score
        self.error = error
        self.calls: list[tuple[str, str, HeuristicResult, str | None]] = []

    async def judge(self, text: str, domain: str, findings: HeuristicResult, credential: str | None) -> Analysis:
        self.calls.append((text, domain, findings, credential))
        if self.error is not None:
            raise self.error
        return Analysis(
            domain=domain,
            risk_score=self.score,
            summary="<ul><li>Judged.</li></ul>",
            risk_factors=[RiskFactor(title="Arbitration", description="Disputes go to arbitration.", level="high")],
        )


def fast_config(**overrides) -> EngineConfig:
    values = dict(discovery_grace_s=0, watchdog_timeout_s=5.0, join_timeout_s=5.0)
    values.update(overrides)
    return EngineConfig(**values)


class Harness:
    def __init__(
        self,
        *,
        discovery: FakeDiscovery | None = None,
        racer: FakeRacer | None = None,
        judge: FakeJudge | None = None,
        credential: str | None = None,
        config: EngineConfig | None = None,
    ):
        self.store = SessionStore()
        self.settings = SettingsStore(credential=credential)
        self.sink = InMemorySink()
        self.discovery = discovery or FakeDiscovery()
        self.racer = racer or FakeRacer()
        self.judge = judge or FakeJudge()
        self.orchestrator = Orchestrator(
            self.store,
            self.settings,
            self.discovery,
            self.racer,
            self.judge,
            self.sink,
            config or fast_config(),
        )


@pytest.fixture
def harness_factory():
    return Harness
