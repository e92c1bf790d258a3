from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

DocType = Literal["terms", "privacy"]
RiskLevel = Literal["high", "medium", "low"]
BadgeState = Literal["pending", "low", "medium", "high", "none"]
DiscoveryState = Literal["idle", "discovering", "fetching", "done"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class URLCandidate(BaseModel):
    url: str
    label: str


class CandidateLinks(BaseModel):
    # Ordering is priority: the racer walks each list left to right.
    terms: list[URLCandidate] = Field(default_factory=list)
    privacy: list[URLCandidate] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.terms and not self.privacy


class RiskFactor(BaseModel):
    title: str
    description: str
    level: RiskLevel


class Analysis(BaseModel):
    domain: str
    risk_score: int = Field(..., ge=0, le=100)
    summary: str
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    is_fallback: bool = False
    message: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class HeuristicResult(BaseModel):
    high_risk_matches: list[str]
    medium_risk_matches: list[str]
    low_risk_matches: list[str]
    risk_score: int

    @property
    def total_matches(self) -> int:
        return len(self.high_risk_matches) + len(self.medium_risk_matches) + len(self.low_risk_matches)


class RiskNotification(BaseModel):
    domain: str
    risk_score: int
    level: RiskLevel
    title: str
    message: str
    created_at: datetime = Field(default_factory=utcnow)


@dataclass
class TabSession:
    """Per-tab discovery cycle. Owned and mutated by the orchestrator only."""

    tab_id: int
    domain: str
    url: str
    state: DiscoveryState = "idle"
    links: CandidateLinks = field(default_factory=CandidateLinks)
    fetch_started: bool = False
    terms_content: str | None = None
    privacy_content: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_touched_at: datetime = field(default_factory=utcnow)
    watchdog: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        return self.state == "done"

    def touch(self, state: DiscoveryState | None = None) -> None:
        if state is not None:
            self.state = state
        self.last_touched_at = utcnow()


# --- HTTP surface ---


class NavigationEvent(BaseModel):
    url: str = Field(..., min_length=1)
    status: str = "complete"


class ActivationEvent(BaseModel):
    url: str | None = None


class AnalyzeRequest(BaseModel):
    url: str = Field(..., min_length=1)


class TriggerResponse(BaseModel):
    started: bool
    credential_configured: bool


class TabAnalysisResponse(BaseModel):
    tab_id: int
    analysis: Analysis | None = None
    badge: BadgeState = "none"
    # Policy links the current cycle raced, discovered or guessed.
    links: CandidateLinks | None = None


class SettingsView(BaseModel):
    auto_analyze: bool
    show_notifications: bool
    credential_configured: bool


class SettingsPatch(BaseModel):
    auto_analyze: bool | None = None
    show_notifications: bool | None = None
    # Empty string clears the stored credential.
    credential: str | None = None
