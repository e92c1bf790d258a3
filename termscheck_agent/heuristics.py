"""
Keyword heuristics for policy text.

Every phrase is checked independently by substring containment against the
lowercased text, so overlapping phrases ("waive rights" / "waive right to sue")
both count.
"""
from __future__ import annotations

from .models import HeuristicResult

HIGH_RISK_WEIGHT = 15
MEDIUM_RISK_WEIGHT = 7
LOW_RISK_WEIGHT = -3
BASELINE_SCORE = 10

MIN_SCORE = 5
MAX_SCORE = 95
# Pages saturated with boilerplate match a lot of everything.
SATURATION_MATCHES = 20
SATURATED_MAX_SCORE = 90


HIGH_RISK_PHRASES: tuple[str, ...] = (
    "sell your data",
    "share with third parties",
    "unlimited license",
    "no obligation to protect",
    "waive right to class action",
    "mandatory arbitration",
    "modify terms without notice",
    "perpetual license",
    "worldwide license",
    "irrevocable license",
    "sell personal information",
    "share with partners",
    "waive rights",
    "binding arbitration",
    "no refunds",
    "no liability",
    "exclusive jurisdiction",
    "limitation of liability",
    "right to monitor",
    "retain indefinitely",
    "store your content",
    "transfer your data",
    "facial recognition",
    "sell to third parties",
    "share with advertisers",
    "biometric data",
    "waive right to sue",
)

MEDIUM_RISK_PHRASES: tuple[str, ...] = (
    "collect location data",
    "track your activity",
    "personalized advertising",
    "share aggregated data",
    "retain data indefinitely",
    "automatically renew",
    "cookies and tracking",
    "third-party analytics",
    "behavioral tracking",
    "targeted advertising",
    "marketing emails",
    "data retention",
    "monitor usage",
    "track behavior",
    "cross-device tracking",
    "interest-based ads",
    "can't opt out",
    "cannot opt out",
    "may share",
    "may collect",
    "may use",
)

LOW_RISK_PHRASES: tuple[str, ...] = (
    "necessary cookies",
    "essential account information",
    "standard analytics",
    "communicate updates",
    "security measures",
    "data portability",
    "opt-out options",
    "delete account",
    "access your data",
    "data protection",
    "right to delete",
    "right to access",
    "right to object",
    "data subject rights",
    "can opt out",
    "may opt out",
    "gdpr compliant",
    "ccpa compliant",
)


def _matches(text: str, phrases: tuple[str, ...]) -> list[str]:
    return [p for p in phrases if p.lower() in text]


def score_text(text: str) -> HeuristicResult:
    """Score policy text against the phrase dictionaries. Pure and deterministic."""
    lowered = (text or "").lower()

    high = _matches(lowered, HIGH_RISK_PHRASES)
    medium = _matches(lowered, MEDIUM_RISK_PHRASES)
    low = _matches(lowered, LOW_RISK_PHRASES)

    score = (
        BASELINE_SCORE
        + len(high) * HIGH_RISK_WEIGHT
        + len(medium) * MEDIUM_RISK_WEIGHT
        + len(low) * LOW_RISK_WEIGHT
    )
    score = max(MIN_SCORE, min(MAX_SCORE, score))
    if len(high) + len(medium) + len(low) > SATURATION_MATCHES:
        score = min(score, SATURATED_MAX_SCORE)

    return HeuristicResult(
        high_risk_matches=high,
        medium_risk_matches=medium,
        low_risk_matches=low,
        risk_score=score,
    )
