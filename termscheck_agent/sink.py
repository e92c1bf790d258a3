from __future__ import annotations

import logging
from collections import deque
from typing import Protocol

from .models import Analysis, BadgeState, RiskLevel, RiskNotification

logger = logging.getLogger(__name__)

HIGH_RISK_THRESHOLD = 70
MEDIUM_RISK_THRESHOLD = 40


def risk_level_for(score: int) -> RiskLevel:
    if score >= HIGH_RISK_THRESHOLD:
        return "high"
    if score >= MEDIUM_RISK_THRESHOLD:
        return "medium"
    return "low"


def badge_for(analysis: Analysis | None, *, pending: bool = False) -> BadgeState:
    if analysis is not None:
        return risk_level_for(analysis.risk_score)
    return "pending" if pending else "none"


def build_notification(domain: str, score: int) -> RiskNotification | None:
    """Notification for medium/high risk scores; nothing below the medium threshold."""
    if score < MEDIUM_RISK_THRESHOLD:
        return None
    level = risk_level_for(score)
    return RiskNotification(
        domain=domain,
        risk_score=score,
        level=level,
        title=f"{level.capitalize()} Risk Terms Detected",
        message=f"The terms for {domain} have a risk score of {score}/100.",
    )


class PresentationSink(Protocol):
    def on_analysis_ready(self, tab_id: int, analysis: Analysis) -> None:
        ...

    def set_badge(self, tab_id: int, badge: BadgeState) -> None:
        ...

    def notify(self, notification: RiskNotification) -> None:
        ...

    def forget(self, tab_id: int) -> None:
        ...


class InMemorySink:
    """Keeps the latest badge per tab and a bounded notification history for the HTTP API."""

    def __init__(self, max_notifications: int = 200):
        self.badges: dict[int, BadgeState] = {}
        self.ready: dict[int, Analysis] = {}
        self.notifications: deque[RiskNotification] = deque(maxlen=max_notifications)

    def on_analysis_ready(self, tab_id: int, analysis: Analysis) -> None:
        self.ready[tab_id] = analysis
        logger.info("Analysis ready for tab %s (%s): %d/100", tab_id, analysis.domain, analysis.risk_score)

    def set_badge(self, tab_id: int, badge: BadgeState) -> None:
        self.badges[tab_id] = badge

    def notify(self, notification: RiskNotification) -> None:
        self.notifications.append(notification)
        logger.info("%s: %s", notification.title, notification.message)

    def badge(self, tab_id: int) -> BadgeState:
        return self.badges.get(tab_id, "none")

    def forget(self, tab_id: int) -> None:
        self.badges.pop(tab_id, None)
        self.ready.pop(tab_id, None)
