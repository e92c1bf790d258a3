"""
Candidate URL racer.

Walks an ordered list of candidate URLs for one document type and returns the
first extracted text that is long enough to be a real policy. Per-candidate
failures never abort the walk.
"""
from __future__ import annotations

import logging

import httpx

from .errors import NetworkFailure
from .extraction import extract_policy_text, truncate_text
from .models import CandidateLinks, DocType, URLCandidate

logger = logging.getLogger(__name__)

COMMON_TERMS_PATHS: tuple[str, ...] = (
    "/terms",
    "/terms-of-service",
    "/terms-of-use",
    "/terms-conditions",
    "/legal",
    "/tos",
    "/terms.html",
    "/terms-of-service.html",
    "/about/legal/terms",
    "/legal/terms",
)

COMMON_PRIVACY_PATHS: tuple[str, ...] = (
    "/privacy",
    "/privacy-policy",
    "/data-policy",
    "/data-protection",
    "/privacy.html",
    "/privacy-policy.html",
    "/about/privacy",
    "/legal/privacy",
)

TERMS_LABEL = "Terms of Service"
PRIVACY_LABEL = "Privacy Policy"


def guess_candidates(domain: str) -> CandidateLinks:
    """Well-known policy paths on the domain, then the same paths on ``www.``."""
    bases = [f"https://{domain}"]
    if not domain.startswith("www."):
        bases.append(f"https://www.{domain}")

    terms = [URLCandidate(url=base + path, label=TERMS_LABEL) for base in bases for path in COMMON_TERMS_PATHS]
    privacy = [URLCandidate(url=base + path, label=PRIVACY_LABEL) for base in bases for path in COMMON_PRIVACY_PATHS]
    return CandidateLinks(terms=terms, privacy=privacy)


class CandidateRacer:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        fetch_timeout_s: float = 10.0,
        min_chars: int = 500,
        max_chars: int = 100_000,
        container_min_chars: int = 200,
        min_paragraphs: int = 5,
        user_agent: str | None = None,
    ):
        self._client = client
        self._fetch_timeout_s = fetch_timeout_s
        self._min_chars = min_chars
        self._max_chars = max_chars
        self._container_min_chars = container_min_chars
        self._min_paragraphs = min_paragraphs
        self._user_agent = user_agent

    async def fetch_text(self, url: str, doc_type: DocType) -> str:
        """One bounded fetch plus extraction. Raises NetworkFailure on any problem."""
        headers = {
            "accept": "text/html,*/*;q=0.8",
            "accept-language": "en-US,en;q=0.6",
        }
        if self._user_agent:
            headers["user-agent"] = self._user_agent
        try:
            res = await self._client.get(url, headers=headers, timeout=self._fetch_timeout_s)
        except httpx.TimeoutException as e:
            raise NetworkFailure(url, "request timeout") from e
        except httpx.HTTPError as e:
            raise NetworkFailure(url, f"network error: {e}") from e

        if not 200 <= res.status_code < 300:
            raise NetworkFailure(url, f"HTTP {res.status_code}")

        try:
            text = extract_policy_text(
                res.text,
                doc_type,
                min_chars=self._min_chars,
                container_min_chars=self._container_min_chars,
                min_paragraphs=self._min_paragraphs,
            )
        except Exception as e:
            raise NetworkFailure(url, f"could not parse document: {e}") from e

        return truncate_text(text, self._max_chars)

    async def race(self, candidates: list[URLCandidate], doc_type: DocType) -> str | None:
        """First acceptable text in priority order, or None when every candidate fails."""
        for candidate in candidates:
            try:
                text = await self.fetch_text(candidate.url, doc_type)
            except NetworkFailure as e:
                logger.info("Skipping %s candidate %s", doc_type, e)
                continue
            if len(text) > self._min_chars:
                logger.debug("Accepted %s text from %s (%d chars)", doc_type, candidate.url, len(text))
                return text
            logger.info("Skipping %s candidate %s: only %d chars", doc_type, candidate.url, len(text))
        return None
