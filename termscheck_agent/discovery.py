"""
Discovery providers: find terms/privacy links on a page and read the page's own text.
"""
from __future__ import annotations

import logging
import re
from typing import Protocol
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from .errors import DiscoveryUnavailable
from .extraction import parse_html
from .models import CandidateLinks, URLCandidate

logger = logging.getLogger(__name__)

TERMS_PATTERNS = (
    re.compile(r"terms\s+of\s+(use|service)", re.IGNORECASE),
    re.compile(r"terms\s+and\s+conditions", re.IGNORECASE),
    re.compile(r"user\s+agreement", re.IGNORECASE),
    re.compile(r"legal", re.IGNORECASE),
)

PRIVACY_PATTERNS = (
    re.compile(r"privacy\s+policy", re.IGNORECASE),
    re.compile(r"data\s+policy", re.IGNORECASE),
    re.compile(r"data\s+protection", re.IGNORECASE),
)

PAGE_TEXT_SELECTORS: tuple[str, ...] = (
    "#terms", "#terms-of-service", "#terms-conditions", "#privacy-policy", "#privacy", "#tos",
    "#legal", "#conditions", "#eula", "#agreement", "#cookie-policy",
    ".terms", ".terms-of-service", ".privacy-policy", ".legal", ".conditions",
    ".terms-content", ".privacy-content", ".legal-content", ".policy-content",
    "main", "article", ".content", ".main-content", "#content", "#main-content",
    ".page-content", "#page-content", ".container", ".main-container",
)


class DiscoveryProvider(Protocol):
    async def discover(self, url: str) -> CandidateLinks:
        """Candidate policy links declared by the page. Raises DiscoveryUnavailable."""
        ...

    async def extract_page_text(self, url: str) -> str:
        ...


def _matches_any(patterns, value: str) -> bool:
    return any(p.search(value) for p in patterns)


def find_policy_links(soup: BeautifulSoup, page_url: str) -> CandidateLinks:
    """Anchors whose text or href looks like a terms/privacy link, first-seen order, no duplicates."""
    terms: dict[str, URLCandidate] = {}
    privacy: dict[str, URLCandidate] = {}

    for a in soup.find_all("a", href=True):
        href = (a.get("href") or "").strip()
        if not href or href.startswith(("mailto:", "tel:", "javascript:", "#")):
            continue
        absolute = urljoin(page_url, href)
        if urlparse(absolute).scheme not in ("http", "https"):
            continue
        text = a.get_text(" ", strip=True)

        if absolute not in terms and (_matches_any(TERMS_PATTERNS, text) or _matches_any(TERMS_PATTERNS, href)):
            terms[absolute] = URLCandidate(url=absolute, label=text or href)
        if absolute not in privacy and (_matches_any(PRIVACY_PATTERNS, text) or _matches_any(PRIVACY_PATTERNS, href)):
            privacy[absolute] = URLCandidate(url=absolute, label=text or href)

    return CandidateLinks(terms=list(terms.values()), privacy=list(privacy.values()))


def page_text(soup: BeautifulSoup, page_url: str, min_chars: int = 500) -> str:
    for el in soup.select("script, style, noscript"):
        el.decompose()
    for selector in PAGE_TEXT_SELECTORS:
        el = soup.select_one(selector)
        if el is None:
            continue
        text = el.get_text(" ", strip=True)
        if len(text) > min_chars:
            return text

    root = soup.body or soup
    # Give the judge the URL as context when only raw page text is available.
    return f"URL: {page_url}\n\n" + root.get_text(" ", strip=True)


class HttpDiscoveryProvider:
    def __init__(self, client: httpx.AsyncClient, *, timeout_s: float = 10.0, user_agent: str | None = None):
        self._client = client
        self._timeout_s = timeout_s
        self._user_agent = user_agent

    async def _fetch_html(self, url: str) -> tuple[str, str]:
        headers = {"accept": "text/html,*/*;q=0.8"}
        if self._user_agent:
            headers["user-agent"] = self._user_agent
        try:
            res = await self._client.get(url, headers=headers, timeout=self._timeout_s)
        except httpx.HTTPError as e:
            raise DiscoveryUnavailable(f"Could not load {url}: {e}") from e
        if res.status_code >= 400:
            raise DiscoveryUnavailable(f"Could not load {url}: HTTP {res.status_code}")
        return res.text, str(res.url)

    async def discover(self, url: str) -> CandidateLinks:
        html, final_url = await self._fetch_html(url)
        links = find_policy_links(parse_html(html), final_url)
        logger.debug("Discovered %d terms / %d privacy links on %s", len(links.terms), len(links.privacy), url)
        return links

    async def extract_page_text(self, url: str) -> str:
        html, final_url = await self._fetch_html(url)
        return page_text(parse_html(html), final_url)
