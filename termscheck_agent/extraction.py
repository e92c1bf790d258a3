from __future__ import annotations

from bs4 import BeautifulSoup

from .models import DocType

TRUNCATION_MARKER = "... [content truncated for memory efficiency]"

_NON_CONTENT_TAGS = "script, style, noscript, iframe, img, svg, header, footer, nav"

GENERIC_SELECTORS: tuple[str, ...] = (
    "main",
    "article",
    "#content",
    ".content",
    "#main-content",
    ".main-content",
    ".container",
    ".main",
    ".body",
    "#body",
    "body > div:nth-child(1)",
    ".page",
    "#page",
    ".page-content",
)

DOC_TYPE_SELECTORS: dict[str, tuple[str, ...]] = {
    "terms": (
        "#terms",
        ".terms",
        "#terms-of-service",
        ".terms-of-service",
        "#terms-conditions",
        ".terms-conditions",
        "#legal",
        ".legal",
        '[id*="terms"]',
        '[class*="terms"]',
        '[id*="tos"]',
        '[class*="tos"]',
    ),
    "privacy": (
        "#privacy",
        ".privacy",
        "#privacy-policy",
        ".privacy-policy",
        "#data-policy",
        ".data-policy",
        '[id*="privacy"]',
        '[class*="privacy"]',
    ),
}


def selectors_for(doc_type: DocType | None) -> tuple[str, ...]:
    return DOC_TYPE_SELECTORS.get(doc_type or "", ()) + GENERIC_SELECTORS


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _container_text(soup: BeautifulSoup, doc_type: DocType | None, min_chars: int) -> str:
    for selector in selectors_for(doc_type):
        for el in soup.select(selector):
            text = el.get_text(" ", strip=True)
            if len(text) > min_chars:
                return text
    return ""


def _paragraph_text(soup: BeautifulSoup, min_paragraphs: int) -> str:
    paragraphs = soup.select("p")
    if len(paragraphs) <= min_paragraphs:
        return ""
    return "\n\n".join(p.get_text(" ", strip=True) for p in paragraphs)


def extract_policy_text(
    html: str,
    doc_type: DocType | None = None,
    *,
    min_chars: int = 500,
    container_min_chars: int = 200,
    min_paragraphs: int = 5,
) -> str:
    """Pull the readable policy text out of an HTML document.

    Degrades in order: the first content container with substantial text
    (document-type selectors first), then every paragraph joined (only when the
    page has more than a handful), then the whole document text.
    """
    soup = parse_html(html)
    for el in soup.select(_NON_CONTENT_TAGS):
        el.decompose()

    text = _container_text(soup, doc_type, container_min_chars)

    if len(text) < min_chars:
        paragraphs = _paragraph_text(soup, min_paragraphs)
        if paragraphs:
            text = paragraphs

    if len(text) < min_chars:
        root = soup.body or soup
        text = root.get_text(" ", strip=True)

    return text


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER
