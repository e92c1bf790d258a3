from __future__ import annotations

import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def normalize_domain(url: str) -> str:
    """Canonical domain key for a URL: lowercase hostname without a leading ``www.``.

    Never raises. A malformed URL comes back unchanged, so callers that care can
    compare the result to the input to detect the degraded case.
    """
    try:
        hostname = urlparse(url).hostname
    except ValueError as e:
        logger.debug("Could not parse %r: %s", url, e)
        return url
    if not hostname:
        logger.debug("No hostname in %r", url)
        return url
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def is_web_url(url: str | None) -> bool:
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)
