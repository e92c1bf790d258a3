from __future__ import annotations

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .discovery import find_policy_links, page_text
from .errors import DiscoveryUnavailable
from .extraction import parse_html
from .models import CandidateLinks


class BrowserDiscoveryProvider:
    """Discovery against the rendered DOM, for sites that build their footer client-side."""

    def __init__(self, *, timeout_ms: int = 12000, user_agent: str | None = None, settle_ms: int = 450):
        self._timeout_ms = timeout_ms
        self._user_agent = user_agent
        self._settle_ms = settle_ms

    async def _rendered_html(self, url: str) -> tuple[str, str]:
        # Short timeouts and no persistent storage; one browser per call.
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(
                    headless=True,
                    args=[
                        "--no-sandbox",
                        "--disable-dev-shm-usage",
                        "--disable-gpu",
                    ],
                )
                context = await browser.new_context(
                    user_agent=self._user_agent,
                    java_script_enabled=True,
                    ignore_https_errors=True,
                )
                page = await context.new_page()
                try:
                    await page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
                    await page.wait_for_timeout(self._settle_ms)
                    return await page.content(), page.url
                finally:
                    await context.close()
                    await browser.close()
        except PlaywrightError as e:
            raise DiscoveryUnavailable(f"Could not render {url}: {e}") from e

    async def discover(self, url: str) -> CandidateLinks:
        html, final_url = await self._rendered_html(url)
        return find_policy_links(parse_html(html), final_url)

    async def extract_page_text(self, url: str) -> str:
        html, final_url = await self._rendered_html(url)
        return page_text(parse_html(html), final_url)
