"""
Playwright session management for the upstream bulk traffic page.

One Chromium process is launched lazily and shared; every sub-batch renders in
its own isolated browser context which is closed afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Sequence

from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from app.scraping.config import UPSTREAM_BATCH_LIMIT, TrafficScrapingSettings, get_traffic_scraping_settings
from app.scraping.domains import cache_key
from app.scraping.errors import BatchSizeError, EmptyDomainListError, RenderTimeoutError, UpstreamUnavailableError
from app.scraping.extraction.base import RenderedPage, clean_text
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--disable-gpu",
]

CARD_TEXT_SCRIPT = "elements => elements.map(element => element.innerText || '')"

_DOMAIN_SHAPE = re.compile(r"\b[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?(?:\.[a-z0-9\-]+)*\.[a-z]{2,}\b", flags=re.IGNORECASE)
_METRIC_SHAPES = (
    re.compile(r"\d(?:[\d,.]*\d)?\s?[KMB]\b", flags=re.IGNORECASE),
    re.compile(r"\b\d{1,2}:\d{2}:\d{2}\b"),
    re.compile(r"\d+(?:\.\d+)?\s?%"),
)


def readiness_ratio(card_texts: Sequence[str]) -> float:
    """
    Fraction of non-empty card texts showing a domain and at least one metric.
    """

    texts = [text for text in card_texts if text and text.strip()]
    if not texts:
        return 0.0
    ready = sum(
        1
        for text in texts
        if _DOMAIN_SHAPE.search(text) and any(pattern.search(text) for pattern in _METRIC_SHAPES)
    )
    return ready / len(texts)


def build_upstream_url(upstream_url: str, domains: Sequence[str]) -> str:
    return f"{upstream_url}?domains={','.join(cache_key(domain) for domain in domains)}"


class BrowserSessionManager:
    """
    Owns the shared browser process for one application instance.

    Launch is serialized with a lock: concurrent callers wait for the launch
    already in flight, and a disconnected browser is relaunched once.
    """

    def __init__(
        self,
        settings: TrafficScrapingSettings | None = None,
        *,
        playwright_factory: Callable[[], object] = async_playwright,
    ) -> None:
        self._settings = settings or get_traffic_scraping_settings()
        self._playwright_factory = playwright_factory
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()
        self.launch_count = 0

    @property
    def settings(self) -> TrafficScrapingSettings:
        return self._settings

    async def __aenter__(self) -> "BrowserSessionManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def get_browser(self) -> Browser:
        browser = self._browser
        if browser is not None and browser.is_connected():
            return browser

        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._browser is not None:
                log_event(logger, logging.WARNING, "traffic_browser_disconnected", launches=self.launch_count)
                self._browser = None

            try:
                if self._playwright is None:
                    self._playwright = await self._playwright_factory().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self._settings.headless,
                    args=LAUNCH_ARGS,
                )
            except PlaywrightError as exc:
                raise UpstreamUnavailableError(f"Browser launch failed: {exc}") from exc

            self.launch_count += 1
            log_event(
                logger,
                logging.INFO,
                "traffic_browser_launched",
                headless=self._settings.headless,
                launches=self.launch_count,
            )
            return self._browser

    async def render(self, domains: Sequence[str]) -> RenderedPage:
        """
        Render the upstream page for up to ten domains and capture it.
        """

        if not domains:
            raise EmptyDomainListError("At least one domain is required to render.")
        if len(domains) > UPSTREAM_BATCH_LIMIT:
            raise BatchSizeError(
                f"At most {UPSTREAM_BATCH_LIMIT} domains can be rendered at once, got {len(domains)}."
            )

        url = build_upstream_url(self._settings.upstream_url, domains)
        browser = await self.get_browser()
        context: BrowserContext | None = None
        try:
            context = await browser.new_context(
                user_agent=self._settings.user_agent,
                ignore_https_errors=True,
            )
            await context.route("**/*", self._route_request)
            page = await context.new_page()
            page.set_default_timeout(self._settings.navigation_timeout_seconds * 1000)

            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self._settings.navigation_timeout_seconds * 1000,
            )
            ready = await self._wait_until_ready(page, url=url)
            html = await page.content()
            text = await page.inner_text("body")
        except PlaywrightTimeoutError as exc:
            raise RenderTimeoutError(f"Timed out rendering {url}: {exc}") from exc
        except PlaywrightError as exc:
            raise UpstreamUnavailableError(f"Upstream render failed for {url}: {exc}") from exc
        finally:
            if context is not None:
                await self._close_context(context)

        return RenderedPage(url=url, html=html, text=clean_text(text), ready=ready)

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except PlaywrightError as exc:
                    log_event(logger, logging.WARNING, "traffic_browser_close_failed", error=str(exc))
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def _route_request(self, route: Route) -> None:
        if route.request.resource_type in self._settings.blocked_resource_types:
            await route.abort()
        else:
            await route.continue_()

    async def _wait_until_ready(self, page: Page, *, url: str) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.readiness_timeout_seconds
        selectors = self._settings.selectors

        try:
            await page.wait_for_selector(
                ", ".join(selectors.readiness),
                timeout=self._settings.readiness_timeout_seconds * 1000,
            )
        except PlaywrightTimeoutError:
            log_event(logger, logging.WARNING, "traffic_readiness_no_structure", url=url)
            return False

        card_selector = ", ".join(selectors.cards)
        row_selector = ", ".join(selectors.rows)
        ratio = 0.0
        while True:
            texts = await page.eval_on_selector_all(card_selector, CARD_TEXT_SCRIPT)
            if not texts:
                texts = await page.eval_on_selector_all(row_selector, CARD_TEXT_SCRIPT)
            ratio = readiness_ratio(texts)
            if ratio >= self._settings.readiness_threshold:
                return True
            if loop.time() >= deadline:
                break
            await asyncio.sleep(self._settings.readiness_poll_seconds)

        log_event(
            logger,
            logging.WARNING,
            "traffic_readiness_timeout",
            url=url,
            ratio=round(ratio, 3),
            threshold=self._settings.readiness_threshold,
        )
        return False

    @staticmethod
    async def _close_context(context: BrowserContext) -> None:
        try:
            await context.close()
        except PlaywrightError as exc:
            log_event(logger, logging.WARNING, "traffic_context_close_failed", error=str(exc))
