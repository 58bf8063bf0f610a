"""
Headless-browser scraping of network dashboards (Playwright).

The scraper is the second tier of the fallback chain: it is used when a live
API call fails or no API credential exists but dashboard credentials do.

One browser per scraper, launched lazily under a lock and owned exclusively
by a single connector. Each operation opens its own page and closes it when
done. Images, fonts, stylesheets and media are blocked by default.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from depinconnect.errors import ScraperError, SelectorNotFoundError, is_temporary_error
from depinconnect.resilience.retry import RetryOptions, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
]


@dataclass
class ScraperOptions:
    headless: bool = True
    timeout_ms: int = 30_000
    browser: str = "chromium"
    user_agent: str = DEFAULT_USER_AGENT
    viewport: tuple[int, int] = (1920, 1080)
    block_resources: bool = True
    retries: int = 2
    retry_min_timeout_ms: int = 1_000

    def __post_init__(self) -> None:
        if self.browser not in ("chromium", "firefox", "webkit"):
            raise ValueError(f"unsupported browser: {self.browser}")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")


@dataclass(frozen=True)
class ScrapeResult:
    url: str
    html: str
    text: str
    title: str
    status_code: int | None
    load_time_ms: int


@dataclass(frozen=True)
class LoginSelectors:
    username: str = "input[type='email'], input[name='username']"
    password: str = "input[type='password']"
    submit: str = "button[type='submit']"
    success_indicator: str | None = None


@dataclass(frozen=True)
class LoginResult:
    success: bool
    url: str
    cookies: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class AccessibilityReport:
    url: str
    accessible: bool
    status_code: int | None = None
    load_time_ms: int | None = None
    error: str | None = None


def wrap_playwright_error(error: BaseException, url: str) -> ScraperError:
    """Translate a Playwright failure into a retryable ScraperError."""
    if isinstance(error, ScraperError):
        return error
    message = str(error)
    lowered = message.lower()
    if isinstance(error, (PlaywrightTimeoutError, TimeoutError)) or "timeout" in lowered:
        code = "SCRAPER_TIMEOUT"
    elif "crash" in lowered or "target closed" in lowered:
        code = "SCRAPER_CRASH"
    elif "net::" in lowered or "navigation" in lowered:
        code = "SCRAPER_NAVIGATION_FAILED"
    else:
        code = "SCRAPER_ERROR"
    return ScraperError(
        f"Scraping failed: {message}",
        code=code,
        retryable=True,
        details={"endpoint": url},
    )


class DashboardScraper:
    """
    Playwright-backed dashboard scraper.

    Args:
        options: Browser and retry settings.
        playwright_factory: Returns an async context manager yielding a
            Playwright instance (``async_playwright`` by default).
        retry_policy: Overrides the policy built from ``options``.
    """

    def __init__(
        self,
        options: ScraperOptions | None = None,
        *,
        playwright_factory: Callable[[], Any] = async_playwright,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.options = options or ScraperOptions()
        self._playwright_factory = playwright_factory
        self._retry = retry_policy or RetryPolicy(
            RetryOptions(
                retries=self.options.retries,
                min_timeout_ms=self.options.retry_min_timeout_ms,
                max_timeout_ms=max(self.options.retry_min_timeout_ms, 10_000),
                should_retry=is_temporary_error,
            )
        )
        self._lock = asyncio.Lock()
        self._playwright_cm: Any = None
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._disposed = False

    @property
    def is_launched(self) -> bool:
        return self._browser is not None

    async def _ensure_context(self) -> Any:
        async with self._lock:
            if self._disposed:
                raise ScraperError(
                    "Scraper has been disposed", code="SCRAPER_DISPOSED", retryable=False
                )
            if self._context is not None:
                return self._context

            cm = self._playwright_factory()
            playwright = await cm.__aenter__()
            browser = None
            try:
                launcher = getattr(playwright, self.options.browser)
                launch_args = CHROMIUM_ARGS if self.options.browser == "chromium" else []
                browser = await launcher.launch(headless=self.options.headless, args=launch_args)
                width, height = self.options.viewport
                context = await browser.new_context(
                    user_agent=self.options.user_agent,
                    viewport={"width": width, "height": height},
                )
            except BaseException as exc:
                # Stop the driver so a failed launch leaves nothing running.
                try:
                    if browser is not None:
                        await browser.close()
                finally:
                    await cm.__aexit__(type(exc), exc, exc.__traceback__)
                logger.warning(
                    "Browser launch failed",
                    extra={"browser": self.options.browser, "error": str(exc)},
                )
                raise

            self._playwright_cm = cm
            self._playwright = playwright
            self._browser = browser
            self._context = context
            logger.info(
                "Browser launched",
                extra={"browser": self.options.browser, "headless": self.options.headless},
            )
            return self._context

    async def _block_resources(self, route: Any) -> None:
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    async def _new_page(self) -> Any:
        context = await self._ensure_context()
        page = await context.new_page()
        page.set_default_timeout(self.options.timeout_ms)
        if self.options.block_resources:
            await page.route("**/*", self._block_resources)
        return page

    async def _goto(self, page: Any, url: str) -> tuple[Any, int]:
        started = time.monotonic()
        response = await page.goto(url, wait_until="networkidle", timeout=self.options.timeout_ms)
        return response, int((time.monotonic() - started) * 1000)

    async def scrape(self, url: str, wait_for_selector: str | None = None) -> ScrapeResult:
        """Load ``url`` and return its HTML, visible text and title."""

        async def attempt() -> ScrapeResult:
            page = await self._new_page()
            try:
                response, load_time_ms = await self._goto(page, url)
                if wait_for_selector:
                    await page.wait_for_selector(wait_for_selector, timeout=self.options.timeout_ms)
                return ScrapeResult(
                    url=page.url,
                    html=await page.content(),
                    text=await page.inner_text("body"),
                    title=await page.title(),
                    status_code=response.status if response is not None else None,
                    load_time_ms=load_time_ms,
                )
            except PlaywrightError as exc:
                raise wrap_playwright_error(exc, url) from exc
            finally:
                await page.close()

        return await self._retry.execute(attempt, operation="scrape")

    async def extract_data(
        self,
        url: str,
        selectors: dict[str, str],
        required: list[str] | None = None,
    ) -> dict[str, str | None]:
        """
        Load ``url`` and read the text of each named selector.

        Missing optional selectors map to None. Missing ``required`` ones
        raise SelectorNotFoundError, which is not retried: the page loaded
        but its layout no longer matches.
        """
        required_names = set(required) if required is not None else set(selectors)

        async def attempt() -> dict[str, str | None]:
            page = await self._new_page()
            try:
                await self._goto(page, url)
                values: dict[str, str | None] = {}
                for name, selector in selectors.items():
                    element = await page.query_selector(selector)
                    values[name] = (await element.inner_text()).strip() if element else None
            except PlaywrightError as exc:
                raise wrap_playwright_error(exc, url) from exc
            finally:
                await page.close()

            missing = [
                selectors[name]
                for name in selectors
                if name in required_names and values[name] is None
            ]
            if missing:
                raise SelectorNotFoundError(url, missing)
            return values

        return await self._retry.execute(attempt, operation="extract_data")

    async def login(
        self,
        login_url: str,
        username: str,
        password: str,
        selectors: LoginSelectors | None = None,
    ) -> LoginResult:
        """
        Submit the dashboard login form.

        Session cookies stay in the scraper's browser context, so later
        ``scrape``/``extract_data`` calls are authenticated.
        """
        sel = selectors or LoginSelectors()

        async def attempt() -> LoginResult:
            page = await self._new_page()
            try:
                await self._goto(page, login_url)
                await page.fill(sel.username, username)
                await page.fill(sel.password, password)
                await page.click(sel.submit)
                if sel.success_indicator:
                    try:
                        await page.wait_for_selector(
                            sel.success_indicator, timeout=self.options.timeout_ms
                        )
                    except PlaywrightTimeoutError:
                        return LoginResult(
                            success=False, url=page.url, error="Login was not confirmed"
                        )
                else:
                    await page.wait_for_load_state("networkidle")
                cookies = await page.context.cookies()
                return LoginResult(success=True, url=page.url, cookies=cookies)
            except PlaywrightError as exc:
                raise wrap_playwright_error(exc, login_url) from exc
            finally:
                await page.close()

        result = await self._retry.execute(attempt, operation="login")
        logger.info("Dashboard login finished", extra={"success": result.success, "url": login_url})
        return result

    async def check_accessibility(self, url: str, timeout_ms: int = 10_000) -> AccessibilityReport:
        """Probe ``url`` once. Never raises for navigation failures."""
        page = await self._new_page()
        try:
            started = time.monotonic()
            response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            status = response.status if response is not None else None
            return AccessibilityReport(
                url=url,
                accessible=status is not None and status < 400,
                status_code=status,
                load_time_ms=int((time.monotonic() - started) * 1000),
            )
        except PlaywrightError as exc:
            wrapped = wrap_playwright_error(exc, url)
            return AccessibilityReport(url=url, accessible=False, error=wrapped.message)
        finally:
            await page.close()

    async def scrape_multiple(
        self, urls: list[str], concurrency: int = 3
    ) -> dict[str, ScrapeResult]:
        """
        Scrape ``urls`` in batches of ``concurrency``.

        Returns successes keyed by URL. Raises the first error only when
        every URL failed.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        results: dict[str, ScrapeResult] = {}
        errors: list[BaseException] = []
        for start in range(0, len(urls), concurrency):
            batch = urls[start : start + concurrency]
            outcomes = await asyncio.gather(
                *(self.scrape(u) for u in batch), return_exceptions=True
            )
            for url, outcome in zip(batch, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    errors.append(outcome)
                    logger.warning("Scrape failed", extra={"url": url, "error": str(outcome)})
                else:
                    results[url] = outcome
        if urls and not results:
            raise errors[0]
        return results

    def get_browser_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "launched": self.is_launched,
            "browser": self.options.browser,
            "headless": self.options.headless,
            "disposed": self._disposed,
        }
        if self._browser is not None:
            info["version"] = self._browser.version
        return info

    async def dispose(self) -> None:
        """Close the context, browser and Playwright driver. Idempotent."""
        async with self._lock:
            if self._disposed:
                return
            self._disposed = True
            context, browser, cm = self._context, self._browser, self._playwright_cm
            self._context = self._browser = self._playwright = self._playwright_cm = None
            try:
                if context is not None:
                    await context.close()
                if browser is not None:
                    await browser.close()
            finally:
                if cm is not None:
                    await cm.__aexit__(None, None, None)
            logger.info("Browser disposed", extra={"browser": self.options.browser})
