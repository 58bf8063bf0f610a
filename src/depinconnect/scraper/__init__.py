"""Dashboard scraping fallback."""

from depinconnect.scraper.browser import (
    AccessibilityReport,
    DashboardScraper,
    LoginResult,
    LoginSelectors,
    ScrapeResult,
    ScraperOptions,
    wrap_playwright_error,
)
from depinconnect.scraper.parsing import parse_int, parse_number

__all__ = [
    "AccessibilityReport",
    "DashboardScraper",
    "LoginResult",
    "LoginSelectors",
    "ScrapeResult",
    "ScraperOptions",
    "parse_int",
    "parse_number",
    "wrap_playwright_error",
]
