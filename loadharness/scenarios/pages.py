"""
Page objects for the browser workload.

Each dashboard page the browser scenario visits gets a small class that
owns its locators and the actions a user performs on it.  Navigation
methods return the elapsed wall-clock time in milliseconds, measured
from the navigation request until the network goes idle, which is what
the page-load trends record.

Key Concepts Demonstrated:
- Base class pattern for code reuse
- Locator strategies (ids and CSS classes of the real dashboard)
- Timing a navigation up to ``networkidle``
"""

from __future__ import annotations

import time

from playwright.async_api import Locator, Page


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def normalize_url(url: str) -> str:
    """Drop a trailing slash so ``/landing/`` and ``/landing`` compare equal."""
    return url.rstrip("/")


class BasePage:
    """
    Base class for all page objects.

    Attributes:
        page: Playwright page instance.
        base_url: Dashboard origin.
        timeout_ms: Navigation timeout in milliseconds.
    """

    URL_PATH = "/"

    def __init__(self, page: Page, base_url: str, timeout_ms: int = 30000):
        self.page = page
        self.base_url = base_url.rstrip("/")
        self.timeout_ms = timeout_ms

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.URL_PATH}"

    @property
    def current_url(self) -> str:
        return self.page.url

    async def navigate_to(self, url: str) -> float:
        """
        Open *url* and wait for the network to go idle.

        Returns:
            Elapsed milliseconds.
        """
        started = time.perf_counter()
        await self.page.goto(url, timeout=self.timeout_ms)
        await self.wait_for_page_load()
        return _elapsed_ms(started)

    async def navigate(self) -> float:
        return await self.navigate_to(self.url)

    async def wait_for_page_load(self) -> None:
        await self.page.wait_for_load_state("networkidle")

    async def wait_for_element(self, locator: Locator, timeout: int = 10000) -> None:
        await locator.wait_for(state="visible", timeout=timeout)

    def is_at(self, url: str | None = None) -> bool:
        """True when the current URL equals *url* (default: this page)."""
        return normalize_url(self.current_url) == normalize_url(url or self.url)


class LoginPage(BasePage):
    """The dashboard root, which shows the login form."""

    URL_PATH = "/"

    @property
    def email_input(self) -> Locator:
        return self.page.locator("#inp_email")

    @property
    def password_input(self) -> Locator:
        return self.page.locator("#inp_password")

    @property
    def submit_button(self) -> Locator:
        return self.page.locator("#btn_login")

    async def wait_until_ready(self) -> None:
        """Wait for every login form control to be visible."""
        await self.wait_for_element(self.email_input)
        await self.wait_for_element(self.password_input)
        await self.wait_for_element(self.submit_button)

    async def login(self, email: str, password: str) -> float:
        """
        Submit the login form.

        Returns:
            Milliseconds from the click until the page the login lands on
            has gone network idle.
        """
        await self.email_input.fill(email)
        await self.password_input.fill(password)
        started = time.perf_counter()
        async with self.page.expect_navigation(wait_until="networkidle", timeout=self.timeout_ms):
            await self.submit_button.click()
        return _elapsed_ms(started)


class VoiceNotePage(BasePage):
    """Where a successful login lands."""

    URL_PATH = "/voice-note"


class LandingPage(BasePage):
    """Condition picker shown at ``/landing``."""

    URL_PATH = "/landing"
    EXPECTED_INTRO = "What condition are we treating today?"

    @property
    def intro_headings(self) -> Locator:
        return self.page.locator(".intro-headings")

    @property
    def intro_subtext(self) -> Locator:
        return self.page.locator("h4.intro-subtxt")

    async def wait_for_content(self) -> None:
        await self.wait_for_element(self.intro_headings, timeout=20000)
        await self.wait_for_element(self.intro_subtext, timeout=20000)

    async def intro_text(self) -> str:
        """Return the intro sentence, or an empty string while it is hidden."""
        if not await self.intro_subtext.is_visible():
            return ""
        return ((await self.intro_subtext.text_content()) or "").strip()


class ContentPage(BasePage):
    """An education content (video) page selected by query string."""

    URL_PATH = "/content/"

    def url_for(self, query: str) -> str:
        return f"{self.url}?{query}"
