"""
Browser workload: log in through the real dashboard and watch videos.

Every iteration opens its own browser context and page, registered on
the worker's exit stack so they are closed whatever happens, then walks
through the stages below.  Each stage runs under a retry policy and is
re-executed from the top on a failed attempt; when a stage exhausts its
attempts the error propagates and ends the iteration.

1. Login page: navigate and wait for the form controls.
2. Login: fill the form, click and wait for the next page to settle.
3. Voice-note page: verify the URL login landed on.
4. Landing page: navigate and wait for the intro content.
5. Landing verification: intro text and URL (slower retry).
6. Three education video pages, paused between visits.

Page-load trends record only the navigation up to network idle, not the
waits for individual elements that follow it.

Key Concepts Demonstrated:
- Page Object Model driven from async coroutines
- ``AsyncExitStack`` callbacks for guaranteed page/context cleanup
- Retry around whole stages, verification raising to trigger a retry
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from typing import Any, NamedTuple

from playwright.async_api import Browser
from playwright.async_api import Error as PlaywrightError

from loadharness.config import Config
from loadharness.context import VirtualUserContext
from loadharness.metrics import MetricSink
from loadharness.retry import RetryPolicy
from loadharness.scenarios.metrics import BrowserScenarioMetrics
from loadharness.scenarios.pages import (
    ContentPage,
    LandingPage,
    LoginPage,
    VoiceNotePage,
    normalize_url,
)
from loadharness.steps import Check, ScenarioStep

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 720}

# (display name, query string) of the education videos every worker opens.
VIDEO_PAGES = (
    ("Treatment 7", "treatment-category=2&treatment=7"),
    ("Treatment 1", "treatment-category=3&treatment=1"),
    ("Treatment 15", "treatment-category=4&treatment=15"),
)


class PageState(NamedTuple):
    """What a verification stage read off the page."""

    url: str
    text: str = ""


class BrowserScenario:
    """
    The browser workload, shared by every async worker.

    Args:
        config: Run configuration.
        sink: The run's metric sink.
        browser: A launched Playwright browser; each iteration opens its
            own context on it.
        retry: Policy for every stage but the landing verification.
        verify_retry: Policy for the landing verification.
        sleep: Cooperative sleep taking seconds.
    """

    def __init__(
        self,
        config: type[Config] | Config,
        sink: MetricSink,
        browser: Browser,
        retry: RetryPolicy = RetryPolicy(3, 1000),
        verify_retry: RetryPolicy = RetryPolicy(3, 2000),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.metrics = BrowserScenarioMetrics.declare(sink)
        self.browser = browser
        self.retry = retry
        self.verify_retry = verify_retry
        self.sleep = sleep
        self.origin = config.DASHBOARD_ORIGIN.rstrip("/")
        self.timeout_ms = config.PAGE_TIMEOUT_MS

    async def run(self, ctx: VirtualUserContext, stack: AsyncExitStack) -> None:
        """
        Run one browser iteration for *ctx*.

        Raises:
            StepFailedError: A verification stage kept failing.
            playwright.async_api.Error: A navigation or wait kept failing.
        """
        context = await self.browser.new_context(
            viewport=VIEWPORT, user_agent=self.config.USER_AGENT
        )
        stack.push_async_callback(self._close, ctx, context, "context")
        page = await context.new_page()
        # LIFO: the page is closed before its context.
        stack.push_async_callback(self._close, ctx, page, "page")

        login = LoginPage(page, self.origin, self.timeout_ms)
        voice_note = VoiceNotePage(page, self.origin, self.timeout_ms)
        landing = LandingPage(page, self.origin, self.timeout_ms)
        content = ContentPage(page, self.origin, self.timeout_ms)

        async def open_login(ctx: VirtualUserContext) -> float:
            elapsed = await login.navigate()
            logger.info("[VU %d] Login page load time: %d ms", ctx.index, elapsed)
            self.metrics.login_page_load.add(elapsed, {"vu": str(ctx.index)})
            await login.wait_until_ready()
            return elapsed

        async def submit_login(ctx: VirtualUserContext) -> float:
            elapsed = await login.login(ctx.user.email, ctx.user.password)
            logger.info("[VU %d] Voice note page load time: %d ms", ctx.index, elapsed)
            self.metrics.voice_note_page_load.add(elapsed, {"vu": str(ctx.index)})
            return elapsed

        async def read_voice_note(ctx: VirtualUserContext) -> PageState:
            await voice_note.wait_for_page_load()
            return PageState(url=voice_note.current_url)

        async def open_landing(ctx: VirtualUserContext) -> float:
            elapsed = await landing.navigate()
            logger.info("[VU %d] Landing page load time: %d ms", ctx.index, elapsed)
            self.metrics.landing_page_load.add(elapsed, {"vu": str(ctx.index)})
            await landing.wait_for_content()
            return elapsed

        async def read_landing(ctx: VirtualUserContext) -> PageState:
            return PageState(url=landing.current_url, text=await landing.intro_text())

        await self._stage(ctx, ScenarioStep(name="Login Page Load", action=open_login))
        await self._stage(ctx, ScenarioStep(name="Login", action=submit_login))
        await self._stage(
            ctx,
            ScenarioStep(
                name="Verify Voice Note Page",
                action=read_voice_note,
                checks=(
                    Check(
                        "Voice note page URL is correct",
                        lambda state: normalize_url(state.url) == voice_note.url,
                    ),
                ),
                required=True,
            ),
        )

        await self.sleep(1)

        await self._stage(ctx, ScenarioStep(name="Landing Page Load", action=open_landing))
        await self._stage(
            ctx,
            ScenarioStep(
                name="Verify Landing Page",
                action=read_landing,
                checks=(
                    Check(
                        "Landing page text is present",
                        lambda state: state.text == LandingPage.EXPECTED_INTRO,
                    ),
                    Check(
                        "Landing page URL is correct",
                        lambda state: normalize_url(state.url) == landing.url,
                    ),
                ),
                required=True,
            ),
            self.verify_retry,
        )

        for position, (name, query) in enumerate(VIDEO_PAGES):
            await self._stage(ctx, self._video_step(content, name, query))
            if position < len(VIDEO_PAGES) - 1:
                logger.info(
                    "[VU %d] Waiting %s seconds before next page...",
                    ctx.index,
                    self.config.VIDEO_PAGE_PAUSE,
                )
                await self.sleep(self.config.VIDEO_PAGE_PAUSE)

    def _video_step(self, content: ContentPage, name: str, query: str) -> ScenarioStep:
        async def open_video(ctx: VirtualUserContext) -> PageState:
            elapsed = await content.navigate_to(content.url_for(query))
            logger.info("[VU %d] %s page load time: %d ms", ctx.index, name, elapsed)
            self.metrics.video_playback_page_load.add(
                elapsed, {"vu": str(ctx.index), "page": name}
            )
            return PageState(url=content.current_url)

        # Recorded as a check only; a wrong URL does not retry the visit.
        return ScenarioStep(
            name=f"{name} Page Load",
            action=open_video,
            checks=(Check(f"{name} page loaded correctly", lambda state: query in state.url),),
        )

    async def _stage(
        self,
        ctx: VirtualUserContext,
        step: ScenarioStep,
        policy: RetryPolicy | None = None,
    ) -> None:
        policy = policy or self.retry
        await policy.arun(lambda: step.aexecute(ctx), sleep=self.sleep)

    async def _close(self, ctx: VirtualUserContext, resource: Any, label: str) -> None:
        try:
            await resource.close()
        except PlaywrightError as exc:
            logger.warning("[VU %d] Error closing browser %s: %s", ctx.index, label, exc)
