"""
Unit tests for the browser workload with a scripted Playwright stand-in.

Key Concepts Demonstrated:
- Driving async page objects without a real browser
- Stage retries and guaranteed page/context cleanup
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack

import pytest
from playwright.async_api import Error as PlaywrightError

from loadharness.errors import StepFailedError
from loadharness.retry import RetryPolicy
from loadharness.scenarios.browser_flow import VIDEO_PAGES, VIEWPORT, BrowserScenario
from tests.fakes import DASHBOARD_ORIGIN as ORIGIN
from tests.fakes import READY_TEXTS, FakeBrowser, FakePage, FakeSleep

pytestmark = pytest.mark.unit


def _scenario(config, sink, browser, sleep):
    return BrowserScenario(
        config,
        sink,
        browser,
        retry=RetryPolicy(3, 0),
        verify_retry=RetryPolicy(3, 0),
        sleep=sleep,
    )


def _run(scenario, ctx):
    async def iteration():
        async with AsyncExitStack() as stack:
            await scenario.run(ctx, stack)

    asyncio.run(iteration())


def test_successful_iteration_records_every_page(config, sink, make_ctx):
    # Arrange
    pages = []

    def page_factory():
        page = FakePage(ORIGIN, READY_TEXTS)
        pages.append(page)
        return page

    browser = FakeBrowser(page_factory)
    sleep = FakeSleep()
    ctx = make_ctx()

    # Act
    _run(_scenario(config, sink, browser, sleep), ctx)

    # Assert
    snapshot = sink.snapshot()
    assert len(snapshot.values("login_page_load")) == 1
    assert len(snapshot.values("voice_note_page_load")) == 1
    assert len(snapshot.values("landing_page_load")) == 1
    assert len(snapshot.values("video_playback_page_load")) == 3
    assert snapshot.values("checks", check="Landing page text is present") == [1.0]
    assert browser.closed_log == ["page", "context"]
    assert sleep.calls == [1, 0, 0]

    page = pages[0]
    assert page.filled == {"#inp_email": ctx.user.email, "#inp_password": ctx.user.password}
    visited = [url for event, url in page.events if event == "goto"]
    assert visited[:2] == [f"{ORIGIN}/", f"{ORIGIN}/landing"]
    assert visited[2:] == [f"{ORIGIN}/content/?{query}" for _, query in VIDEO_PAGES]
    assert browser.contexts[0].options["viewport"] == VIEWPORT


def test_video_trend_is_tagged_per_page(config, sink, make_ctx):
    browser = FakeBrowser(lambda: FakePage(ORIGIN, READY_TEXTS))

    _run(_scenario(config, sink, browser, FakeSleep()), make_ctx())

    assert len(sink.snapshot().values("video_playback_page_load", page="Treatment 15")) == 1


def test_wrong_landing_text_fails_after_retries(config, sink, make_ctx):
    # Arrange
    texts = {**READY_TEXTS, "h4.intro-subtxt": "Maintenance"}
    browser = FakeBrowser(lambda: FakePage(ORIGIN, texts))

    # Act
    with pytest.raises(StepFailedError) as exc_info:
        _run(_scenario(config, sink, browser, FakeSleep()), make_ctx())

    # Assert
    assert exc_info.value.step == "Verify Landing Page"
    assert sink.snapshot().values("checks", check="Landing page text is present") == [0.0] * 3
    assert sink.snapshot().values("video_playback_page_load") == []
    assert browser.closed_log == ["page", "context"]


def test_login_landing_elsewhere_fails_verification(config, sink, make_ctx):
    def page_factory():
        page = FakePage(ORIGIN, READY_TEXTS)
        page.login_redirect = f"{ORIGIN}/two-factor"
        return page

    browser = FakeBrowser(page_factory)

    with pytest.raises(StepFailedError) as exc_info:
        _run(_scenario(config, sink, browser, FakeSleep()), make_ctx())

    assert exc_info.value.step == "Verify Voice Note Page"
    assert sink.snapshot().values("landing_page_load") == []


def test_flaky_navigation_is_retried(config, sink, make_ctx):
    # Arrange
    failures = {"remaining": 1}

    def goto_error(url):
        if url.endswith("/landing") and failures["remaining"]:
            failures["remaining"] -= 1
            return PlaywrightError("net::ERR_CONNECTION_RESET")
        return None

    browser = FakeBrowser(lambda: FakePage(ORIGIN, READY_TEXTS, goto_error=goto_error))

    # Act
    _run(_scenario(config, sink, browser, FakeSleep()), make_ctx())

    # Assert
    assert len(sink.snapshot().values("landing_page_load")) == 1
    assert len(sink.snapshot().values("video_playback_page_load")) == 3


def test_persistent_navigation_error_propagates_after_cleanup(config, sink, make_ctx):
    browser = FakeBrowser(
        lambda: FakePage(ORIGIN, READY_TEXTS, goto_error=lambda url: PlaywrightError("timeout"))
    )

    with pytest.raises(PlaywrightError):
        _run(_scenario(config, sink, browser, FakeSleep()), make_ctx())

    assert browser.closed_log == ["page", "context"]


class StubbornPage(FakePage):
    async def close(self) -> None:
        raise PlaywrightError("Target page, context or browser has been closed")


def test_close_errors_are_logged_not_raised(config, sink, make_ctx, caplog):
    browser = FakeBrowser(lambda: StubbornPage(ORIGIN, READY_TEXTS))

    with caplog.at_level(logging.WARNING, logger="loadharness.scenarios.browser_flow"):
        _run(_scenario(config, sink, browser, FakeSleep()), make_ctx())

    assert browser.closed_log == ["page", "context"]
    assert "Error closing browser page" in caplog.text
