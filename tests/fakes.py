"""
Stand-ins for the HTTP transport and the Playwright browser.

The fakes record every call so tests can assert on URLs, headers and
ordering without a network or a real browser.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any


class FakeResponse:
    """The subset of ``requests.Response`` the harness reads."""

    def __init__(
        self,
        status_code: int = 200,
        text: str = "",
        json_body: Any = None,
        cookies: dict[str, str] | None = None,
        url: str = "",
    ):
        self.status_code = status_code
        self.text = text
        self._json = json_body
        self.cookies = dict(cookies or {})
        self.url = url
        self.headers = {"Content-Type": "application/json"}

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeTransport:
    """
    Answers requests from a route table.

    Each route is ``(method, url_fragment, response)`` where *response*
    is a :class:`FakeResponse`, an exception instance to raise, or a
    callable taking ``(method, url, kwargs)``.  The first route whose
    method matches and whose fragment occurs in the URL wins; unmatched
    requests get an empty 200.
    """

    def __init__(self, routes: list[tuple[str, str, Any]] | None = None):
        self.routes = list(routes or [])
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.cookie_resets = 0

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        for route_method, fragment, answer in self.routes:
            if route_method == method and fragment in url:
                if isinstance(answer, BaseException):
                    raise answer
                if callable(answer):
                    return answer(method, url, kwargs)
                return answer
        return FakeResponse(200, url=url)

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("POST", url, **kwargs)

    def options(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("OPTIONS", url, **kwargs)

    def reset_cookies(self) -> None:
        self.cookie_resets += 1

    def urls(self, method: str | None = None) -> list[str]:
        return [url for call_method, url, _ in self.calls if method in (None, call_method)]


# -----------------------------------------------------------------------------
# Playwright stand-ins
# -----------------------------------------------------------------------------

class FakeLocator:
    def __init__(self, page: FakePage, selector: str):
        self.page = page
        self.selector = selector

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        self.page.events.append(("wait_for", self.selector))

    async def fill(self, value: str) -> None:
        self.page.filled[self.selector] = value

    async def click(self) -> None:
        self.page.events.append(("click", self.selector))
        if self.selector == "#btn_login":
            self.page.url = self.page.login_redirect

    async def is_visible(self) -> bool:
        return self.selector in self.page.texts

    async def text_content(self) -> str | None:
        return self.page.texts.get(self.selector)


class FakePage:
    """
    Records navigations and serves canned element text.

    Args:
        origin: Dashboard origin the page navigates within.
        texts: Selector to text content; selectors absent here are not
            visible.
        goto_error: Optional callable deciding, per URL, whether
            ``goto`` raises.
    """

    def __init__(
        self,
        origin: str,
        texts: dict[str, str] | None = None,
        goto_error: Callable[[str], BaseException | None] | None = None,
    ):
        self.origin = origin
        self.url = "about:blank"
        self.login_redirect = f"{origin}/voice-note/"
        self.texts = dict(texts or {})
        self.goto_error = goto_error
        self.filled: dict[str, str] = {}
        self.events: list[tuple[str, str]] = []
        self.closed = False

    async def goto(self, url: str, timeout: float | None = None) -> None:
        self.events.append(("goto", url))
        if self.goto_error is not None:
            error = self.goto_error(url)
            if error is not None:
                raise error
        self.url = url

    async def wait_for_load_state(self, state: str = "load") -> None:
        self.events.append(("load_state", state))

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    @asynccontextmanager
    async def expect_navigation(self, wait_until: str = "load", timeout: float | None = None):
        yield
        self.events.append(("navigated", self.url))

    async def close(self) -> None:
        self.closed = True
        self.events.append(("close", "page"))


class FakeContext:
    def __init__(self, page: FakePage, closed_log: list[str]):
        self.page = page
        self.closed_log = closed_log
        self.options: dict[str, Any] = {}

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed_log.append("context")


class FakeBrowser:
    """Hands out a fresh :class:`FakePage` per context from *page_factory*."""

    def __init__(self, page_factory: Callable[[], FakePage]):
        self.page_factory = page_factory
        self.contexts: list[FakeContext] = []
        self.closed_log: list[str] = []

    async def new_context(self, **options: Any) -> FakeContext:
        page = self.page_factory()
        original_close = page.close

        async def close_page() -> None:
            self.closed_log.append("page")
            await original_close()

        page.close = close_page
        context = FakeContext(page, self.closed_log)
        context.options = options
        self.contexts.append(context)
        return context


class FakeSleep:
    """Async sleep that only records the requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


DASHBOARD_ORIGIN = "http://dashboard.test"

# Element text of a dashboard that renders every control the browser flow waits for.
READY_TEXTS = {
    "#inp_email": "",
    "#inp_password": "",
    "#btn_login": "Log in",
    ".intro-headings": "Welcome",
    "h4.intro-subtxt": "  What condition are we treating today?  ",
}
