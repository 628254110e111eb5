"""
Thin wrapper over the worker's HTTP session.

Virtual users talk HTTP through a ``requests.Session``-compatible
client.  Under Locust that client is ``locust.clients.HttpSession``,
which also accepts a ``name=`` keyword used to group statistics for
URLs that embed ids; a plain ``requests.Session`` rejects it.  The
:class:`Transport` hides that difference and applies the run's default
timeout.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

import requests


class HttpClient(Protocol):
    """The subset of ``requests.Session`` the harness relies on."""

    cookies: Any

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response: ...


class Transport:
    """
    HTTP capability handed to scenario steps.

    Args:
        client: A ``requests.Session`` or Locust ``HttpSession``.
        timeout: Default timeout in seconds for every request.
        pass_names: Forward ``name=`` to the client (Locust only).
    """

    def __init__(self, client: HttpClient, timeout: float = 60, pass_names: bool = False):
        self.client = client
        self.timeout = timeout
        self.pass_names = pass_names

    def request(
        self,
        method: str,
        url: str,
        *,
        name: str | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        if self.pass_names and name:
            kwargs["name"] = name
        return self.client.request(method, url, headers=dict(headers or {}), **kwargs)

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def options(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("OPTIONS", url, **kwargs)

    def reset_cookies(self) -> None:
        """Drop every cookie so a new iteration starts logged out."""
        self.client.cookies.clear()
