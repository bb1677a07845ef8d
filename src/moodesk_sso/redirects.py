"""Manual redirect following.

httpx cannot follow a redirect into ``moodlemobile://``, so the chain is
walked one hop at a time with redirects disabled. The walk stops as soon as
a custom-scheme ``Location`` shows up and returns it without requesting it.
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import httpx

from .config import CUSTOM_SCHEME, DEFAULT_USER_AGENT
from .cookies import CookieJar

logger = logging.getLogger(__name__)


@dataclass
class WalkResult:
    """Outcome of a redirect walk."""

    response: httpx.Response
    final_url: str | None = None
    hops: int = 0

    @property
    def location(self) -> str | None:
        return self.response.headers.get("location")


class RedirectWalker:
    """Send requests through the attempt's cookie jar, one hop at a time.

    The jar is wired into the client's event hooks, so every request gets a
    fresh ``Cookie`` header and every response's ``Set-Cookie`` is recorded.
    That includes hops httpx follows on its own, which drop hand-set cookies.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        jar: CookieJar,
        scheme: str = CUSTOM_SCHEME,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.client = client
        self.jar = jar
        self.scheme = scheme
        self.user_agent = user_agent
        self.attach(client)

    def attach(self, client: httpx.AsyncClient) -> None:
        hooks = client.event_hooks
        hooks.setdefault("request", []).append(self.add_cookies)
        hooks.setdefault("response", []).append(self.record_cookies)
        client.event_hooks = hooks

    def detach(self, client: httpx.AsyncClient) -> None:
        hooks = client.event_hooks
        hooks["request"] = [h for h in hooks.get("request", []) if h != self.add_cookies]
        hooks["response"] = [h for h in hooks.get("response", []) if h != self.record_cookies]
        client.event_hooks = hooks

    async def add_cookies(self, request: httpx.Request) -> None:
        """Request hook: send ambient plus attempt cookies for the request host."""
        cookie = self.jar.cookie_header(str(request.url))
        if cookie:
            request.headers["Cookie"] = cookie
        elif "Cookie" in request.headers:
            del request.headers["Cookie"]

    async def record_cookies(self, response: httpx.Response) -> None:
        """Response hook: merge Set-Cookie under the responding host."""
        self.jar.merge_response(str(response.request.url), response)

    def headers_for(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        """Browser-like request headers."""
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }
        if extra:
            headers.update(extra)
        return headers

    async def send(
        self,
        url: str,
        method: str = "GET",
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        follow_redirects: bool = False,
    ) -> httpx.Response:
        """Send one request. Cookies are handled by the client hooks."""
        return await self.client.request(
            method,
            url,
            data=data,
            headers=self.headers_for(headers),
            follow_redirects=follow_redirects,
        )

    async def follow(
        self,
        url: str,
        method: str = "GET",
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        max_hops: int = 10,
    ) -> WalkResult:
        """Follow redirects by hand, up to ``max_hops`` requests.

        Only the first hop carries ``method`` and ``data``; later hops are
        GETs. Exceeding the cap is not an error: the last response comes back
        with ``final_url=None``.

        Returns:
            WalkResult with the custom-scheme URL in ``final_url`` when found.
        """
        if max_hops < 1:
            raise ValueError(f"max_hops must be at least 1, got {max_hops}")

        current_url = url
        for hop in range(max_hops):
            response = await self.send(current_url, method=method, data=data, headers=headers)
            location = response.headers.get("location")
            logger.debug("Hop %d: %s -> %s", hop + 1, response.status_code, location)

            if not location:
                return WalkResult(response=response, hops=hop + 1)

            if location.startswith(self.scheme):
                logger.info("Custom-scheme redirect reached after %d hop(s)", hop + 1)
                return WalkResult(response=response, final_url=location, hops=hop + 1)

            current_url = urljoin(current_url, location)
            method, data, headers = "GET", None, None

        logger.info("Redirect hop cap of %d reached at %s", max_hops, current_url)
        return WalkResult(response=response, hops=max_hops)
