"""Out-of-band capture of custom-scheme redirects.

A response hook on the HTTP client watches every response, including the
intermediate hops httpx follows on its own, and hands any
``moodlemobile://`` redirect target to a broker. The login flow awaits the
broker with a timeout, racing it against its own redirect walk.
"""

import asyncio
import logging
from fnmatch import fnmatch

import httpx

from .config import CUSTOM_SCHEME, DEFAULT_ALLOWED_HOSTS

logger = logging.getLogger(__name__)


class RedirectCaptureBroker:
    """Single-slot mailbox turning redirect notifications into an awaitable.

    Holds at most one buffered URL and at most one waiter. A URL published
    before anyone waits is kept for the next waiter; a URL published while a
    waiter is pending is delivered to it exactly once. One broker belongs to
    one login attempt.
    """

    def __init__(self):
        self._captured: str | None = None
        self._waiter: asyncio.Future | None = None
        self._closed = False

    @property
    def captured(self) -> str | None:
        return self._captured

    def publish(self, url: str) -> None:
        """Deliver a URL to the pending waiter, or buffer it."""
        if self._closed:
            logger.debug("Dropping capture on closed broker")
            return
        waiter = self._waiter
        self._waiter = None
        if waiter is not None and not waiter.done():
            self._captured = None
            waiter.set_result(url)
        else:
            self._captured = url

    async def wait_for_capture(self, timeout: float) -> str | None:
        """Wait up to ``timeout`` seconds for a captured URL.

        Returns immediately when a URL is already buffered. On timeout the
        waiter is cleared (if it is still ours) and ``None`` is returned.
        """
        if self._captured is not None:
            url, self._captured = self._captured, None
            return url

        waiter = asyncio.get_running_loop().create_future()
        self._waiter = waiter
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            if self._waiter is waiter:
                self._waiter = None

    def reset(self) -> None:
        """Forget any buffered URL."""
        self._captured = None

    def close(self) -> None:
        """Stop accepting captures; later publications are dropped."""
        self._closed = True
        self._captured = None
        self._waiter = None


class OutOfBandRedirectObserver:
    """httpx response hook that publishes custom-scheme redirects.

    Only responses from allow-listed hosts are considered. Patterns are
    shell-style; ``*.ukm.my`` also matches ``ukm.my`` itself.
    """

    def __init__(
        self,
        broker: RedirectCaptureBroker,
        allowed_hosts: tuple[str, ...] = DEFAULT_ALLOWED_HOSTS,
        scheme: str = CUSTOM_SCHEME,
    ):
        self.broker = broker
        self.allowed_hosts = allowed_hosts
        self.scheme = scheme

    def is_allowed(self, host: str) -> bool:
        for pattern in self.allowed_hosts:
            if fnmatch(host, pattern):
                return True
            if pattern.startswith("*.") and host == pattern[2:]:
                return True
        return False

    async def __call__(self, response: httpx.Response) -> None:
        location = response.headers.get("location", "")
        if not location.startswith(self.scheme):
            return
        host = response.request.url.host
        if not self.is_allowed(host):
            logger.debug("Ignoring custom-scheme redirect from %s", host)
            return
        logger.info("Observed custom-scheme redirect from %s", host)
        self.broker.publish(location)

    def attach(self, client: httpx.AsyncClient) -> None:
        hooks = client.event_hooks
        hooks.setdefault("response", []).append(self)
        client.event_hooks = hooks

    def detach(self, client: httpx.AsyncClient) -> None:
        hooks = client.event_hooks
        hooks["response"] = [hook for hook in hooks.get("response", []) if hook is not self]
        client.event_hooks = hooks
