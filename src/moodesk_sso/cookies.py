"""Attempt-scoped cookie handling.

The login replay does not share the HTTP client's cookie storage, so cookies
are carried by hand: every response's ``Set-Cookie`` values are appended
under the response hostname and sent back as a single ``Cookie`` header.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import httpx

from .config import DEFAULT_COOKIE_FILE

logger = logging.getLogger(__name__)


def parent_domain(hostname: str) -> str | None:
    """Return the last two labels as a cookie domain, e.g. ``.ukm.my``.

    No public suffix list: ``x.ukm.edu.my`` gives ``.edu.my``.
    """
    parts = hostname.split(".")
    if len(parts) < 2:
        return None
    return "." + ".".join(parts[-2:])


@dataclass
class AmbientCookieStore:
    """Cookies from an already-authenticated browser session.

    Maps a cookie domain (``sso.ukm.my`` or ``.ukm.my``) to name/value
    pairs. Only read during a login attempt.
    """

    cookies: dict[str, dict[str, str]] = field(default_factory=dict)

    def get_all(self, domain: str) -> dict[str, str]:
        return self.cookies.get(domain, {})

    def header_for(self, hostname: str) -> str:
        """Cookie header for a host, falling back to its parent domain."""
        found = self.get_all(hostname)
        if not found:
            parent = parent_domain(hostname)
            if parent:
                found = self.get_all(parent)
        return "; ".join(f"{name}={value}" for name, value in found.items())

    def save(self, path: Path = DEFAULT_COOKIE_FILE) -> None:
        """Save cookies to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"cookies": self.cookies}, indent=2))

    @classmethod
    def load(cls, path: Path = DEFAULT_COOKIE_FILE) -> "AmbientCookieStore":
        """Load cookies from file, or an empty store if unavailable."""
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text())
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable cookie file %s", path)
            return cls()

        cookies = data.get("cookies") if isinstance(data, dict) else None
        if not isinstance(cookies, dict) or not all(
            isinstance(pairs, dict) and all(isinstance(v, str) for v in pairs.values())
            for pairs in cookies.values()
        ):
            logger.warning("Ignoring cookie file %s: expected {\"cookies\": {domain: {name: value}}}", path)
            return cls()
        return cls(cookies=cookies)


class CookieJar:
    """Per-hostname accumulation of cookies for one login attempt.

    No dedup and no expiry: entries live only as long as the attempt.
    Not safe to share between attempts for different sites.
    """

    def __init__(self, ambient: AmbientCookieStore | None = None):
        self.ambient = ambient or AmbientCookieStore()
        self._store: dict[str, str] = {}

    def merge(self, hostname: str, set_cookie: str) -> None:
        """Append ``name=value`` pairs from a Set-Cookie value."""
        new_cookies = "; ".join(c.split(";")[0].strip() for c in set_cookie.split(","))
        if not new_cookies:
            return
        existing = self._store.get(hostname, "")
        self._store[hostname] = f"{existing}; {new_cookies}" if existing else new_cookies

    def merge_response(self, url: str, response: httpx.Response) -> None:
        """Merge all Set-Cookie headers of a response under the URL's host."""
        hostname = urlparse(url).hostname or ""
        for value in response.headers.get_list("set-cookie"):
            self.merge(hostname, value)

    def get(self, hostname: str) -> str:
        return self._store.get(hostname, "")

    def clear(self) -> None:
        self._store.clear()

    def cookie_header(self, url: str) -> str:
        """Cookie header for a request: ambient cookies then attempt cookies."""
        hostname = urlparse(url).hostname or ""
        ambient = self.ambient.header_for(hostname)
        local = self.get(hostname)
        if ambient and local:
            return f"{ambient}; {local}"
        return ambient or local
