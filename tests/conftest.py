"""Pytest fixtures for SSO flow tests."""

from typing import Callable

import httpx
import pytest

from moodesk_sso.config import ProviderConfig, SsoSettings
from moodesk_sso.cookies import AmbientCookieStore
from moodesk_sso.orchestrator import SsoLoginOrchestrator

MOODLE = "https://ukmfolio.ukm.my"
IDP = "https://sso.ukm.my"
LAUNCH_URL = (
    f"{MOODLE}/admin/tool/mobile/launch.php"
    "?service=moodle_mobile_app&passport=123.4567890&urlscheme=moodlemobile"
)
LOGIN_PAGE_URL = f"{IDP}/module.php/core/loginuserpass.php"
LOGIN_ENDPOINT = LOGIN_PAGE_URL
ACS_URL = f"{MOODLE}/auth/saml2/sp/saml2-acs.php/ukmfolio"

# base64("ABC:::XYZ:::sig")
TOKEN_B64 = "QUJDOjo6WFlaOjo6c2ln"
TOKEN_URL = f"moodlemobile://token={TOKEN_B64}"

LOGIN_PAGE = """
<html><body>
<h1>Enter your username and password</h1>
<form action="?" method="post" name="f">
  <input id="username" type="text" name="username" value="">
  <input id="password" type="password" name="password">
  <input type="hidden" name="AuthState" value="_8f2c1a&amp;http://ukmfolio.ukm.my/saml">
  <button type="submit" name="submit">Login</button>
</form>
</body></html>
"""

SAML_PAGE = f"""
<html><body onload="document.forms[0].submit()">
<form method="post" action="{ACS_URL}">
  <input type="hidden" name="SAMLResponse" value="PHNhbWxwOlJlc3BvbnNlPg&#x3D;&#x3D;">
  <input type="hidden" name="RelayState" value="{MOODLE}/auth/saml2/login.php?wants&amp;passive=off">
  <noscript><button type="submit">Submit</button></noscript>
</form>
</body></html>
"""

Handler = Callable[[httpx.Request], httpx.Response]


class FakeServer:
    """Routes requests for httpx.MockTransport and records them.

    Routes are keyed by method and URL without query string. Requests for a
    non-HTTP scheme fail the way a real transport does.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, status: int = 200, text: str = "", headers=None) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text=text, headers=headers or {})

        self.routes[(method, url)] = respond

    def redirect(self, method: str, url: str, location: str, status: int = 302, headers=None) -> None:
        self.add(method, url, status=status, headers={"location": location, **(headers or {})})

    def add_handler(self, method: str, url: str, handler) -> None:
        self.routes[(method, url)] = handler

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        if request.url.scheme not in ("http", "https"):
            raise httpx.UnsupportedProtocol(
                f"Request URL has an unsupported protocol '{request.url.scheme}://'",
                request=request,
            )
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)

    def requested(self, method: str, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and str(r.url).startswith(url)]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def settings() -> SsoSettings:
    return SsoSettings(capture_timeout=0.2, attempt_timeout=5.0)


@pytest.fixture
def provider() -> ProviderConfig:
    return ProviderConfig(login_endpoint=LOGIN_ENDPOINT)


@pytest.fixture
def orchestrator(server, settings) -> SsoLoginOrchestrator:
    return SsoLoginOrchestrator(settings, AmbientCookieStore(), server.transport)


@pytest.fixture
def idp_flow(server) -> FakeServer:
    """A complete happy-path SSO deployment."""
    server.redirect("GET", f"{MOODLE}/admin/tool/mobile/launch.php", f"{MOODLE}/auth/saml2/login.php", 303)
    server.redirect("GET", f"{MOODLE}/auth/saml2/login.php", f"{LOGIN_PAGE_URL}?AuthState=_8f2c1a", 302)
    server.add(
        "GET",
        LOGIN_PAGE_URL,
        text=LOGIN_PAGE,
        headers={"set-cookie": "SimpleSAMLSessionID=sess1; path=/; secure; HttpOnly"},
    )
    server.add("POST", LOGIN_ENDPOINT, text=SAML_PAGE, headers={"set-cookie": "SimpleSAMLAuthToken=auth1; path=/"})
    server.redirect("POST", ACS_URL, TOKEN_URL, 303, headers={"set-cookie": "MoodleSession=m1; path=/"})
    return server
