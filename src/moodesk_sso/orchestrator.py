"""SAML SSO login replay for the Moodle mobile token.

Flow (SimpleSAMLphp identity provider in front of Moodle):

1. GET the mobile launch URL, letting httpx follow redirects to the login
   page (or straight to a token when the user is already signed in).
2. Scrape the AuthState hidden field.
3. POST credentials plus AuthState to the identity provider.
4. Scrape the auto-submit SAMLResponse form.
5. POST it to Moodle's assertion consumer and race two ways of seeing the
   ``moodlemobile://?token=...`` redirect: our own hop-by-hop walk, and the
   response hook watching everything the client receives.
6. Decode the base64 composite token.

Every attempt gets a fresh HTTP client, cookie jar and capture broker.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from http.cookiejar import CookieJar as HttpCookieJar
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Awaitable, Callable
from urllib.parse import urljoin

import httpx

from .capture import OutOfBandRedirectObserver, RedirectCaptureBroker
from .config import ProviderConfig, SsoSettings
from .cookies import AmbientCookieStore, CookieJar
from .exceptions import (
    InvalidCredentialsError,
    InvalidSettingsError,
    LoginTimeoutError,
    MalformedTokenError,
    MissingAuthStateError,
    MissingSamlResponseError,
    SsoError,
    SsoNetworkError,
    TokenCaptureTimeoutError,
)
from .forms import FormData, extract_auth_state, extract_form, extract_meta_refresh
from .redirects import RedirectWalker
from .tokens import build_launch_url, decode_service_token, find_token

logger = logging.getLogger(__name__)

SUBMIT_LABEL = "Sign in"


class LoginState(str, Enum):
    START = "start"
    LAUNCHED = "launched"
    AUTHSTATE_FOUND = "authstate_found"
    CREDENTIALS_SUBMITTED = "credentials_submitted"
    SAML_RESPONSE_FOUND = "saml_response_found"
    TOKEN_CAPTURING = "token_capturing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class LoginResult:
    """Outcome of one login attempt."""

    success: bool
    token: str | None = None
    error: str | None = None
    reason: str | None = None
    needs_login: bool = False
    state: LoginState = LoginState.START

    def to_dict(self) -> dict[str, Any]:
        """Wire shape: ``{success, token?, error?, needsLogin?}``."""
        data: dict[str, Any] = {"success": self.success}
        if self.token is not None:
            data["token"] = self.token
        if self.error is not None:
            data["error"] = self.error
        if self.needs_login:
            data["needsLogin"] = True
        return data


def _cookieless_jar() -> HttpCookieJar:
    """A jar that refuses every cookie, leaving CookieJar as the only store."""
    return HttpCookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


class LoginAttempt:
    """State and steps of a single login attempt.

    Owns the HTTP client, cookie jar, capture broker and observer. Use as an
    async context manager; everything is discarded on exit.
    """

    def __init__(
        self,
        settings: SsoSettings,
        ambient: AmbientCookieStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.jar = CookieJar(ambient)
        self.broker = RedirectCaptureBroker()
        self.observer = OutOfBandRedirectObserver(
            self.broker,
            allowed_hosts=settings.allowed_hosts,
            scheme=settings.scheme,
        )
        self.client = httpx.AsyncClient(
            transport=transport,
            timeout=settings.request_timeout,
            follow_redirects=False,
            cookies=_cookieless_jar(),
        )
        self.observer.attach(self.client)
        self.walker = RedirectWalker(
            self.client,
            self.jar,
            scheme=settings.scheme,
            user_agent=settings.user_agent,
        )
        self.state = LoginState.START

    async def __aenter__(self) -> "LoginAttempt":
        self.jar.clear()
        return self

    async def __aexit__(self, *args) -> None:
        self.broker.close()
        self.observer.detach(self.client)
        self.walker.detach(self.client)
        await self.client.aclose()

    def transition(self, state: LoginState) -> None:
        logger.debug("Login state %s -> %s", self.state.value, state.value)
        self.state = state

    def finish(self, raw_token: str) -> LoginResult:
        """Decode a captured token into a successful result."""
        service_token = decode_service_token(raw_token)
        if service_token is None:
            raise MalformedTokenError("Could not decode the captured token")
        self.transition(LoginState.DONE)
        logger.info("Token acquired")
        return LoginResult(success=True, token=service_token, state=LoginState.DONE)

    # --- Flows ---

    async def fetch_existing_token(self, launch_url: str) -> LoginResult:
        """Walk the launch URL hoping the site session is still alive."""
        walk = await self.walker.follow(launch_url, max_hops=self.settings.max_hops)
        raw = find_token(walk.final_url) or find_token(walk.location)
        if raw:
            return self.finish(raw)

        raw = find_token(walk.response.text)
        if raw and decode_service_token(raw):
            return self.finish(raw)

        logger.info("No session for %s, login required", launch_url)
        return LoginResult(success=False, needs_login=True, state=self.state)

    async def full_login(
        self,
        launch_url: str,
        username: str,
        password: str,
        provider: ProviderConfig,
    ) -> LoginResult:
        logger.info("Starting SAML login via %s", launch_url)
        try:
            response = await self.walker.send(launch_url, follow_redirects=True)
        except httpx.HTTPError:
            # Already signed in: httpx tried to follow the custom scheme
            raw = find_token(self.broker.captured)
            if raw:
                logger.info("Already authenticated, token seen during launch")
                return self.finish(raw)
            raise
        self.transition(LoginState.LAUNCHED)
        logger.debug("Launch landed on %s (%s)", response.url, response.status_code)

        raw = find_token(str(response.url))
        if raw:
            logger.info("Already authenticated, token in launch URL")
            return self.finish(raw)

        html = response.text
        auth_state = extract_auth_state(html, provider.fields.auth_state)
        if not auth_state:
            raw = find_token(html)
            if raw and decode_service_token(raw):
                logger.info("Already authenticated, token in launch page")
                return self.finish(raw)
            logger.debug("Launch page starts with: %s", html[:500])
            raise MissingAuthStateError("Could not find AuthState on the login page")

        logger.info("Found AuthState (%d chars)", len(auth_state))
        return await self.login_with_auth_state(launch_url, username, password, auth_state, provider)

    async def login_with_auth_state(
        self,
        launch_url: str,
        username: str,
        password: str,
        auth_state: str,
        provider: ProviderConfig,
    ) -> LoginResult:
        self.transition(LoginState.AUTHSTATE_FOUND)
        fields = provider.fields
        login_resp = await self.walker.send(
            provider.login_endpoint,
            method="POST",
            data={
                fields.username: username,
                fields.password: password,
                fields.submit: SUBMIT_LABEL,
                fields.auth_state: auth_state,
            },
        )
        self.transition(LoginState.CREDENTIALS_SUBMITTED)

        html = login_resp.text
        if provider.failure_predicate(html):
            raise InvalidCredentialsError("Invalid username or password")

        form = extract_form(html)
        if not form.has_saml_response:
            logger.info("No SAMLResponse form, checking for a direct redirect")
            location = login_resp.headers.get("location")
            if location:
                walk = await self.walker.follow(
                    urljoin(provider.login_endpoint, location),
                    max_hops=self.settings.max_hops,
                )
                raw = find_token(walk.final_url)
                if raw:
                    return self.finish(raw)
            logger.debug("Login response starts with: %s", html[:500])
            raise MissingSamlResponseError("Could not find SAMLResponse after login")

        form.action = urljoin(provider.login_endpoint, form.action)
        self.transition(LoginState.SAML_RESPONSE_FOUND)
        logger.info("SAML assertion consumer: %s", form.action)

        url = await self.capture_token_url(form, launch_url)
        raw = find_token(url)
        if not raw:
            raise TokenCaptureTimeoutError("Could not capture the token redirect")
        return self.finish(raw)

    # --- Token capture ---

    async def capture_token_url(self, form: FormData, launch_url: str | None) -> str | None:
        """Race the redirect walk against the observer.

        The observer wait is registered before the assertion is posted. The
        first path to produce a ``token=`` URL wins; the other is cancelled.
        """
        self.transition(LoginState.TOKEN_CAPTURING)
        self.broker.reset()
        capture = asyncio.ensure_future(self.broker.wait_for_capture(self.settings.capture_timeout))
        walk = asyncio.ensure_future(self.submit_assertion(form, launch_url))
        labels = {capture: "redirect observer", walk: "redirect walk"}

        pending = {capture, walk}
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    url = task.result()
                    if find_token(url):
                        logger.info("Token URL captured by %s", labels[task])
                        return url
                    logger.debug("%s finished without a token", labels[task])
            return None
        finally:
            for task in pending:
                task.cancel()

    async def submit_assertion(self, form: FormData, launch_url: str | None) -> str | None:
        """POST the SAML form and walk to the custom-scheme redirect."""
        max_hops = self.settings.max_hops
        try:
            walk = await self.walker.follow(form.action, method="POST", data=form.inputs, max_hops=max_hops)
            if walk.final_url:
                return walk.final_url

            refresh = extract_meta_refresh(walk.response.text)
            if refresh:
                logger.info("Following meta refresh to %s", refresh)
                walk = await self.walker.follow(urljoin(form.action, refresh), max_hops=max_hops)
                if walk.final_url:
                    return walk.final_url

            if launch_url:
                # Moodle session exists now, so launch.php redirects straight to the token
                logger.info("Retrying launch URL with the new session")
                walk = await self.walker.follow(launch_url, max_hops=max_hops)
                return walk.final_url
        except httpx.HTTPError as e:
            logger.debug("Assertion walk failed: %s", e)
        return None


class SsoLoginOrchestrator:
    """Entry point for login attempts.

    Each call runs in its own LoginAttempt under the outer attempt timeout.
    Failures come back as ``LoginResult(success=False)``; nothing raises.
    """

    def __init__(
        self,
        settings: SsoSettings | None = None,
        ambient: AmbientCookieStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or SsoSettings()
        self.ambient = ambient
        self.transport = transport

    async def perform_full_login(
        self,
        launch_url: str,
        username: str,
        password: str,
        provider: ProviderConfig | None = None,
    ) -> LoginResult:
        provider = provider or ProviderConfig()
        return await self._run(lambda a: a.full_login(launch_url, username, password, provider))

    async def perform_direct_login(
        self,
        target_site: str,
        launch_url: str | None,
        username: str,
        password: str,
        auth_state: str | None,
        provider: ProviderConfig | None = None,
    ) -> LoginResult:
        """Log in with an AuthState scraped earlier, skipping the launch step."""
        if not auth_state:
            return self._failure(MissingAuthStateError("AuthState is required for direct login"), LoginState.START)
        provider = provider or ProviderConfig()
        launch_url = launch_url or build_launch_url(target_site)
        logger.info("Starting direct SAML login for %s", target_site)
        return await self._run(
            lambda a: a.login_with_auth_state(launch_url, username, password, auth_state, provider)
        )

    async def fetch_token_if_already_authenticated(self, launch_url: str) -> LoginResult:
        return await self._run(lambda a: a.fetch_existing_token(launch_url))

    async def _run(self, flow: Callable[[LoginAttempt], Awaitable[LoginResult]]) -> LoginResult:
        problems = self.settings.validate()
        if problems:
            return self._failure(InvalidSettingsError("; ".join(problems)), LoginState.START)

        attempt = LoginAttempt(self.settings, self.ambient, self.transport)
        async with attempt:
            try:
                return await asyncio.wait_for(flow(attempt), self.settings.attempt_timeout)
            except asyncio.TimeoutError:
                error: SsoError = LoginTimeoutError(
                    f"Login did not finish within {self.settings.attempt_timeout:g}s"
                )
            except SsoError as e:
                error = e
            except httpx.HTTPError as e:
                error = SsoNetworkError(f"Network error: {e}")
        return self._failure(error, attempt.state)

    @staticmethod
    def _failure(error: SsoError, state: LoginState) -> LoginResult:
        logger.warning("Login failed at %s: %s", state.value, error)
        return LoginResult(
            success=False,
            error=str(error),
            reason=error.reason,
            state=LoginState.FAILED,
        )
