"""Command surface for the SSO token flow.

The UI layer talks to this module with small message dicts
(``{"type": "SAML_LOGIN", ...}``) and gets plain result dicts back.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from .config import ProviderConfig, SsoSettings
from .cookies import AmbientCookieStore
from .orchestrator import LoginResult, SsoLoginOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SsoCredentials:
    """Credentials for the identity provider. Never stored."""

    username: str
    password: str

    @classmethod
    def from_env(cls) -> "SsoCredentials":
        """Load credentials from environment variables."""
        username = os.environ.get("MOODESK_USER")
        password = os.environ.get("MOODESK_PW")

        if not username or not password:
            raise ValueError("MOODESK_USER and MOODESK_PW must be set in environment")

        return cls(username=username, password=password)


class MoodeskSsoClient:
    """Front door for login attempts.

    Loads ambient cookies once and hands every call to a fresh attempt.
    """

    def __init__(
        self,
        settings: SsoSettings | None = None,
        ambient: AmbientCookieStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            settings: Runtime settings. If None, loaded from environment.
            ambient: Browser cookies to send along. If None, loaded from
                     the settings' cookie file.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.settings = settings or SsoSettings.from_env()
        if ambient is None:
            ambient = AmbientCookieStore.load(self.settings.cookie_file)
        self.orchestrator = SsoLoginOrchestrator(self.settings, ambient, transport)

    async def perform_full_login(
        self,
        launch_url: str,
        username: str,
        password: str,
        provider: ProviderConfig | None = None,
    ) -> LoginResult:
        return await self.orchestrator.perform_full_login(launch_url, username, password, provider)

    async def perform_direct_login(
        self,
        target_site: str,
        launch_url: str | None,
        username: str,
        password: str,
        auth_state: str | None,
        provider: ProviderConfig | None = None,
    ) -> LoginResult:
        return await self.orchestrator.perform_direct_login(
            target_site, launch_url, username, password, auth_state, provider
        )

    async def fetch_token_if_already_authenticated(self, launch_url: str) -> LoginResult:
        return await self.orchestrator.fetch_token_if_already_authenticated(launch_url)

    async def dispatch(self, message: dict[str, Any]) -> dict[str, Any]:
        """Handle one command message and return the wire result.

        Message types:
            FETCH_SAML_TOKEN: ``url``
            SAML_LOGIN: ``launchUrl``, ``username``, ``password``, ``ssoConfig``
            SAML_LOGIN_DIRECT: ``targetSite``, ``launchUrl``, ``username``,
                ``password``, ``authState``, ``ssoConfig``
        """
        kind = message.get("type")
        logger.debug("Dispatching %s", kind)
        url = message.get("url") if kind == "FETCH_SAML_TOKEN" else message.get("launchUrl")
        if kind in ("FETCH_SAML_TOKEN", "SAML_LOGIN") and not url:
            return {"success": False, "error": f"{kind} needs a launch URL"}

        if kind == "FETCH_SAML_TOKEN":
            result = await self.fetch_token_if_already_authenticated(url)
        elif kind == "SAML_LOGIN":
            result = await self.perform_full_login(
                url,
                message.get("username", ""),
                message.get("password", ""),
                ProviderConfig.from_dict(message.get("ssoConfig")),
            )
        elif kind == "SAML_LOGIN_DIRECT":
            result = await self.perform_direct_login(
                message.get("targetSite", ""),
                url,
                message.get("username", ""),
                message.get("password", ""),
                message.get("authState"),
                ProviderConfig.from_dict(message.get("ssoConfig")),
            )
        else:
            return {"success": False, "error": f"Unknown message type: {kind}"}

        return result.to_dict()
