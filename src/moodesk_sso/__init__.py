"""Moodle mobile token capture through SAML SSO.

Replays a SimpleSAMLphp login without a browser and captures the token
Moodle hands back on a ``moodlemobile://`` redirect.
"""

from .client import MoodeskSsoClient, SsoCredentials
from .config import FieldNames, ProviderConfig, SsoSettings
from .exceptions import SsoError
from .orchestrator import LoginResult, LoginState, SsoLoginOrchestrator
from .tokens import build_launch_url, decode_service_token

__all__ = [
    "MoodeskSsoClient",
    "SsoCredentials",
    "FieldNames",
    "ProviderConfig",
    "SsoSettings",
    "SsoError",
    "LoginResult",
    "LoginState",
    "SsoLoginOrchestrator",
    "build_launch_url",
    "decode_service_token",
]
