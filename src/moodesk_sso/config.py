"""Configuration handling for the SSO token flow."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

# Default ambient cookie storage location
DEFAULT_COOKIE_FILE = Path.home() / ".config" / "moodesk" / "browser_cookies.json"

DEFAULT_LOGIN_ENDPOINT = "https://sso.ukm.my/module.php/core/loginuserpass.php"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

CUSTOM_SCHEME = "moodlemobile://"

# Hosts whose redirects may carry the custom-scheme token URL
DEFAULT_ALLOWED_HOSTS = ("*.ukm.my", "*.ukm.edu.my", "*.xmu.edu.my")

FAILURE_WORDS = ("incorrect", "wrong", "invalid", "error")
FAILURE_SUBJECTS = ("username", "password")


def default_failure_predicate(html: str) -> bool:
    """Guess whether a login response reports bad credentials.

    Requires both a failure word and a mention of the username or password
    so that unrelated "error" text on the page does not trip it.
    """
    lower = html.lower()
    if not any(word in lower for word in FAILURE_WORDS):
        return False
    return any(subject in lower for subject in FAILURE_SUBJECTS)


@dataclass
class FieldNames:
    """Form field names used by the identity provider's login form."""

    username: str = "username"
    password: str = "password"
    submit: str = "submit"
    auth_state: str = "AuthState"


@dataclass
class ProviderConfig:
    """Identity provider deployment settings.

    The field-name mapping lets one orchestrator serve several
    SimpleSAMLphp deployments without code changes.
    """

    login_endpoint: str = DEFAULT_LOGIN_ENDPOINT
    fields: FieldNames = field(default_factory=FieldNames)
    failure_predicate: Callable[[str], bool] = default_failure_predicate

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProviderConfig":
        """Build from the camelCase wire shape.

        Accepts ``{"loginEndpoint": ..., "fields": {"username": ...,
        "password": ..., "submit": ..., "authState": ...}}``. Missing keys
        fall back to the defaults.
        """
        if not data:
            return cls()
        raw_fields = data.get("fields") or {}
        defaults = FieldNames()
        return cls(
            login_endpoint=data.get("loginEndpoint") or DEFAULT_LOGIN_ENDPOINT,
            fields=FieldNames(
                username=raw_fields.get("username", defaults.username),
                password=raw_fields.get("password", defaults.password),
                submit=raw_fields.get("submit", defaults.submit),
                auth_state=raw_fields.get("authState", defaults.auth_state),
            ),
        )


@dataclass
class SsoSettings:
    """Runtime settings for a login attempt.

    Settings can be loaded from environment variables or passed explicitly.
    Timeouts are in seconds.
    """

    request_timeout: float = 30.0
    capture_timeout: float = 5.0
    attempt_timeout: float = 60.0
    max_hops: int = 10
    scheme: str = CUSTOM_SCHEME
    allowed_hosts: tuple[str, ...] = DEFAULT_ALLOWED_HOSTS
    user_agent: str = DEFAULT_USER_AGENT
    cookie_file: Path = DEFAULT_COOKIE_FILE

    @classmethod
    def from_env(cls) -> "SsoSettings":
        """Load settings from environment variables.

        Environment variables:
            MOODESK_REQUEST_TIMEOUT: Per-request timeout
            MOODESK_CAPTURE_TIMEOUT: Wait for the out-of-band redirect
            MOODESK_ATTEMPT_TIMEOUT: Budget for the whole login attempt
            MOODESK_MAX_HOPS: Redirect hop cap
            MOODESK_ALLOWED_HOSTS: Comma-separated host patterns
            MOODESK_COOKIE_FILE: Ambient cookie JSON file

        Returns:
            SsoSettings instance
        """
        hosts = os.environ.get("MOODESK_ALLOWED_HOSTS", "")
        return cls(
            request_timeout=float(os.environ.get("MOODESK_REQUEST_TIMEOUT", "30")),
            capture_timeout=float(os.environ.get("MOODESK_CAPTURE_TIMEOUT", "5")),
            attempt_timeout=float(os.environ.get("MOODESK_ATTEMPT_TIMEOUT", "60")),
            max_hops=int(os.environ.get("MOODESK_MAX_HOPS", "10")),
            allowed_hosts=tuple(h.strip() for h in hosts.split(",") if h.strip())
            or DEFAULT_ALLOWED_HOSTS,
            cookie_file=Path(os.environ.get("MOODESK_COOKIE_FILE", str(DEFAULT_COOKIE_FILE))),
        )

    def validate(self) -> list[str]:
        """Validate settings, returning a list of problems.

        Returns:
            Human-readable descriptions of invalid values.
        """
        problems = []
        if self.capture_timeout <= 0:
            problems.append("capture_timeout must be positive")
        if self.attempt_timeout <= self.capture_timeout:
            problems.append("attempt_timeout must exceed capture_timeout")
        if self.max_hops < 1:
            problems.append("max_hops must be at least 1")
        if not self.scheme.endswith("://"):
            problems.append("scheme must end with '://'")
        return problems
