"""Custom exceptions for the SSO token flow."""


class SsoError(Exception):
    """Base exception for SSO login failures.

    Every subclass carries a short machine-readable ``reason`` that ends up
    in ``LoginResult.reason``.
    """

    reason = "sso_error"


class MissingAuthStateError(SsoError):
    """Login page did not expose the AuthState hidden field."""

    reason = "missing_auth_state"


class InvalidCredentialsError(SsoError):
    """Identity provider rejected the username or password."""

    reason = "invalid_credentials"


class MissingSamlResponseError(SsoError):
    """Post-credential response had no usable SAMLResponse form."""

    reason = "missing_saml_response"


class TokenCaptureTimeoutError(SsoError):
    """Neither capture path produced a token-bearing URL."""

    reason = "token_capture_timeout"


class MalformedTokenError(SsoError):
    """Captured token could not be decoded."""

    reason = "malformed_token"


class SsoNetworkError(SsoError):
    """Underlying HTTP exchange failed."""

    reason = "network_error"


class LoginTimeoutError(SsoError):
    """Whole login attempt exceeded its time budget."""

    reason = "timeout"


class InvalidSettingsError(SsoError):
    """Settings failed validation before any request was made."""

    reason = "invalid_settings"
