"""Moodle mobile token handling.

Moodle's mobile launch endpoint answers with
``moodlemobile://token=<base64>``, where the base64 payload decodes to
``privatetoken:::wstoken[:::signature]``. Only the web service token is
handed to callers.
"""

import base64
import binascii
import logging
import random
import re
from dataclasses import dataclass
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

TOKEN_DELIMITER = ":::"
TOKEN_PATTERN = re.compile(r"token=([A-Za-z0-9+/=]+)")

LAUNCH_PATH = "/admin/tool/mobile/launch.php"
MOBILE_SERVICE = "moodle_mobile_app"


@dataclass
class CompositeToken:
    """Decoded launch token."""

    private_token: str
    service_token: str
    signature: str = ""


def decode_composite_token(encoded: str) -> CompositeToken | None:
    """Decode a base64 composite token.

    Never raises: bad base64, bad UTF-8, or fewer than two segments all
    yield ``None``.
    """
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.warning("Could not decode token: %s", e)
        return None

    parts = decoded.split(TOKEN_DELIMITER)
    if len(parts) < 2:
        logger.warning("Token has %d segment(s), expected at least 2", len(parts))
        return None
    return CompositeToken(
        private_token=parts[0],
        service_token=parts[1],
        signature=parts[2] if len(parts) > 2 else "",
    )


def decode_service_token(encoded: str) -> str | None:
    """Return only the web service token from a base64 composite token."""
    token = decode_composite_token(encoded)
    return token.service_token if token else None


def find_token(text: str | None) -> str | None:
    """Extract the raw ``token=`` value from a URL or page body."""
    if not text or "token=" not in text:
        return None
    match = TOKEN_PATTERN.search(text)
    return match.group(1) if match else None


def generate_passport() -> str:
    """Random passport value Moodle echoes back in the launch flow."""
    return f"{random.randint(0, 999)}.{random.randint(0, 9999999)}"


def build_launch_url(site: str, passport: str | None = None, scheme: str = "moodlemobile") -> str:
    """Build the mobile launch URL for a Moodle site.

    Args:
        site: Hostname (``ukmfolio.ukm.my``) or base URL of the site.
        passport: Passport value. Generated when omitted.
        scheme: URL scheme Moodle redirects back to.
    """
    base = site if site.startswith("http") else f"https://{site}"
    query = urlencode(
        {
            "service": MOBILE_SERVICE,
            "passport": passport or generate_passport(),
            "urlscheme": scheme,
        }
    )
    return f"{base.rstrip('/')}{LAUNCH_PATH}?{query}"
