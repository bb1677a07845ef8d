"""Form scraping for identity provider pages.

Login and consent pages are static server-rendered markup, so a plain HTML
parse is enough: no JavaScript, first match wins. The parser unescapes
entities in attribute values, which matters for SAMLResponse (``&#x2B;``
for ``+``) and for form actions (``&amp;`` in query strings).
"""

import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

META_REFRESH_URL = re.compile(r"url\s*=\s*['\"]?([^'\"\s>]+)", re.IGNORECASE)


@dataclass
class FormData:
    """Target form action and its named input values."""

    action: str | None = None
    inputs: dict[str, str] = field(default_factory=dict)

    @property
    def has_saml_response(self) -> bool:
        return bool(self.action) and "SAMLResponse" in self.inputs


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def extract_form(html: str) -> FormData:
    """Extract the first form action and all named inputs.

    Inputs are collected from the whole document, not just the form, and
    only when they carry both ``name`` and ``value``. An absent or empty
    action yields ``action=None``.
    """
    soup = _soup(html)
    form = soup.find("form", attrs={"action": True})
    action = form.get("action") if form else None

    inputs = {}
    for tag in soup.find_all("input", attrs={"name": True, "value": True}):
        inputs[tag["name"]] = tag["value"]

    return FormData(action=action or None, inputs=inputs)


def extract_auth_state(html: str, field_name: str = "AuthState") -> str | None:
    """Find the AuthState hidden field value (name matched case-insensitively)."""
    pattern = re.compile(rf"^{re.escape(field_name)}$", re.IGNORECASE)
    tag = _soup(html).find("input", attrs={"name": pattern})
    if tag is None:
        return None
    return tag.get("value") or None


def extract_meta_refresh(html: str) -> str | None:
    """Return the target of a ``<meta http-equiv="refresh">`` redirect."""
    for meta in _soup(html).find_all("meta"):
        if (meta.get("http-equiv") or "").lower() != "refresh":
            continue
        match = META_REFRESH_URL.search(meta.get("content") or "")
        if match:
            return match.group(1)
    return None
