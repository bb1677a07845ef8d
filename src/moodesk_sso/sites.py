"""Built-in Moodle site presets.

New sites only need an entry in SITE_CONFIGS.
"""

from dataclasses import dataclass, field

from .config import FieldNames, ProviderConfig
from .tokens import build_launch_url

UKM_SSO = ProviderConfig(
    login_endpoint="https://sso.ukm.my/module.php/core/loginuserpass.php",
    fields=FieldNames(username="username", password="password", submit="submit", auth_state="AuthState"),
)


@dataclass
class SiteConfig:
    """One Moodle deployment or identity provider portal."""

    hostname: str
    name: str
    short_name: str
    type: str  # "standard", "saml_sso" or "sso_provider"
    provider: ProviderConfig | None = None
    associated_sites: list[str] = field(default_factory=list)

    @property
    def is_saml(self) -> bool:
        return self.type == "saml_sso"

    def launch_url(self, passport: str | None = None) -> str:
        return build_launch_url(self.hostname, passport=passport)


SITE_CONFIGS: dict[str, SiteConfig] = {
    "l.xmu.edu.my": SiteConfig(
        hostname="l.xmu.edu.my",
        name="XMUM Moodle",
        short_name="XMUM",
        type="standard",
    ),
    "ukmfolio.ukm.my": SiteConfig(
        hostname="ukmfolio.ukm.my",
        name="Pelantar e-Pembelajaran UKM",
        short_name="UKMFolio",
        type="saml_sso",
        provider=UKM_SSO,
    ),
    "cbet.ukm.my": SiteConfig(
        hostname="cbet.ukm.my",
        name="UKM CBET",
        short_name="CBET",
        type="saml_sso",
        provider=UKM_SSO,
    ),
    "sso.ukm.my": SiteConfig(
        hostname="sso.ukm.my",
        name="UKM SSO Portal",
        short_name="UKM SSO",
        type="sso_provider",
        provider=UKM_SSO,
        associated_sites=["ukmfolio.ukm.my", "cbet.ukm.my"],
    ),
}


def get_site(hostname: str) -> SiteConfig | None:
    return SITE_CONFIGS.get(hostname.lower())


def provider_for(hostname: str) -> ProviderConfig:
    """Identity provider settings for a site, or the defaults if unknown."""
    site = get_site(hostname)
    if site and site.provider:
        return site.provider
    return ProviderConfig()


def associated_sites(provider_hostname: str) -> list[str]:
    """Moodle sites that sign in through the given SSO portal."""
    site = get_site(provider_hostname)
    return list(site.associated_sites) if site else []
