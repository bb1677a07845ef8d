"""CLI for Moodle SSO token capture."""

import asyncio
import json
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .client import MoodeskSsoClient, SsoCredentials
from .config import SsoSettings
from .orchestrator import LoginResult
from .sites import SITE_CONFIGS, get_site, provider_for
from .tokens import build_launch_url

app = typer.Typer(help="Moodle SSO token CLI")
console = Console()


def find_env_file(start: Path | None = None) -> Path | None:
    """Nearest local.env in ``start`` or up to three parents."""
    start = start or Path.cwd()
    for directory in [start, *start.parents][:4]:
        candidate = directory / "local.env"
        if candidate.is_file():
            return candidate
    return None


def load_env() -> None:
    """Export MOODESK_* credentials from local.env without overriding the shell."""
    env_file = find_env_file()
    if env_file is None:
        return
    for raw in env_file.read_text().splitlines():
        line = raw.strip().removeprefix("export ").strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if sep:
            os.environ.setdefault(key.strip(), value.strip().strip("\"'"))


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show login progress")):
    """Capture Moodle mobile tokens through SAML SSO."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _make_client() -> MoodeskSsoClient:
    settings = SsoSettings.from_env()
    problems = settings.validate()
    if problems:
        for problem in problems:
            console.print(f"[red]Config error:[/red] {problem}")
        raise typer.Exit(1)
    return MoodeskSsoClient(settings)


def _credentials() -> SsoCredentials:
    load_env()
    try:
        return SsoCredentials.from_env()
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _report(result: LoginResult, json_output: bool) -> None:
    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        console.print("[green]✓ Token acquired[/green]")
        console.print(result.token)
    elif result.needs_login:
        console.print("[yellow]Not signed in - run 'login' first[/yellow]")
    else:
        console.print(f"[red]✗ Login failed ({result.reason}):[/red] {result.error}")

    if not result.success:
        raise typer.Exit(1)


@app.command()
def login(
    site: str = typer.Argument(..., help="Moodle hostname, e.g. ukmfolio.ukm.my"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Run the full SSO login and print the web service token."""
    creds = _credentials()
    if not json_output:
        console.print(f"Logging in to [cyan]{site}[/cyan] as: [cyan]{creds.username}[/cyan]")

    client = _make_client()
    result = asyncio.run(
        client.perform_full_login(build_launch_url(site), creds.username, creds.password, provider_for(site))
    )
    _report(result, json_output)


@app.command("direct-login")
def direct_login(
    site: str = typer.Argument(..., help="Moodle hostname the login is for"),
    auth_state: str = typer.Option(..., "--auth-state", "-a", help="AuthState from the SSO login page"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Log in with an AuthState copied from an open SSO login page."""
    creds = _credentials()
    client = _make_client()
    result = asyncio.run(
        client.perform_direct_login(
            site, build_launch_url(site), creds.username, creds.password, auth_state, provider_for(site)
        )
    )
    _report(result, json_output)


@app.command()
def token(
    site: str = typer.Argument(..., help="Moodle hostname"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Fetch a token using existing browser cookies only."""
    load_env()
    client = _make_client()
    result = asyncio.run(client.fetch_token_if_already_authenticated(build_launch_url(site)))
    _report(result, json_output)


@app.command()
def sites():
    """List built-in site presets."""
    table = Table(title="Known sites")
    table.add_column("Hostname", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Login endpoint")

    for hostname, config in SITE_CONFIGS.items():
        endpoint = config.provider.login_endpoint if config.provider else ""
        table.add_row(hostname, config.name, config.type, endpoint)

    console.print(table)


@app.command()
def site(hostname: str = typer.Argument(..., help="Hostname to look up")):
    """Show one site preset."""
    config = get_site(hostname)
    if config is None:
        console.print(f"[yellow]No preset for {hostname}[/yellow]")
        raise typer.Exit(1)

    console.print(f"[bold]{config.name}[/bold] ({config.short_name})")
    console.print(f"Type: {config.type}")
    if config.is_saml:
        console.print(f"Launch: {config.launch_url()}")
    if config.associated_sites:
        console.print(f"Serves: {', '.join(config.associated_sites)}")


if __name__ == "__main__":
    app()
