"""
SongBridge command-line interface.

Usage:
    python -m songbridge.cli set-credentials kick --client-id <id>
    python -m songbridge.cli login kick
    python -m songbridge.cli status
    python -m songbridge.cli queue "never gonna give you up"
    python -m songbridge.cli logout spotify
"""

import asyncio
import sys
from typing import Any, Dict

import click
from cryptography.fernet import Fernet
from loguru import logger

from songbridge import audit
from songbridge.api import KickApi, SpotifyApi
from songbridge.config import APP_TITLE, APP_VERSION, LOG_LEVEL
from songbridge.exceptions import AuthError
from songbridge.http_client import AuthorizedHttpClient
from songbridge.models import Provider
from songbridge.service import AuthService
from songbridge.store import CredentialStore


PROVIDER_CHOICE = click.Choice([provider.value for provider in Provider], case_sensitive=False)


def _echo_notification(event: str, payload: Dict[str, Any]) -> None:
    if event == "toast":
        err = payload.get("type") == "error"
        prefix = "✗" if err else "✓"
        click.echo(f"{prefix} {payload.get('message')}", err=err)


def _build_service() -> AuthService:
    return AuthService(CredentialStore(), notifier=_echo_notification)


@click.group()
@click.option("--log-level", default=LOG_LEVEL, show_default=True, help="Minimum log level")
@click.option("--quiet-console", is_flag=True, help="Log to file only")
@click.version_option(APP_VERSION, prog_name=APP_TITLE)
def cli(log_level: str, quiet_console: bool):
    """SongBridge CLI - link Spotify and Kick accounts."""
    audit.configure_logging(level=log_level.upper(), console=not quiet_console)


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
@click.option("--client-id", prompt=True, help="OAuth client ID")
@click.option("--client-secret", prompt=True, hide_input=True, help="OAuth client secret")
def set_credentials(provider: str, client_id: str, client_secret: str):
    """Save the client ID and secret of your provider app."""
    target = Provider(provider.lower())

    async def _save():
        result = await _build_service().set_client_credentials(target, client_id, client_secret)
        if not result.success:
            click.echo(f"ERROR: {result.error}", err=True)
            sys.exit(1)
        click.echo(f"✓ {target.display_name} client credentials saved")

    asyncio.run(_save())


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
def delete_credentials(provider: str):
    """Delete the stored client ID and secret."""
    target = Provider(provider.lower())
    CredentialStore().delete_client_credentials(target)
    click.echo(f"✓ {target.display_name} client credentials deleted")


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
def login(provider: str):
    """Authorize SongBridge in the browser and wait for the redirect."""
    target = Provider(provider.lower())

    async def _login():
        service = _build_service()
        if not await service.authenticate(target):
            sys.exit(1)
        click.echo(f"Waiting for the {target.display_name} redirect (Ctrl+C to cancel)...")
        try:
            await service.wait_for_flow(target)
        finally:
            await service.close()
        status = await service.check_authenticated(target)
        if not status.authenticated:
            sys.exit(1)

    asyncio.run(_login())


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
def logout(provider: str):
    """Forget the tokens and identity for a provider."""
    target = Provider(provider.lower())

    async def _logout():
        await _build_service().logout(target)

    asyncio.run(_logout())


@cli.command()
def status():
    """Show which providers are connected."""

    async def _status():
        service = _build_service()
        for provider in Provider:
            if not service.has_client_credentials(provider):
                click.echo(f"  {provider.display_name}: client credentials not configured")
                continue
            result = await service.check_authenticated(provider)
            if result.authenticated:
                click.echo(f"  {provider.display_name}: ✓ connected as {result.username or 'unknown user'}")
            else:
                click.echo(f"  {provider.display_name}: ✗ not connected")

    asyncio.run(_status())


@cli.command()
@click.argument("query")
def queue(query: str):
    """Add a Spotify track (link or search text) to the playback queue."""

    async def _queue():
        service = _build_service()
        async with AuthorizedHttpClient(service.guard, Provider.SPOTIFY) as client:
            try:
                track = await SpotifyApi(client).queue_track(query)
            except AuthError as e:
                click.echo(f"ERROR: {e.message}", err=True)
                sys.exit(1)
        if track is None:
            click.echo("No matching track found.")
        else:
            click.echo(f"✓ Queued {track.title} by {track.artist}")

    asyncio.run(_queue())


@cli.command()
@click.argument("message")
def say(message: str):
    """Send a chat message to your Kick channel."""

    async def _say():
        service = _build_service()
        identity = service.store.get(Provider.KICK).identity
        if identity is None:
            click.echo("ERROR: Kick channel not resolved, run 'login kick' first", err=True)
            sys.exit(1)
        async with AuthorizedHttpClient(service.guard, Provider.KICK) as client:
            try:
                await KickApi(client).send_chat_message(message, identity.user_id)
            except AuthError as e:
                click.echo(f"ERROR: {e.message}", err=True)
                sys.exit(1)
        click.echo(f"✓ Message sent to {identity.username}")

    asyncio.run(_say())


@cli.command()
def logs():
    """Print the current log file."""
    click.echo(audit.export_log_text())


@cli.command()
def generate_key():
    """Generate a Fernet key for ENCRYPTION_KEY."""
    click.echo(Fernet.generate_key().decode())
    logger.debug("Generated a new encryption key")


def main():
    cli()


if __name__ == "__main__":
    main()
