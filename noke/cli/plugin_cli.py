# noke/cli/plugin_cli.py
import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from typing_extensions import Annotated

from ..client import JsonFileCredentialStore, NokeClientError, NokePluginClient
from ..plugins.constants import AUTH_REQUEST_TTL_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS
from . import config

T = TypeVar("T")

app = typer.Typer(
    name="plugin",
    help="Act as a NoKe plugin instance: pair with an account and read entries.",
    no_args_is_help=True
)


def create_client(credentials_file: Optional[Path] = None) -> NokePluginClient:
    store = JsonFileCredentialStore(credentials_file or config.NOKE_CLI_CREDENTIALS_FILE)
    return NokePluginClient(config.NOKE_CLI_API_BASE_URL, store)


def _run(action: Callable[[NokePluginClient], Awaitable[T]]) -> T:
    """Run one client action, turning client errors into a red message and exit code 1."""
    async def runner() -> T:
        async with create_client() as client:
            return await action(client)

    try:
        return asyncio.run(runner())
    except NokeClientError as e:
        typer.secho(f"Error: {e.message}", fg=typer.colors.RED)
        if e.response_data.get("requireReauth"):
            typer.secho("Run 'noke plugin authorize' to pair this plugin again.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)


def _print_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


@app.command("register")
def register():
    """Register a new plugin instance (forgets any previous pairing)."""
    credentials = _run(lambda client: client.register())
    typer.secho(f"Registered plugin '{credentials.plugin_id}'.", fg=typer.colors.GREEN)


@app.command("authorize")
def authorize(
    poll_interval: Annotated[
        float,
        typer.Option("--poll-interval", help="Seconds between authorization checks.", min=0.5)
    ] = DEFAULT_POLL_INTERVAL_SECONDS,
    no_wait: Annotated[
        bool,
        typer.Option("--no-wait", help="Only print the approval URL.")
    ] = False
):
    """Request authorization and wait until it is approved in the web client."""
    async def action(client: NokePluginClient):
        data = await client.request_authorization()
        typer.echo("Open this URL while signed in to NoKe to approve the plugin:")
        typer.secho(data["authUrl"], fg=typer.colors.CYAN)
        if no_wait:
            return None
        typer.echo(f"Waiting up to {data.get('expiresIn', AUTH_REQUEST_TTL_SECONDS)} seconds...")
        return await client.wait_for_authorization(
            poll_interval=poll_interval,
            timeout=data.get("expiresIn", AUTH_REQUEST_TTL_SECONDS)
        )

    credentials = _run(action)
    if credentials:
        typer.secho(f"Plugin authorized for user '{credentials.username}'.", fg=typer.colors.GREEN)


@app.command("status")
def status():
    """Show the locally stored pairing state (secrets are never printed)."""
    credentials = _run(lambda client: client.credential_store.load())
    _print_json({
        "pluginId": credentials.plugin_id,
        "registered": credentials.is_registered,
        "authorized": credentials.authorized,
        "username": credentials.username,
        "hasRollingKey": bool(credentials.rolling_key),
        "hasLegacyToken": bool(credentials.legacy_token),
    })


@app.command("entries")
def entries():
    """List all entries of the paired account."""
    data = _run(lambda client: client.get_entries())
    _print_json(data.get("entries", []))


@app.command("search")
def search(url: Annotated[str, typer.Argument(help="Page URL to find logins for.")]):
    """Find entries whose domain matches URL."""
    data = _run(lambda client: client.search_by_url(url))
    typer.echo(f"Matched domain: {data.get('matchedDomain')}")
    _print_json(data.get("entries", []))


@app.command("generate")
def generate(
    length: Annotated[int, typer.Option("--length", min=4, max=256)] = 16,
    uppercase: Annotated[bool, typer.Option("--uppercase/--no-uppercase")] = True,
    lowercase: Annotated[bool, typer.Option("--lowercase/--no-lowercase")] = True,
    numbers: Annotated[bool, typer.Option("--numbers/--no-numbers")] = True,
    symbols: Annotated[bool, typer.Option("--symbols/--no-symbols")] = True
):
    """Generate a random password on the server."""
    data = _run(lambda client: client.generate_password(
        length=length, uppercase=uppercase, lowercase=lowercase, numbers=numbers, symbols=symbols
    ))
    typer.echo(data["password"])


@app.command("use-token")
def use_token(token: Annotated[str, typer.Argument(help="Static API token created in the web client.")]):
    """Store a static API token, used while the plugin holds no rolling key."""
    async def action(client: NokePluginClient):
        await client.save_legacy_token(token)
        return await client.validate_legacy_token()

    data = _run(action)
    typer.secho(f"Token '{data.get('tokenName')}' accepted for user '{data.get('username')}'.", fg=typer.colors.GREEN)


@app.command("logout")
def logout():
    """Forget all local plugin credentials."""
    _run(lambda client: client.logout())
    typer.secho("Local plugin credentials removed.", fg=typer.colors.GREEN)
