# noke/cli/main_cli.py
import typer

from ..utils import generate_fernet_key
from . import plugin_cli

# Main CLI application with help enabled when no arguments are provided
app = typer.Typer(
    name="noke",
    help="NoKe Plexus Command Line Interface.",
    no_args_is_help=True
)

app.add_typer(plugin_cli.app, name="plugin")


@app.callback()
def main_callback():
    """
    NoKe Plexus main CLI application.
    Use 'noke plugin --help' for plugin commands.
    """
    pass


@app.command("keygen")
def keygen():
    """Print a new Fernet key for NOKE_ENCRYPTION_KEY."""
    typer.echo(generate_fernet_key())
    typer.secho(
        "Store this key securely. Changing it makes existing ciphertexts unreadable.",
        fg=typer.colors.YELLOW,
        err=True
    )


def cli_entry_point():
    """Entry point function for console script registration in pyproject.toml"""
    app()


if __name__ == "__main__":
    cli_entry_point()
