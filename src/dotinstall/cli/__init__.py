"""dotinstall CLI - manifest-driven package installation."""

import typer

from ..utils import get_version, setup_logging
from . import install, manifest, verify

# Create the main app
app = typer.Typer(
    name="dotinstall",
    help="Install development tools from declarative package manifests.",
    add_completion=True,
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging output.",
    ),
):
    """dotinstall - manifest-driven installer for apt, PPA, Homebrew and mise."""
    setup_logging(verbose=verbose)


# Register all commands
install.register(app)
verify.register(app)
manifest.register(app)


@app.command()
def version():
    """Show the version of dotinstall."""
    typer.echo(f"dotinstall version {get_version()}")


def main():
    """Main entry point for the dotinstall CLI."""
    app()
