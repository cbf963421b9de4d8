"""Verify command for dotinstall CLI."""

from pathlib import Path
from typing import Optional

import typer

from ..verification import format_issues, log_missing_packages
from .helpers import (
    build_orchestrator,
    env,
    get_config,
    handle_errors,
    manifest_paths,
    resolve_platform,
)
from .output import info, muted, plain, success, warning


def register(app: typer.Typer) -> None:
    """Register the verify command with the app."""
    app.command()(verify)


def verify(
    profile: Optional[str] = typer.Argument(
        None, help="Profile to verify (defaults to 'profile' from the config)."
    ),
    manifest: Optional[Path] = typer.Option(
        None, "--manifest", "-m", help="Manifest file or directory."
    ),
    platform: Optional[str] = typer.Option(
        None, "--platform", "-p", help="Target platform: ubuntu, linux or macos."
    ),
    log: Optional[Path] = typer.Option(
        None, "--log", help="Write the missing-packages log to this file."
    ),
    no_log: bool = typer.Option(
        False, "--no-log", help="Report issues without writing a log."
    ),
):
    """Check that every package of a profile is installed.

    Missing packages are logged so they can be retried with
    'dotinstall install --retry-missing LOG'.

    Example:
        dotinstall verify dev
    """
    with handle_errors():
        config = get_config()
        target = resolve_platform(platform, config)
        paths = manifest_paths(manifest, config, target)
        orchestrator = build_orchestrator(config)

        profile_name = profile or config.get("profile")
        info(f"Verifying profile '{profile_name}' for {target}")
        issues = orchestrator.verify_profile(paths, profile_name, target)

        if not issues:
            success("All packages are installed")
            return

        warning(f"{len(issues)} package issue(s) found:")
        for line in format_issues(issues):
            plain(f"  {line}")

        if not no_log:
            path = log_missing_packages(
                issues,
                path=log,
                log_dir=config.get_path("log_dir"),
                user=env.user,
                host=env.host,
            )
            plain("")
            info(f"Missing packages logged to {path}")
            muted(f"Retry with: dotinstall install --retry-missing {path}")

    raise typer.Exit(1)
