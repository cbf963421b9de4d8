"""Install and uninstall commands for dotinstall CLI."""

from pathlib import Path
from typing import Optional

import typer

from ..verification import load_missing_packages
from .helpers import (
    build_orchestrator,
    get_config,
    handle_errors,
    manifest_paths,
    print_summary,
    resolve_platform,
)
from .output import info, warning

PROFILE_ARG = typer.Argument(
    None, help="Profile to install (defaults to 'profile' from the config)."
)
DRY_RUN_OPT = typer.Option(
    False, "--dry-run", "-n", help="Show what would run without changing anything."
)
MANIFEST_OPT = typer.Option(
    None, "--manifest", "-m", help="Manifest file or directory."
)
PLATFORM_OPT = typer.Option(
    None, "--platform", "-p", help="Target platform: ubuntu, linux or macos."
)


def register(app: typer.Typer) -> None:
    """Register install commands with the app."""
    app.command()(install)
    app.command()(uninstall)
    app.command(name="cleanup", help="Alias for uninstall.")(uninstall)


def install(
    profile: Optional[str] = PROFILE_ARG,
    dry_run: bool = DRY_RUN_OPT,
    manifest: Optional[Path] = MANIFEST_OPT,
    platform: Optional[str] = PLATFORM_OPT,
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j", min=1, help="Parallel workers for mise and Homebrew."
    ),
    group: Optional[str] = typer.Option(
        None, "--group", "-g", help="Install an enabled bulk install group."
    ),
    retry_missing: Optional[Path] = typer.Option(
        None, "--retry-missing", help="Retry packages recorded in a verification log."
    ),
):
    """Install the packages of a profile.

    Example:
        dotinstall install dev --dry-run
        dotinstall install --retry-missing ~/.dotinstall-logs/missing-packages-*.json
    """
    with handle_errors():
        config = get_config()
        target = resolve_platform(platform, config)
        paths = manifest_paths(manifest, config, target)
        orchestrator = build_orchestrator(config, jobs)

        if dry_run:
            info("Dry run: no packages will be installed")

        if retry_missing is not None:
            loaded = orchestrator.load_manifest(paths)
            recorded = load_missing_packages(retry_missing)
            names = [name for name in recorded if name in loaded.packages]
            for name in recorded:
                if name not in loaded.packages:
                    warning(f"'{name}' is no longer in the manifest, skipping")
            info(f"Retrying {len(names)} package(s) from {retry_missing}")
            summary = orchestrator.install_packages(loaded, names, target, dry_run=dry_run)
        elif group is not None:
            loaded = orchestrator.load_manifest(paths)
            summary = orchestrator.install_group(loaded, group, target, dry_run=dry_run)
        else:
            profile_name = profile or config.get("profile")
            info(f"Installing profile '{profile_name}' for {target}")
            summary = orchestrator.install_from_manifest(
                paths, profile_name, target, dry_run=dry_run
            )

    print_summary(summary)
    if not summary.ok:
        raise typer.Exit(1)


def uninstall(
    profile: Optional[str] = PROFILE_ARG,
    dry_run: bool = DRY_RUN_OPT,
    manifest: Optional[Path] = MANIFEST_OPT,
    platform: Optional[str] = PLATFORM_OPT,
):
    """Remove the packages of a profile.

    Example:
        dotinstall uninstall minimal --dry-run
    """
    with handle_errors():
        config = get_config()
        target = resolve_platform(platform, config)
        paths = manifest_paths(manifest, config, target)
        orchestrator = build_orchestrator(config)

        profile_name = profile or config.get("profile")
        info(f"Removing profile '{profile_name}' for {target}")
        summary = orchestrator.uninstall_from_manifest(
            paths, profile_name, target, dry_run=dry_run
        )

    print_summary(summary)
    if not summary.ok:
        raise typer.Exit(1)
