"""Manifest inspection commands for dotinstall CLI."""

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from ..errors import NotConfiguredError
from ..manifest import (
    VALIDATION_PASSED,
    Backend,
    has_backend_config,
    load_and_merge,
    packages_for_profile,
    priority_for_package,
    validate_manifest_schema,
)
from .helpers import (
    build_orchestrator,
    get_config,
    handle_errors,
    load_manifest,
    manifest_paths,
    resolve_platform,
)
from .output import console, error, muted, plain, success

MANIFEST_OPT = typer.Option(
    None, "--manifest", "-m", help="Manifest file or directory."
)
PLATFORM_OPT = typer.Option(
    None, "--platform", "-p", help="Target platform: ubuntu, linux or macos."
)


def register(app: typer.Typer) -> None:
    """Register manifest commands with the app."""
    app.command()(validate)
    app.command()(profiles)
    app.command()(show)
    app.command(name="cache-stats")(cache_stats)


def validate(
    manifest: Optional[Path] = MANIFEST_OPT,
    platform: Optional[str] = PLATFORM_OPT,
):
    """Validate manifest files against the schema.

    Each document is checked on its own, then the merged manifest is
    checked for references between sections.

    Example:
        dotinstall validate --manifest install/manifests
    """
    with handle_errors():
        config = get_config()
        target = resolve_platform(platform, config)
        paths = manifest_paths(manifest, config, target)

        failed = False
        for path in paths:
            passed, diagnostics = validate_manifest_schema(path)
            if passed:
                muted(f"{path}: ok")
                continue
            failed = True
            error(f"{path}:")
            for line in diagnostics:
                muted(f"  - {line}")

        if failed:
            raise typer.Exit(1)

        load_and_merge(paths)
        success(VALIDATION_PASSED)


def profiles(
    manifest: Optional[Path] = MANIFEST_OPT,
    platform: Optional[str] = PLATFORM_OPT,
):
    """List the profiles defined in the manifest."""
    with handle_errors():
        config = get_config()
        target = resolve_platform(platform, config)
        loaded = load_manifest(manifest, config, target)
        default = config.get("profile")

        if not loaded.profiles:
            plain("No profiles defined.")
            return

        plain(f"Available profiles ({target}):\n")
        for name in sorted(loaded.profiles):
            profile = loaded.profiles[name]
            count = len(packages_for_profile(loaded, name, target))
            if name == default:
                console.print(f"  [green]*[/green] [bold]{name}[/bold] ({count} packages)")
            else:
                plain(f"    {name} ({count} packages)")
            if profile.description:
                muted(f"      {profile.description}")


def show(
    package: str = typer.Argument(..., help="Package name from the manifest."),
    manifest: Optional[Path] = MANIFEST_OPT,
    platform: Optional[str] = PLATFORM_OPT,
):
    """Show a package and how its backend would be chosen.

    Example:
        dotinstall show neovim --platform ubuntu
    """
    with handle_errors():
        config = get_config()
        target = resolve_platform(platform, config)
        loaded = load_manifest(manifest, config, target)
        entry = loaded.get_package(package)
        orchestrator = build_orchestrator(config)

        console.print(f"[bold]{package}[/bold]: {entry.description}")
        muted(f"  Category: {entry.category}")
        platforms = ", ".join(sorted(entry.platforms)) if entry.platforms else "all"
        muted(f"  Platforms: {platforms}")
        chain = priority_for_package(loaded, package)
        muted(f"  Priority: {' -> '.join(b.value for b in chain)}")

        plain("")
        plain(f"Backend resolution on {target}:")
        for candidate in orchestrator.resolver.explain(loaded, package, target):
            if candidate.viable:
                console.print(f"  [green]✓[/green] {candidate.backend.value}")
            else:
                console.print(f"  [red]✗[/red] {candidate}")

        plain("")
        plain("Native names:")
        for backend in Backend:
            if not has_backend_config(loaded, package, backend):
                continue
            try:
                names = orchestrator.backends[backend].get_package_name(loaded, package)
            except NotConfiguredError as e:
                muted(f"  {backend.value}: {e}")
                continue
            muted(f"  {backend.value}: {' '.join(names)}")


def cache_stats(
    platform: Optional[str] = PLATFORM_OPT,
):
    """Show how many packages each backend reports."""
    with handle_errors():
        config = get_config()
        target = resolve_platform(platform, config)
        orchestrator = build_orchestrator(config)

        for backend in (Backend.APT, Backend.HOMEBREW, Backend.MISE):
            adapter = orchestrator.backends[backend]
            if adapter.supports_platform(target) and adapter.is_available():
                orchestrator.cache.init(backend)

        table = Table(title=f"Package cache ({target})")
        table.add_column("Backend")
        table.add_column("Installed", justify="right")
        table.add_column("Casks", justify="right")
        table.add_column("Available", justify="right")
        for name, stats in orchestrator.cache.stats().items():
            if not stats["initialized"]:
                table.add_row(name, "-", "-", "-")
                continue
            table.add_row(
                name,
                str(stats["installed"]),
                str(stats["casks"]),
                str(stats["available"]),
            )
        console.print(table)
