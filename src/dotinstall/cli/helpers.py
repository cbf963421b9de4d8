"""Shared helper functions for CLI commands."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from ..backends import DEFAULT_SOURCES_DIR, Outcome
from ..config import Config
from ..errors import DotinstallError, ValidationError
from ..manifest import MergedManifest, discover_manifest_files, load_and_merge
from ..orchestrator import Orchestrator, RunSummary
from ..runner import CommandRunner
from ..system import PLATFORM_NAMES, Environment
from .output import error, muted, plain, success, warning

# Global environment instance
env = Environment()
logger = logging.getLogger(__name__)


def get_config() -> Config:
    """Load config from ~/.dotinstall.yaml or ~/.dotinstall.yml."""
    return Config.find(env.home, env=env)


def resolve_platform(option: Optional[str], config: Config) -> str:
    """Platform from the command line, then config, then detection."""
    platform = option or config.get("platform") or env.platform
    if platform not in PLATFORM_NAMES:
        error(f"Unknown platform '{platform}' (expected one of: {', '.join(PLATFORM_NAMES)})")
        raise typer.Exit(1)
    return platform


def manifest_paths(option: Optional[Path], config: Config, platform: str) -> List[Path]:
    location = option or config.get_path("manifest")
    if location is None:
        raise DotinstallError(
            "No manifest configured. Pass --manifest or set 'manifest' in ~/.dotinstall.yaml"
        )
    return discover_manifest_files(location, platform)


def load_manifest(option: Optional[Path], config: Config, platform: str) -> MergedManifest:
    paths = manifest_paths(option, config, platform)
    logger.debug(f"Manifest files: {', '.join(str(p) for p in paths)}")
    return load_and_merge(paths)


def build_orchestrator(config: Config, jobs: Optional[int] = None) -> Orchestrator:
    runner = CommandRunner(timeout=config.timeout)
    return Orchestrator(
        runner=runner,
        jobs=jobs or config.jobs,
        sources_dir=config.get_path("sources_dir") or DEFAULT_SOURCES_DIR,
    )


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn dotinstall errors into a red message and exit code 1."""
    try:
        yield
    except ValidationError as e:
        error(str(e).splitlines()[0])
        for violation in e.violations:
            muted(f"  - {violation}")
        raise typer.Exit(1)
    except DotinstallError as e:
        error(str(e))
        raise typer.Exit(1)


def print_summary(summary: RunSummary) -> None:
    """Show per-package results followed by the run totals."""
    for result in summary.results:
        if result.outcome == Outcome.DRY_RUN:
            for line in result.messages:
                plain(line)
        elif result.outcome in (Outcome.INSTALLED, Outcome.REMOVED):
            success(result.messages[-1] if result.messages else result.package)
        elif result.outcome in (Outcome.ALREADY_INSTALLED, Outcome.NOT_INSTALLED):
            muted(result.messages[-1] if result.messages else result.package)
        elif result.outcome == Outcome.SKIPPED:
            warning(f"Skipped {result.package}: {result.error}")
        else:
            error(f"{result.package}: {result.error}")

    plain("")
    verb = "Uninstall" if summary.action == "uninstall" else "Install"
    plain(
        f"{verb} summary: {summary.total} total, {summary.succeeded} succeeded, "
        f"{summary.already_installed} already installed, "
        f"{summary.skipped} skipped, {summary.failed} failed"
    )
    if summary.dry_run:
        muted("(dry run: nothing was changed)")
