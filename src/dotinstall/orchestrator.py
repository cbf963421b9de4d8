"""Installation runs: profile expansion, backend resolution and dispatch.

A run moves through these states, logged at debug level::

    START -> VALIDATE_MANIFEST -> RESOLVE_PACKAGES
          -> (RESOLVE_BACKEND -> DISPATCH -> RECORD) per package
          -> SUMMARIZE -> END

Manifest and profile errors stop the run before any package is touched.
Per-package errors are recorded in the summary and the run continues.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .backends import (
    DEFAULT_SOURCES_DIR,
    SUCCESS_OUTCOMES,
    InstallResult,
    Outcome,
    create_backends,
)
from .cache import PackageCache
from .errors import (
    BackendUnavailableError,
    DotinstallError,
    InstallFailure,
    InvalidFormatError,
    NotConfiguredError,
    UnresolvableError,
    ValidationError,
)
from .manifest import schema
from .manifest.loader import load_and_merge
from .manifest.model import Backend, MergedManifest
from .manifest.query import packages_for_profile
from .resolver import BackendResolver
from .runner import CommandRunner
from .verification import VerificationIssue, verify_packages_batch

logger = logging.getLogger(__name__)

# Backends without shared system state may run on the worker pool.
PARALLEL_BACKENDS = frozenset({Backend.MISE, Backend.HOMEBREW})

ManifestSources = Union[MergedManifest, str, Path, Sequence[Union[str, Path]]]


class RunState(Enum):
    START = "start"
    VALIDATE_MANIFEST = "validate_manifest"
    RESOLVE_PACKAGES = "resolve_packages"
    RESOLVE_BACKEND = "resolve_backend"
    DISPATCH = "dispatch"
    RECORD = "record"
    SUMMARIZE = "summarize"
    END = "end"


class Action(Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"


@dataclass
class RunSummary:
    """Per-package results of one run, in package order.

    ``succeeded``, ``already_installed``, ``skipped`` and ``failed`` add up
    to ``total``. Dry-run results count as succeeded.
    """

    platform: str
    dry_run: bool = False
    profile: Optional[str] = None
    action: str = Action.INSTALL.value
    results: List[InstallResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(
            1
            for r in self.results
            if r.outcome in SUCCESS_OUTCOMES and r.outcome != Outcome.ALREADY_INSTALLED
        )

    @property
    def already_installed(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.ALREADY_INSTALLED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.FAILED)

    @property
    def failures(self) -> Dict[str, str]:
        """Failed package names mapped to the reason."""
        return {
            r.package: r.error or "unknown error"
            for r in self.results
            if r.outcome == Outcome.FAILED
        }

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def messages(self) -> List[str]:
        return [line for r in self.results for line in r.messages]


def _as_paths(sources: Union[str, Path, Sequence[Union[str, Path]]]) -> List[Path]:
    if isinstance(sources, (str, Path)):
        return [Path(sources)]
    return [Path(s) for s in sources]


class Orchestrator:
    """Owns the cache, adapters and resolver for installation runs.

    Args:
        runner: Executes package-manager commands.
        jobs: Worker threads for mise and Homebrew packages. apt and PPA
            packages always run one at a time.
        sources_dir: Where apt source files live, for PPA detection.
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        jobs: int = 1,
        sources_dir: Union[str, Path] = DEFAULT_SOURCES_DIR,
    ):
        self.runner = runner or CommandRunner()
        self.jobs = max(1, int(jobs))
        self.sources_dir = Path(sources_dir)
        self.state = RunState.START
        self.reset()

    def reset(self):
        """Start from a fresh cache, as at the beginning of a run."""
        self.cache = PackageCache(self.runner)
        self.backends = create_backends(self.runner, self.cache, self.sources_dir)
        self.resolver = BackendResolver(self.backends)

    def _transition(self, state: RunState, detail: str = ""):
        self.state = state
        logger.debug(f"[{state.name}] {detail}".rstrip())

    def _start(self, detail: str):
        self._transition(RunState.START, detail)
        self.reset()

    def load_manifest(self, sources: ManifestSources) -> MergedManifest:
        """Load and validate manifest sources, or validate a loaded manifest.

        Raises:
            NotFoundError, ParseError, ValidationError: The plan is invalid.
        """
        self._transition(RunState.VALIDATE_MANIFEST)
        if isinstance(sources, MergedManifest):
            result = schema.validate(sources)
            if not result.is_valid:
                raise ValidationError("Invalid manifest", result.violations)
            return sources
        return load_and_merge(_as_paths(sources))

    def _resolve(
        self, manifest: MergedManifest, package: str, platform: str
    ) -> Union[Backend, InstallResult]:
        logger.debug(f"[{RunState.RESOLVE_BACKEND.name}] {package}")
        try:
            return self.resolver.resolve(manifest, package, platform)
        except UnresolvableError as e:
            logger.error(str(e))
            return InstallResult(package, None, Outcome.FAILED, error=str(e))

    def _dispatch(
        self,
        manifest: MergedManifest,
        package: str,
        backend: Backend,
        dry_run: bool,
        action: Action,
    ) -> InstallResult:
        logger.debug(f"[{RunState.DISPATCH.name}] {package} -> {backend.value}")
        adapter = self.backends[backend]
        try:
            if action == Action.UNINSTALL:
                result = adapter.uninstall(manifest, package, dry_run=dry_run)
            else:
                result = adapter.install(manifest, package, dry_run=dry_run)
        except (NotConfiguredError, InvalidFormatError) as e:
            logger.warning(f"Skipping {package}: {e}")
            result = InstallResult(package, backend, Outcome.SKIPPED, error=str(e))
        except (BackendUnavailableError, InstallFailure) as e:
            logger.error(f"Failed to {action.value} {package}: {e}")
            result = InstallResult(package, backend, Outcome.FAILED, error=str(e))
        logger.debug(f"[{RunState.RECORD.name}] {package}: {result.outcome.value}")
        return result

    def _process_serial(self, manifest, package, backend, dry_run, action) -> InstallResult:
        apt_lock = self.backends[Backend.APT].lock
        with apt_lock:
            return self._dispatch(manifest, package, backend, dry_run, action)

    def _run(
        self,
        manifest: MergedManifest,
        packages: Sequence[str],
        platform: str,
        dry_run: bool,
        action: Action,
        profile: Optional[str] = None,
    ) -> RunSummary:
        summary = RunSummary(platform, dry_run, profile, action.value)
        results: Dict[str, InstallResult] = {}
        futures: Dict[str, Future] = {}
        executor = ThreadPoolExecutor(max_workers=self.jobs) if self.jobs > 1 else None

        try:
            for package in packages:
                resolved = self._resolve(manifest, package, platform)
                if isinstance(resolved, InstallResult):
                    results[package] = resolved
                elif executor is not None and resolved in PARALLEL_BACKENDS:
                    futures[package] = executor.submit(
                        self._dispatch, manifest, package, resolved, dry_run, action
                    )
                else:
                    results[package] = self._process_serial(
                        manifest, package, resolved, dry_run, action
                    )

            for package, future in futures.items():
                results[package] = future.result()
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        summary.results = [results[package] for package in packages]

        self._transition(
            RunState.SUMMARIZE,
            f"{summary.total} total, {summary.succeeded} succeeded, "
            f"{summary.already_installed} already installed, "
            f"{summary.skipped} skipped, {summary.failed} failed",
        )
        self._transition(RunState.END)
        return summary

    def _profile_packages(
        self, manifest: MergedManifest, profile: str, platform: str
    ) -> List[str]:
        self._transition(RunState.RESOLVE_PACKAGES, f"profile={profile} platform={platform}")
        packages = sorted(packages_for_profile(manifest, profile, platform))
        logger.info(f"Profile '{profile}' resolves to {len(packages)} package(s) on {platform}")
        return packages

    def install_from_manifest(
        self,
        manifest_sources: ManifestSources,
        profile: str,
        platform: str,
        dry_run: bool = False,
    ) -> RunSummary:
        """Install every package of ``profile`` on ``platform``.

        Raises:
            NotFoundError: Missing manifest file or unknown profile.
            ParseError: Malformed manifest document.
            ValidationError: Manifest violates schema invariants.
        """
        self._start("install")
        manifest = self.load_manifest(manifest_sources)
        packages = self._profile_packages(manifest, profile, platform)
        return self._run(manifest, packages, platform, dry_run, Action.INSTALL, profile)

    def install_packages(
        self,
        manifest: MergedManifest,
        packages: Sequence[str],
        platform: str,
        dry_run: bool = False,
    ) -> RunSummary:
        """Install an explicit list of manifest packages.

        Raises:
            NotFoundError: A name is not in the manifest.
        """
        self._start("install packages")
        manifest = self.load_manifest(manifest)
        self._transition(RunState.RESOLVE_PACKAGES, f"{len(packages)} explicit package(s)")
        for package in packages:
            manifest.get_package(package)
        return self._run(manifest, list(packages), platform, dry_run, Action.INSTALL)

    def install_group(
        self,
        manifest: MergedManifest,
        group: str,
        platform: str,
        dry_run: bool = False,
    ) -> RunSummary:
        """Install a bulk install group.

        Raises:
            NotFoundError: Unknown group.
            DotinstallError: The group is disabled.
        """
        bulk_group = manifest.get_bulk_group(group)
        if not bulk_group.enabled:
            raise DotinstallError(f"Bulk install group '{group}' is disabled")
        packages = [
            name for name in bulk_group.packages
            if manifest.get_package(name).applies_to(platform)
        ]
        return self.install_packages(manifest, packages, platform, dry_run=dry_run)

    def uninstall_from_manifest(
        self,
        manifest_sources: ManifestSources,
        profile: str,
        platform: str,
        dry_run: bool = False,
    ) -> RunSummary:
        """Remove every package of ``profile`` through its resolved backend."""
        self._start("uninstall")
        manifest = self.load_manifest(manifest_sources)
        packages = self._profile_packages(manifest, profile, platform)
        return self._run(manifest, packages, platform, dry_run, Action.UNINSTALL, profile)

    def verify_profile(
        self,
        manifest_sources: ManifestSources,
        profile: str,
        platform: str,
    ) -> List[VerificationIssue]:
        """Verification issues for every package of ``profile``."""
        self._start("verify")
        manifest = self.load_manifest(manifest_sources)
        packages = self._profile_packages(manifest, profile, platform)
        issues = verify_packages_batch(
            manifest, packages, platform, self.resolver, self.backends
        )
        self._transition(RunState.SUMMARIZE, f"{len(issues)} issue(s)")
        self._transition(RunState.END)
        return issues


def install_from_manifest(
    manifest_sources: ManifestSources,
    profile: str,
    platform: str,
    dry_run: bool = False,
    runner: Optional[CommandRunner] = None,
    jobs: int = 1,
    sources_dir: Union[str, Path] = DEFAULT_SOURCES_DIR,
) -> RunSummary:
    """Run :meth:`Orchestrator.install_from_manifest` with a fresh orchestrator."""
    orchestrator = Orchestrator(runner=runner, jobs=jobs, sources_dir=sources_dir)
    return orchestrator.install_from_manifest(manifest_sources, profile, platform, dry_run)
