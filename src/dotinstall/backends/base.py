import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from ..cache import PackageCache
from ..errors import (
    BackendUnavailableError,
    InstallFailure,
    InvalidFormatError,
    NotConfiguredError,
)
from ..manifest.model import Backend, MergedManifest
from ..manifest.query import backend_config
from ..runner import CommandResult, CommandRunner, format_command

DRY_RUN_PREFIX = "[DRY RUN]"


class Outcome(str, Enum):
    ALREADY_INSTALLED = "already_installed"
    INSTALLED = "installed"
    DRY_RUN = "dry_run"
    FAILED = "failed"
    SKIPPED = "skipped"
    REMOVED = "removed"
    NOT_INSTALLED = "not_installed"


SUCCESS_OUTCOMES = frozenset(
    {
        Outcome.ALREADY_INSTALLED,
        Outcome.INSTALLED,
        Outcome.DRY_RUN,
        Outcome.REMOVED,
        Outcome.NOT_INSTALLED,
    }
)


@dataclass
class InstallResult:
    """Per-package outcome of an adapter operation.

    ``commands`` holds the rendered command lines that ran (or, in dry-run
    mode, would run). ``messages`` holds human-readable progress lines.
    """

    package: str
    backend: Optional[Backend]
    outcome: Outcome
    native_names: List[str] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES


@dataclass
class BulkSummary:
    results: List[InstallResult] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.FAILED)


def split_package_list(packages: Union[str, Iterable[str]]) -> List[str]:
    """Accept a whitespace-separated string or an iterable of names."""
    if isinstance(packages, str):
        return packages.split()
    return [p for p in packages if p]


class BaseBackend(ABC):
    """Adapter around exactly one package manager.

    Subclasses describe how to build install/uninstall commands; this class
    owns idempotence checks, dry-run rendering and result bookkeeping.
    """

    kind: Backend
    binary: str
    display_name: str
    platforms: FrozenSet[str] = frozenset()

    def __init__(self, runner: CommandRunner, cache: PackageCache):
        self.runner = runner
        self.cache = cache
        self.logger = logging.getLogger(self.__class__.__module__)

    def is_available(self) -> bool:
        return self.runner.which(self.binary) is not None

    def supports_platform(self, platform: str) -> bool:
        return platform in self.platforms

    def require_available(self):
        if not self.is_available():
            raise BackendUnavailableError(
                f"{self.display_name} is not available ({self.binary} not found on PATH)"
            )

    def config(self, manifest: MergedManifest, package: str) -> Dict[str, Any]:
        return backend_config(manifest, package, self.kind)

    def get_package_name(self, manifest: MergedManifest, package: str) -> List[str]:
        """Backend-native name(s) for a manifest package.

        Raises:
            NotFoundError: Unknown package.
            NotConfiguredError: No config block, or it names no package.
        """
        config = self.config(manifest, package)
        names = config.get("packages")
        if names:
            return [str(n) for n in names]
        if config.get("package"):
            return [str(config["package"])]
        raise NotConfiguredError(
            f"No package or packages field in {self.display_name} config for '{package}'"
        )

    def check_installed(self, native_name: str) -> bool:
        return self.cache.lookup(self.kind, native_name)

    def name_installed(self, manifest: MergedManifest, package: str, name: str) -> bool:
        """Installed check for one native name of a manifest package."""
        return self.check_installed(name)

    def is_installed(self, manifest: MergedManifest, package: str) -> bool:
        return all(
            self.name_installed(manifest, package, name)
            for name in self.get_package_name(manifest, package)
        )

    @abstractmethod
    def install_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        """Commands that install ``names`` for ``package``."""

    @abstractmethod
    def uninstall_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        """Commands that remove ``names`` for ``package``."""

    def noun(self, manifest: MergedManifest, package: str) -> str:
        """How dry-run and progress messages describe this package kind."""
        return f"{self.display_name} packages"

    def describe(self, manifest: MergedManifest, package: str, names: List[str]) -> str:
        return " ".join(names)

    def prepare(self, manifest: MergedManifest, package: str, dry_run: bool) -> List[str]:
        """Hook run before installing; returns progress messages.

        Raises:
            InstallFailure: A preparatory command failed.
        """
        return []

    def mark_installed(self, manifest: MergedManifest, package: str, names: List[str]):
        self.cache.mark_installed(self.kind, names)

    def _result(self, package: str, outcome: Outcome, names: List[str], **kwargs) -> InstallResult:
        return InstallResult(package, self.kind, outcome, list(names), **kwargs)

    def _dry_run(
        self, package: str, names: List[str], summary: str, commands: List[List[str]],
        messages: Optional[List[str]] = None,
    ) -> InstallResult:
        rendered = [format_command(cmd) for cmd in commands]
        lines = list(messages or [])
        lines.append(f"{DRY_RUN_PREFIX} Would {summary}")
        lines.extend(f"{DRY_RUN_PREFIX} Command: {cmd}" for cmd in rendered)
        for line in lines:
            self.logger.info(line)
        return self._result(package, Outcome.DRY_RUN, names, commands=rendered, messages=lines)

    def _execute(self, commands: List[List[str]]) -> Optional[CommandResult]:
        """Run commands in order; returns the first failing result."""
        for cmd in commands:
            result = self.runner.run(cmd)
            if not result.ok:
                return result
        return None

    def _failed(
        self, package: str, names: List[str], action: str, error: str, **kwargs
    ) -> InstallResult:
        self.logger.error(f"Failed to {action} {package}: {error}")
        return self._result(package, Outcome.FAILED, names, error=error, **kwargs)

    def install(self, manifest: MergedManifest, package: str, dry_run: bool = False) -> InstallResult:
        """Install a manifest package through this backend.

        Installing an already-installed package is a no-op reported as
        ``ALREADY_INSTALLED``. A failing package manager yields ``FAILED``.

        Raises:
            NotFoundError: Unknown package.
            NotConfiguredError: No config block for this backend.
            InvalidFormatError: Malformed config block.
            BackendUnavailableError: Live run without the binary on PATH.
        """
        names = self.get_package_name(manifest, package)
        noun = self.noun(manifest, package)

        if dry_run:
            messages = self.prepare(manifest, package, dry_run=True)
            return self._dry_run(
                package, names, f"install {noun}: {self.describe(manifest, package, names)}",
                self.install_commands(manifest, package, names), messages,
            )

        self.require_available()
        missing = [
            name for name in names if not self.name_installed(manifest, package, name)
        ]
        if not missing:
            self.logger.debug(f"{package}: already installed via {self.kind.value}")
            return self._result(
                package, Outcome.ALREADY_INSTALLED, names,
                messages=[f"{package} is already installed"],
            )

        try:
            messages = self.prepare(manifest, package, dry_run=False)
        except InstallFailure as e:
            return self._failed(package, missing, "prepare", str(e), commands=[e.command])

        commands = self.install_commands(manifest, package, missing)
        rendered = [format_command(cmd) for cmd in commands]
        messages.append(f"Installing {noun}: {self.describe(manifest, package, missing)}")
        self.logger.info(messages[-1])

        failure = self._execute(commands)
        if failure is not None:
            return self._failed(
                package, missing, "install",
                failure.error_text() or f"exit code {failure.returncode}",
                commands=rendered, messages=messages,
            )

        self.mark_installed(manifest, package, missing)
        return self._result(
            package, Outcome.INSTALLED, missing, commands=rendered, messages=messages
        )

    def uninstall(self, manifest: MergedManifest, package: str, dry_run: bool = False) -> InstallResult:
        """Remove a manifest package; a package that is absent is not an error."""
        names = self.get_package_name(manifest, package)
        noun = self.noun(manifest, package)

        if dry_run:
            return self._dry_run(
                package, names, f"remove {noun}: {self.describe(manifest, package, names)}",
                self.uninstall_commands(manifest, package, names),
            )

        self.require_available()
        present = [name for name in names if self.name_installed(manifest, package, name)]
        if not present:
            return self._result(
                package, Outcome.NOT_INSTALLED, names,
                messages=[f"{package} is not installed"],
            )

        commands = self.uninstall_commands(manifest, package, present)
        rendered = [format_command(cmd) for cmd in commands]
        failure = self._execute(commands)
        if failure is not None:
            return self._failed(
                package, present, "remove",
                failure.error_text() or f"exit code {failure.returncode}",
                commands=rendered,
            )

        self.cache.mark_removed(self.kind, present)
        return self._result(
            package, Outcome.REMOVED, present,
            commands=rendered,
            messages=[f"Removed {noun}: {self.describe(manifest, package, present)}"],
        )

    def install_bulk(
        self,
        manifest: MergedManifest,
        packages: Union[str, Iterable[str]],
        dry_run: bool = False,
    ) -> BulkSummary:
        """Install several packages, skipping those this backend can't handle.

        Unknown packages abort before anything is installed.

        Raises:
            NotFoundError: A name is not in the manifest.
        """
        names = split_package_list(packages)
        for name in names:
            manifest.get_package(name)

        summary = BulkSummary()
        for name in names:
            try:
                result = self.install(manifest, name, dry_run=dry_run)
            except (NotConfiguredError, InvalidFormatError) as e:
                self.logger.debug(f"Skipping {name}: {e}")
                result = self._result(name, Outcome.SKIPPED, [], error=str(e))
            except BackendUnavailableError as e:
                result = self._result(name, Outcome.FAILED, [], error=str(e))
            summary.results.append(result)

        self.logger.info(
            f"{self.display_name} bulk install: {summary.count} total, "
            f"{summary.succeeded} succeeded, {summary.skipped} skipped, "
            f"{summary.failed} failed"
        )
        return summary
