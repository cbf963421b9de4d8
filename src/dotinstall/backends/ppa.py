import re
from pathlib import Path
from typing import List, Optional, Union

from ..cache import PackageCache
from ..errors import InstallFailure, InvalidFormatError, NotConfiguredError
from ..manifest.model import Backend, MergedManifest
from ..runner import CommandRunner, format_command
from ..system import Platform
from .apt import AptBackend
from .base import DRY_RUN_PREFIX, BaseBackend

PPA_PREFIX = "ppa:"
DEFAULT_SOURCES_DIR = Path("/etc/apt/sources.list.d")
KEYRING_DIR = Path("/etc/apt/trusted.gpg.d")


def repository_slug(repository: str) -> str:
    """Filesystem-safe name for a PPA, e.g. ``neovim-ppa-unstable``."""
    return re.sub(r"[^A-Za-z0-9_.-]+", "-", repository[len(PPA_PREFIX):]).strip("-")


class PpaBackend(BaseBackend):
    """Adds Launchpad PPAs and installs their packages through apt."""

    kind = Backend.PPA
    binary = "add-apt-repository"
    display_name = "PPA"
    platforms = frozenset({Platform.UBUNTU.value})

    def __init__(
        self,
        runner: CommandRunner,
        cache: PackageCache,
        apt: AptBackend,
        sources_dir: Union[str, Path] = DEFAULT_SOURCES_DIR,
    ):
        super().__init__(runner, cache)
        self.apt = apt
        self.sources_dir = Path(sources_dir)

    def is_available(self) -> bool:
        return super().is_available() and self.apt.is_available()

    def get_repository(self, manifest: MergedManifest, package: str) -> str:
        """The ``ppa:user/name`` repository for a package.

        Raises:
            NotConfiguredError: No ppa block or no repository in it.
            InvalidFormatError: The repository lacks the ``ppa:`` prefix.
        """
        repository = self.config(manifest, package).get("repository")
        if not repository:
            raise NotConfiguredError(f"No PPA repository configured for '{package}'")
        repository = str(repository)
        if not repository.startswith(PPA_PREFIX):
            raise InvalidFormatError(
                f"PPA repository for '{package}' must start with '{PPA_PREFIX}' "
                f"(got '{repository}')"
            )
        return repository

    def get_gpg_key(self, manifest: MergedManifest, package: str) -> Optional[str]:
        return self.config(manifest, package).get("gpg_key") or None

    def is_repository_added(self, repository: str) -> bool:
        """True if an apt source file already references ``repository``."""
        needle = repository[len(PPA_PREFIX):] if repository.startswith(PPA_PREFIX) else repository
        if not self.sources_dir.is_dir():
            return False

        for path in sorted(self.sources_dir.iterdir()):
            if path.suffix not in (".list", ".sources") or not path.is_file():
                continue
            try:
                text = path.read_text(errors="replace")
            except OSError as e:
                self.logger.debug(f"Could not read {path}: {e}")
                continue
            for line in text.splitlines():
                line = line.strip()
                if line and not line.startswith("#") and needle in line:
                    return True
        return False

    def gpg_commands(self, repository: str, gpg_key: str) -> List[List[str]]:
        keyring = KEYRING_DIR / f"{repository_slug(repository)}.gpg"
        return [
            ["curl", "-fsSL", gpg_key],
            self.runner.privileged(["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring)]),
        ]

    def _import_gpg_key(self, repository: str, gpg_key: str):
        fetch, dearmor = self.gpg_commands(repository, gpg_key)
        self.logger.info(f"Adding GPG key: {gpg_key}")
        result = self.runner.run(fetch, binary=True)
        if not result.ok:
            raise InstallFailure(format_command(fetch), result.returncode, result.error_text())
        result = self.runner.run(dearmor, input=result.stdout_bytes(), binary=True)
        if not result.ok:
            raise InstallFailure(format_command(dearmor), result.returncode, result.error_text())

    def add_repository(
        self, manifest: MergedManifest, package: str, dry_run: bool = False
    ) -> List[str]:
        """Register a package's PPA, importing its GPG key first when set.

        Skips repositories already present in the sources directory.

        Returns:
            Progress messages (the would-run commands in dry-run mode).

        Raises:
            NotConfiguredError: No ppa block or repository.
            InvalidFormatError: The repository lacks the ``ppa:`` prefix.
            InstallFailure: A key import or ``add-apt-repository`` failed.
        """
        repository = self.get_repository(manifest, package)
        gpg_key = self.get_gpg_key(manifest, package)

        if self.is_repository_added(repository):
            self.logger.debug(f"PPA already added: {repository}")
            return [f"PPA already added: {repository}"]

        add_cmd = self.runner.privileged(["add-apt-repository", "-y", repository])

        if dry_run:
            messages = []
            if gpg_key:
                fetch, dearmor = self.gpg_commands(repository, gpg_key)
                messages.append(f"{DRY_RUN_PREFIX} Would add GPG key: {gpg_key}")
                messages.append(
                    f"{DRY_RUN_PREFIX} Command: {format_command(fetch)} | {format_command(dearmor)}"
                )
            messages.append(f"{DRY_RUN_PREFIX} Would add PPA repository: {repository}")
            messages.append(f"{DRY_RUN_PREFIX} Command: {format_command(add_cmd)}")
            messages.extend(self.apt.update_index(dry_run=True, force=True))
            return messages

        with self.apt.lock:
            if gpg_key:
                self._import_gpg_key(repository, gpg_key)

            self.logger.info(f"Adding PPA repository: {repository}")
            result = self.runner.run(add_cmd)
            if not result.ok:
                raise InstallFailure(format_command(add_cmd), result.returncode, result.error_text())

            messages = [f"Added PPA repository: {repository}"]
            messages.extend(self.apt.update_index(force=True))
            return messages

    def prepare(self, manifest: MergedManifest, package: str, dry_run: bool) -> List[str]:
        return self.add_repository(manifest, package, dry_run=dry_run)

    def install(self, manifest: MergedManifest, package: str, dry_run: bool = False):
        # A malformed repository is reported the same way in dry-run and live runs.
        self.get_repository(manifest, package)
        return super().install(manifest, package, dry_run=dry_run)

    def install_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        return self.apt.install_commands(manifest, package, names)

    def uninstall_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        return self.apt.uninstall_commands(manifest, package, names)
