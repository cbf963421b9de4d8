import threading
from typing import List

from ..cache import PackageCache
from ..manifest.model import Backend, MergedManifest
from ..runner import CommandRunner, format_command
from ..system import Platform
from .base import DRY_RUN_PREFIX, BaseBackend


class AptBackend(BaseBackend):
    """Installs packages with apt-get on Debian-family systems."""

    kind = Backend.APT
    binary = "apt-get"
    display_name = "APT"
    platforms = frozenset({Platform.UBUNTU.value, Platform.LINUX.value})

    def __init__(self, runner: CommandRunner, cache: PackageCache):
        super().__init__(runner, cache)
        # Serializes index refreshes and repository changes shared with PPA.
        self.lock = threading.RLock()
        self._index_refreshed = False

    def update_command(self) -> List[str]:
        return self.runner.privileged(["apt-get", "update"])

    def update_index(self, dry_run: bool = False, force: bool = False) -> List[str]:
        """Refresh the package index once per run (or again with ``force``)."""
        with self.lock:
            if self._index_refreshed and not force:
                return []

            cmd = self.update_command()
            if dry_run:
                return [f"{DRY_RUN_PREFIX} Would update APT cache: {format_command(cmd)}"]

            self.logger.info("Updating APT package index...")
            result = self.runner.run(cmd)
            if not result.ok:
                self.logger.warning(
                    f"apt-get update failed, continuing with stale index: {result.error_text()}"
                )
            self._index_refreshed = True
            return [f"Updated APT package index: {format_command(cmd)}"]

    def prepare(self, manifest: MergedManifest, package: str, dry_run: bool) -> List[str]:
        if dry_run:
            return []
        return self.update_index()

    def install_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        return [self.runner.privileged(["apt-get", "install", "-y", *names])]

    def uninstall_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        return [self.runner.privileged(["apt-get", "remove", "-y", *names])]
