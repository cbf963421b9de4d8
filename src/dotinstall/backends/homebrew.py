import re
from typing import List, Optional

from ..errors import InstallFailure, InvalidFormatError
from ..manifest.model import Backend, MergedManifest
from ..runner import format_command
from ..system import Platform
from .base import DRY_RUN_PREFIX, BaseBackend

TAP_PATTERN = re.compile(r"^[^/\s]+/[^/\s]+$")


class HomebrewBackend(BaseBackend):
    """Installs Homebrew formulae and casks."""

    kind = Backend.HOMEBREW
    binary = "brew"
    display_name = "Homebrew"
    platforms = frozenset(
        {Platform.MACOS.value, Platform.UBUNTU.value, Platform.LINUX.value}
    )

    def is_cask(self, manifest: MergedManifest, package: str) -> bool:
        return bool(self.config(manifest, package).get("cask", False))

    def get_tap(self, manifest: MergedManifest, package: str) -> Optional[str]:
        """The ``user/repo`` tap a package needs, if any."""
        tap = self.config(manifest, package).get("tap")
        if not tap:
            return None
        if not TAP_PATTERN.match(str(tap)):
            raise InvalidFormatError(
                f"Invalid Homebrew tap '{tap}' for package '{package}' (expected user/repo)"
            )
        return str(tap)

    def noun(self, manifest: MergedManifest, package: str) -> str:
        return "Homebrew cask" if self.is_cask(manifest, package) else "Homebrew formula"

    def check_installed(self, native_name: str, cask: bool = False) -> bool:
        return self.cache.lookup(self.kind, native_name, cask=cask)

    def name_installed(self, manifest: MergedManifest, package: str, name: str) -> bool:
        return self.check_installed(name, cask=self.is_cask(manifest, package))

    def add_tap(self, tap: str, dry_run: bool = False) -> List[str]:
        """Tap a third-party repository.

        Raises:
            InvalidFormatError: ``tap`` is not ``user/repo``.
            InstallFailure: ``brew tap`` exited non-zero.
        """
        if not TAP_PATTERN.match(tap):
            raise InvalidFormatError(f"Invalid Homebrew tap '{tap}' (expected user/repo)")

        cmd = ["brew", "tap", tap]
        if dry_run:
            return [
                f"{DRY_RUN_PREFIX} Would add Homebrew tap: {tap}",
                f"{DRY_RUN_PREFIX} Command: {format_command(cmd)}",
            ]

        self.logger.info(f"Adding Homebrew tap: {tap}")
        result = self.runner.run(cmd)
        if not result.ok:
            raise InstallFailure(format_command(cmd), result.returncode, result.error_text())
        return [f"Added Homebrew tap: {tap}"]

    def prepare(self, manifest: MergedManifest, package: str, dry_run: bool) -> List[str]:
        tap = self.get_tap(manifest, package)
        if tap is None:
            return []
        return self.add_tap(tap, dry_run=dry_run)

    def install(self, manifest: MergedManifest, package: str, dry_run: bool = False):
        # Surface a malformed tap before any command runs.
        self.get_tap(manifest, package)
        return super().install(manifest, package, dry_run=dry_run)

    def _cask_flag(self, manifest: MergedManifest, package: str) -> List[str]:
        return ["--cask"] if self.is_cask(manifest, package) else []

    def install_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        return [["brew", "install", *self._cask_flag(manifest, package), *names]]

    def uninstall_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        return [["brew", "uninstall", *self._cask_flag(manifest, package), *names]]

    def mark_installed(self, manifest: MergedManifest, package: str, names: List[str]):
        self.cache.mark_installed(self.kind, names, cask=self.is_cask(manifest, package))
