from typing import List

from ..manifest.model import DEFAULT_MISE_VERSION, Backend, MergedManifest
from ..manifest.query import packages_by_category
from ..system import PLATFORM_NAMES
from .base import BaseBackend, BulkSummary


def version_matches(installed: str, wanted: str) -> bool:
    """True if ``installed`` satisfies a pinned ``wanted`` prefix like ``20``."""
    return installed == wanted or installed.startswith(f"{wanted}.")


class MiseBackend(BaseBackend):
    """Installs runtimes and CLI tools with mise.

    The tool name is the manifest package name; the version comes from
    ``mise_version`` and defaults to ``latest``.
    """

    kind = Backend.MISE
    binary = "mise"
    display_name = "mise"
    platforms = frozenset(PLATFORM_NAMES)

    def get_version(self, manifest: MergedManifest, package: str) -> str:
        return str(self.config(manifest, package).get("version") or DEFAULT_MISE_VERSION)

    def get_package_name(self, manifest: MergedManifest, package: str) -> List[str]:
        # Raises NotConfiguredError unless mise applies to the package.
        self.config(manifest, package)
        return [package]

    def is_known_tool(self, name: str) -> bool:
        """True if the mise registry lists ``name``, installed or not."""
        return self.cache.exists(self.kind, name)

    def version_installed(self, name: str, version: str) -> bool:
        if not self.check_installed(name):
            return False
        if version == DEFAULT_MISE_VERSION:
            return True
        return any(
            version_matches(v, version) for v in self.cache.installed_versions(self.kind, name)
        )

    def name_installed(self, manifest: MergedManifest, package: str, name: str) -> bool:
        return self.version_installed(name, self.get_version(manifest, package))

    def noun(self, manifest: MergedManifest, package: str) -> str:
        return "mise tool"

    def describe(self, manifest: MergedManifest, package: str, names: List[str]) -> str:
        version = self.get_version(manifest, package)
        return " ".join(f"{name}@{version}" for name in names)

    def install_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        version = self.get_version(manifest, package)
        return [["mise", "install", *(f"{name}@{version}" for name in names)]]

    def uninstall_commands(
        self, manifest: MergedManifest, package: str, names: List[str]
    ) -> List[List[str]]:
        version = self.get_version(manifest, package)
        if version == DEFAULT_MISE_VERSION:
            return [["mise", "uninstall", "--all", *names]]
        return [["mise", "uninstall", *(f"{name}@{version}" for name in names)]]

    def mark_installed(self, manifest: MergedManifest, package: str, names: List[str]):
        version = self.get_version(manifest, package)
        self.cache.mark_installed(
            self.kind, names,
            version=None if version == DEFAULT_MISE_VERSION else version,
        )

    def sync_category(
        self, manifest: MergedManifest, category: str, dry_run: bool = False
    ) -> BulkSummary:
        """Install every mise-managed tool in ``category``.

        Raises:
            NotFoundError: Unknown category.
        """
        tools = sorted(
            name
            for name in packages_by_category(manifest, category)
            if manifest.packages[name].has_config(self.kind)
        )
        if not tools:
            self.logger.info(f"No mise tools found in category '{category}'")
            return BulkSummary()
        return self.install_bulk(manifest, tools, dry_run=dry_run)
