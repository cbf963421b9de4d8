"""Typed view over a merged package manifest."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ..errors import NotFoundError


class Backend(str, Enum):
    """Supported package-manager backends."""

    APT = "apt"
    HOMEBREW = "homebrew"
    PPA = "ppa"
    MISE = "mise"


BACKEND_NAMES = [b.value for b in Backend]

# Backends configured through a same-named block on the package entry.
# mise is configured through ``managed_by``/``mise_version`` instead.
CONFIG_BLOCK_BACKENDS = (Backend.APT, Backend.HOMEBREW, Backend.PPA)

DEFAULT_MISE_VERSION = "latest"


@dataclass(frozen=True)
class Category:
    name: str
    description: str
    priority: Tuple[Backend, ...]


@dataclass(frozen=True)
class Profile:
    name: str
    description: str
    packages: Optional[Tuple[str, ...]] = None
    includes: Optional[Tuple[str, ...]] = None
    excludes: Tuple[str, ...] = ()

    @property
    def is_explicit(self) -> bool:
        return self.packages is not None


@dataclass
class Package:
    name: str
    category: str
    description: str
    priority: Optional[List[Backend]] = None
    platforms: Optional[FrozenSet[str]] = None
    managed_by: Optional[Backend] = None
    mise_version: Optional[str] = None
    configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Package":
        priority = data.get("priority")
        platforms = data.get("platforms")
        managed_by = data.get("managed_by")
        mise_version = data.get("mise_version")
        return cls(
            name=name,
            category=data["category"],
            description=data.get("description", ""),
            priority=[Backend(b) for b in priority] if priority else None,
            platforms=frozenset(platforms) if platforms else None,
            managed_by=Backend(managed_by) if managed_by else None,
            mise_version=str(mise_version) if mise_version is not None else None,
            configs={
                b.value: dict(data[b.value])
                for b in CONFIG_BLOCK_BACKENDS
                if isinstance(data.get(b.value), dict)
            },
        )

    def applies_to(self, platform: str) -> bool:
        """True if the package is not restricted away from ``platform``."""
        return self.platforms is None or platform in self.platforms

    def has_config(self, backend: Backend) -> bool:
        """True if the package can be installed through ``backend``."""
        if self.managed_by == backend:
            return True
        if backend == Backend.MISE:
            return self.mise_version is not None
        return backend.value in self.configs


@dataclass(frozen=True)
class BulkGroup:
    name: str
    packages: Tuple[str, ...]
    enabled: bool = False
    description: str = ""


@dataclass
class MergedManifest:
    """One or more manifest documents merged into a queryable structure."""

    version: str
    profiles: Dict[str, Profile]
    categories: Dict[str, Category]
    packages: Dict[str, Package]
    bulk_groups: Dict[str, BulkGroup] = field(default_factory=dict)
    sources: List[Path] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(
        cls, document: Dict[str, Any], sources: Optional[List[Path]] = None
    ) -> "MergedManifest":
        """Build typed objects from an already validated document."""
        categories = {
            name: Category(
                name=name,
                description=data.get("description", ""),
                priority=tuple(Backend(b) for b in data.get("priority", [])),
            )
            for name, data in (document.get("categories") or {}).items()
        }

        profiles = {}
        for name, data in (document.get("profiles") or {}).items():
            explicit = data.get("packages")
            includes = data.get("includes")
            profiles[name] = Profile(
                name=name,
                description=data.get("description", ""),
                packages=tuple(explicit) if explicit is not None else None,
                includes=tuple(includes) if includes is not None else None,
                excludes=tuple(data.get("excludes") or ()),
            )

        packages = {
            name: Package.from_dict(name, data)
            for name, data in (document.get("packages") or {}).items()
        }

        bulk_groups = {
            name: BulkGroup(
                name=name,
                packages=tuple(data.get("packages") or ()),
                enabled=bool(data.get("enabled", False)),
                description=data.get("description", ""),
            )
            for name, data in (document.get("bulk_install_groups") or {}).items()
        }

        return cls(
            version=str(document.get("version")),
            profiles=profiles,
            categories=categories,
            packages=packages,
            bulk_groups=bulk_groups,
            sources=list(sources or []),
            raw=document,
        )

    def get_package(self, name: str) -> Package:
        try:
            return self.packages[name]
        except KeyError:
            raise NotFoundError(f"Package '{name}' not found in manifest") from None

    def get_profile(self, name: str) -> Profile:
        try:
            return self.profiles[name]
        except KeyError:
            available = ", ".join(sorted(self.profiles)) or "none"
            raise NotFoundError(
                f"Profile '{name}' not found in manifest (available: {available})"
            ) from None

    def get_category(self, name: str) -> Category:
        try:
            return self.categories[name]
        except KeyError:
            raise NotFoundError(f"Category '{name}' not found in manifest") from None

    def get_bulk_group(self, name: str) -> BulkGroup:
        try:
            return self.bulk_groups[name]
        except KeyError:
            raise NotFoundError(f"Bulk install group '{name}' not found") from None
