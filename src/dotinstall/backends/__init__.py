"""Package-manager adapters, one per :class:`~dotinstall.manifest.Backend`."""

from pathlib import Path
from typing import Dict, Union

from ..cache import PackageCache
from ..manifest.model import Backend
from ..runner import CommandRunner
from .apt import AptBackend
from .base import (
    DRY_RUN_PREFIX,
    SUCCESS_OUTCOMES,
    BaseBackend,
    BulkSummary,
    InstallResult,
    Outcome,
    split_package_list,
)
from .homebrew import HomebrewBackend
from .mise import MiseBackend
from .ppa import DEFAULT_SOURCES_DIR, PpaBackend


def create_backends(
    runner: CommandRunner,
    cache: PackageCache,
    sources_dir: Union[str, Path] = DEFAULT_SOURCES_DIR,
) -> Dict[Backend, BaseBackend]:
    """One adapter per backend kind, sharing ``runner`` and ``cache``."""
    apt = AptBackend(runner, cache)
    return {
        Backend.APT: apt,
        Backend.PPA: PpaBackend(runner, cache, apt, sources_dir=sources_dir),
        Backend.HOMEBREW: HomebrewBackend(runner, cache),
        Backend.MISE: MiseBackend(runner, cache),
    }


__all__ = [
    "DEFAULT_SOURCES_DIR",
    "DRY_RUN_PREFIX",
    "SUCCESS_OUTCOMES",
    "AptBackend",
    "BaseBackend",
    "BulkSummary",
    "HomebrewBackend",
    "InstallResult",
    "MiseBackend",
    "Outcome",
    "PpaBackend",
    "create_backends",
    "split_package_list",
]
