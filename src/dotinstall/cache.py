"""Run-scoped cache of installed and available packages per backend.

Each backend's listing commands run at most once per :class:`PackageCache`.
After that, membership checks and fuzzy searches are answered from memory
without spawning another subprocess. The PPA backend shares the apt cache.
"""

import difflib
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from .manifest.model import Backend
from .runner import CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_SIMILAR_LIMIT = 5

# PPA packages land in the dpkg database like any apt package.
CACHE_KEYS = {
    Backend.APT: Backend.APT,
    Backend.PPA: Backend.APT,
    Backend.HOMEBREW: Backend.HOMEBREW,
    Backend.MISE: Backend.MISE,
}

APT_INSTALLED_CMD = [
    "dpkg-query",
    "-W",
    "-f=${Status}\t${Package}\t${binary:Package}\n",
]
APT_AVAILABLE_CMD = ["apt-cache", "pkgnames"]
BREW_FORMULAE_INSTALLED_CMD = ["brew", "list", "--formula", "-1"]
BREW_CASKS_INSTALLED_CMD = ["brew", "list", "--cask", "-1"]
BREW_FORMULAE_AVAILABLE_CMD = ["brew", "formulae"]
BREW_CASKS_AVAILABLE_CMD = ["brew", "casks"]
MISE_INSTALLED_CMD = ["mise", "list", "--installed"]
MISE_REGISTRY_CMD = ["mise", "registry"]


@dataclass
class BackendCache:
    """Cached state for one backend."""

    initialized: bool = False
    installed: Set[str] = field(default_factory=set)
    available: Set[str] = field(default_factory=set)
    casks: Set[str] = field(default_factory=set)
    versions: Dict[str, Set[str]] = field(default_factory=dict)
    similar: Dict[Tuple[str, int], List[str]] = field(default_factory=dict)

    @property
    def index(self) -> Set[str]:
        """Every name known to this backend, installed or installable."""
        return self.available | self.installed | self.casks


def _name_transforms(backend: Backend, needle: str) -> List[str]:
    """Common renames between distro releases and package managers."""
    candidates: List[str] = []
    if backend == Backend.APT:
        if needle.startswith("python-"):
            suffix = needle[len("python-"):]
            candidates.append(f"python3-{suffix}")
            candidates.extend(f"python3.{minor}-{suffix}" for minor in (9, 10, 11, 12))
        if needle.startswith("lib-"):
            suffix = needle[len("lib-"):]
            candidates.extend([f"lib{suffix}", f"lib{suffix}-dev"])
        if needle.endswith("-dev") and not needle.startswith("lib"):
            candidates.append(f"lib{needle[:-len('-dev')]}-dev")
    elif backend == Backend.HOMEBREW:
        if needle.endswith("-cli"):
            candidates.append(needle[:-len("-cli")])
        else:
            candidates.append(f"{needle}-cli")
    elif backend == Backend.MISE:
        candidates.extend(
            {"python": ["python3"], "node": ["nodejs"], "nodejs": ["node"]}.get(
                needle, []
            )
        )
    return candidates


def _relevance(needle: str, name: str) -> Tuple[int, float, str]:
    if name == needle:
        rank = 0
    elif name.startswith(needle):
        rank = 1
    elif needle in name:
        rank = 2
    else:
        rank = 3
    ratio = difflib.SequenceMatcher(None, needle, name).ratio()
    return rank, -ratio, name


class PackageCache:
    """Memoizes backend package listings for the duration of one run."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner
        self._lock = threading.RLock()
        self._entries: Dict[Backend, BackendCache] = {}
        self.clear_all()

    def clear_all(self) -> None:
        """Reset every backend's cache and initialized flag."""
        with self._lock:
            self._entries = {key: BackendCache() for key in set(CACHE_KEYS.values())}

    def entry(self, backend: Union[str, Backend]) -> BackendCache:
        return self._entries[CACHE_KEYS[Backend(backend)]]

    def is_initialized(self, backend: Union[str, Backend]) -> bool:
        return self.entry(backend).initialized

    def init(self, backend: Union[str, Backend]) -> bool:
        """Populate the cache for ``backend`` by listing packages once.

        Idempotent. A backend whose binary is missing is marked initialized
        with empty sets so it is not probed again.

        Returns:
            True if the backend's listing commands were available.
        """
        key = CACHE_KEYS[Backend(backend)]
        with self._lock:
            entry = self._entries[key]
            if entry.initialized:
                return True

            loader = {
                Backend.APT: self._load_apt,
                Backend.HOMEBREW: self._load_homebrew,
                Backend.MISE: self._load_mise,
            }[key]
            loaded = loader(entry)
            entry.initialized = True
            logger.debug(
                f"{key.value} cache: {len(entry.installed) + len(entry.casks)} "
                f"installed, {len(entry.available)} available"
            )
            return loaded

    def _load_apt(self, entry: BackendCache) -> bool:
        if not self.runner.which("dpkg-query"):
            logger.debug("dpkg-query not found, apt cache left empty")
            return False

        result = self.runner.run(APT_INSTALLED_CMD)
        for line in result.lines:
            parts = line.split("\t")
            if len(parts) < 2 or not parts[0].endswith("install ok installed"):
                continue
            entry.installed.update(p for p in parts[1:] if p)

        if self.runner.which("apt-cache"):
            entry.available.update(self.runner.run(APT_AVAILABLE_CMD).lines)
        return True

    def _load_homebrew(self, entry: BackendCache) -> bool:
        if not self.runner.which("brew"):
            logger.debug("brew not found, Homebrew cache left empty")
            return False

        entry.installed.update(self.runner.run(BREW_FORMULAE_INSTALLED_CMD).lines)
        entry.casks.update(self.runner.run(BREW_CASKS_INSTALLED_CMD).lines)
        entry.available.update(self.runner.run(BREW_FORMULAE_AVAILABLE_CMD).lines)
        entry.available.update(self.runner.run(BREW_CASKS_AVAILABLE_CMD).lines)
        return True

    def _load_mise(self, entry: BackendCache) -> bool:
        if not self.runner.which("mise"):
            logger.debug("mise not found, mise cache left empty")
            return False

        for line in self.runner.run(MISE_INSTALLED_CMD).lines:
            if "(missing)" in line:
                continue
            parts = line.split()
            tool = parts[0].split("@", 1)[0]
            if not tool:
                continue
            entry.installed.add(tool)
            if len(parts) > 1:
                entry.versions.setdefault(tool, set()).add(parts[1])

        for line in self.runner.run(MISE_REGISTRY_CMD).lines:
            entry.available.add(line.split()[0])
        return True

    def _ready(self, backend: Union[str, Backend]) -> BackendCache:
        entry = self.entry(backend)
        if not entry.initialized:
            self.init(backend)
        return entry

    def lookup(self, backend: Union[str, Backend], name: str, cask: bool = False) -> bool:
        """True if ``name`` is installed according to the cache."""
        if not name:
            return False
        entry = self._ready(backend)
        return name in (entry.casks if cask else entry.installed)

    def exists(self, backend: Union[str, Backend], name: str) -> bool:
        """True if ``name`` is known to the backend (installed or installable)."""
        if not name:
            return False
        entry = self._ready(backend)
        return name in entry.index

    def installed_versions(self, backend: Union[str, Backend], name: str) -> Set[str]:
        entry = self._ready(backend)
        return set(entry.versions.get(name, set()))

    def find_similar(
        self,
        backend: Union[str, Backend],
        query: str,
        limit: int = DEFAULT_SIMILAR_LIMIT,
    ) -> List[str]:
        """Names close to ``query`` that exist in the backend's index.

        Exact matches sort first, then prefix matches, then substring
        matches, then the closest edit-distance matches.
        """
        if not query:
            return []
        backend = Backend(backend)
        entry = self._ready(backend)

        with self._lock:
            memo_key = (f"{backend.value}:{query}", limit)
            if memo_key in entry.similar:
                return list(entry.similar[memo_key])

            index = entry.index
            candidates = _name_transforms(backend, query)
            tail = query.split("-", 1)[1] if "-" in query else ""
            candidates.extend(
                name for name in sorted(index) if query in name or (tail and tail in name)
            )
            candidates.extend(difflib.get_close_matches(query, index, n=limit, cutoff=0.75))

            seen: Set[str] = set()
            verified = []
            for name in candidates:
                if name in seen or name not in index:
                    continue
                seen.add(name)
                verified.append(name)

            result = sorted(verified, key=lambda n: _relevance(query, n))[:limit]
            entry.similar[memo_key] = result
            return list(result)

    def mark_installed(
        self,
        backend: Union[str, Backend],
        names: Iterable[str],
        cask: bool = False,
        version: Optional[str] = None,
    ) -> None:
        """Record packages installed during this run."""
        with self._lock:
            entry = self.entry(backend)
            for name in names:
                (entry.casks if cask else entry.installed).add(name)
                if version:
                    entry.versions.setdefault(name, set()).add(version)

    def mark_removed(self, backend: Union[str, Backend], names: Iterable[str]) -> None:
        with self._lock:
            entry = self.entry(backend)
            for name in names:
                entry.installed.discard(name)
                entry.casks.discard(name)
                entry.versions.pop(name, None)

    def stats(self) -> Dict[str, Dict[str, int]]:
        """Sizes of each initialized cache."""
        stats = {}
        for key, entry in sorted(self._entries.items(), key=lambda kv: kv[0].value):
            if not entry.initialized:
                stats[key.value] = {"initialized": 0}
                continue
            stats[key.value] = {
                "initialized": 1,
                "installed": len(entry.installed),
                "casks": len(entry.casks),
                "available": len(entry.available),
            }
        return stats
