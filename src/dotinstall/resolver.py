"""Pick one backend per package from its priority chain."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping

from .backends import BaseBackend
from .errors import UnresolvableError
from .manifest.model import Backend, MergedManifest
from .manifest.query import priority_for_package

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """One step of a priority chain and whether it can be used."""

    backend: Backend
    viable: bool
    reason: str = ""

    def __str__(self) -> str:
        if self.viable:
            return f"{self.backend.value}: ok"
        return f"{self.backend.value}: {self.reason}"


class BackendResolver:
    """Resolves packages to backends.

    A candidate is skipped when the package has no configuration for it,
    when it does not support the platform, or when its binary is missing.
    Availability is probed once per backend for the resolver's lifetime.
    """

    def __init__(self, backends: Mapping[Backend, BaseBackend]):
        self.backends = backends
        self._availability: Dict[Backend, bool] = {}

    def is_available(self, backend: Backend) -> bool:
        if backend not in self._availability:
            adapter = self.backends.get(backend)
            self._availability[backend] = bool(adapter and adapter.is_available())
            logger.debug(
                f"{backend.value} backend "
                f"{'available' if self._availability[backend] else 'unavailable'}"
            )
        return self._availability[backend]

    def _candidates(
        self, manifest: MergedManifest, package: str, platform: str
    ) -> Iterator[Candidate]:
        entry = manifest.get_package(package)
        for backend in priority_for_package(manifest, package):
            adapter = self.backends.get(backend)
            if adapter is None:
                yield Candidate(backend, False, "no adapter registered")
            elif not entry.has_config(backend):
                yield Candidate(backend, False, f"no {backend.value} configuration")
            elif not adapter.supports_platform(platform):
                yield Candidate(backend, False, f"not supported on {platform}")
            elif not self.is_available(backend):
                yield Candidate(backend, False, f"{adapter.binary} not found on PATH")
            else:
                yield Candidate(backend, True)

    def explain(
        self, manifest: MergedManifest, package: str, platform: str
    ) -> List[Candidate]:
        """Every candidate in the chain with its verdict."""
        return list(self._candidates(manifest, package, platform))

    def resolve(self, manifest: MergedManifest, package: str, platform: str) -> Backend:
        """The first viable backend in the package's priority chain.

        Raises:
            NotFoundError: Unknown package.
            UnresolvableError: No candidate is viable.
        """
        rejected = []
        for candidate in self._candidates(manifest, package, platform):
            if candidate.viable:
                logger.debug(f"{package}: resolved to {candidate.backend.value}")
                return candidate.backend
            rejected.append(str(candidate))
        raise UnresolvableError(package, rejected)
