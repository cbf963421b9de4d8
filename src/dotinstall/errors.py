"""Exception hierarchy for dotinstall.

Manifest problems (``ParseError``, ``ValidationError``, ``NotFoundError``)
are fatal for a run. Per-package problems (``NotConfiguredError``,
``InvalidFormatError``, ``UnresolvableError``, ``InstallFailure``) are
recorded in the run summary and processing continues.
"""

from typing import List, Optional, Sequence


class DotinstallError(Exception):
    """Base type for every error raised by dotinstall."""


class ParseError(DotinstallError):
    """A manifest document is not well-formed YAML or not a mapping."""


class ValidationError(DotinstallError):
    """A manifest violates schema invariants."""

    def __init__(self, message: str, violations: Optional[Sequence] = None):
        self.violations = list(violations or [])
        if self.violations:
            details = "\n".join(f"  - {v}" for v in self.violations)
            message = f"{message}\n{details}"
        super().__init__(message)


class NotFoundError(DotinstallError):
    """Unknown profile, package, category, group or missing file."""


class NotConfiguredError(DotinstallError):
    """A package has no config block for the requested backend."""


class InvalidFormatError(DotinstallError):
    """A config value has the wrong shape (e.g. PPA without 'ppa:')."""


class UnresolvableError(DotinstallError):
    """No backend in the priority chain can install the package."""

    def __init__(self, package: str, reasons: Optional[List[str]] = None):
        self.package = package
        self.reasons = list(reasons or [])
        message = f"No available backend for package '{package}'"
        if self.reasons:
            message += " (" + "; ".join(self.reasons) + ")"
        super().__init__(message)


class BackendUnavailableError(DotinstallError):
    """The package manager binary is not on PATH."""


class InstallFailure(DotinstallError):
    """The underlying package manager exited non-zero."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed ({returncode}): {command}"
        if stderr:
            message += f": {stderr}"
        super().__init__(message)
