"""Reconcile installed state against the manifest and persist discrepancies.

Issues are written as a JSON document::

    {"date": ..., "user": ..., "host": ...,
     "packages": [{"backend", "package", "actual_name", "status", "alternatives"}]}

If the document cannot be serialized the log falls back to one record per
line with fields joined by the ASCII unit separator, which cannot occur in
package names or repository strings such as ``libc6:amd64`` or ``ppa:x/y``.
"""

import json
import logging
import os
import platform as platform_module
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .backends import BaseBackend, MiseBackend
from .errors import (
    InvalidFormatError,
    NotConfiguredError,
    NotFoundError,
    ParseError,
    UnresolvableError,
)
from .manifest.model import Backend, MergedManifest
from .resolver import BackendResolver

logger = logging.getLogger(__name__)

NO_BACKEND = "none"
FIELD_SEPARATOR = "\x1f"
ALTERNATIVES_SEPARATOR = "|"
LOG_FILENAME_PREFIX = "missing-packages"
DEFAULT_LOG_DIR = Path("~/.dotinstall-logs")


class IssueStatus(str, Enum):
    MISSING = "MISSING"
    FUZZY = "FUZZY"
    WRONG_VERSION = "WRONG_VERSION"
    INSTALLED = "INSTALLED"


@dataclass
class VerificationIssue:
    backend: str
    package: str
    actual_name: str
    status: IssueStatus
    alternatives: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "package": self.package,
            "actual_name": self.actual_name,
            "status": IssueStatus(self.status).value,
            "alternatives": list(self.alternatives),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VerificationIssue":
        try:
            return cls(
                backend=str(data["backend"]),
                package=str(data["package"]),
                actual_name=str(data.get("actual_name") or data["package"]),
                status=IssueStatus(data["status"]),
                alternatives=[str(a) for a in data.get("alternatives") or []],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidFormatError(f"Malformed verification record: {data!r}") from e


def encode_issue(issue: VerificationIssue) -> str:
    """One issue as a single-line JSON object."""
    return json.dumps(issue.to_dict(), sort_keys=True)


def decode_issue(text: str) -> VerificationIssue:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidFormatError(f"Malformed verification record: {e}") from e
    if not isinstance(data, dict):
        raise InvalidFormatError(f"Malformed verification record: {text!r}")
    return VerificationIssue.from_dict(data)


def encode_legacy_issue(issue: VerificationIssue) -> str:
    return FIELD_SEPARATOR.join(
        [
            str(issue.backend),
            str(issue.package),
            str(issue.actual_name),
            IssueStatus(issue.status).value,
            ALTERNATIVES_SEPARATOR.join(str(a) for a in issue.alternatives),
        ]
    )


def decode_legacy_issue(line: str) -> VerificationIssue:
    fields = line.rstrip("\r\n").split(FIELD_SEPARATOR)
    if len(fields) != 5:
        raise InvalidFormatError(
            f"Expected 5 fields in verification record, got {len(fields)}"
        )
    backend, package, actual_name, status, alternatives = fields
    return VerificationIssue.from_dict(
        {
            "backend": backend,
            "package": package,
            "actual_name": actual_name,
            "status": status,
            "alternatives": [a for a in alternatives.split(ALTERNATIVES_SEPARATOR) if a],
        }
    )


def _classify(
    adapter: BaseBackend, manifest: MergedManifest, package: str, native_name: str
) -> VerificationIssue:
    backend = adapter.kind.value

    if adapter.name_installed(manifest, package, native_name):
        return VerificationIssue(backend, package, native_name, IssueStatus.INSTALLED)

    if isinstance(adapter, MiseBackend) and adapter.check_installed(native_name):
        installed = sorted(adapter.cache.installed_versions(adapter.kind, native_name))
        return VerificationIssue(
            backend, package, native_name, IssueStatus.WRONG_VERSION, installed
        )

    alternatives = [
        name
        for name in adapter.cache.find_similar(adapter.kind, native_name)
        if name != native_name
    ]
    status = IssueStatus.FUZZY if alternatives else IssueStatus.MISSING
    return VerificationIssue(backend, package, native_name, status, alternatives)


def verify_packages_batch(
    manifest: MergedManifest,
    package_names: Iterable[str],
    platform: str,
    resolver: BackendResolver,
    backends: Mapping[Backend, BaseBackend],
    include_installed: bool = False,
) -> List[VerificationIssue]:
    """Classify each package's installed state.

    Installed packages produce no issue unless ``include_installed`` is set.
    Packages without a viable backend are reported as ``MISSING`` with
    backend ``none``.
    """
    issues = []
    for package in package_names:
        try:
            backend = resolver.resolve(manifest, package, platform)
            adapter = backends[backend]
            native_names = adapter.get_package_name(manifest, package)
        except (UnresolvableError, NotConfiguredError, InvalidFormatError) as e:
            logger.debug(f"{package}: cannot verify ({e})")
            issues.append(
                VerificationIssue(NO_BACKEND, package, package, IssueStatus.MISSING)
            )
            continue

        for native_name in native_names:
            issue = _classify(adapter, manifest, package, native_name)
            if issue.status != IssueStatus.INSTALLED or include_installed:
                issues.append(issue)

    logger.debug(f"Verification found {len(issues)} issue(s)")
    return issues


def default_log_path(log_dir: Union[str, Path, None] = None) -> Path:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    directory = Path(log_dir or DEFAULT_LOG_DIR).expanduser()
    return directory / f"{LOG_FILENAME_PREFIX}-{timestamp}.json"


def _legacy_document(header: Dict[str, str], issues: Sequence[VerificationIssue]) -> str:
    lines = [f"# {key}: {value}" for key, value in header.items()]
    lines.extend(encode_legacy_issue(issue) for issue in issues)
    return "\n".join(lines) + "\n"


def log_missing_packages(
    issues: Sequence[VerificationIssue],
    path: Union[str, Path, None] = None,
    log_dir: Union[str, Path, None] = None,
    user: Optional[str] = None,
    host: Optional[str] = None,
) -> Path:
    """Persist issues for a later retry run.

    Args:
        issues: Issues from :func:`verify_packages_batch`.
        path: Exact file to write. Defaults to a timestamped file in
            ``log_dir``.
        log_dir: Directory for the default file name.
        user: Recorded user; defaults to ``$USER``.
        host: Recorded host; defaults to the node name.

    Returns:
        The path written.
    """
    path = Path(path).expanduser() if path else default_log_path(log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    header = {
        "date": datetime.now().isoformat(timespec="seconds"),
        "user": user or os.environ.get("USER") or os.environ.get("LOGNAME") or "unknown",
        "host": host or platform_module.node(),
    }

    try:
        text = json.dumps(
            {**header, "packages": [issue.to_dict() for issue in issues]}, indent=2
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not serialize verification log as JSON ({e}), using plain text")
        text = _legacy_document(header, issues)

    path.write_text(text)
    logger.info(f"Wrote {len(issues)} verification issue(s) to {path}")
    return path


def load_issues(path: Union[str, Path]) -> List[VerificationIssue]:
    """Read issues back from either log format.

    Raises:
        NotFoundError: The log file does not exist.
        ParseError: The file is not a readable verification log.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise NotFoundError(f"Verification log not found: {path}")

    text = path.read_text()
    if text.lstrip().startswith("{"):
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid verification log {path}: {e}") from e
        records = document.get("packages") if isinstance(document, dict) else None
        if not isinstance(records, list):
            raise ParseError(f"Invalid verification log {path}: no 'packages' list")
        try:
            return [VerificationIssue.from_dict(record) for record in records]
        except InvalidFormatError as e:
            raise ParseError(f"Invalid verification log {path}: {e}") from e

    issues = []
    for line in text.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        try:
            issues.append(decode_legacy_issue(line))
        except InvalidFormatError as e:
            raise ParseError(f"Invalid verification log {path}: {e}") from e
    return issues


def load_missing_packages(path: Union[str, Path]) -> List[str]:
    """Package names recorded in a log, in order, without duplicates."""
    seen = set()
    packages = []
    for issue in load_issues(path):
        if issue.package not in seen:
            seen.add(issue.package)
            packages.append(issue.package)
    return packages


def format_issues(issues: Iterable[VerificationIssue]) -> List[str]:
    lines = []
    for issue in issues:
        name = issue.package
        if issue.actual_name != issue.package:
            name = f"{issue.package} ({issue.actual_name})"
        line = f"{IssueStatus(issue.status).value:<13} {issue.backend:<8} {name}"
        if issue.status == IssueStatus.FUZZY:
            line += f" - did you mean: {', '.join(issue.alternatives)}?"
        elif issue.status == IssueStatus.WRONG_VERSION:
            installed = ", ".join(issue.alternatives) or "none"
            line += f" - installed versions: {installed}"
        lines.append(line)
    return lines
