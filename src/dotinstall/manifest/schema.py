"""Manifest schema and validation.

Structural rules live in :data:`MANIFEST_SCHEMA` (JSON Schema, Draft 7) and
are checked with :mod:`jsonschema`. Rules a schema cannot express clearly
(profile mutual exclusion, cross-references between sections) are checked
in Python afterwards.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple, Union

from jsonschema import Draft7Validator

from ..errors import NotFoundError, ParseError
from ..system import PLATFORM_NAMES
from .model import BACKEND_NAMES, MergedManifest

logger = logging.getLogger(__name__)

VALIDATION_PASSED = "Manifest validation passed"
VALIDATION_FAILED = "Manifest validation failed"

_BACKEND = {"type": "string", "enum": BACKEND_NAMES}
_PRIORITY = {"type": "array", "minItems": 1, "items": _BACKEND}
_NAME = {"type": "string", "minLength": 1}
_NAME_LIST = {"type": "array", "items": _NAME}
_VERSION = {"type": ["string", "number"]}
_PLATFORMS = {
    "type": "array",
    "minItems": 1,
    "items": {"type": "string", "enum": PLATFORM_NAMES},
}
_NATIVE_NAMES = {
    "package": _NAME,
    "packages": {"type": "array", "minItems": 1, "items": _NAME},
}

PROFILE_SCHEMA = {
    "type": "object",
    "required": ["description"],
    "properties": {
        "description": {"type": "string"},
        "packages": _NAME_LIST,
        "includes": _NAME_LIST,
        "excludes": _NAME_LIST,
    },
    "additionalProperties": False,
}

CATEGORY_SCHEMA = {
    "type": "object",
    "required": ["description", "priority"],
    "properties": {
        "description": {"type": "string"},
        "priority": _PRIORITY,
    },
    "additionalProperties": False,
}

PACKAGE_SCHEMA = {
    "type": "object",
    "required": ["category", "description"],
    "properties": {
        "category": _NAME,
        "description": {"type": "string"},
        "priority": _PRIORITY,
        "platforms": _PLATFORMS,
        "managed_by": _BACKEND,
        "mise_version": _VERSION,
        "notes": {"type": "string"},
        "apt": {
            "type": "object",
            "properties": dict(_NATIVE_NAMES),
            "additionalProperties": False,
        },
        "homebrew": {
            "type": "object",
            "properties": {
                **_NATIVE_NAMES,
                "cask": {"type": "boolean"},
                "tap": {"type": "string", "pattern": r"^[^/\s]+/[^/\s]+$"},
            },
            "additionalProperties": False,
        },
        "ppa": {
            "type": "object",
            "required": ["repository"],
            "properties": {
                "repository": {"type": "string", "pattern": "^ppa:"},
                **_NATIVE_NAMES,
                "gpg_key": {"type": "string", "pattern": "^https?://"},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

MISE_TOOL_SCHEMA = {
    "anyOf": [
        _NAME,
        {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": _NAME,
                "version": _VERSION,
                "description": {"type": "string"},
                "platforms": _PLATFORMS,
            },
            "additionalProperties": False,
        },
    ]
}

BULK_GROUP_SCHEMA = {
    "type": "object",
    "required": ["packages"],
    "properties": {
        "description": {"type": "string"},
        "enabled": {"type": "boolean"},
        "packages": _NAME_LIST,
    },
    "additionalProperties": False,
}

MANIFEST_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "dotinstall package manifest",
    "type": "object",
    "required": ["version"],
    "properties": {
        "version": _VERSION,
        "profiles": {"type": "object", "additionalProperties": PROFILE_SCHEMA},
        "categories": {"type": "object", "additionalProperties": CATEGORY_SCHEMA},
        "packages": {"type": "object", "additionalProperties": PACKAGE_SCHEMA},
        "mise_tools": {
            "type": "object",
            "additionalProperties": {"type": "array", "items": MISE_TOOL_SCHEMA},
        },
        "bulk_install_groups": {
            "type": "object",
            "additionalProperties": BULK_GROUP_SCHEMA,
        },
    },
    "additionalProperties": False,
}

_validator = Draft7Validator(MANIFEST_SCHEMA)


@dataclass(frozen=True)
class Violation:
    """A single manifest rule violation."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or '(manifest)'}: {self.message}"


@dataclass
class ValidationResult:
    violations: List[Violation] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.violations

    def messages(self) -> List[str]:
        return [str(v) for v in self.violations]


def _schema_violations(document: Dict[str, Any]) -> Iterable[Violation]:
    for error in _validator.iter_errors(document):
        path = ".".join(str(p) for p in error.absolute_path)
        message = error.message
        if error.validator == "pattern" and path.endswith("ppa.repository"):
            message = f"PPA repository must start with 'ppa:' (got {error.instance!r})"
        elif error.validator == "enum" and ".priority." in f".{path}.":
            message = (
                f"unsupported backend {error.instance!r} in priority "
                f"(expected one of: {', '.join(BACKEND_NAMES)})"
            )
        elif error.validator == "enum" and ".platforms." in f".{path}.":
            message = (
                f"invalid platform {error.instance!r} "
                f"(expected one of: {', '.join(PLATFORM_NAMES)})"
            )
        yield Violation(path, message)


def _section(document: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = document.get(key)
    return value if isinstance(value, dict) else {}


def _profile_violations(document: Dict[str, Any]) -> Iterable[Violation]:
    for name, profile in _section(document, "profiles").items():
        if not isinstance(profile, dict):
            continue
        if "packages" in profile and ("includes" in profile or "excludes" in profile):
            yield Violation(
                f"profiles.{name}",
                "profile cannot combine 'packages' with 'includes'/'excludes'",
            )


def _reference_violations(document: Dict[str, Any]) -> Iterable[Violation]:
    categories = _section(document, "categories")
    packages = _section(document, "packages")

    for name, package in packages.items():
        if not isinstance(package, dict):
            continue
        category = package.get("category")
        if isinstance(category, str) and category not in categories:
            yield Violation(
                f"packages.{name}.category",
                f"unknown category '{category}'",
            )

    for name, profile in _section(document, "profiles").items():
        if not isinstance(profile, dict):
            continue
        for key in ("includes", "excludes"):
            for category in profile.get(key) or []:
                if category not in categories:
                    yield Violation(
                        f"profiles.{name}.{key}",
                        f"unknown category '{category}'",
                    )
        for package in profile.get("packages") or []:
            if package not in packages:
                yield Violation(
                    f"profiles.{name}.packages",
                    f"unknown package '{package}'",
                )

    for name, group in _section(document, "bulk_install_groups").items():
        if not isinstance(group, dict):
            continue
        for package in group.get("packages") or []:
            if package not in packages:
                yield Violation(
                    f"bulk_install_groups.{name}.packages",
                    f"unknown package '{package}'",
                )


def validate(
    manifest: Union[Dict[str, Any], MergedManifest],
    check_references: bool = True,
) -> ValidationResult:
    """Check a manifest document against the schema and invariants.

    Args:
        manifest: A raw document dict or a merged manifest.
        check_references: Also require that categories, profile entries and
            group entries point at definitions in the same document. Turn
            this off for a single platform override file.

    Returns:
        A result whose ``violations`` list is empty when valid.
    """
    document = manifest.raw if isinstance(manifest, MergedManifest) else manifest
    if not isinstance(document, dict):
        return ValidationResult(
            [Violation("", "manifest must be a mapping at the top level")]
        )

    violations = list(_schema_violations(document))
    violations.extend(_profile_violations(document))
    if check_references:
        violations.extend(_reference_violations(document))

    violations.sort(key=lambda v: (v.path, v.message))
    return ValidationResult(violations)


def validate_manifest_schema(path: Path) -> Tuple[bool, List[str]]:
    """Validate a single manifest file for shell callers.

    Returns:
        ``(passed, diagnostics)``. On success the diagnostics contain
        ``"Manifest validation passed"``.
    """
    from .loader import load_document

    try:
        document = load_document(Path(path))
    except (NotFoundError, ParseError) as e:
        return False, [str(e), VALIDATION_FAILED]

    result = validate(document, check_references=False)
    if result.is_valid:
        logger.debug(f"{path}: {VALIDATION_PASSED}")
        return True, [VALIDATION_PASSED]
    return False, result.messages() + [VALIDATION_FAILED]
