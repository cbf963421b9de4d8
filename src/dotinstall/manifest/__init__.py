"""Manifest parsing, validation and queries."""

from .loader import (
    discover_manifest_files,
    load_and_merge,
    load_document,
    merge_documents,
)
from .model import (
    BACKEND_NAMES,
    Backend,
    BulkGroup,
    Category,
    MergedManifest,
    Package,
    Profile,
)
from .query import (
    as_backend,
    backend_config,
    bulk_group_packages,
    expand_mise_tools,
    has_backend_config,
    is_bulk_group_enabled,
    list_categories,
    list_profiles,
    packages_by_category,
    packages_for_platform,
    packages_for_profile,
    priority_for_package,
)
from .schema import (
    MANIFEST_SCHEMA,
    VALIDATION_PASSED,
    ValidationResult,
    Violation,
    validate,
    validate_manifest_schema,
)

__all__ = [
    "BACKEND_NAMES",
    "MANIFEST_SCHEMA",
    "VALIDATION_PASSED",
    "Backend",
    "BulkGroup",
    "Category",
    "MergedManifest",
    "Package",
    "Profile",
    "ValidationResult",
    "Violation",
    "as_backend",
    "backend_config",
    "bulk_group_packages",
    "discover_manifest_files",
    "expand_mise_tools",
    "has_backend_config",
    "is_bulk_group_enabled",
    "list_categories",
    "list_profiles",
    "load_and_merge",
    "load_document",
    "merge_documents",
    "packages_by_category",
    "packages_for_platform",
    "packages_for_profile",
    "priority_for_package",
    "validate",
    "validate_manifest_schema",
]
