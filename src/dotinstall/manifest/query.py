"""Queries over a merged manifest."""

from typing import Any, Dict, List, Set, Union

from ..errors import InvalidFormatError, NotConfiguredError
from .model import DEFAULT_MISE_VERSION, Backend, MergedManifest

MISE_TOOL_DESCRIPTION = "Tool managed by mise"


def as_backend(value: Union[str, Backend]) -> Backend:
    """Normalize a backend identifier, rejecting unsupported managers."""
    try:
        return Backend(value)
    except ValueError:
        raise InvalidFormatError(f"Unsupported backend '{value}'") from None


def list_profiles(manifest: MergedManifest) -> List[str]:
    return sorted(manifest.profiles)


def list_categories(manifest: MergedManifest) -> List[str]:
    return sorted(manifest.categories)


def packages_by_category(manifest: MergedManifest, category: str) -> Set[str]:
    """All packages in ``category``; empty for an unused category."""
    manifest.get_category(category)
    return {
        name for name, pkg in manifest.packages.items() if pkg.category == category
    }


def packages_for_platform(manifest: MergedManifest, platform: str) -> Set[str]:
    """All packages not restricted away from ``platform``."""
    return {
        name for name, pkg in manifest.packages.items() if pkg.applies_to(platform)
    }


def packages_for_profile(
    manifest: MergedManifest, profile_name: str, platform: str
) -> Set[str]:
    """Resolve a profile to the concrete set of package names.

    Explicit ``packages`` lists are returned as written. Category profiles
    expand their ``includes`` (every category when absent), drop packages
    whose ``platforms`` exclude ``platform`` and then drop packages in
    ``excludes`` categories.

    Raises:
        NotFoundError: If the profile is not defined.
    """
    profile = manifest.get_profile(profile_name)

    if profile.is_explicit:
        return set(profile.packages or ())

    if profile.includes is None:
        included = set(manifest.categories)
    else:
        included = set(profile.includes)
    excluded = set(profile.excludes)

    selected = set()
    for category in sorted(included):
        for name in packages_by_category(manifest, category):
            if manifest.packages[name].applies_to(platform):
                selected.add(name)

    for category in excluded:
        selected -= packages_by_category(manifest, category)

    return selected


def priority_for_package(manifest: MergedManifest, package_name: str) -> List[Backend]:
    """Ordered backend chain for a package.

    An explicit package ``priority`` is returned verbatim. Otherwise a
    ``managed_by`` shortcut yields a single-element chain, and failing that
    the category default applies. ``managed_by`` is checked before the
    category because every category declares a priority, so it would
    otherwise never take effect.
    """
    package = manifest.get_package(package_name)
    if package.priority:
        return list(package.priority)
    if package.managed_by is not None:
        return [package.managed_by]
    return list(manifest.get_category(package.category).priority)


def has_backend_config(
    manifest: MergedManifest, package_name: str, backend: Union[str, Backend]
) -> bool:
    """True if the package can be installed through ``backend``."""
    return manifest.get_package(package_name).has_config(as_backend(backend))


def backend_config(
    manifest: MergedManifest, package_name: str, backend: Union[str, Backend]
) -> Dict[str, Any]:
    """The backend-specific config block for a package.

    Raises:
        NotFoundError: Unknown package.
        NotConfiguredError: The package has no block for ``backend``.
    """
    backend = as_backend(backend)
    package = manifest.get_package(package_name)

    if backend == Backend.MISE:
        if package.has_config(Backend.MISE):
            return {"version": package.mise_version or DEFAULT_MISE_VERSION}
    elif backend.value in package.configs:
        return dict(package.configs[backend.value])

    raise NotConfiguredError(
        f"Package '{package_name}' has no {backend.value} configuration"
    )


def expand_mise_tools(document: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Expand the terse ``mise_tools`` block into full package entries.

    ``mise_tools`` maps a category to a list of tools, each written as
    ``name``, ``name@version`` or ``{name, version, description, platforms}``.
    """
    expanded: Dict[str, Dict[str, Any]] = {}
    tools = document.get("mise_tools") or {}
    if not isinstance(tools, dict):
        return expanded

    for category, entries in tools.items():
        for entry in entries or []:
            if isinstance(entry, str):
                name, _, version = entry.partition("@")
                tool: Dict[str, Any] = {"name": name}
                if version:
                    tool["version"] = version
            elif isinstance(entry, dict) and entry.get("name"):
                tool = entry
            else:
                continue

            package: Dict[str, Any] = {
                "category": category,
                "description": tool.get("description", MISE_TOOL_DESCRIPTION),
                "managed_by": Backend.MISE.value,
            }
            if tool.get("version") is not None:
                package["mise_version"] = str(tool["version"])
            if tool.get("platforms"):
                package["platforms"] = list(tool["platforms"])
            expanded[tool["name"]] = package

    return expanded


def bulk_group_packages(manifest: MergedManifest, group: str) -> List[str]:
    return list(manifest.get_bulk_group(group).packages)


def is_bulk_group_enabled(manifest: MergedManifest, group: str) -> bool:
    return manifest.get_bulk_group(group).enabled
