"""Loading and merging manifest documents."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import yaml

from ..errors import NotFoundError, ParseError, ValidationError
from . import schema
from .model import MergedManifest
from .query import expand_mise_tools

logger = logging.getLogger(__name__)

# Checked in order; the first one found is the base document.
COMMON_FILENAMES = ("common.yaml", "common.yml", "packages.yaml", "packages.yml")

# Sections merged key-by-key; a later document replaces whole entries.
MERGED_SECTIONS = ("profiles", "categories", "packages", "bulk_install_groups")


def load_document(path: Path) -> Dict[str, Any]:
    """Parse one YAML manifest document.

    Raises:
        NotFoundError: If the file does not exist.
        ParseError: If it is not valid YAML or not a mapping.
    """
    path = Path(path)
    if not path.is_file():
        raise NotFoundError(f"Manifest file not found: {path}")

    try:
        with open(path, "r") as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML in manifest {path}: {e}") from e

    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ParseError(
            f"Manifest {path} must be a mapping, got {type(document).__name__}"
        )
    return document


def merge_documents(documents: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge documents in order; later documents win per entry key."""
    merged: Dict[str, Any] = {section: {} for section in MERGED_SECTIONS}
    for document in documents:
        if "version" in document:
            merged["version"] = document["version"]
        for section in MERGED_SECTIONS:
            entries = document.get(section)
            if isinstance(entries, dict):
                merged[section].update(entries)
    return merged


def _expand(document: Dict[str, Any]) -> Dict[str, Any]:
    """Fold ``mise_tools`` sugar into ``packages``; explicit entries win."""
    if "mise_tools" not in document:
        return document
    tools = expand_mise_tools(document)
    expanded = dict(document)
    del expanded["mise_tools"]
    expanded["packages"] = {**tools, **(document.get("packages") or {})}
    return expanded


def discover_manifest_files(location: Union[str, Path], platform: str) -> List[Path]:
    """Find the manifest documents to merge for ``platform``.

    A file path is used as-is. A directory yields its common document
    followed by ``<platform>.yaml`` when present.
    """
    location = Path(location).expanduser()
    if location.is_file():
        return [location]
    if not location.is_dir():
        raise NotFoundError(f"Manifest location not found: {location}")

    files = []
    for filename in COMMON_FILENAMES:
        candidate = location / filename
        if candidate.is_file():
            files.append(candidate)
            break

    for suffix in (".yaml", ".yml"):
        candidate = location / f"{platform}{suffix}"
        if candidate.is_file():
            files.append(candidate)
            break

    if not files:
        raise NotFoundError(f"No manifest files found in {location}")
    return files


def load_and_merge(
    paths: Sequence[Union[str, Path]], validate: bool = True
) -> MergedManifest:
    """Load manifest documents and merge them into one manifest.

    Args:
        paths: Document paths, base document first.
        validate: Validate each document on its own and the merged result
            including cross-references.

    Raises:
        NotFoundError: A document is missing or ``paths`` is empty.
        ParseError: A document is malformed.
        ValidationError: A document or the merged manifest is invalid.
    """
    if not paths:
        raise NotFoundError("No manifest files given")

    sources = [Path(p) for p in paths]
    documents = []
    for path in sources:
        document = load_document(path)
        if validate:
            result = schema.validate(document, check_references=False)
            if not result.is_valid:
                raise ValidationError(f"Invalid manifest {path}", result.violations)
        documents.append(_expand(document))

    merged = merge_documents(documents)
    if validate:
        result = schema.validate(merged)
        if not result.is_valid:
            names = ", ".join(str(p) for p in sources)
            raise ValidationError(f"Invalid merged manifest ({names})", result.violations)

    logger.debug(
        f"Loaded manifest from {len(sources)} document(s): "
        f"{len(merged['packages'])} packages, {len(merged['profiles'])} profiles"
    )
    return MergedManifest.from_document(merged, sources)
