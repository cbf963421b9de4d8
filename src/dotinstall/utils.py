"""Shared utility functions for dotinstall."""

import importlib.metadata
import logging
import sys


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI.

    Args:
        verbose: If True, show DEBUG messages (including run state
            transitions). Otherwise only INFO and above.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def get_version() -> str:
    """Get the installed version of dotinstall."""
    try:
        return importlib.metadata.version("dotinstall")
    except importlib.metadata.PackageNotFoundError:
        return "(development)"
