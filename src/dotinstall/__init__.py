"""dotinstall - manifest-driven installation of development tools."""

from .cli import main
from .config import Config
from .orchestrator import Orchestrator, RunSummary, install_from_manifest
from .system import Environment
from .utils import get_version

__all__ = [
    "Config",
    "Environment",
    "Orchestrator",
    "RunSummary",
    "get_version",
    "install_from_manifest",
    "main",
]
