import logging
import os
import platform
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class OS(Enum):
    LINUX = "linux"
    MACOS = "macos"
    UNKNOWN = "unknown"


class Platform(str, Enum):
    """Platform identifiers accepted in manifest ``platforms`` lists."""

    UBUNTU = "ubuntu"
    LINUX = "linux"
    MACOS = "macos"


PLATFORM_NAMES = [p.value for p in Platform]


class Environment:
    """Detects and provides info about the current system environment."""

    def __init__(self, os_release: Optional[Path] = None):
        self.os_release = os_release or Path("/etc/os-release")
        self.os = self._detect_os()
        self.home = Path.home()
        self.user = (
            os.environ.get("USER")
            or os.environ.get("LOGNAME")
            or self.home.name
        )
        self.host = platform.node()
        self.os_info = self._get_os_info()

    def _detect_os(self) -> OS:
        system = platform.system().lower()
        if system == "linux":
            return OS.LINUX
        elif system == "darwin":
            return OS.MACOS
        return OS.UNKNOWN

    def _get_os_info(self) -> dict:
        info = {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
            "pretty_name": platform.system(),
            "distro": "",
        }

        if self.is_linux():
            if self.os_release.exists():
                data = {}
                with open(self.os_release) as f:
                    for line in f:
                        if "=" in line:
                            k, v = line.rstrip().split("=", 1)
                            data[k] = v.strip('"')
                info["pretty_name"] = data.get("PRETTY_NAME", "Linux")
                info["distro"] = data.get("ID", "linux")
                info["distro_like"] = data.get("ID_LIKE", "")
        elif self.is_macos():
            info["pretty_name"] = f"macOS {platform.mac_ver()[0]}"
            info["distro"] = "macos"

        return info

    def is_linux(self) -> bool:
        return self.os == OS.LINUX

    def is_macos(self) -> bool:
        return self.os == OS.MACOS

    @property
    def platform(self) -> str:
        """Manifest platform identifier: ubuntu, macos or linux."""
        if self.is_macos():
            return Platform.MACOS.value
        if self.os_info.get("distro") == "ubuntu":
            return Platform.UBUNTU.value
        return Platform.LINUX.value

    def __repr__(self) -> str:
        return (
            f"Environment(os={self.os.value}, platform={self.platform}, "
            f"home={self.home}, user={self.user})"
        )
