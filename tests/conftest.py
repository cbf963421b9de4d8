"""Shared fixtures: a recording runner and sample manifests."""

import textwrap
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence, Tuple

import pytest
import yaml

from dotinstall.cache import PackageCache
from dotinstall.manifest import load_and_merge
from dotinstall.runner import CommandResult, CommandRunner, format_command

DEFAULT_BINARIES = (
    "apt-get",
    "apt-cache",
    "dpkg-query",
    "add-apt-repository",
    "brew",
    "mise",
    "sudo",
)

COMMON_MANIFEST = """\
version: "1.0"
profiles:
  minimal:
    description: Bare essentials
    packages: [git, curl]
  dev:
    description: Everything for development
    excludes: [gui]
  desktop:
    description: Desktop apps only
    includes: [gui]
  empty:
    description: Nothing at all
    packages: []
categories:
  core:
    description: Core tools
    priority: [apt, homebrew]
  general_tools:
    description: General CLI tools
    priority: [apt, homebrew]
  languages:
    description: Language runtimes
    priority: [mise]
  editors:
    description: Editors
    priority: [ppa, apt, homebrew]
  gui:
    description: Desktop applications
    priority: [homebrew]
  unused:
    description: Nothing references this
    priority: [apt]
packages:
  git:
    category: core
    description: Version control
    apt: {package: git}
    homebrew: {package: git}
  curl:
    category: core
    description: HTTP client
    apt: {package: curl}
    homebrew: {package: curl}
  build-deps:
    category: core
    description: Compiler toolchain
    platforms: [ubuntu, linux]
    apt:
      packages: [build-essential, libssl-dev]
  ripgrep:
    category: general_tools
    description: Fast grep
    apt: {package: ripgrep}
    homebrew: {package: ripgrep}
  ruby:
    category: languages
    description: Ruby language
    managed_by: mise
  neovim:
    category: editors
    description: Text editor
    ppa:
      repository: "ppa:neovim-ppa/unstable"
      package: neovim
      gpg_key: "https://example.com/key.asc"
    apt: {package: neovim}
    homebrew: {package: neovim}
  firefox:
    category: gui
    description: Web browser
    platforms: [macos]
    homebrew: {package: firefox, cask: true}
mise_tools:
  languages:
    - node@20
    - python
bulk_install_groups:
  cli:
    enabled: true
    description: Command-line tools
    packages: [ripgrep, curl]
  extras:
    enabled: false
    packages: [git]
"""

UBUNTU_MANIFEST = """\
version: "1.1"
packages:
  curl:
    category: core
    description: HTTP client from the Ubuntu archive
    apt: {package: curl}
"""


class FakeRunner(CommandRunner):
    """A runner that records commands and answers from canned output.

    Args:
        binaries: Names ``which`` reports as present.
        outputs: Command prefix (tuple of tokens) mapped to stdout.
        failures: Substring of the rendered command mapped to
            ``(returncode, stderr)``.
        root: Pretend to run as root (no sudo prefix).
    """

    def __init__(
        self,
        binaries: Iterable[str] = DEFAULT_BINARIES,
        outputs: Optional[Dict[Tuple[str, ...], str]] = None,
        failures: Optional[Dict[str, Tuple[int, str]]] = None,
        root: bool = False,
    ):
        super().__init__(timeout=5, mock=False)
        self.binaries = set(binaries)
        self.outputs = dict(outputs or {})
        self.failures = dict(failures or {})
        self._is_root = root

    def which(self, binary: str) -> Optional[str]:
        return f"/usr/bin/{binary}" if binary in self.binaries else None

    def run(self, cmd: Sequence[str], input=None, timeout=None, binary=False) -> CommandResult:
        cmd = list(cmd)
        self.history.append(cmd)
        rendered = format_command(cmd)
        for needle, (returncode, stderr) in self.failures.items():
            if needle in rendered:
                return CommandResult(cmd, returncode, "", stderr)
        for prefix, stdout in self.outputs.items():
            if tuple(cmd[: len(prefix)]) == prefix:
                raw = stdout.encode() if binary else None
                return CommandResult(cmd, 0, stdout, raw_stdout=raw)
        return CommandResult(cmd, 0)

    def ran(self, *tokens: str) -> bool:
        """True if some recorded command starts with ``tokens``."""
        return any(tuple(cmd[: len(tokens)]) == tokens for cmd in self.history)

    def commands(self):
        return [format_command(cmd) for cmd in self.history]


def dpkg_output(*names: str) -> str:
    """``dpkg-query -W`` output listing ``names`` as installed."""
    return "".join(f"install ok installed\t{name}\t{name}:amd64\n" for name in names)


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def cache(fake_runner):
    return PackageCache(fake_runner)


@pytest.fixture
def common_document():
    """The sample common manifest as a fresh plain dict."""
    return yaml.safe_load(COMMON_MANIFEST)


@pytest.fixture
def manifest_dir(tmp_path) -> Path:
    directory = tmp_path / "manifests"
    directory.mkdir()
    (directory / "common.yaml").write_text(COMMON_MANIFEST)
    (directory / "ubuntu.yaml").write_text(UBUNTU_MANIFEST)
    return directory


@pytest.fixture
def manifest_paths(manifest_dir):
    return [manifest_dir / "common.yaml", manifest_dir / "ubuntu.yaml"]


@pytest.fixture
def manifest(manifest_paths):
    return load_and_merge(manifest_paths)


@pytest.fixture
def write_manifest(tmp_path):
    """Write a YAML manifest from a dedented string and return its path."""

    def _write(content: str, name: str = "manifest.yaml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(content))
        return path

    return _write
