"""Subprocess boundary for package-manager invocations.

Every effect dotinstall has on the system goes through
:meth:`CommandRunner.run`, which executes one external command and captures
its exit code and output. Nothing else about the package managers is
interpreted.
"""

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from .errors import InstallFailure

logger = logging.getLogger(__name__)

MOCK_ENV_VAR = "DOTINSTALL_MOCK_PKGS"
DEFAULT_TIMEOUT = 300
TIMEOUT_RETURNCODE = 124
NOT_FOUND_RETURNCODE = 127


def format_command(cmd: Sequence[str]) -> str:
    """Render a command list as a copy-pasteable shell string."""
    return shlex.join(list(cmd))


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


@dataclass
class CommandResult:
    """Outcome of a single external command."""

    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    raw_stdout: Optional[bytes] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def lines(self) -> List[str]:
        """Non-empty, stripped stdout lines."""
        return [line.strip() for line in self.stdout.splitlines() if line.strip()]

    def error_text(self) -> str:
        return (self.stderr or self.stdout).strip()

    def stdout_bytes(self) -> bytes:
        """Undecoded stdout, for output piped into another command."""
        if self.raw_stdout is not None:
            return self.raw_stdout
        return self.stdout.encode()


@dataclass
class CommandRunner:
    """Executes package-manager commands with a per-call timeout.

    When ``mock`` is enabled (or ``DOTINSTALL_MOCK_PKGS`` is set) commands
    are logged instead of executed and every binary is reported as present.
    """

    timeout: int = DEFAULT_TIMEOUT
    mock: Optional[bool] = None
    history: List[List[str]] = field(default_factory=list)

    def __post_init__(self):
        if self.mock is None:
            self.mock = bool(os.environ.get(MOCK_ENV_VAR))
        self._is_root = os.geteuid() == 0 if hasattr(os, "geteuid") else False

    def which(self, binary: str) -> Optional[str]:
        """Locate a binary on PATH."""
        if self.mock:
            return f"/mock/bin/{binary}"
        return shutil.which(binary)

    def privilege_prefix(self) -> List[str]:
        """Get the command prefix for privileged operations.

        Returns an empty list when already root, ``['sudo']`` or
        ``['doas']`` when available.
        """
        if self._is_root:
            return []

        if self.which("sudo"):
            return ["sudo"]

        if self.which("doas"):
            return ["doas"]

        logger.warning(
            "No privilege escalation tool found (sudo/doas). "
            "Package installation may fail if not running as root."
        )
        return []

    def privileged(self, cmd: Sequence[str]) -> List[str]:
        return self.privilege_prefix() + list(cmd)

    def run(
        self,
        cmd: Sequence[str],
        input: Optional[Union[str, bytes]] = None,
        timeout: Optional[int] = None,
        binary: bool = False,
    ) -> CommandResult:
        """Run a command and capture its result.

        Never raises for a failing command: a timeout is reported with exit
        code 124 and a missing executable with 127. Output that is not valid
        UTF-8 is decoded with replacement characters. With ``binary`` the
        input is passed as bytes and stdout is also kept undecoded.
        """
        cmd = list(cmd)
        self.history.append(cmd)
        rendered = format_command(cmd)

        if self.mock:
            logger.info(f"[MOCK] {rendered}")
            return CommandResult(cmd, 0)

        logger.debug(f"Running: {rendered}")
        text_mode = {} if binary else {"encoding": "utf-8", "errors": "replace"}
        try:
            proc = subprocess.run(
                cmd,
                input=input,
                capture_output=True,
                timeout=timeout or self.timeout,
                **text_mode,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Timed out after {timeout or self.timeout}s: {rendered}")
            return CommandResult(
                cmd,
                TIMEOUT_RETURNCODE,
                stderr=f"timed out after {timeout or self.timeout}s",
            )
        except FileNotFoundError:
            return CommandResult(
                cmd, NOT_FOUND_RETURNCODE, stderr=f"{cmd[0]}: command not found"
            )

        if binary:
            return CommandResult(
                cmd,
                proc.returncode,
                _decode(proc.stdout),
                _decode(proc.stderr),
                raw_stdout=proc.stdout or b"",
            )
        return CommandResult(cmd, proc.returncode, proc.stdout or "", proc.stderr or "")

    def check(self, cmd: Sequence[str], **kwargs) -> CommandResult:
        """Run a command, raising :class:`InstallFailure` on non-zero exit."""
        result = self.run(cmd, **kwargs)
        if not result.ok:
            raise InstallFailure(
                format_command(result.command),
                result.returncode,
                result.error_text(),
            )
        return result
