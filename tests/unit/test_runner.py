"""Tests for the subprocess boundary."""

import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from dotinstall.errors import InstallFailure
from dotinstall.runner import (
    NOT_FOUND_RETURNCODE,
    TIMEOUT_RETURNCODE,
    CommandResult,
    CommandRunner,
    format_command,
)


def test_format_command_quotes():
    assert format_command(["echo", "a b", "libc6:amd64"]) == "echo 'a b' libc6:amd64"


class TestCommandResult:
    def test_lines_skip_blanks(self):
        result = CommandResult(["x"], 0, "a\n\n  b  \n")
        assert result.lines == ["a", "b"]

    def test_error_text_prefers_stderr(self):
        assert CommandResult(["x"], 1, "out", "err").error_text() == "err"
        assert CommandResult(["x"], 1, "out\n").error_text() == "out"

    def test_stdout_bytes(self):
        assert CommandResult(["x"], 0, "key").stdout_bytes() == b"key"
        raw = CommandResult(["x"], 0, "\ufffd", raw_stdout=b"\xff")
        assert raw.stdout_bytes() == b"\xff"


class TestRun:
    """Tests for CommandRunner.run."""

    def test_captures_output(self):
        runner = CommandRunner(mock=False)
        with patch("dotinstall.runner.subprocess.run") as run:
            run.return_value = MagicMock(returncode=0, stdout="ok\n", stderr="")
            result = runner.run(["apt-get", "update"], timeout=5)

        assert result.ok
        assert result.stdout == "ok\n"
        assert run.call_args.kwargs["timeout"] == 5
        assert runner.history == [["apt-get", "update"]]

    def test_timeout(self):
        runner = CommandRunner(timeout=1, mock=False)
        with patch(
            "dotinstall.runner.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["brew"], 1),
        ):
            result = runner.run(["brew", "update"])

        assert result.returncode == TIMEOUT_RETURNCODE
        assert "timed out" in result.stderr

    def test_missing_executable(self):
        runner = CommandRunner(mock=False)
        with patch("dotinstall.runner.subprocess.run", side_effect=FileNotFoundError()):
            result = runner.run(["nope"])
        assert result.returncode == NOT_FOUND_RETURNCODE

    def test_check_raises(self):
        runner = CommandRunner(mock=False)
        with patch("dotinstall.runner.subprocess.run") as run:
            run.return_value = MagicMock(returncode=100, stdout="", stderr="E: failed")
            with pytest.raises(InstallFailure) as exc:
                runner.check(["apt-get", "install", "-y", "git"])

        assert exc.value.returncode == 100
        assert "E: failed" in str(exc.value)

    def test_non_utf8_output_is_replaced(self):
        """Undecodable bytes from a package manager never abort the run."""
        runner = CommandRunner(mock=False)
        script = "import sys; sys.stdout.buffer.write(b\"\\xff\\xfeok\"); sys.exit(3)"

        result = runner.run([sys.executable, "-c", script])

        assert result.returncode == 3
        assert result.stdout == "\ufffd\ufffdok"

    def test_binary_mode_keeps_bytes(self):
        runner = CommandRunner(mock=False)
        script = "import sys; sys.stdout.buffer.write(sys.stdin.buffer.read())"
        key = b"\x99\x01\x0dkey\xff"

        result = runner.run([sys.executable, "-c", script], input=key, binary=True)

        assert result.ok
        assert result.stdout_bytes() == key
        assert result.stdout.endswith("\ufffd")


class TestMock:
    """Mock mode never spawns a process."""

    def test_env_var_enables_mock(self, monkeypatch):
        monkeypatch.setenv("DOTINSTALL_MOCK_PKGS", "1")
        runner = CommandRunner()
        with patch("dotinstall.runner.subprocess.run") as run:
            result = runner.run(["apt-get", "install", "-y", "git"])

        assert result.ok
        run.assert_not_called()
        assert runner.which("anything") is not None


class TestPrivilege:
    """Tests for privilege escalation prefixes."""

    def test_root_needs_nothing(self):
        runner = CommandRunner(mock=False)
        runner._is_root = True
        assert runner.privileged(["apt-get", "update"]) == ["apt-get", "update"]

    def test_sudo_preferred(self):
        runner = CommandRunner(mock=False)
        runner._is_root = False
        with patch("dotinstall.runner.shutil.which", side_effect=lambda b: f"/usr/bin/{b}"):
            assert runner.privilege_prefix() == ["sudo"]

    def test_doas_fallback(self):
        runner = CommandRunner(mock=False)
        runner._is_root = False
        with patch(
            "dotinstall.runner.shutil.which",
            side_effect=lambda b: "/usr/bin/doas" if b == "doas" else None,
        ):
            assert runner.privilege_prefix() == ["doas"]

    def test_no_tool(self):
        runner = CommandRunner(mock=False)
        runner._is_root = False
        with patch("dotinstall.runner.shutil.which", return_value=None):
            assert runner.privilege_prefix() == []
