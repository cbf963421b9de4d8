"""Tests for installation runs."""

import pytest
from conftest import FakeRunner, dpkg_output

from dotinstall.backends import Outcome
from dotinstall.errors import DotinstallError, NotFoundError, ValidationError
from dotinstall.orchestrator import Orchestrator, RunState, install_from_manifest
from dotinstall.verification import IssueStatus


@pytest.fixture
def orchestrator(fake_runner, tmp_path):
    return Orchestrator(runner=fake_runner, sources_dir=tmp_path)


class TestInstallFromManifest:
    """Tests for profile installs."""

    def test_dry_run_minimal_profile(self, fake_runner, tmp_path, manifest_paths):
        summary = install_from_manifest(
            manifest_paths, "minimal", "ubuntu", dry_run=True,
            runner=fake_runner, sources_dir=tmp_path,
        )

        assert summary.total == 2
        assert summary.failed == 0
        assert summary.ok
        text = "\n".join(summary.messages)
        assert "git" in text
        assert "curl" in text
        assert "apt-get install" in text
        assert fake_runner.history == []

    def test_results_in_package_order(self, orchestrator, manifest_paths):
        summary = orchestrator.install_from_manifest(
            manifest_paths, "minimal", "ubuntu", dry_run=True
        )
        assert [r.package for r in summary.results] == ["curl", "git"]
        assert orchestrator.state == RunState.END

    def test_macos_uses_homebrew(self, orchestrator, manifest_dir):
        summary = orchestrator.install_from_manifest(
            [manifest_dir / "common.yaml"], "minimal", "macos", dry_run=True
        )
        assert {r.backend.value for r in summary.results} == {"homebrew"}

    def test_empty_profile(self, orchestrator, fake_runner, manifest_paths):
        summary = orchestrator.install_from_manifest(manifest_paths, "empty", "ubuntu")
        assert summary.total == 0
        assert summary.ok
        assert fake_runner.history == []

    def test_unknown_profile_aborts_before_any_command(
        self, orchestrator, fake_runner, manifest_paths
    ):
        with pytest.raises(NotFoundError):
            orchestrator.install_from_manifest(manifest_paths, "nope", "ubuntu")
        assert fake_runner.history == []

    def test_invalid_manifest_aborts(self, orchestrator, write_manifest):
        path = write_manifest("profiles:\n  x: {description: y, packages: []}\n")
        with pytest.raises(ValidationError):
            orchestrator.install_from_manifest([path], "x", "ubuntu")

    def test_counts_add_up(self, tmp_path, manifest_paths):
        runner = FakeRunner(outputs={("dpkg-query",): dpkg_output("git")})
        summary = install_from_manifest(
            manifest_paths, "minimal", "ubuntu", runner=runner, sources_dir=tmp_path
        )

        assert summary.already_installed == 1
        assert summary.succeeded == 1
        assert summary.total == (
            summary.succeeded + summary.already_installed + summary.skipped + summary.failed
        )

    def test_failure_does_not_stop_run(self, tmp_path, manifest_paths):
        runner = FakeRunner(failures={"install -y curl": (100, "E: broken")})
        summary = install_from_manifest(
            manifest_paths, "minimal", "ubuntu", runner=runner, sources_dir=tmp_path
        )

        assert not summary.ok
        assert summary.failed == 1
        assert "E: broken" in summary.failures["curl"]
        assert runner.ran("sudo", "apt-get", "install", "-y", "git")

    def test_parallel_jobs_keep_order(self, fake_runner, tmp_path, manifest_paths):
        orchestrator = Orchestrator(runner=fake_runner, jobs=4, sources_dir=tmp_path)

        summary = orchestrator.install_from_manifest(manifest_paths, "dev", "ubuntu")

        assert [r.package for r in summary.results] == [
            "build-deps", "curl", "git", "neovim", "node", "python", "ripgrep", "ruby",
        ]
        assert summary.ok
        assert fake_runner.ran("mise", "install", "node@20")


class TestInstallPackages:
    """Tests for explicit package lists and bulk groups."""

    def test_unresolvable_package_recorded(self, tmp_path, manifest):
        """Without brew on PATH nothing can install a Homebrew-only package."""
        runner = FakeRunner(binaries=("apt-get", "apt-cache", "dpkg-query", "sudo"))
        orchestrator = Orchestrator(runner=runner, sources_dir=tmp_path)
        summary = orchestrator.install_packages(manifest, ["firefox", "git"], "ubuntu", dry_run=True)

        assert summary.total == 2
        assert summary.failed == 1
        assert "No available backend" in summary.failures["firefox"]
        assert summary.results[1].outcome == Outcome.DRY_RUN

    def test_unknown_package_rejected_up_front(self, orchestrator, fake_runner, manifest):
        with pytest.raises(NotFoundError):
            orchestrator.install_packages(manifest, ["git", "nope"], "ubuntu")
        assert fake_runner.history == []

    def test_enabled_group(self, orchestrator, manifest):
        summary = orchestrator.install_group(manifest, "cli", "ubuntu", dry_run=True)
        assert [r.package for r in summary.results] == ["ripgrep", "curl"]

    def test_disabled_group(self, orchestrator, manifest):
        with pytest.raises(DotinstallError, match="disabled"):
            orchestrator.install_group(manifest, "extras", "ubuntu")

    def test_unknown_group(self, orchestrator, manifest):
        with pytest.raises(NotFoundError):
            orchestrator.install_group(manifest, "nope", "ubuntu")


class TestUninstall:
    def test_dry_run(self, orchestrator, manifest_paths):
        summary = orchestrator.uninstall_from_manifest(
            manifest_paths, "minimal", "ubuntu", dry_run=True
        )
        assert summary.action == "uninstall"
        assert "[DRY RUN] Would remove APT packages: git" in summary.messages

    def test_absent_packages_are_not_errors(self, orchestrator, manifest_paths):
        summary = orchestrator.uninstall_from_manifest(manifest_paths, "minimal", "ubuntu")
        assert summary.ok
        assert {r.outcome for r in summary.results} == {Outcome.NOT_INSTALLED}


class TestVerifyProfile:
    def test_reports_missing_with_suggestions(self, tmp_path, manifest_paths):
        runner = FakeRunner(
            outputs={
                ("dpkg-query",): dpkg_output("git"),
                ("apt-cache", "pkgnames"): "git\ncurl-minimal\nlibcurl4\n",
            }
        )
        orchestrator = Orchestrator(runner=runner, sources_dir=tmp_path)

        issues = orchestrator.verify_profile(manifest_paths, "minimal", "ubuntu")

        assert len(issues) == 1
        assert issues[0].package == "curl"
        assert issues[0].status == IssueStatus.FUZZY
        assert issues[0].alternatives[0] == "curl-minimal"

    def test_everything_installed(self, tmp_path, manifest_paths):
        runner = FakeRunner(outputs={("dpkg-query",): dpkg_output("git", "curl")})
        orchestrator = Orchestrator(runner=runner, sources_dir=tmp_path)
        assert orchestrator.verify_profile(manifest_paths, "minimal", "ubuntu") == []


class TestRepeatedRuns:
    """Each run on an orchestrator starts from a fresh cache."""

    def test_installed_state_listed_again(self, tmp_path, manifest_paths):
        runner = FakeRunner(outputs={("dpkg-query",): dpkg_output("git", "curl")})
        orchestrator = Orchestrator(runner=runner, sources_dir=tmp_path)

        first = orchestrator.install_from_manifest(manifest_paths, "minimal", "ubuntu")
        runner.outputs[("dpkg-query",)] = ""
        second = orchestrator.install_from_manifest(manifest_paths, "minimal", "ubuntu")

        assert first.already_installed == 2
        assert second.already_installed == 0
        assert second.succeeded == 2
        dpkg_runs = [cmd for cmd in runner.history if cmd[0] == "dpkg-query"]
        assert len(dpkg_runs) == 2

    def test_verify_after_install_sees_fresh_state(self, tmp_path, manifest_paths):
        runner = FakeRunner(outputs={("dpkg-query",): dpkg_output("git", "curl")})
        orchestrator = Orchestrator(runner=runner, sources_dir=tmp_path)
        orchestrator.install_from_manifest(manifest_paths, "minimal", "ubuntu")

        runner.outputs[("dpkg-query",)] = dpkg_output("git")
        issues = orchestrator.verify_profile(manifest_paths, "minimal", "ubuntu")

        assert [issue.package for issue in issues] == ["curl"]
