"""Tests for verification issues and the missing-packages log."""

import json

import pytest
from conftest import DEFAULT_BINARIES, FakeRunner, dpkg_output

from dotinstall.backends import create_backends
from dotinstall.cache import PackageCache
from dotinstall.errors import InvalidFormatError, NotFoundError, ParseError
from dotinstall.resolver import BackendResolver
from dotinstall.verification import (
    FIELD_SEPARATOR,
    IssueStatus,
    VerificationIssue,
    decode_issue,
    decode_legacy_issue,
    default_log_path,
    encode_issue,
    encode_legacy_issue,
    format_issues,
    load_issues,
    load_missing_packages,
    log_missing_packages,
    verify_packages_batch,
)


@pytest.fixture
def issues():
    return [
        VerificationIssue("apt", "libc", "libc6:amd64", IssueStatus.MISSING),
        VerificationIssue(
            "ppa", "neovim", "neovim", IssueStatus.FUZZY, ["ppa:neovim-ppa/stable", "nvim"]
        ),
        VerificationIssue("mise", "node", "node", IssueStatus.WRONG_VERSION, ["18.19.0"]),
    ]


class TestEncoding:
    """Identifiers with colons and slashes survive both record formats."""

    def test_colon_in_name_json(self, issues):
        assert decode_issue(encode_issue(issues[0])) == issues[0]

    def test_colon_in_name_legacy(self, issues):
        decoded = decode_legacy_issue(encode_legacy_issue(issues[0]))
        assert decoded.actual_name == "libc6:amd64"
        assert decoded == issues[0]

    def test_ppa_alternative_legacy(self, issues):
        decoded = decode_legacy_issue(encode_legacy_issue(issues[1]))
        assert decoded.alternatives == ["ppa:neovim-ppa/stable", "nvim"]

    def test_legacy_wrong_field_count(self):
        with pytest.raises(InvalidFormatError):
            decode_legacy_issue(FIELD_SEPARATOR.join(["apt", "git", "git"]))

    def test_unknown_status(self):
        with pytest.raises(InvalidFormatError):
            decode_issue(
                json.dumps({"backend": "apt", "package": "git", "status": "BROKEN"})
            )

    def test_not_an_object(self):
        with pytest.raises(InvalidFormatError):
            decode_issue("[1, 2]")


class TestLog:
    """Tests for writing and reading the missing-packages log."""

    def test_json_round_trip(self, tmp_path, issues):
        path = log_missing_packages(issues, path=tmp_path / "log.json", user="ana", host="box")

        document = json.loads(path.read_text())
        assert document["user"] == "ana"
        assert document["host"] == "box"
        assert "date" in document
        assert load_issues(path) == issues

    def test_default_path_in_log_dir(self, tmp_path, issues):
        path = log_missing_packages(issues, log_dir=tmp_path / "logs")
        assert path.parent == tmp_path / "logs"
        assert path.name.startswith("missing-packages-")
        assert path.suffix == ".json"

    def test_default_log_path_format(self, tmp_path):
        name = default_log_path(tmp_path).name
        stamp = name[len("missing-packages-"):-len(".json")]
        assert len(stamp) == len("20240101_120000")
        assert stamp[8] == "_"

    def test_plain_text_fallback(self, mocker, tmp_path, issues):
        mocker.patch("dotinstall.verification.json.dumps", side_effect=TypeError("boom"))

        path = log_missing_packages(issues, path=tmp_path / "log.txt", user="ana", host="box")
        text = path.read_text()

        assert text.startswith("# date: ")
        assert "# user: ana" in text
        assert load_issues(path) == issues

    def test_missing_packages_unique_in_order(self, tmp_path):
        path = log_missing_packages(
            [
                VerificationIssue("apt", "build-deps", "build-essential", IssueStatus.MISSING),
                VerificationIssue("apt", "build-deps", "libssl-dev", IssueStatus.MISSING),
                VerificationIssue("mise", "node", "node", IssueStatus.MISSING),
            ],
            path=tmp_path / "log.json",
        )
        assert load_missing_packages(path) == ["build-deps", "node"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(NotFoundError):
            load_issues(tmp_path / "absent.json")

    def test_corrupt_json(self, tmp_path):
        path = tmp_path / "log.json"
        path.write_text("{not json")
        with pytest.raises(ParseError):
            load_issues(path)

    def test_json_without_packages(self, tmp_path):
        path = tmp_path / "log.json"
        path.write_text('{"date": "today"}')
        with pytest.raises(ParseError):
            load_issues(path)

    def test_corrupt_plain_text(self, tmp_path):
        path = tmp_path / "log.txt"
        path.write_text("# date: today\napt git\n")
        with pytest.raises(ParseError):
            load_issues(path)


class TestVerifyPackagesBatch:
    """Tests for classifying installed state."""

    def _verify(
        self, tmp_path, manifest, packages, outputs, platform="ubuntu",
        binaries=DEFAULT_BINARIES, **kwargs
    ):
        runner = FakeRunner(binaries=binaries, outputs=outputs)
        backends = create_backends(runner, PackageCache(runner), sources_dir=tmp_path)
        return verify_packages_batch(
            manifest, packages, platform, BackendResolver(backends), backends, **kwargs
        )

    def test_installed_packages_omitted(self, tmp_path, manifest):
        issues = self._verify(
            tmp_path, manifest, ["git"], {("dpkg-query",): dpkg_output("git")}
        )
        assert issues == []

    def test_include_installed(self, tmp_path, manifest):
        issues = self._verify(
            tmp_path, manifest, ["git"], {("dpkg-query",): dpkg_output("git")},
            include_installed=True,
        )
        assert [i.status for i in issues] == [IssueStatus.INSTALLED]

    def test_missing_without_suggestions(self, tmp_path, manifest):
        issues = self._verify(tmp_path, manifest, ["git"], {})
        assert issues == [VerificationIssue("apt", "git", "git", IssueStatus.MISSING)]

    def test_each_native_name_checked(self, tmp_path, manifest):
        issues = self._verify(
            tmp_path, manifest, ["build-deps"],
            {("dpkg-query",): dpkg_output("build-essential")},
        )
        assert [i.actual_name for i in issues] == ["libssl-dev"]

    def test_wrong_version(self, tmp_path, manifest):
        issues = self._verify(
            tmp_path, manifest, ["node"],
            {("mise", "list", "--installed"): "node  18.19.0\n"},
        )
        assert issues[0].status == IssueStatus.WRONG_VERSION
        assert issues[0].alternatives == ["18.19.0"]

    def test_unresolvable_reported_with_no_backend(self, tmp_path, manifest):
        issues = self._verify(
            tmp_path, manifest, ["firefox"], {}, binaries=("apt-get", "dpkg-query")
        )
        assert issues == [VerificationIssue("none", "firefox", "firefox", IssueStatus.MISSING)]


class TestFormatIssues:
    def test_lines(self, issues):
        lines = format_issues(issues)
        assert lines[0].startswith("MISSING")
        assert "libc (libc6:amd64)" in lines[0]
        assert lines[1].endswith("did you mean: ppa:neovim-ppa/stable, nvim?")
        assert lines[2].endswith("installed versions: 18.19.0")
