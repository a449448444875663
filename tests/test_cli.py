"""Tests for CLI commands, with a fake toolchain standing in for the compiler."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from click.testing import CliRunner
from conftest import write_json, write_sdb_project

from z_build.cli import main
from z_build.testing import FakeToolchain

CASES = ["parses empty input", "rejects malformed manifest"]


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch("z_build.cli.setup_logging"):
        yield


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def ports(tmp_path):
    root = tmp_path / "ports"
    write_json(
        root / "editline" / "1.17.1.json",
        {"targets": {"editline::editline": {"libraries": ["edit"]}}},
    )
    write_json(
        root / "catch2" / "3.5.2.json",
        {"targets": {"Catch2::Catch2": {"libraries": ["Catch2"]}}},
    )
    return root


@pytest.fixture
def project(tmp_path):
    return write_sdb_project(tmp_path / "sdb")


def _registry_args(ports, install_root):
    return ["--registry", str(ports), "--install-root", str(install_root)]


@pytest.fixture
def args(project, ports, install_root):
    return [str(project), "--triplet", "x64-linux", *_registry_args(ports, install_root)]


def _fake_toolchain(**kwargs):
    toolchain = FakeToolchain(tests={"sdb-tests": CASES}, **kwargs)
    return patch("z_build.api._toolchain_for", return_value=toolchain)


class TestTriplet:
    def test_explicit(self, runner):
        result = runner.invoke(main, ["triplet", "--triplet", "arm64-osx"])
        assert result.exit_code == 0
        assert result.output.strip() == "arm64-osx"

    def test_environment(self, runner, monkeypatch):
        monkeypatch.setenv("Z_BUILD_DEFAULT_TRIPLET", "x64-windows-static")
        result = runner.invoke(main, ["triplet"])
        assert result.output.strip() == "x64-windows-static"

    def test_invalid(self, runner):
        result = runner.invoke(main, ["triplet", "--triplet", "linux"])
        assert result.exit_code == 1
        assert "Invalid triplet" in result.output


class TestResolve:
    def test_no_manifest(self, runner, tmp_path):
        result = runner.invoke(main, ["resolve", str(tmp_path)])
        assert result.exit_code == 0
        assert "No manifest found" in result.output

    def test_install_then_skip(self, runner, args, install_root):
        first = runner.invoke(main, ["resolve", *args])
        assert first.exit_code == 0, first.output
        assert "[install] catch2 3.5.2" in first.output
        assert "[install] editline 1.17.1" in first.output
        assert (install_root / "x64-linux").is_dir()

        second = runner.invoke(main, ["resolve", *args])
        assert "[skip] catch2 3.5.2" in second.output
        assert "0 installed, 2 up to date" in second.output

    def test_unresolvable(self, runner, tmp_path, ports, install_root):
        project = write_sdb_project(tmp_path / "other", dependencies=("missing",))
        result = runner.invoke(
            main,
            ["resolve", str(project), *_registry_args(ports, install_root)],
        )
        assert result.exit_code == 3
        assert "missing" in result.output


class TestConfigure:
    def test_lists_components(self, runner, args):
        result = runner.invoke(main, ["configure", *args])
        assert result.exit_code == 0, result.output
        assert "Triplet: x64-linux" in result.output
        assert "Packages: catch2, editline" in result.output
        assert "libsdb (static-library) [sdb::libsdb]" in result.output
        assert "sdb-tests (test-binary)\n" in result.output

    def test_release_flag(self, runner, args):
        result = runner.invoke(main, ["configure", *args, "-r"])
        assert "Build type: Release" in result.output

    def test_composition_error(self, runner, tmp_path, ports, install_root):
        project = write_sdb_project(tmp_path / "other", dependencies=("catch2",))
        result = runner.invoke(
            main,
            ["configure", str(project), *_registry_args(ports, install_root)],
        )
        assert result.exit_code == 4
        assert "editline::editline" in result.output


class TestBuild:
    def test_artifact_summary(self, runner, args):
        with _fake_toolchain():
            result = runner.invoke(main, ["build", *args])
        assert result.exit_code == 0, result.output
        assert "+ Library:" in result.output
        assert "+ Executable:" in result.output
        assert "Build successful!" in result.output
        assert "[+] compile" in result.output

    def test_failure_exit_code(self, runner, args):
        with _fake_toolchain(failing={"libsdb"}):
            result = runner.invoke(main, ["build", *args])
        assert result.exit_code == 5
        assert "! Library: libsdb FAILED: fake compiler error" in result.output
        assert "- Executable: sdb SKIPPED (depends on libsdb)" in result.output
        assert "Build failed!" in result.output

    def test_build_and_test(self, runner, args):
        with _fake_toolchain():
            result = runner.invoke(main, ["build", *args, "-t"])
        assert result.exit_code == 0, result.output
        assert "[passed] parses empty input" in result.output
        assert "All tests passed!" in result.output


class TestTestCommand:
    def test_filter_exact_name(self, runner, args):
        with _fake_toolchain():
            result = runner.invoke(main, ["test", *args, "--filter", "rejects malformed manifest"])
        assert result.exit_code == 0, result.output
        assert "Running tests (1):" in result.output

    def test_filter_matches_nothing(self, runner, args):
        with _fake_toolchain():
            result = runner.invoke(main, ["test", *args, "--filter", "no such case"])
        assert result.exit_code == 6
        assert "No test cases matched" in result.output

    def test_compile_failure(self, runner, args):
        with _fake_toolchain(failing={"sdb-tests"}):
            result = runner.invoke(main, ["test", *args])
        assert result.exit_code == 5


class TestExport:
    def test_export(self, runner, args, tmp_path):
        prefix = tmp_path / "prefix"
        with _fake_toolchain():
            result = runner.invoke(main, ["export", *args, "--prefix", str(prefix)])
        assert result.exit_code == 0, result.output
        assert "Exported 2 targets" in result.output
        assert "sdb::libsdb (static-library)" in result.output
        assert (prefix / "share" / "sdb" / "sdb-targets.json").is_file()

    def test_prefix_required(self, runner, args):
        result = runner.invoke(main, ["export", *args])
        assert result.exit_code == 2
