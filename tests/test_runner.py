"""Tests for running discovered test cases."""

from __future__ import annotations

import pytest

from z_build.models.testcase import TestCase
from z_build.testing import write_fake_test_binary
from z_build.testrun.discovery import TestDiscoveryRunner
from z_build.testrun.runner import TestRunner, select_cases

CASES = ["parses empty input", "rejects malformed manifest"]


@pytest.fixture
def discovered(tmp_path):
    def make(failing=(), hanging=(), names=CASES):
        binary = write_fake_test_binary(
            tmp_path / "sdb-tests", names, failing=failing, hanging=hanging
        )
        return TestDiscoveryRunner().discover(binary)

    return make


class TestSelectCases:
    def _cases(self):
        return [TestCase(name=n, binary="t", identifier=n) for n in [*CASES, "parses [tag]"]]

    def test_no_filter_selects_all(self):
        assert len(select_cases(self._cases())) == 3

    def test_exact_name(self):
        selected = select_cases(self._cases(), "parses empty input")
        assert [c.name for c in selected] == ["parses empty input"]

    def test_wildcard(self):
        selected = select_cases(self._cases(), "parses*")
        assert [c.name for c in selected] == ["parses empty input", "parses [tag]"]

    def test_no_match(self):
        assert select_cases(self._cases(), "nothing") == []


class TestTestRunner:
    def test_all_pass(self, discovered):
        report = TestRunner(timeout=10, jobs=2).run(discovered())
        assert report.ok
        assert report.total == 2
        assert "passed: parses empty input" in report.results[0].output

    def test_exact_filter_runs_one_case(self, discovered):
        report = TestRunner(timeout=10).run(discovered(), "parses empty input")
        assert [r.case.name for r in report.results] == ["parses empty input"]
        assert report.ok

    def test_failing_case(self, discovered):
        report = TestRunner(timeout=10).run(discovered(failing={"rejects malformed manifest"}))
        assert not report.ok
        failed = report.failed[0]
        assert failed.case.name == "rejects malformed manifest"
        assert failed.returncode == 1
        assert report.summary()["failures"] == ["rejects malformed manifest"]

    def test_timeout_kills_case_and_others_continue(self, discovered):
        report = TestRunner(timeout=0.5, jobs=2).run(discovered(hanging={"parses empty input"}))
        hung, other = report.results
        assert hung.timed_out and not hung.passed
        assert other.passed
        assert report.summary()["timed_out"] == 1

    def test_special_characters_select_single_case(self, discovered):
        names = ["split, on comma", "split on comma"]
        report = TestRunner(timeout=10).run(discovered(names=names))
        assert report.ok
        assert "passed: split, on comma" in report.results[0].output

    def test_missing_binary(self, tmp_path):
        case = TestCase(name="x", binary=str(tmp_path / "gone"), identifier="x")
        report = TestRunner(timeout=10).run([case])
        assert not report.ok
        assert report.results[0].error.startswith("cannot start")

    def test_empty_selection(self, discovered):
        report = TestRunner(timeout=10).run(discovered(), "nothing matches")
        assert report.total == 0
        assert report.ok
