"""Tests for test-case discovery against fake Catch2 binaries."""

from __future__ import annotations

import pytest

from z_build.exceptions import DiscoveryError
from z_build.testing import write_fake_test_binary
from z_build.testrun.discovery import TestDiscoveryRunner, escape_test_name, parse_test_names


class TestParseTestNames:
    def test_skips_blank_and_summary_lines(self):
        output = "parses empty input\n\nrejects malformed manifest\n2 matching test cases\n"
        assert parse_test_names(output) == ["parses empty input", "rejects malformed manifest"]

    def test_singular_summary(self):
        assert parse_test_names("only one\n1 test case\n") == ["only one"]

    def test_duplicates_reported_once(self):
        assert parse_test_names("a\nb\na\n") == ["a", "b"]


class TestEscapeTestName:
    def test_plain_name_unchanged(self):
        assert escape_test_name("parses empty input") == "parses empty input"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("a, b", "a\\, b"),
            ("[tag] case", "\\[tag\\] case"),
            ("glob*", "glob\\*"),
            ("back\\slash", "back\\\\slash"),
            ("~negated", "\\~negated"),
        ],
    )
    def test_special_characters(self, name, expected):
        assert escape_test_name(name) == expected


class TestDiscover:
    def test_two_cases_in_order(self, tmp_path):
        binary = write_fake_test_binary(
            tmp_path / "tests", ["parses empty input", "rejects malformed manifest"]
        )
        cases = TestDiscoveryRunner().discover(binary)
        assert [c.name for c in cases] == ["parses empty input", "rejects malformed manifest"]
        assert all(c.binary == str(binary) for c in cases)
        assert cases[0].identifier == "parses empty input"

    def test_identifiers_unique_within_binary(self, tmp_path):
        binary = write_fake_test_binary(tmp_path / "tests", ["a, b", "a b", "[x]"])
        cases = TestDiscoveryRunner().discover(binary)
        assert len({c.identifier for c in cases}) == 3

    def test_catch2_v2_count_exit_code_accepted(self, tmp_path):
        binary = write_fake_test_binary(tmp_path / "tests", ["one", "two"], list_exit_code=2)
        assert len(TestDiscoveryRunner().discover(binary)) == 2

    def test_crash_after_one_name_rejected(self, tmp_path):
        binary = write_fake_test_binary(
            tmp_path / "tests", ["one"], list_exit_code=1, list_stderr="Segmentation fault"
        )
        with pytest.raises(DiscoveryError, match="Segmentation fault"):
            TestDiscoveryRunner().discover(binary)

    def test_unexpected_exit_code(self, tmp_path):
        binary = write_fake_test_binary(tmp_path / "tests", ["one"], list_exit_code=7)
        with pytest.raises(DiscoveryError, match="exit code 7"):
            TestDiscoveryRunner().discover(binary)

    def test_binary_cannot_start(self, tmp_path):
        with pytest.raises(DiscoveryError, match="cannot start") as exc_info:
            TestDiscoveryRunner().discover(tmp_path / "missing")
        assert exc_info.value.binary == str(tmp_path / "missing")

    def test_no_cases(self, tmp_path):
        binary = write_fake_test_binary(tmp_path / "tests", [])
        assert TestDiscoveryRunner().discover(binary) == []
