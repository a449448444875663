"""Test discovery: ask a compiled test binary for the names of its cases."""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from z_build import config
from z_build.exceptions import DiscoveryError
from z_build.models.testcase import TestCase

logger = logging.getLogger(__name__)

LIST_FLAG = "--list-test-names-only"

# Footer lines Catch2 prints after the names, e.g. "2 matching test cases".
_SUMMARY_RE = re.compile(r"^\d+ (matching )?test cases?\.?$", re.IGNORECASE)
# Characters with special meaning in a Catch2 test spec.
_SPEC_CHARS = re.compile(r"([\\,\[\]*])")


def escape_test_name(name: str) -> str:
    """Escape *name* so Catch2 matches it literally as a single case."""
    escaped = _SPEC_CHARS.sub(r"\\\1", name)
    if escaped.startswith("~"):
        escaped = "\\" + escaped
    return escaped


def parse_test_names(output: str) -> list[str]:
    names: list[str] = []
    for line in output.splitlines():
        name = line.strip()
        if not name or _SUMMARY_RE.match(name):
            continue
        if name in names:
            logger.warning("Duplicate test name reported: %s", name)
            continue
        names.append(name)
    return names


class TestDiscoveryRunner:
    """Run a test binary in list-only mode and turn its output into :class:`TestCase` s."""

    __test__ = False

    def __init__(
        self,
        list_args: tuple[str, ...] = (LIST_FLAG,),
        timeout: float = config.DEFAULT_DISCOVERY_TIMEOUT,
    ) -> None:
        self.list_args = list_args
        self.timeout = timeout

    def discover(self, binary: str | Path) -> list[TestCase]:
        """Return the cases *binary* reports, in the order it reports them.

        Raises:
            DiscoveryError: the binary cannot be started, exits non-zero or
                does not answer within the timeout.
        """
        binary = str(binary)
        cmd = [binary, *self.list_args]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise DiscoveryError(binary, f"timed out after {self.timeout}s")
        except OSError as e:
            raise DiscoveryError(binary, f"cannot start: {e}") from e

        names = parse_test_names(result.stdout)
        # Catch2 v2 exits with the number of listed cases; v3 exits with 0.
        # A count exit code with diagnostics on stderr is a crash, not a listing.
        counted = result.returncode == len(names) and not result.stderr.strip()
        if result.returncode != 0 and not counted:
            raise DiscoveryError(
                binary, f"exit code {result.returncode}: {result.stderr.strip()[-500:]}"
            )

        cases = [
            TestCase(name=name, binary=binary, identifier=escape_test_name(name))
            for name in names
        ]
        logger.info("Discovered %d test cases in %s", len(cases), binary)
        return cases
