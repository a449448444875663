"""Run discovered test cases, one isolated process per case."""

from __future__ import annotations

import asyncio
import fnmatch
import time
from typing import Sequence

import structlog

from z_build import config
from z_build.models.testcase import TestCase, TestReport, TestResult

log = structlog.get_logger("z_build.test")

_WILDCARDS = set("*?[")


def select_cases(cases: Sequence[TestCase], pattern: str | None = None) -> list[TestCase]:
    """Exact-name match, or an fnmatch pattern when *pattern* has wildcards."""
    if not pattern:
        return list(cases)
    if _WILDCARDS & set(pattern):
        return [c for c in cases if fnmatch.fnmatchcase(c.name, pattern)]
    return [c for c in cases if c.name == pattern]


class TestRunner:
    """Execute test cases concurrently with a per-case timeout.

    A case that exceeds the timeout is killed and reported as failed; the
    remaining cases keep running.
    """

    __test__ = False

    def __init__(self, timeout: float | None = None, jobs: int | None = None) -> None:
        self.timeout = timeout if timeout is not None else config.default_test_timeout()
        self.jobs = jobs or config.default_jobs()

    def run(self, cases: Sequence[TestCase], pattern: str | None = None) -> TestReport:
        selected = select_cases(cases, pattern)
        log.info("test.start", cases=len(selected), filter=pattern, jobs=self.jobs)
        results = asyncio.run(self._run_all(selected))
        report = TestReport(results=results)
        log.info("test.done", **report.summary())
        return report

    async def _run_all(self, cases: list[TestCase]) -> list[TestResult]:
        sem = asyncio.Semaphore(self.jobs)

        async def bounded(case: TestCase) -> TestResult:
            async with sem:
                return await self._run_one(case)

        return list(await asyncio.gather(*(bounded(c) for c in cases)))

    async def _run_one(self, case: TestCase) -> TestResult:
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                case.binary,
                case.identifier,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            log.warning("test.start_failed", case=case.name, binary=case.binary, error=str(e))
            return TestResult(case=case, passed=False, error=f"cannot start: {e}")

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            duration = round(time.monotonic() - start, 3)
            log.warning("test.timeout", case=case.name, timeout=self.timeout)
            return TestResult(
                case=case,
                passed=False,
                returncode=proc.returncode,
                duration=duration,
                timed_out=True,
                error=f"timed out after {self.timeout}s",
            )

        duration = round(time.monotonic() - start, 3)
        output = stdout.decode(errors="replace")
        passed = proc.returncode == 0
        if not passed:
            log.info("test.failed", case=case.name, returncode=proc.returncode)
        return TestResult(
            case=case,
            passed=passed,
            returncode=proc.returncode,
            duration=duration,
            output=output,
        )
