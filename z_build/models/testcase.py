"""Discovered test cases and their outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TestCase:
    """One independently runnable case inside a test binary."""

    __test__ = False  # not a pytest test class

    name: str
    binary: str
    identifier: str  # unique within ``binary``; the argument that selects this case


@dataclass
class TestResult:
    __test__ = False

    case: TestCase
    passed: bool
    returncode: int | None = None
    duration: float = 0.0
    timed_out: bool = False
    output: str = ""
    error: str | None = None


@dataclass
class TestReport:
    """Results of one ``test()`` run, in case order."""

    __test__ = False

    results: list[TestResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> list[TestResult]:
        return [r for r in self.results if r.passed]

    @property
    def failed(self) -> list[TestResult]:
        return [r for r in self.results if not r.passed]

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> dict:
        return {
            "total": self.total,
            "passed": len(self.passed),
            "failed": len(self.failed),
            "timed_out": sum(1 for r in self.results if r.timed_out),
            "failures": [r.case.name for r in self.failed],
        }
