"""Version parsing and constraint arithmetic for the manifest resolver.

Versions are dotted numeric releases with an optional pre-release tag
(``1.2.3``, ``3.5``, ``2.0.0-rc1``). Constraints are comma-joined clauses
(``>=1.2, <2``); a bare version or ``==`` pins it; empty or ``*`` allows any.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering

_VERSION_RE = re.compile(r"^v?(\d+(?:\.\d+)*)(?:-([0-9A-Za-z.\-]+))?(?:#(\d+))?$")
_CLAUSE_RE = re.compile(r"^(>=|<=|==|=|>|<)?\s*(\S+)$")


@total_ordering
@dataclass(frozen=True)
class Version:
    release: tuple[int, ...]
    prerelease: str = ""
    port_version: int = 0

    @classmethod
    def parse(cls, text: str) -> Version:
        m = _VERSION_RE.match(text.strip())
        if not m:
            raise ValueError(f"Invalid version '{text}'")
        release = tuple(int(part) for part in m.group(1).split("."))
        return cls(release=release, prerelease=m.group(2) or "", port_version=int(m.group(3) or 0))

    def _key(self) -> tuple:
        release = self.release
        # 1.2 == 1.2.0
        while len(release) > 1 and release[-1] == 0:
            release = release[:-1]
        # A pre-release sorts before its release.
        return (release, self.prerelease == "", self.prerelease, self.port_version)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: Version) -> bool:
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = ".".join(str(part) for part in self.release)
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.port_version:
            text += f"#{self.port_version}"
        return text


@dataclass(frozen=True)
class Bound:
    version: Version
    inclusive: bool


@dataclass(frozen=True)
class Constraint:
    """A version interval built from one or more comparison clauses."""

    lower: Bound | None = None
    upper: Bound | None = None
    text: str = ""

    @classmethod
    def parse(cls, text: str | None) -> Constraint:
        raw = (text or "").strip()
        if raw in ("", "*"):
            return cls(text="")
        constraint = cls(text=raw)
        for clause in raw.split(","):
            clause = clause.strip()
            if not clause:
                continue
            m = _CLAUSE_RE.match(clause)
            if not m:
                raise ValueError(f"Invalid version constraint '{raw}'")
            op = m.group(1) or "=="
            version = Version.parse(m.group(2))
            if op == ">=":
                piece = cls(lower=Bound(version, True))
            elif op == ">":
                piece = cls(lower=Bound(version, False))
            elif op == "<=":
                piece = cls(upper=Bound(version, True))
            elif op == "<":
                piece = cls(upper=Bound(version, False))
            else:
                piece = cls(lower=Bound(version, True), upper=Bound(version, True))
            constraint = constraint.intersect(piece)
        return constraint

    def intersect(self, other: Constraint) -> Constraint:
        text = ", ".join(t for t in (self.text, other.text) if t)
        return Constraint(
            lower=_tighter_lower(self.lower, other.lower),
            upper=_tighter_upper(self.upper, other.upper),
            text=text,
        )

    @property
    def is_empty(self) -> bool:
        if self.lower is None or self.upper is None:
            return False
        if self.lower.version > self.upper.version:
            return True
        if self.lower.version == self.upper.version:
            return not (self.lower.inclusive and self.upper.inclusive)
        return False

    def compatible_with(self, other: Constraint) -> bool:
        return not self.intersect(other).is_empty

    def allows(self, version: Version) -> bool:
        if self.lower is not None:
            if version < self.lower.version:
                return False
            if version == self.lower.version and not self.lower.inclusive:
                return False
        if self.upper is not None:
            if version > self.upper.version:
                return False
            if version == self.upper.version and not self.upper.inclusive:
                return False
        return True

    def __str__(self) -> str:
        return self.text or "*"


def _tighter_lower(a: Bound | None, b: Bound | None) -> Bound | None:
    if a is None or b is None:
        return a or b
    if a.version != b.version:
        return a if a.version > b.version else b
    return a if not a.inclusive else b


def _tighter_upper(a: Bound | None, b: Bound | None) -> Bound | None:
    if a is None or b is None:
        return a or b
    if a.version != b.version:
        return a if a.version < b.version else b
    return a if not a.inclusive else b


def highest_satisfying(versions: list[Version], constraint: Constraint) -> Version | None:
    """Pick the highest version allowed by *constraint*, or None."""
    candidates = [v for v in versions if constraint.allows(v)]
    return max(candidates) if candidates else None
