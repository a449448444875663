"""Tests for version parsing and constraint arithmetic."""

from __future__ import annotations

import pytest

from z_build.resolver.versions import Constraint, Version, highest_satisfying


class TestVersion:
    def test_ordering(self):
        assert Version.parse("1.2.10") > Version.parse("1.2.9")
        assert Version.parse("2.0") > Version.parse("1.99.99")

    def test_trailing_zeros_are_equal(self):
        assert Version.parse("1.2") == Version.parse("1.2.0")
        assert hash(Version.parse("1.2")) == hash(Version.parse("1.2.0"))

    def test_prerelease_sorts_before_release(self):
        assert Version.parse("2.0.0-rc1") < Version.parse("2.0.0")

    def test_port_version(self):
        v = Version.parse("v3.5.2#1")
        assert v.release == (3, 5, 2)
        assert v.port_version == 1
        assert str(v) == "3.5.2#1"
        assert v > Version.parse("3.5.2")

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid version"):
            Version.parse("latest")


class TestConstraint:
    def test_any(self):
        c = Constraint.parse("")
        assert c.allows(Version.parse("0.0.1"))
        assert str(c) == "*"
        assert Constraint.parse("*").allows(Version.parse("99"))

    def test_range(self):
        c = Constraint.parse(">=1.2, <2")
        assert c.allows(Version.parse("1.2.0"))
        assert c.allows(Version.parse("1.9"))
        assert not c.allows(Version.parse("2.0"))
        assert not c.allows(Version.parse("1.1"))

    def test_bare_version_pins(self):
        c = Constraint.parse("1.4.0")
        assert c.allows(Version.parse("1.4"))
        assert not c.allows(Version.parse("1.4.1"))

    def test_exclusive_bounds(self):
        c = Constraint.parse(">1.0, <=1.5")
        assert not c.allows(Version.parse("1.0"))
        assert c.allows(Version.parse("1.5"))

    def test_disjoint_ranges_are_incompatible(self):
        assert not Constraint.parse(">=2").compatible_with(Constraint.parse("<2"))
        assert not Constraint.parse("==1.0").compatible_with(Constraint.parse("==1.1"))

    def test_touching_inclusive_bounds_are_compatible(self):
        assert Constraint.parse(">=2").compatible_with(Constraint.parse("<=2"))

    def test_intersect_keeps_text(self):
        c = Constraint.parse(">=1").intersect(Constraint.parse("<3"))
        assert str(c) == ">=1, <3"

    def test_invalid_clause(self):
        with pytest.raises(ValueError):
            Constraint.parse("~>1.0 beta")


class TestHighestSatisfying:
    def test_picks_highest_allowed(self):
        versions = [Version.parse(v) for v in ("1.0", "1.5", "2.0")]
        assert highest_satisfying(versions, Constraint.parse("<2")) == Version.parse("1.5")

    def test_none_when_unsatisfiable(self):
        versions = [Version.parse("1.0")]
        assert highest_satisfying(versions, Constraint.parse(">=2")) is None
