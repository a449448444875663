"""Platform triplets: the key that namespaces installs and build outputs."""

from __future__ import annotations

import platform
import re
from dataclasses import dataclass

# platform.machine() spellings -> triplet architecture
_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "arm": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

# platform.system() spellings -> triplet OS
_OS_ALIASES: dict[str, str] = {
    "linux": "linux",
    "darwin": "osx",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
}

_TRIPLET_RE = re.compile(r"^[a-z0-9_]+-[a-z0-9_]+(?:-[a-z0-9_-]+)?$")


@dataclass(frozen=True)
class Triplet:
    """Architecture, OS and optional linkage/build variant (e.g. ``x64-windows-static``)."""

    arch: str
    os: str
    variant: str | None = None

    @classmethod
    def parse(cls, value: str) -> Triplet:
        text = value.strip().lower()
        if not _TRIPLET_RE.match(text):
            raise ValueError(f"Invalid triplet '{value}' (expected <arch>-<os>[-<variant>])")
        arch, os_name, *rest = text.split("-", 2)
        return cls(arch=arch, os=os_name, variant=rest[0] if rest else None)

    @property
    def linkage(self) -> str:
        """``static`` or ``dynamic`` library linkage implied by the triplet."""
        if self.variant and "dynamic" in self.variant:
            return "dynamic"
        if self.variant and "static" in self.variant:
            return "static"
        if self.os == "windows":
            return "dynamic"
        # Unix community triplets build static libraries by default.
        return "static"

    def __str__(self) -> str:
        parts = [self.arch, self.os]
        if self.variant:
            parts.append(self.variant)
        return "-".join(parts)


def host_triplet(system: str | None = None, machine: str | None = None) -> Triplet:
    """Derive the host triplet from OS and architecture names.

    Pure function of its inputs; the defaults come from :mod:`platform`.
    """
    system = (system if system is not None else platform.system()).lower()
    machine = (machine if machine is not None else platform.machine()).lower()
    arch = _ARCH_ALIASES.get(machine, machine or "unknown")
    os_name = _OS_ALIASES.get(system, system or "unknown")
    return Triplet(arch=arch, os=os_name)
