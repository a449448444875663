"""Package installers: the opaque fetch/build step behind the resolver.

The resolver only relies on the :class:`PackageInstaller` contract: populate
*destination* with the package's ``include/``, ``lib/`` and ``bin/`` trees,
or raise. Staging, renaming into place and marker bookkeeping are the
resolver's job.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from z_build.models.triplet import Triplet
from z_build.resolver.registry import PortSpec

log = structlog.get_logger("z_build.resolver")

INSTALL_LAYOUT = ("include", "lib", "bin", "share")


@runtime_checkable
class PackageInstaller(Protocol):
    """Interface every installer must satisfy."""

    def install(
        self,
        port: PortSpec,
        triplet: Triplet,
        features: frozenset[str],
        destination: Path,
    ) -> None: ...


class PortOverlayInstaller:
    """Install prebuilt payloads shipped next to the port definition.

    Copies ``<ports>/<name>/<version>/`` into the destination. Ports without
    a payload get an empty standard layout (header-only or system packages).
    """

    def install(
        self,
        port: PortSpec,
        triplet: Triplet,
        features: frozenset[str],
        destination: Path,
    ) -> None:
        destination.mkdir(parents=True, exist_ok=True)
        if port.payload_dir is not None:
            # A payload may be split by triplet: <version>/<triplet>/...
            source = port.payload_dir / str(triplet)
            if not source.is_dir():
                source = port.payload_dir
            shutil.copytree(source, destination, dirs_exist_ok=True)
            log.debug(
                "installer.payload_copied",
                package=port.name,
                version=str(port.version),
                source=str(source),
            )
        for sub in INSTALL_LAYOUT:
            (destination / sub).mkdir(exist_ok=True)
