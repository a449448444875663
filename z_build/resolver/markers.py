"""Install markers and per-package install locks.

Layout under a triplet-scoped install root::

    <root>/<triplet>/.markers/<name>.json       # written last, after a complete install
    <root>/<triplet>/.locks/<name>-<version>.lock

A marker is the only proof of a finished install: a package directory without
a matching marker is treated as garbage and reinstalled.
"""

from __future__ import annotations

import json
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import structlog

log = structlog.get_logger("z_build.resolver")

# Defaults
LOCK_POLL_INTERVAL = 0.1  # seconds
LOCK_WAIT_TIMEOUT = 1800  # 30 minutes
STALE_LOCK_SECONDS = 1800  # a lock older than this belongs to a dead process


class LockTimeout(TimeoutError):
    """Raised when another process holds an install lock for too long."""


class InstallMarkerStore:
    """Read/write install markers for one triplet root."""

    def __init__(self, triplet_root: Path) -> None:
        self.root = triplet_root
        self.markers_dir = triplet_root / ".markers"
        self.locks_dir = triplet_root / ".locks"

    def marker_path(self, name: str) -> Path:
        return self.markers_dir / f"{name}.json"

    def read(self, name: str) -> dict[str, Any] | None:
        path = self.marker_path(name)
        if not path.is_file():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            log.warning("resolver.marker_unreadable", path=str(path))
            return None

    def is_current(self, name: str, version: str, abi_hash: str, install_path: Path) -> bool:
        """True if *name* is installed at *version* with the same ABI hash. Never writes."""
        marker = self.read(name)
        if marker is None:
            return False
        return (
            marker.get("version") == version
            and marker.get("abi") == abi_hash
            and install_path.is_dir()
        )

    def write(self, name: str, payload: dict[str, Any]) -> None:
        """Atomically write a marker (tmp file + rename)."""
        self.markers_dir.mkdir(parents=True, exist_ok=True)
        path = self.marker_path(name)
        tmp = path.with_suffix(f".json.tmp-{os.getpid()}")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        os.replace(tmp, path)

    def remove(self, name: str) -> None:
        self.marker_path(name).unlink(missing_ok=True)

    @contextmanager
    def lock(
        self,
        name: str,
        version: str,
        timeout: float = LOCK_WAIT_TIMEOUT,
        stale_after: float = STALE_LOCK_SECONDS,
    ) -> Iterator[None]:
        """Hold an exclusive per-(name, version) lock for the duration of the block."""
        self.locks_dir.mkdir(parents=True, exist_ok=True)
        path = self.locks_dir / f"{name}-{version}.lock"
        deadline = time.monotonic() + timeout
        while True:
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if _is_stale(path, stale_after):
                    log.warning("resolver.stale_lock_broken", lock=str(path))
                    path.unlink(missing_ok=True)
                    continue
                if time.monotonic() > deadline:
                    raise LockTimeout(f"Timed out waiting for install lock {path}")
                time.sleep(LOCK_POLL_INTERVAL)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            break
        try:
            yield
        finally:
            path.unlink(missing_ok=True)


def _is_stale(path: Path, stale_after: float) -> bool:
    try:
        age = time.time() - path.stat().st_mtime
    except FileNotFoundError:
        return False
    return age > stale_after
