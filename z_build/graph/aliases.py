"""Target aliases: stable external ids (``namespace::name``) for internal components."""

from __future__ import annotations

import logging

from z_build.exceptions import AliasConflict

logger = logging.getLogger(__name__)

SEPARATOR = "::"


def split_alias(alias: str) -> tuple[str, str]:
    """``"sdb::libsdb"`` -> ``("sdb", "libsdb")``."""
    namespace, sep, name = alias.rpartition(SEPARATOR)
    if not sep or not namespace or not name:
        raise ValueError(f"Invalid alias '{alias}' (expected <namespace>::<name>)")
    return namespace, name


class AliasRegistry:
    """1:1 mapping between external ids and local component names.

    Within a namespace, an external id maps to exactly one local target and a
    local target has exactly one external id. Once frozen (after composition)
    the mapping can no longer change.
    """

    def __init__(self) -> None:
        self._by_alias: dict[str, str] = {}
        self._by_local: dict[tuple[str, str], str] = {}
        self._frozen = False

    def register_alias(
        self,
        namespace: str,
        local_name: str,
        external_name: str | None = None,
    ) -> str:
        """Register ``namespace::external_name`` for *local_name* and return it.

        Re-registering the same pair is a no-op.
        """
        if self._frozen:
            raise RuntimeError("Alias registry is frozen; aliases are fixed once composed")
        alias = f"{namespace}{SEPARATOR}{external_name or local_name}"

        existing = self._by_alias.get(alias)
        if existing is not None and existing != local_name:
            raise AliasConflict(alias, existing, local_name)
        previous = self._by_local.get((namespace, local_name))
        if previous is not None and previous != alias:
            raise AliasConflict(previous, local_name, alias)

        self._by_alias[alias] = local_name
        self._by_local[(namespace, local_name)] = alias
        logger.debug("Registered alias %s -> %s", alias, local_name)
        return alias

    def resolve(self, alias: str) -> str | None:
        return self._by_alias.get(alias)

    def alias_of(self, local_name: str, namespace: str | None = None) -> str | None:
        if namespace is not None:
            return self._by_local.get((namespace, local_name))
        for (_, name), alias in sorted(self._by_local.items()):
            if name == local_name:
                return alias
        return None

    def freeze(self) -> None:
        self._frozen = True

    def __contains__(self, alias: str) -> bool:
        return alias in self._by_alias

    def __len__(self) -> int:
        return len(self._by_alias)
