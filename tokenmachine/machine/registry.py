"""Reference registry: allocation of reference identities."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .core import RefInfo, RefKind, Reference
from .errors import KindViolation

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .state import TokenMachine


def create(machine: "TokenMachine", parent: Reference, kind) -> Reference:
    """Register a new reference derived from ``parent``.

    The new reference starts out ``created`` with no units; it can only ever
    receive a unit from ``parent``. A shared read-only reference may only
    derive further shared read-only references.
    """

    kind = RefKind.parse(kind)
    parent_info = machine.info(parent)

    if parent_info.kind is RefKind.SHARED_READ_ONLY and kind is not RefKind.SHARED_READ_ONLY:
        raise KindViolation(
            f"Cannot derive a {kind.value} reference from read-only reference {parent!r}",
            parent,
        )

    ref = machine._allocate()
    machine.ref_info[ref] = RefInfo(kind, parent)
    machine._record("create", ref, {"parent": parent.id, "kind": kind.value})
    return ref


__all__ = ["create"]
