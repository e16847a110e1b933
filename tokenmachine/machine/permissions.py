"""Permission register: global sharing and access mode of the token."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .core import AccessKind, AccessMode, Exclusivity, RefKind, Reference
from .errors import DeadReference, NoToken, NotExclusive, ReadOnlyViolation

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .state import TokenMachine


def exclusivity(machine: "TokenMachine") -> Exclusivity:
    """Recompute exclusivity from the live unit count."""

    if machine.unit_count == 1:
        return Exclusivity.EXCLUSIVE
    return Exclusivity.SHARED


def permission_register(machine: "TokenMachine") -> tuple[Exclusivity, AccessMode]:
    return exclusivity(machine), machine.access_mode


def set_access_mode(machine: "TokenMachine", source: Reference, mode) -> None:
    """Change the global access mode.

    Only the sole holder of the only outstanding unit may do this, and the
    change is audited as a write by ``source``.
    """

    mode = AccessMode.parse(mode)
    info = machine.info(source)

    if info.held == 0:
        raise NoToken(
            f"{source!r} needs a token to change the access mode", source, AccessKind.WRITE
        )
    if info.is_dead:
        raise DeadReference(
            f"Dead reference {source!r} cannot change the access mode", source, AccessKind.WRITE
        )
    if info.kind is RefKind.SHARED_READ_ONLY:
        raise ReadOnlyViolation(
            f"Read-only reference {source!r} cannot change the access mode",
            source,
            AccessKind.WRITE,
        )
    if exclusivity(machine) is not Exclusivity.EXCLUSIVE:
        raise NotExclusive(
            f"Access mode can only change while one unit exists ({machine.unit_count} outstanding)",
            source,
        )

    previous = machine.access_mode
    machine.access_mode = mode
    machine._record(
        "set_access_mode",
        source,
        {"access": AccessKind.WRITE.value, "from": previous.value, "to": mode.value},
    )


__all__ = [
    "exclusivity",
    "permission_register",
    "set_access_mode",
]
