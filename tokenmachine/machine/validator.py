"""Access validator: the aliasing rules for reads and writes.

The admissible accesses depend on four things at once: the kind of the
reference, whether the token is currently held exclusively (exactly one unit
outstanding), the register's access mode, and the access requested.

=================  ==================================  ===================================
kind               read                                write
=================  ==================================  ===================================
shared read-only   exclusive, or mode is read-only     never
shared read-write  always                              mode is read-write
unique             exclusive, or mode is read-only     exclusive and mode is read-write
=================  ==================================  ===================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .core import AccessKind, AccessMode, Exclusivity, RefKind, Reference
from .errors import (
    AccessViolation,
    DeadReference,
    NoToken,
    ReadOnlyTokenViolation,
    ReadOnlyViolation,
    SharedReadViolation,
    UniqueWriteViolation,
)
from .permissions import permission_register

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .state import TokenMachine


@dataclass(frozen=True)
class AccessDecision:
    reference: Reference
    access: AccessKind
    register: tuple[Exclusivity, AccessMode]
    violation: AccessViolation | None = None

    @property
    def allowed(self) -> bool:
        return self.violation is None


def _read_without_writers(register) -> bool:
    exclusivity, mode = register
    return exclusivity is Exclusivity.EXCLUSIVE or mode is AccessMode.READ_ONLY


def _judge(kind: RefKind, access: AccessKind, register, source: Reference):
    exclusivity, mode = register

    if kind is RefKind.SHARED_READ_ONLY:
        if access is AccessKind.WRITE:
            return ReadOnlyViolation(
                f"Cannot write through read-only reference {source!r}", source, access
            )
        if not _read_without_writers(register):
            return SharedReadViolation(
                f"Cannot read through read-only reference {source!r} while the token is shared read-write",
                source,
                access,
            )
        return None

    if kind is RefKind.SHARED_READ_WRITE:
        if access is AccessKind.WRITE and mode is not AccessMode.READ_WRITE:
            return ReadOnlyTokenViolation(
                f"Cannot write through {source!r}: the token is read-only", source, access
            )
        return None

    if access is AccessKind.READ:
        if not _read_without_writers(register):
            return SharedReadViolation(
                f"Cannot read through unique reference {source!r} while the token is shared read-write",
                source,
                access,
            )
        return None
    if mode is not AccessMode.READ_WRITE:
        return ReadOnlyTokenViolation(
            f"Cannot write through {source!r}: the token is read-only", source, access
        )
    if exclusivity is not Exclusivity.EXCLUSIVE:
        return UniqueWriteViolation(
            f"Cannot write through unique reference {source!r} while the token is shared",
            source,
            access,
        )
    return None


def check_access(machine: "TokenMachine", source: Reference, access_kind) -> AccessDecision:
    """Decide whether ``source`` may perform ``access_kind`` right now."""

    access = AccessKind.parse(access_kind)
    info = machine.info(source)
    register = permission_register(machine)

    if info.held == 0:
        violation = NoToken(f"{source!r} holds no token; it cannot {access.value}", source, access)
    elif info.is_dead:
        violation = DeadReference(f"Cannot {access.value} with dead reference {source!r}", source, access)
    else:
        violation = _judge(info.kind, access, register, source)

    return AccessDecision(source, access, register, violation)


def use_token(machine: "TokenMachine", source: Reference, access_kind) -> None:
    """Perform an access, raising the matching violation if it is not admissible."""

    decision = check_access(machine, source, access_kind)
    if decision.violation is not None:
        raise decision.violation
    exclusivity, mode = decision.register
    machine._record(
        "use",
        source,
        {"access": decision.access.value, "exclusivity": exclusivity.value, "mode": mode.value},
    )


__all__ = [
    "AccessDecision",
    "check_access",
    "use_token",
]
