"""Token ledger: moving and fragmenting token units along hierarchy edges.

Each function checks every precondition before touching the arena, so a
rejected call leaves the machine exactly as it was.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .core import RefState, Reference
from .errors import (
    DeadReference,
    DeadTarget,
    InsufficientTokens,
    NoTokenToReturn,
    NothingToMerge,
    PartialReturnForbidden,
)

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .state import TokenMachine


def lend(machine: "TokenMachine", target: Reference) -> None:
    """Move one unit from ``target``'s parent to ``target``."""

    target_info = machine.info(target)
    source = target_info.parent
    source_info = machine.info(source)

    if source_info.held == 0:
        raise InsufficientTokens(
            f"Parent {source!r} needs a token to lend one to {target!r}", source
        )
    if target_info.is_dead:
        raise DeadTarget(f"Cannot lend to dead reference {target!r}", target)

    source_info.held -= 1
    target_info.held += 1
    machine._advance_state(target, RefState.BORROWING)
    machine._record("lend", target, {"from": source.id})


def return_unit(machine: "TokenMachine", source: Reference) -> None:
    """Give one whole unit back to ``source``'s parent.

    A reference that is left without units dies. Dead references still relay
    units handed up by their own children.
    """

    source_info = machine.info(source)

    if source_info.held == 0:
        raise NoTokenToReturn(f"{source!r} holds no token to return", source)
    if source_info.split_count != 0:
        raise PartialReturnForbidden(
            f"{source!r} must merge {source_info.split_count} fragment(s) before returning",
            source,
        )

    target = source_info.parent
    source_info.held -= 1
    machine.info(target).held += 1
    if source_info.held == 0:
        machine._advance_state(source, RefState.DEAD)
    machine._record("return", source, {"to": target.id})


def split(machine: "TokenMachine", source: Reference) -> None:
    source_info = machine.info(source)

    if source_info.held == 0:
        raise InsufficientTokens(f"{source!r} needs a token to split", source)
    if source_info.is_dead:
        raise DeadReference(f"Dead reference {source!r} cannot split a relayed unit", source)

    source_info.held += 1
    source_info.split_count += 1
    machine.unit_count += 1
    machine._record("split", source, {"units": machine.unit_count})


def merge(machine: "TokenMachine", source: Reference) -> None:
    source_info = machine.info(source)

    if source_info.held < 2:
        raise NothingToMerge(
            f"{source!r} holds {source_info.held} unit(s); merging needs at least two",
            source,
        )
    if source_info.split_count == 0:
        raise NothingToMerge(f"{source!r} has no fragments of its own to merge", source)

    source_info.held -= 1
    source_info.split_count -= 1
    machine.unit_count -= 1
    machine._record("merge", source, {"units": machine.unit_count})


__all__ = [
    "lend",
    "merge",
    "return_unit",
    "split",
]
