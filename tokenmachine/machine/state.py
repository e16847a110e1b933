"""The token machine: one shared state object for the four components."""

from __future__ import annotations

from typing import Iterator

from . import ledger as _ledger
from . import permissions as _permissions
from . import registry as _registry
from . import validator as _validator
from .core import AccessMode, RefInfo, RefKind, RefState, Reference
from .errors import InvariantViolation, UnknownReference

ROOT = Reference(0)


class TokenMachine:
    """Token/permission state for a single memory location.

    References live in an arena keyed by :class:`Reference`; the hierarchy is
    stored only as parent back-references. The root borrows from itself so
    every lookup of ``info.parent`` succeeds without a special case.
    """

    def __init__(self):
        root_info = RefInfo(RefKind.UNIQUE, ROOT, RefState.BORROWING)
        root_info.held = 1
        self.ref_info: dict[Reference, RefInfo] = {ROOT: root_info}
        self.root = ROOT
        self.unit_count = 1
        self.access_mode = AccessMode.READ_WRITE
        self.history: list[dict] = []
        self._ref_counter = 1

    # -- arena ---------------------------------------------------------

    def info(self, ref: Reference) -> RefInfo:
        try:
            return self.ref_info[ref]
        except KeyError:
            raise UnknownReference(f"Reference {ref!r} was never created", ref) from None

    def references(self) -> list[Reference]:
        return sorted(self.ref_info)

    def __iter__(self) -> Iterator[Reference]:
        return iter(self.references())

    def __len__(self) -> int:
        return len(self.ref_info)

    def __contains__(self, ref) -> bool:
        return ref in self.ref_info

    def _allocate(self) -> Reference:
        ref = Reference(self._ref_counter)
        self._ref_counter += 1
        return ref

    def _advance_state(self, ref: Reference, new_state: RefState) -> None:
        info = self.info(ref)
        if new_state.rank < info.state.rank:
            raise InvariantViolation(
                f"Reference {ref!r} cannot move from {info.state.value} back to {new_state.value}",
                ref,
            )
        info.state = new_state

    def _record(self, action: str, ref: Reference, detail=None) -> None:
        self.history.append({"action": action, "reference": ref.id, "detail": detail})

    # -- derived register ----------------------------------------------

    @property
    def exclusivity(self):
        return _permissions.exclusivity(self)

    @property
    def register(self):
        return _permissions.permission_register(self)

    # -- public operations -----------------------------------------------

    def create(self, parent: Reference, kind) -> Reference:
        return _registry.create(self, parent, kind)

    def lend(self, target: Reference) -> None:
        _ledger.lend(self, target)

    def return_unit(self, source: Reference) -> None:
        _ledger.return_unit(self, source)

    def split(self, source: Reference) -> None:
        _ledger.split(self, source)

    def merge(self, source: Reference) -> None:
        _ledger.merge(self, source)

    def set_access_mode(self, source: Reference, mode) -> None:
        _permissions.set_access_mode(self, source, mode)

    def check_access(self, source: Reference, access_kind):
        return _validator.check_access(self, source, access_kind)

    def use_token(self, source: Reference, access_kind) -> None:
        _validator.use_token(self, source, access_kind)

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        exclusivity, mode = self.register
        return (
            f"<TokenMachine refs={len(self.ref_info)} units={self.unit_count} "
            f"{exclusivity.value}/{mode.value}>"
        )


def init() -> tuple[Reference, TokenMachine]:
    """Create a machine whose root holds the whole token in exclusive read-write mode."""

    machine = TokenMachine()
    return machine.root, machine


__all__ = [
    "ROOT",
    "TokenMachine",
    "init",
]
