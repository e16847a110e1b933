"""Core data structures for the token machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class _ParsableEnum(str, Enum):
    """String-valued enum that also accepts a handful of spellings."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise TypeError(f"{cls.__name__} must be given as a string, got {value!r}")
        key = value.strip().lower().replace("-", "_")
        key = cls._aliases().get(key, key)
        for member in cls:
            if member.value == key:
                return member
        choices = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown {cls.__name__} '{value}'. Choose from {choices}.")

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {}

    def __str__(self) -> str:
        return self.value


class RefKind(_ParsableEnum):
    UNIQUE = "unique"
    SHARED_READ_WRITE = "shared_rw"
    SHARED_READ_ONLY = "shared_ro"

    @classmethod
    def _aliases(cls):
        return {
            "uniq": "unique",
            "mut": "unique",
            "exclusive": "unique",
            "exclusive_read_write": "unique",
            "shared_read_write": "shared_rw",
            "srw": "shared_rw",
            "cell": "shared_rw",
            "shared_read_only": "shared_ro",
            "sro": "shared_ro",
            "shared": "shared_ro",
        }


class RefState(_ParsableEnum):
    CREATED = "created"
    BORROWING = "borrowing"
    DEAD = "dead"

    @property
    def rank(self) -> int:
        return _STATE_ORDER.index(self)


_STATE_ORDER = [RefState.CREATED, RefState.BORROWING, RefState.DEAD]


class AccessMode(_ParsableEnum):
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"

    @classmethod
    def _aliases(cls):
        return {"ro": "read_only", "readonly": "read_only", "rw": "read_write", "readwrite": "read_write"}


class AccessKind(_ParsableEnum):
    READ = "read"
    WRITE = "write"

    @classmethod
    def _aliases(cls):
        return {"r": "read", "w": "write"}


class Exclusivity(_ParsableEnum):
    EXCLUSIVE = "exclusive"
    SHARED = "shared"


@dataclass(frozen=True, order=True)
class Reference:
    """Opaque identity of a token-holder slot in the hierarchy."""

    id: int

    def __repr__(self) -> str:
        return f"&{self.id}"


class RefInfo:
    """Bookkeeping record kept by the machine for one reference."""

    def __init__(self, kind: RefKind, parent: Reference, state: RefState = RefState.CREATED):
        self.kind = kind
        self.parent = parent
        self.state = state
        self.held = 0
        self.split_count = 0

    @property
    def is_dead(self) -> bool:
        return self.state is RefState.DEAD

    def to_dict(self) -> dict:
        return {
            "parent": self.parent.id,
            "kind": self.kind.value,
            "state": self.state.value,
            "held": self.held,
            "split_count": self.split_count,
        }

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        return (
            f"RefInfo({self.kind.value} <- {self.parent!r} [{self.state.value}] "
            f"held={self.held} split={self.split_count})"
        )


__all__ = [
    "AccessKind",
    "AccessMode",
    "Exclusivity",
    "RefInfo",
    "RefKind",
    "RefState",
    "Reference",
]
