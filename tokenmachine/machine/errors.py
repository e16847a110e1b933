"""Named faults raised by the token machine.

Every fault means the traced program broke the aliasing discipline (or the
model itself reached an impossible state). None of them are meant to be
caught and retried inside the model; the driver reports the first one and
stops the trace.
"""

from __future__ import annotations


class AliasingViolation(RuntimeError):
    """Base class for every fault the machine can raise."""

    rule = "aliasing-violation"

    def __init__(self, message: str, reference=None):
        super().__init__(message)
        self.reference = reference

    def to_dict(self) -> dict:
        return {
            "rule": self.rule,
            "error": type(self).__name__,
            "reference": None if self.reference is None else self.reference.id,
            "message": str(self),
        }


class UnknownReference(AliasingViolation):
    rule = "unknown-reference"


class InvariantViolation(AliasingViolation):
    rule = "invariant"


class KindViolation(AliasingViolation):
    rule = "kind-violation"


class InsufficientTokens(AliasingViolation):
    rule = "insufficient-tokens"


class DeadTarget(AliasingViolation):
    rule = "dead-target"


class NoTokenToReturn(AliasingViolation):
    rule = "no-token-to-return"


class PartialReturnForbidden(AliasingViolation):
    rule = "partial-return-forbidden"


class NothingToMerge(AliasingViolation):
    rule = "nothing-to-merge"


class NotExclusive(AliasingViolation):
    rule = "not-exclusive"


class AccessViolation(AliasingViolation):
    """Raised when a read or write is not admissible under the current regime."""

    rule = "access-violation"

    def __init__(self, message: str, reference=None, access=None):
        super().__init__(message, reference)
        self.access = access

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["access"] = None if self.access is None else self.access.value
        return data


class NoToken(AccessViolation):
    rule = "no-token"


class DeadReference(AccessViolation):
    rule = "dead-reference"


class ReadOnlyViolation(AccessViolation):
    """Write attempted through a shared read-only reference."""

    rule = "read-only-reference"


class SharedReadViolation(AccessViolation):
    """Read through a non-writing reference while shared writers may be live."""

    rule = "shared-read"


class ReadOnlyTokenViolation(AccessViolation):
    """Write attempted while the register is in read-only mode."""

    rule = "read-only-token"


class UniqueWriteViolation(AccessViolation):
    """Write through a unique reference while the token is shared."""

    rule = "unique-write-shared"


VIOLATION_TYPES = {
    cls.__name__: cls
    for cls in (
        UnknownReference,
        InvariantViolation,
        KindViolation,
        InsufficientTokens,
        DeadTarget,
        NoTokenToReturn,
        PartialReturnForbidden,
        NothingToMerge,
        NotExclusive,
        NoToken,
        DeadReference,
        ReadOnlyViolation,
        SharedReadViolation,
        ReadOnlyTokenViolation,
        UniqueWriteViolation,
    )
}


__all__ = [
    "AccessViolation",
    "AliasingViolation",
    "DeadReference",
    "DeadTarget",
    "InsufficientTokens",
    "InvariantViolation",
    "KindViolation",
    "NoToken",
    "NoTokenToReturn",
    "NotExclusive",
    "NothingToMerge",
    "PartialReturnForbidden",
    "ReadOnlyTokenViolation",
    "ReadOnlyViolation",
    "SharedReadViolation",
    "UniqueWriteViolation",
    "UnknownReference",
    "VIOLATION_TYPES",
]
