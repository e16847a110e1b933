import pytest

from tokenmachine.machine import (
    AccessKind,
    AccessMode,
    NoToken,
    RefInfo,
    RefKind,
    RefState,
    Reference,
    VIOLATION_TYPES,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("unique", RefKind.UNIQUE),
        ("Mut", RefKind.UNIQUE),
        ("shared-rw", RefKind.SHARED_READ_WRITE),
        ("shared_read_write", RefKind.SHARED_READ_WRITE),
        ("SRO", RefKind.SHARED_READ_ONLY),
        ("shared", RefKind.SHARED_READ_ONLY),
    ],
)
def test_ref_kind_parse_aliases(text, expected):
    assert RefKind.parse(text) is expected


def test_parse_passes_members_through_and_rejects_non_strings():
    assert AccessMode.parse(AccessMode.READ_ONLY) is AccessMode.READ_ONLY
    assert AccessMode.parse("rw") is AccessMode.READ_WRITE
    assert AccessKind.parse("r") is AccessKind.READ

    with pytest.raises(TypeError):
        AccessKind.parse(1)


def test_state_ranks_are_ordered():
    assert RefState.CREATED.rank < RefState.BORROWING.rank < RefState.DEAD.rank


def test_references_are_hashable_values():
    assert Reference(3) == Reference(3)
    assert len({Reference(1), Reference(1), Reference(2)}) == 2
    assert repr(Reference(5)) == "&5"
    assert sorted([Reference(2), Reference(0)]) == [Reference(0), Reference(2)]


def test_ref_info_to_dict():
    info = RefInfo(RefKind.SHARED_READ_WRITE, Reference(0))
    info.held = 2

    assert info.to_dict() == {
        "parent": 0,
        "kind": "shared_rw",
        "state": "created",
        "held": 2,
        "split_count": 0,
    }
    assert not info.is_dead


def test_violation_to_dict_and_registry():
    err = NoToken("no token", Reference(4), AccessKind.WRITE)

    assert err.to_dict() == {
        "rule": "no-token",
        "error": "NoToken",
        "reference": 4,
        "message": "no token",
        "access": "write",
    }
    assert VIOLATION_TYPES["NoToken"] is NoToken
    assert all(issubclass(cls, RuntimeError) for cls in VIOLATION_TYPES.values())
