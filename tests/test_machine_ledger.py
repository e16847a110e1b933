"""Tests for the reference registry and the token ledger."""

import pytest

from tokenmachine.machine import (
    DeadReference,
    DeadTarget,
    InsufficientTokens,
    KindViolation,
    NoTokenToReturn,
    NothingToMerge,
    PartialReturnForbidden,
    Reference,
    RefKind,
    RefState,
    UnknownReference,
    dump_state,
    init,
)


def test_init_gives_root_the_whole_token():
    root, machine = init()
    info = machine.info(root)

    assert root == Reference(0)
    assert info.parent == root
    assert info.kind is RefKind.UNIQUE
    assert info.state is RefState.BORROWING
    assert info.held == 1
    assert machine.unit_count == 1


def test_create_registers_fresh_reference():
    root, machine = init()
    child = machine.create(root, "shared-rw")
    info = machine.info(child)

    assert child == Reference(1)
    assert info.parent == root
    assert info.kind is RefKind.SHARED_READ_WRITE
    assert info.state is RefState.CREATED
    assert info.held == 0
    assert info.split_count == 0
    assert machine.history[-1] == {
        "action": "create",
        "reference": 1,
        "detail": {"parent": 0, "kind": "shared_rw"},
    }


def test_read_only_parent_only_spawns_read_only_children():
    root, machine = init()
    reader = machine.create(root, RefKind.SHARED_READ_ONLY)

    with pytest.raises(KindViolation, match="read-only reference"):
        machine.create(reader, RefKind.UNIQUE)
    with pytest.raises(KindViolation):
        machine.create(reader, "shared_rw")

    grandchild = machine.create(reader, RefKind.SHARED_READ_ONLY)
    assert machine.info(grandchild).parent == reader
    assert len(machine) == 3


def test_create_rejects_unknown_parent_and_kind():
    _, machine = init()

    with pytest.raises(UnknownReference):
        machine.create(Reference(42), RefKind.UNIQUE)
    with pytest.raises(ValueError, match="Unknown RefKind"):
        machine.create(machine.root, "borrowed")


def test_lend_moves_one_unit_from_parent():
    root, machine = init()
    child = machine.create(root, RefKind.UNIQUE)

    machine.lend(child)

    assert machine.info(root).held == 0
    assert machine.info(child).held == 1
    assert machine.info(child).state is RefState.BORROWING
    assert machine.unit_count == 1


def test_lend_requires_parent_to_hold_a_unit():
    root, machine = init()
    child = machine.create(root, RefKind.UNIQUE)
    grandchild = machine.create(child, RefKind.UNIQUE)

    with pytest.raises(InsufficientTokens) as excinfo:
        machine.lend(grandchild)
    assert excinfo.value.reference == child


def test_lend_follows_the_recorded_edge_only():
    root, machine = init()
    a = machine.create(root, RefKind.UNIQUE)
    b = machine.create(a, RefKind.UNIQUE)
    machine.lend(a)
    machine.lend(b)

    # a handed its unit to b; a second child of root cannot borrow from a
    sibling = machine.create(root, RefKind.UNIQUE)
    with pytest.raises(InsufficientTokens):
        machine.lend(sibling)


def test_relend_to_live_borrower_is_allowed():
    root, machine = init()
    child = machine.create(root, RefKind.SHARED_READ_ONLY)
    machine.split(root)

    machine.lend(child)
    machine.lend(child)

    assert machine.info(child).held == 2
    assert machine.info(child).state is RefState.BORROWING


def test_return_unit_kills_reference_when_empty():
    root, machine = init()
    child = machine.create(root, RefKind.UNIQUE)
    machine.lend(child)

    machine.return_unit(child)

    assert machine.info(child).state is RefState.DEAD
    assert machine.info(child).held == 0
    assert machine.info(root).held == 1


def test_dead_reference_cannot_receive_again():
    root, machine = init()
    child = machine.create(root, RefKind.UNIQUE)
    machine.lend(child)
    machine.return_unit(child)

    with pytest.raises(DeadTarget):
        machine.lend(child)
    assert machine.info(root).held == 1


def test_return_without_token_fails():
    root, machine = init()
    child = machine.create(root, RefKind.UNIQUE)

    with pytest.raises(NoTokenToReturn):
        machine.return_unit(child)
    assert machine.info(child).state is RefState.CREATED


def test_return_keeps_reference_alive_while_units_remain():
    root, machine = init()
    child = machine.create(root, RefKind.SHARED_READ_WRITE)
    machine.split(root)
    machine.lend(child)
    machine.lend(child)

    machine.return_unit(child)
    assert machine.info(child).state is RefState.BORROWING
    machine.return_unit(child)
    assert machine.info(child).state is RefState.DEAD

    machine.merge(root)
    assert machine.unit_count == 1


def test_dead_reference_relays_returns_from_children():
    root, machine = init()
    middle = machine.create(root, RefKind.UNIQUE)
    leaf = machine.create(middle, RefKind.UNIQUE)
    machine.split(root)
    machine.lend(middle)
    machine.lend(middle)
    machine.lend(leaf)
    machine.return_unit(middle)

    assert machine.info(middle).state is RefState.DEAD
    assert machine.info(middle).held == 0

    machine.return_unit(leaf)
    assert machine.info(middle).held == 1
    assert machine.info(middle).state is RefState.DEAD

    machine.return_unit(middle)
    assert machine.info(root).held == 2
    machine.merge(root)
    assert machine.unit_count == 1


def test_split_and_merge_adjust_global_count():
    root, machine = init()

    machine.split(root)
    machine.split(root)
    assert machine.unit_count == 3
    assert machine.info(root).held == 3
    assert machine.info(root).split_count == 2

    machine.merge(root)
    assert machine.unit_count == 2
    assert machine.info(root).split_count == 1


def test_split_requires_a_live_holder():
    root, machine = init()
    child = machine.create(root, RefKind.UNIQUE)

    with pytest.raises(InsufficientTokens):
        machine.split(child)

    machine.lend(child)
    machine.return_unit(child)
    with pytest.raises(InsufficientTokens):
        machine.split(child)


def test_dead_relay_cannot_split():
    root, machine = init()
    middle = machine.create(root, RefKind.UNIQUE)
    leaf = machine.create(middle, RefKind.UNIQUE)
    machine.split(root)
    machine.lend(middle)
    machine.lend(middle)
    machine.lend(leaf)
    machine.return_unit(middle)
    machine.return_unit(leaf)

    with pytest.raises(DeadReference):
        machine.split(middle)


def test_merge_needs_two_units_and_own_fragments():
    root, machine = init()

    with pytest.raises(NothingToMerge, match="at least two"):
        machine.merge(root)

    child = machine.create(root, RefKind.SHARED_READ_ONLY)
    machine.split(root)
    machine.lend(child)
    machine.split(root)
    machine.lend(child)

    # child holds two units but split neither of them
    with pytest.raises(NothingToMerge, match="no fragments"):
        machine.merge(child)


def test_partial_return_is_forbidden_until_merged():
    root, machine = init()
    child = machine.create(root, RefKind.SHARED_READ_WRITE)
    machine.lend(child)
    machine.split(child)

    with pytest.raises(PartialReturnForbidden):
        machine.return_unit(child)

    machine.merge(child)
    machine.return_unit(child)
    assert machine.info(child).state is RefState.DEAD


def test_rejected_operations_leave_no_trace():
    root, machine = init()
    child = machine.create(root, RefKind.UNIQUE)
    machine.lend(child)
    machine.split(child)
    before = dump_state(machine)
    history_length = len(machine.history)

    for call in (
        lambda: machine.return_unit(child),
        lambda: machine.lend(child),
        lambda: machine.merge(root),
        lambda: machine.split(root),
    ):
        with pytest.raises(RuntimeError):
            call()
        assert dump_state(machine) == before
        assert len(machine.history) == history_length


def test_unknown_reference_is_reported():
    _, machine = init()

    with pytest.raises(UnknownReference, match="never created"):
        machine.lend(Reference(7))
