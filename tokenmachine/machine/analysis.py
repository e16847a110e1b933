"""Inspection, audit and visualization utilities for the token machine."""
from __future__ import annotations

from pathlib import Path

try:
    import networkx as nx
except ModuleNotFoundError:  # pragma: no cover
    nx = None

try:
    import matplotlib.pyplot as plt
except ModuleNotFoundError:  # pragma: no cover
    plt = None

try:
    import pydot
except ModuleNotFoundError:  # pragma: no cover
    pydot = None

from ..constants import KIND_COLORS, STATE_COLORS
from .core import AccessKind, RefState
from .errors import InvariantViolation
from .validator import check_access


def children_of(machine, ref):
    """Return the references derived directly from ``ref`` (root excluded)."""
    return [
        child
        for child in machine.references()
        if child != ref and machine.info(child).parent == ref
    ]


def iter_references(machine, ref=None):
    """Yield references depth-first starting at ``ref`` (the root by default)."""
    if ref is None:
        ref = machine.root
    yield ref
    for child in children_of(machine, ref):
        yield from iter_references(machine, child)


def ancestors(machine, ref):
    """Return the derivation path from ``ref`` up to and including the root."""
    path = [ref]
    while True:
        parent = machine.info(path[-1]).parent
        if parent == path[-1]:
            return path
        path.append(parent)


def dump_state(machine):
    """Return a JSON-safe snapshot of every reference and the register."""

    exclusivity, mode = machine.register
    return {
        "references": {
            str(ref.id): machine.info(ref).to_dict() for ref in machine.references()
        },
        "unit_count": machine.unit_count,
        "exclusivity": exclusivity.value,
        "access_mode": mode.value,
    }


def _describe(machine, ref, names=None):
    info = machine.info(ref)
    label = f"{ref!r}"
    if names and ref in names:
        label = f"{names[ref]} {label}"
    extra = f" split={info.split_count}" if info.split_count else ""
    return f"{label} {info.kind.value} [{info.state.value}] units={info.held}{extra}"


def print_state(machine, names=None, indent=0):
    """Print the hierarchy with kinds, lifecycle states and held units."""

    exclusivity, mode = machine.register
    pad = "  " * indent
    print(f"{pad}register: {exclusivity.value}/{mode.value}  units={machine.unit_count}")

    def walk(ref, depth):
        print(f"{pad}{'  ' * depth}{_describe(machine, ref, names)}")
        for child in children_of(machine, ref):
            walk(child, depth + 1)

    walk(machine.root, 1)


def check_conservation(machine, errors):
    total = sum(machine.info(ref).held for ref in machine.references())
    if total != machine.unit_count:
        errors.append(f"Held units sum to {total} but {machine.unit_count} unit(s) exist")
    if machine.unit_count < 1:
        errors.append(f"Unit count dropped to {machine.unit_count}")

    fragments = 0
    for ref in machine.references():
        info = machine.info(ref)
        if info.held < 0:
            errors.append(f"{ref!r} holds a negative unit count ({info.held})")
        if info.split_count < 0:
            errors.append(f"{ref!r} has a negative split count ({info.split_count})")
        fragments += info.split_count
    if fragments != machine.unit_count - 1:
        errors.append(
            f"{fragments} outstanding fragment(s) do not account for {machine.unit_count} unit(s)"
        )


def check_lifecycle(machine, errors):
    received = {
        entry["reference"] for entry in machine.history if entry["action"] == "lend"
    }
    for ref in machine.references():
        info = machine.info(ref)
        if info.state is RefState.CREATED:
            if info.held or info.split_count:
                errors.append(f"{ref!r} is created but holds {info.held} unit(s)")
            if ref.id in received:
                errors.append(f"{ref!r} received a unit but is still marked created")
        if info.state is RefState.DEAD and info.split_count:
            errors.append(f"Dead reference {ref!r} still owns {info.split_count} fragment(s)")


def verify_invariants(machine):
    """Return a list of broken machine invariants (empty when sound)."""

    errors = []
    check_conservation(machine, errors)
    check_lifecycle(machine, errors)
    return errors


def assert_invariants(machine):
    errors = verify_invariants(machine)
    if errors:
        raise InvariantViolation("; ".join(errors))
    return True


def explain_reference(machine, ref, names=None):
    """Return lines describing ``ref``'s derivation chain and current rights."""

    if ref not in machine:
        return {"found": False, "reference": ref, "lines": []}

    lines = []
    chain = ancestors(machine, ref)
    for depth, link in enumerate(chain):
        prefix = "  " * depth
        relation = "derived from" if depth else "reference"
        lines.append(f"{prefix}{relation} {_describe(machine, link, names)}")

    info = machine.info(ref)
    if info.is_dead:
        lines.append("  ✗ returned its last unit; it can never be lent to again")
    elif info.state is RefState.CREATED:
        lines.append(f"  · waiting for a unit from {info.parent!r}")

    for access in AccessKind:
        decision = check_access(machine, ref, access)
        if decision.allowed:
            lines.append(f"  ✓ {access.value} allowed")
        else:
            lines.append(f"  ✗ {access.value}: {decision.violation.rule} ({decision.violation})")

    return {"found": True, "reference": ref, "lines": lines}


def _node_label(machine, ref, names):
    info = machine.info(ref)
    name = names.get(ref, repr(ref)) if names else repr(ref)
    return f"{name}\n{info.kind.value}\n[{info.state.value}] x{info.held}"


def build_hierarchy_graph(machine, names=None):
    """Return a networkx DiGraph of parent → child derivation edges."""

    if nx is None:
        raise RuntimeError("Hierarchy graphs require networkx to be installed")

    graph = nx.DiGraph()
    for ref in machine.references():
        info = machine.info(ref)
        graph.add_node(
            ref.id,
            label=_node_label(machine, ref, names),
            kind=info.kind.value,
            state=info.state.value,
            held=info.held,
        )
    for ref in machine.references():
        parent = machine.info(ref).parent
        if parent != ref:
            graph.add_edge(parent.id, ref.id)
    return graph


def visualize_hierarchy(machine, names=None, color_by="kind"):  # pragma: no cover
    """Render the reference hierarchy with matplotlib."""

    if nx is None or plt is None:
        raise RuntimeError("Visualization requires networkx and matplotlib to be installed")
    if color_by not in {"kind", "state"}:
        raise ValueError(f"Unknown color scheme '{color_by}'")

    graph = build_hierarchy_graph(machine, names)
    palette = KIND_COLORS if color_by == "kind" else STATE_COLORS
    labels = {n: graph.nodes[n]["label"] for n in graph.nodes}
    colors = [palette.get(graph.nodes[n][color_by], "#B0BEC5") for n in graph.nodes]
    positions = nx.spring_layout(graph, seed=42)

    exclusivity, mode = machine.register
    plt.figure()
    nx.draw(
        graph,
        positions,
        with_labels=True,
        labels=labels,
        node_color=colors,
        edgecolors="black",
        font_size=8,
    )
    plt.title(f"Token hierarchy — {exclusivity.value}/{mode.value}, {machine.unit_count} unit(s)")
    plt.tight_layout()
    plt.show()


def export_graphviz(machine, output_path, names=None):
    """Export the reference hierarchy as a Graphviz SVG."""

    if pydot is None:
        raise RuntimeError("Graphviz export requires pydot to be installed")

    exclusivity, mode = machine.register
    graph = pydot.Dot(
        "token_hierarchy",
        graph_type="digraph",
        rankdir="TB",
        fontname="Helvetica",
        label=f"{exclusivity.value}/{mode.value} units={machine.unit_count}",
    )

    for ref in machine.references():
        info = machine.info(ref)
        graph.add_node(
            pydot.Node(
                f"ref_{ref.id}",
                label=_node_label(machine, ref, names).replace("\n", "\\n"),
                shape="box",
                style="filled,dashed" if info.is_dead else "filled",
                fillcolor=KIND_COLORS.get(info.kind.value, "#B0BEC5"),
                color=STATE_COLORS.get(info.state.value, "#34495e"),
                fontname="Helvetica",
            )
        )
    for ref in machine.references():
        parent = machine.info(ref).parent
        if parent != ref:
            graph.add_edge(pydot.Edge(f"ref_{parent.id}", f"ref_{ref.id}", color="#7f8c8d"))

    output_path = Path(output_path)
    if output_path.parent and not output_path.parent.exists():
        output_path.parent.mkdir(parents=True, exist_ok=True)

    graph.write_svg(str(output_path))
    print(f"  ✓ Graphviz hierarchy exported → {output_path}")
    return graph


__all__ = [
    "ancestors",
    "assert_invariants",
    "build_hierarchy_graph",
    "check_conservation",
    "check_lifecycle",
    "children_of",
    "dump_state",
    "explain_reference",
    "export_graphviz",
    "iter_references",
    "print_state",
    "verify_invariants",
    "visualize_hierarchy",
]
