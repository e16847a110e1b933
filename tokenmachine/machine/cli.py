"""Command-line driver that narrates token machine traces."""
from __future__ import annotations

import argparse
import sys

from ..constants import DEMO_TRACE, REPL_HISTORY_LIMIT
from .analysis import (
    explain_reference,
    export_graphviz,
    print_state,
    verify_invariants,
    visualize_hierarchy,
)
from .errors import AliasingViolation
from .trace import (
    TraceRun,
    diff_traces,
    export_trace,
    hash_trace,
    parse_trace,
    record_run,
    replay_trace,
    run_trace,
    show_logbook,
)

def _runtime_callable(name, fallback):
    runtime_mod = sys.modules.get('tokenmachine.machine')
    if runtime_mod and hasattr(runtime_mod, name):
        return getattr(runtime_mod, name)
    return fallback


def _print_why(run, name):
    ref = run.names.get(name)
    info = None if ref is None else _runtime_callable('explain_reference', explain_reference)(
        run.machine, ref, run.labels
    )
    if not info or not info["found"]:
        print(f"  ✗ Unknown reference '{name}'.")
        return
    for line in info["lines"]:
        print("  " + line)


def run_repl(history_limit=REPL_HISTORY_LIMIT):  # pragma: no cover
    """Interactive session against a single live machine."""

    print("Token machine REPL — enter trace commands or :help")
    run = TraceRun([])
    halted = None
    entered = []

    while True:
        try:
            line = input("tokens> ")
        except EOFError:
            print()
            break

        stripped = line.strip()
        if not stripped:
            continue

        if stripped.startswith(":"):
            parts = stripped.split()
            cmd = parts[0]

            if cmd in (":quit", ":exit"):
                break
            if cmd == ":help":
                print("Commands: :help, :quit, :dump, :why <name>, :check, :history, :reset")
                print("Trace: create <name> <parent> <kind>, lend/return/split/merge/read/write <name>, mode <name> ro|rw")
                continue
            if cmd == ":dump":
                print_state(run.machine, run.labels)
                continue
            if cmd == ":why":
                if len(parts) != 2:
                    print("Usage: :why <name>")
                    continue
                _print_why(run, parts[1])
                continue
            if cmd == ":check":
                errors = verify_invariants(run.machine)
                if errors:
                    for e in errors:
                        print(f"  ✗ {e}")
                else:
                    print("  ✓ Unit conservation and lifecycle invariants hold")
                continue
            if cmd == ":history":
                for idx, text in enumerate(entered[-history_limit:], start=1):
                    print(f"  {idx:>3}  {text}")
                continue
            if cmd == ":reset":
                run = TraceRun([])
                halted = None
                entered = []
                print("  ✓ Fresh machine")
                continue

            print(f"Unknown command: {cmd}")
            continue

        if halted is not None:
            print(f"  ✗ Trace halted by {halted.rule}; use :reset to start over")
            continue

        try:
            steps = parse_trace(stripped)
            for step in steps:
                run.apply(step)
                entered.append(step.to_text())
                if step.op == "dump":
                    print_state(run.machine, run.labels)
                else:
                    print(f"  ✓ {step}")
        except ValueError as exc:
            print(f"  ✗ {exc}")
        except AliasingViolation as exc:
            halted = exc
            print(f"  ✗ {type(exc).__name__}: {exc}")


def parse_args(args):
    argp = argparse.ArgumentParser(description="Token machine aliasing model")

    argp.add_argument("--src", help="Inline trace script", default=DEMO_TRACE)
    argp.add_argument("--file", help="Read the trace script from a file")
    argp.add_argument(
        "--quiet",
        action="store_true",
        help="Only print the final state instead of the state after every step",
    )
    argp.add_argument(
        "--export",
        metavar="OUTPUT",
        help="Write the finished trace to a JSON document and record it in the logbook",
    )
    argp.add_argument("--load", help="Replay a trace document")
    argp.add_argument("--hash", help="Compute the hash of a trace document")
    argp.add_argument(
        "--diff",
        nargs=2,
        metavar=("A", "B"),
        help="Compare two trace documents",
    )
    argp.add_argument(
        "--logbook", action="store_true", help="Show the trace logbook"
    )
    argp.add_argument("--repl", action="store_true", help="Start an interactive REPL")
    argp.add_argument(
        "--why",
        metavar="NAME",
        action="append",
        help="Explain the derivation chain and current rights of a reference",
    )
    argp.add_argument(
        "--viz",
        metavar="OUTPUT",
        help="Export a Graphviz hierarchy visualization to an SVG file",
    )
    argp.add_argument(
        "--visualize",
        nargs="?",
        const="kind",
        choices=["kind", "state"],
        help="Render the hierarchy with matplotlib, colored by kind or state",
    )

    return argp.parse_args(args)


def _step_printer(quiet):
    def on_step(run, step):
        if quiet and step.op != "dump":
            return
        print(f"\n» {step}")
        print_state(run.machine, run.labels, indent=1)

    return on_step


def main(args):
    params = parse_args(args)

    if params.diff:
        _runtime_callable('diff_traces', diff_traces)(params.diff[0], params.diff[1])
        return
    if params.hash:
        _runtime_callable('hash_trace', hash_trace)(params.hash)
        return
    if params.load:
        _runtime_callable('replay_trace', replay_trace)(params.load)
        return
    if params.logbook:
        _runtime_callable('show_logbook', show_logbook)()
        return
    if params.repl:
        _runtime_callable('run_repl', run_repl)()
        return

    src = params.src
    if params.file:
        with open(params.file, "r", encoding="utf-8") as f:
            src = f.read()

    try:
        plan = parse_trace(src)
    except ValueError as exc:
        print(f"✗ {exc}")
        return 2

    print(f"Trace: {len(plan)} step(s)")
    try:
        run = _runtime_callable('run_trace', run_trace)(plan, on_step=_step_printer(params.quiet))
    except ValueError as exc:
        print(f"✗ {exc}")
        return 2

    print("\nFinal state:")
    print_state(run.machine, run.labels)

    print("\nAliasing discipline:")
    if run.violation is None:
        print(f"  ✓ All {len(run.steps)} step(s) respected the aliasing discipline")
    else:
        print(f"  ✗ line {run.failed_step.line} '{run.failed_step}': {type(run.violation).__name__}")
        print(f"    {run.violation}")
        skipped = len(run.plan) - len(run.steps) - 1
        if skipped:
            print(f"    ({skipped} later step(s) not executed)")

    errors = verify_invariants(run.machine)
    print("\nMachine invariants:")
    if not errors:
        print("  ✓ Unit conservation and lifecycle invariants hold")
    else:
        for e in errors:
            print("  ✗", e)

    for name in params.why or []:
        print(f"\nWhy '{name}':")
        _print_why(run, name)

    if params.export:
        _runtime_callable('export_trace', export_trace)(run, params.export)
        _runtime_callable('record_run', record_run)(params.export, run)
    if params.viz:
        _runtime_callable('export_graphviz', export_graphviz)(run.machine, params.viz, run.labels)
    if params.visualize:
        _runtime_callable('visualize_hierarchy', visualize_hierarchy)(
            run.machine, run.labels, params.visualize
        )

    return 0 if run.violation is None and not errors else 1


__all__ = [
    "main",
    "parse_args",
    "run_repl",
]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main(sys.argv[1:]))
