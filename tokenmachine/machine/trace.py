"""Trace scripts, trace documents and the provenance logbook.

A trace script is a sequence of machine calls written one per line (or
separated by ``;``)::

    create a root shared-ro   # derive a read-only reference from the root
    lend a
    read a

The root reference is always called ``root``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import hashlib
import json
import sys

from ..constants import LOGBOOK_FILE, ROOT_NAME, TRACE_VERSION
from .analysis import dump_state
from .core import AccessKind, AccessMode, RefKind
from .errors import AliasingViolation
from .state import init

COMMANDS = {
    "create": ("name", "parent", "kind"),
    "lend": ("name",),
    "return": ("name",),
    "split": ("name",),
    "merge": ("name",),
    "mode": ("name", "mode"),
    "read": ("name",),
    "write": ("name",),
    "dump": (),
}


@dataclass(frozen=True)
class TraceStep:
    op: str
    args: tuple
    line: int = 0

    def to_text(self) -> str:
        return " ".join((self.op,) + tuple(self.args))

    def __str__(self) -> str:
        return self.to_text()


def _check_argument(field, value, line):
    try:
        if field == "kind":
            RefKind.parse(value)
        elif field == "mode":
            AccessMode.parse(value)
    except ValueError as exc:
        raise ValueError(f"line {line}: {exc}") from exc


def parse_trace(src):
    """Parse a trace script into :class:`TraceStep` objects."""

    steps = []
    for lineno, raw in enumerate(src.splitlines(), start=1):
        code = raw.split("#", 1)[0]
        for chunk in code.split(";"):
            parts = chunk.split()
            if not parts:
                continue
            op, args = parts[0].lower(), tuple(parts[1:])
            if op not in COMMANDS:
                raise ValueError(f"line {lineno}: unknown command '{op}'")
            fields = COMMANDS[op]
            if len(args) != len(fields):
                usage = " ".join([op] + [f"<{f}>" for f in fields])
                raise ValueError(f"line {lineno}: expected '{usage}'")
            for field, value in zip(fields, args):
                _check_argument(field, value, lineno)
            steps.append(TraceStep(op, args, lineno))
    return steps


class TraceRun:
    """Outcome of running a trace script against a fresh machine."""

    def __init__(self, plan):
        root, machine = init()
        self.machine = machine
        self.plan = list(plan)
        self.names = {ROOT_NAME: root}
        self.steps: list[TraceStep] = []
        self.violation: AliasingViolation | None = None
        self.failed_step: TraceStep | None = None

    @property
    def ok(self) -> bool:
        return self.violation is None

    @property
    def labels(self):
        return {ref: name for name, ref in self.names.items()}

    def resolve(self, name, step):
        try:
            return self.names[name]
        except KeyError:
            raise ValueError(f"line {step.line}: unknown reference '{name}'") from None

    def apply(self, step):
        """Execute one step; aliasing faults propagate to the caller."""

        machine = self.machine
        op, args = step.op, step.args
        if op == "create":
            name, parent, kind = args
            if name in self.names:
                raise ValueError(f"line {step.line}: reference '{name}' already exists")
            self.names[name] = machine.create(self.resolve(parent, step), kind)
        elif op == "lend":
            machine.lend(self.resolve(args[0], step))
        elif op == "return":
            machine.return_unit(self.resolve(args[0], step))
        elif op == "split":
            machine.split(self.resolve(args[0], step))
        elif op == "merge":
            machine.merge(self.resolve(args[0], step))
        elif op == "mode":
            machine.set_access_mode(self.resolve(args[0], step), args[1])
        elif op in ("read", "write"):
            machine.use_token(self.resolve(args[0], step), AccessKind.parse(op))
        self.steps.append(step)


def run_trace(source, on_step=None):
    """Run a script (text or parsed steps) until it ends or breaks a rule.

    ``on_step(run, step)`` is called after every committed step. The first
    :class:`AliasingViolation` stops the trace and is stored on the run.
    """

    plan = parse_trace(source) if isinstance(source, str) else list(source)
    run = TraceRun(plan)
    for step in plan:
        try:
            run.apply(step)
        except AliasingViolation as exc:
            run.violation = exc
            run.failed_step = step
            break
        if on_step is not None:
            on_step(run, step)
    return run


def _state_payload(run):
    return {
        "final_state": dump_state(run.machine),
        "history": run.machine.history,
        "violation": None if run.violation is None else run.violation.to_dict(),
    }


def _payload_digest(payload):
    data = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def _state_certificate(run):
    payload = _state_payload(run)
    if run.violation is None:
        summary = f"completed {len(run.steps)} step(s)"
    else:
        summary = f"stopped at step {len(run.steps) + 1}: {run.violation.rule}"
    return {"payload_digest": _payload_digest(payload), "summary": summary, "ok": run.ok}


def build_trace_document(run):
    """Create an in-memory trace document for a finished run."""

    payload = _state_payload(run)
    return {
        "trace_version": TRACE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "script": [step.to_text() for step in run.plan],
        "executed": len(run.steps),
        "names": {name: ref.id for name, ref in run.names.items()},
        "failed_step": None if run.failed_step is None else run.failed_step.to_text(),
        **payload,
        "certificate": _state_certificate(run),
    }


def write_trace_document(doc, filename):
    with open(filename, "w", encoding="utf-8") as f:
        json.dump(doc, f, indent=2)
    print(f"  ✓ Trace exported → {filename}")
    return doc


def export_trace(run, filename="trace.tokens.json"):
    doc = build_trace_document(run)
    return write_trace_document(doc, filename)


def verify_trace_document(doc):
    """Replay the stored script and check it reproduces the stored certificate."""

    stored = doc.get("certificate")
    if not stored:
        raise ValueError("Trace document missing its state certificate")

    run = run_trace("\n".join(doc.get("script", [])))
    expected = _state_certificate(run)

    if stored.get("payload_digest") != expected["payload_digest"]:
        raise ValueError("Trace certificate digest mismatch")
    if stored.get("summary") != expected["summary"]:
        raise ValueError("Trace certificate summary mismatch")
    return run


def load_trace(filename):
    with open(filename, "r", encoding="utf-8") as f:
        doc = json.load(f)
    verify_trace_document(doc)
    return doc


def replay_trace(filename):
    """Load a trace document and re-run its script."""

    doc = load_trace(filename)
    print(f"Loaded trace v{doc['trace_version']} ({filename})")
    run = run_trace("\n".join(doc["script"]))
    print(f"  → executed {len(run.steps)}/{len(run.plan)} step(s)")
    if run.violation is not None:
        print(f"  ✗ {run.failed_step}: {run.violation}")
    else:
        print("  ✓ trace respects the aliasing discipline")
    return run


def canonicalize_trace(doc):
    """Sort mapping keys recursively so equal documents serialize identically."""

    def sort_dict(d):
        if isinstance(d, dict):
            return {k: sort_dict(v) for k, v in sorted(d.items())}
        elif isinstance(d, list):
            return [sort_dict(x) for x in d]
        else:
            return d

    return sort_dict(doc)


def hash_trace_document(doc):
    canon = canonicalize_trace(doc)
    data = json.dumps(canon, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hash_trace(filename):
    doc = load_trace(filename)
    h = hash_trace_document(doc)
    print(f"SHA256({filename}) = {h}")
    return h


def diff_traces(file_a, file_b):
    """Compare two trace documents and report how their outcomes differ."""

    a = canonicalize_trace(load_trace(file_a))
    b = canonicalize_trace(load_trace(file_b))

    da = a["certificate"]["payload_digest"]
    db = b["certificate"]["payload_digest"]
    if da == db:
        print(f"✓ Traces are equivalent ({da})")
        return []

    differences = []
    print(f"✗ Traces differ\n  {file_a}: {da}\n  {file_b}: {db}")

    if a["script"] != b["script"]:
        differences.append("script")
        print("  • Script differs:")
        for la, lb in zip(a["script"], b["script"]):
            if la != lb:
                print(f"    - {la}\n    + {lb}")
        if len(a["script"]) != len(b["script"]):
            print(f"    (length differs: {len(a['script'])} vs {len(b['script'])})")

    va, vb = a.get("violation"), b.get("violation")
    if va != vb:
        differences.append("violation")
        ra = va["rule"] if va else "none"
        rb = vb["rule"] if vb else "none"
        print(f"  • Violation differs: {ra} vs {rb}")

    sa, sb = a["final_state"], b["final_state"]
    for key in ("unit_count", "exclusivity", "access_mode"):
        if sa[key] != sb[key]:
            differences.append(key)
            print(f"  • {key} differs: {sa[key]} vs {sb[key]}")
    if sa["references"] != sb["references"]:
        differences.append("references")
        print(f"  • Reference table differs ({len(sa['references'])} vs {len(sb['references'])} refs)")

    return differences


def _logbook_path():
    return getattr(sys.modules.get("tokenmachine.machine"), "LOGBOOK_FILE", LOGBOOK_FILE)


def record_run(trace_filename, run):
    """Append this run's outcome to the logbook."""

    sha = hash_trace(trace_filename)
    history = run.machine.history
    exclusivity, mode = run.machine.register
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "filename": trace_filename,
        "hash": sha,
        "ok": run.ok,
        "violation": None if run.violation is None else run.violation.rule,
        "register": f"{exclusivity.value}/{mode.value}",
        "history_length": len(history),
        "first_event": history[0] if history else None,
        "last_event": history[-1] if history else None,
    }

    logbook_path = _logbook_path()
    with open(logbook_path, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry) + "\n")

    print(f"  📜 Recorded run → {logbook_path}")
    return entry


def show_logbook(limit=10):
    logbook_path = _logbook_path()

    try:
        with open(logbook_path, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except FileNotFoundError:
        print("No logbook yet.")
        return []

    entries = [json.loads(l) for l in lines[-limit:]]
    print(f"\nToken machine logbook — last {len(entries)} entries:")
    for e in reversed(entries):
        status = "✓" if e["ok"] else f"✗ {e['violation']}"
        print(f"• {e['timestamp']}  {e['filename']}  [{e['register']}]  {status}  {e['hash'][:12]}…")
        if e["first_event"] and e["last_event"]:
            print(f"    events: {e['first_event']['action']} → {e['last_event']['action']}")
    return entries


__all__ = [
    "COMMANDS",
    "TraceRun",
    "TraceStep",
    "build_trace_document",
    "canonicalize_trace",
    "diff_traces",
    "export_trace",
    "hash_trace",
    "hash_trace_document",
    "load_trace",
    "parse_trace",
    "record_run",
    "replay_trace",
    "run_trace",
    "show_logbook",
    "verify_trace_document",
    "write_trace_document",
]
