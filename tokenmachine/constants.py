"""Shared constant values for the token machine."""

TRACE_VERSION = "0.2"

KIND_COLORS = {
    "unique": "#FF7043",
    "shared_rw": "#FFEB3B",
    "shared_ro": "#8BC34A",
}

STATE_COLORS = {
    "created": "#ECEFF1",
    "borrowing": "#90CAF9",
    "dead": "#B0BEC5",
}

ROOT_NAME = "root"

LOGBOOK_FILE = "tokenmachine.logbook.jsonl"
REPL_HISTORY_LIMIT = 10

# Two unique reborrows used and returned in turn,
# then the token is frozen read-only and fanned out to shared readers.
DEMO_TRACE = """\
create r2 root unique
create r3 root unique
lend r2
write r2
return r2
lend r3
write r3
return r3
mode root ro
split root
split root
split root
create r4 root shared-ro
create r5 root shared-ro
lend r4
lend r5
read root
read r4
read r5
"""

__all__ = [
    "DEMO_TRACE",
    "KIND_COLORS",
    "LOGBOOK_FILE",
    "REPL_HISTORY_LIMIT",
    "ROOT_NAME",
    "STATE_COLORS",
    "TRACE_VERSION",
]
