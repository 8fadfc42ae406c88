import os
import sys
import threading
import time

NO_COLOR = os.getenv("NO_COLOR") == "1"

COL = {
    "RESET": "\033[0m",
    "RED": "\033[31m",
    "GREEN": "\033[32m",
    "YELLOW": "\033[33m",
    "CYAN": "\033[36m",
}

LEVEL_COLOR = {
    "ERROR": "RED",
    "WARN": "YELLOW",
    "OK": "GREEN",
}

# handler and sender threads share stdout
_lock = threading.Lock()


def _color(s: str, c: str) -> str:
    if NO_COLOR or not sys.stdout.isatty():
        return s
    return f"{COL[c]}{s}{COL['RESET']}"


def _fmt(v) -> str:
    if v is None:
        return "-"
    if isinstance(v, tuple):
        return f"{v[0]}:{v[1]}"
    return str(v)


def format_line(role: str, node_id, event: str, level: str = "INFO", **fields) -> str:
    ts = f"{time.time():.3f}"
    base = f"ts={ts} role={role} id={_fmt(node_id)} lvl={level} event={event}"

    if fields:
        parts = [f"{k}={_fmt(fields[k])}" for k in sorted(fields.keys())]
        base += " " + " ".join(parts)

    return base


def log(role: str, node_id, event: str, level: str = "INFO", **fields):
    line = format_line(role, node_id, event, level, **fields)
    with _lock:
        print(_color(line, LEVEL_COLOR.get(level, "CYAN")), flush=True)
