# common/syslog.py
import socket
from datetime import datetime, timezone

from common.config import (
    SYSLOG_ENABLED,
    SYSLOG_HOST,
    SYSLOG_PORT,
    SYSLOG_FACILITY,
)

APP_NAME = "ring-election"

# ------------------------------
# UDP socket (reused)
# ------------------------------
_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)


# ------------------------------
# Helpers
# ------------------------------
def _ts():
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _pri(severity: int):
    # PRI = facility * 8 + severity
    return (SYSLOG_FACILITY * 8) + severity


def _fmt(v):
    if v is None:
        return "-"
    if isinstance(v, tuple) and len(v) == 2:
        return f"{v[0]}:{v[1]}"
    return str(v)


def build_message(*, level: str, severity: int, message: str, node_id, event=None, **fields) -> str:
    """Render one RFC5424 line; structured fields are appended as key=value."""
    payload_parts = [
        f"event={_fmt(event)}",
        f"level={level}",
        f"node_id={_fmt(node_id)}",
        f'msg="{message}"',
    ]

    for k in sorted(fields.keys()):
        if fields[k] is not None:
            payload_parts.append(f"{k}={_fmt(fields[k])}")

    payload = " ".join(payload_parts)

    return (
        f"<{_pri(severity)}>1 "
        f"{_ts()} "
        f"node-{_fmt(node_id)} "
        f"{APP_NAME} "
        f"- - - "
        f"{payload}"
    )


# ------------------------------
# Core syslog sender
# ------------------------------
def _send_syslog(*, level: str, severity: int, message: str, node_id, event=None, **fields):
    if not SYSLOG_ENABLED:
        return

    syslog_msg = build_message(
        level=level,
        severity=severity,
        message=message,
        node_id=node_id,
        event=event,
        **fields,
    )

    try:
        _sock.sendto(
            syslog_msg.encode("utf-8", errors="replace"),
            (SYSLOG_HOST, SYSLOG_PORT),
        )
    except OSError:
        # the sink is best effort, the console log already has the event
        pass


# ------------------------------
# Public API
# ------------------------------
def LOG_INFO(message: str, **fields):
    _send_syslog(level="INFO", severity=6, message=message, **fields)


def LOG_WARN(message: str, **fields):
    _send_syslog(level="WARN", severity=4, message=message, **fields)


def LOG_ERROR(message: str, **fields):
    _send_syslog(level="ERROR", severity=3, message=message, **fields)
