"""
common.messages

Ring wire format: one line per TCP connection.

    ELECTION <id>       candidate id travelling around the ring
    COORDINATOR <id>    winner announcement (second lap)

The kind token is case-sensitive; the id is a base-10 integer.
"""

from __future__ import annotations

from dataclasses import dataclass

from common.config import COORDINATOR, ELECTION, MESSAGE_KINDS


class MessageError(ValueError):
    """A received line is not a valid ring message."""


@dataclass(frozen=True)
class RingMessage:
    kind: str
    candidate_id: int

    def encode(self) -> str:
        return f"{self.kind} {self.candidate_id}"


def election(candidate_id: int) -> RingMessage:
    return RingMessage(ELECTION, candidate_id)


def coordinator(candidate_id: int) -> RingMessage:
    return RingMessage(COORDINATOR, candidate_id)


def parse_message(line: str) -> RingMessage:
    parts = line.split()
    if len(parts) < 2:
        raise MessageError(f"expected '<KIND> <id>', got {line!r}")

    kind, raw_id = parts[0], parts[1]
    if kind not in MESSAGE_KINDS:
        raise MessageError(f"unknown message kind {kind!r}")

    try:
        candidate_id = int(raw_id, 10)
    except ValueError:
        raise MessageError(f"candidate id is not an integer: {raw_id!r}") from None

    return RingMessage(kind, candidate_id)
