"""
ring.election

Chang-Roberts election on a unidirectional ring.

Every node forwards the larger of (incoming candidate, own id) and drops
smaller candidates while it has an election of its own in flight. The only
id that can make it all the way round is the largest one; its owner then
announces itself with a COORDINATOR message that takes one more lap.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional

from common.config import COORDINATOR, ELECTION
from common.log import log
from common.messages import MessageError, RingMessage, coordinator, election, parse_message
from common.syslog import LOG_INFO, LOG_WARN

ROLE = "election"


@dataclass(frozen=True)
class NodeIdentity:
    node_id: int
    listen_port: int
    successor_host: str
    successor_port: int


@dataclass(frozen=True)
class ElectionSnapshot:
    coordinator_id: Optional[int]
    election_in_progress: bool


class ElectionEngine:
    def __init__(self, identity: NodeIdentity, send: Callable[[RingMessage], None]):
        """
        send delivers a message to the successor. It must not block for long:
        handler threads call into the engine and wait for it to return.
        """
        self.identity = identity
        self.send = send

        # serializes this node's transitions only; other nodes may still start
        # elections concurrently, and the suppression rule absorbs the duplicates
        self._lock = threading.Lock()
        self._coordinator_id: Optional[int] = None
        self._election_in_progress = False

    @property
    def node_id(self) -> int:
        return self.identity.node_id

    def snapshot(self) -> ElectionSnapshot:
        with self._lock:
            return ElectionSnapshot(self._coordinator_id, self._election_in_progress)

    # ------------------------------
    # Transitions
    # ------------------------------
    def start_election(self) -> bool:
        """Send ELECTION <own id> unless an election is already in flight."""
        with self._lock:
            msg = self._begin_election_locked()

        if msg is None:
            log(ROLE, self.node_id, "ELECTION_ALREADY_RUNNING")
            return False

        self._send(msg)
        return True

    def become_leader(self):
        with self._lock:
            msg = self._become_leader_locked()
        self._send(msg)

    def _begin_election_locked(self) -> Optional[RingMessage]:
        if self._election_in_progress:
            return None

        self._election_in_progress = True
        log(ROLE, self.node_id, "ELECTION_START", "OK", candidate_id=self.node_id)
        LOG_INFO("ELECTION_START", node_id=self.node_id, event="ELECTION_START", candidate_id=self.node_id)
        return election(self.node_id)

    def _become_leader_locked(self) -> RingMessage:
        self._coordinator_id = self.node_id
        self._election_in_progress = False
        log(ROLE, self.node_id, "ELECTED_LEADER", "OK", coordinator_id=self.node_id)
        LOG_INFO("ELECTED_LEADER", node_id=self.node_id, event="ELECTED_LEADER", coordinator_id=self.node_id)
        return coordinator(self.node_id)

    # ------------------------------
    # Inbound
    # ------------------------------
    def on_line(self, line: str):
        """Entry point for the transport: parse one received line and act on it."""
        try:
            msg = parse_message(line)
        except MessageError as e:
            log(ROLE, self.node_id, "BAD_MESSAGE", "WARN", line=repr(line), error=e)
            LOG_WARN("BAD_MESSAGE", node_id=self.node_id, event="BAD_MESSAGE", line=repr(line))
            return

        self.on_message(msg)

    def on_message(self, msg: RingMessage):
        if msg.kind == ELECTION:
            out = self._on_election(msg)
        elif msg.kind == COORDINATOR:
            out = self._on_coordinator(msg)
        else:
            log(ROLE, self.node_id, "UNKNOWN_KIND", "WARN", kind=msg.kind)
            return

        if out is not None:
            self._send(out)

    def _on_election(self, msg: RingMessage) -> Optional[RingMessage]:
        candidate = msg.candidate_id

        if candidate > self.node_id:
            log(ROLE, self.node_id, "ELECTION_FORWARD", candidate_id=candidate)
            return msg

        with self._lock:
            if candidate == self.node_id:
                # own id survived a full lap
                return self._become_leader_locked()

            out = self._begin_election_locked()

        if out is None:
            log(ROLE, self.node_id, "ELECTION_SUPPRESSED", candidate_id=candidate)
        return out

    def _on_coordinator(self, msg: RingMessage) -> Optional[RingMessage]:
        leader = msg.candidate_id

        with self._lock:
            self._coordinator_id = leader
            self._election_in_progress = False

        if leader == self.node_id:
            log(ROLE, self.node_id, "COORDINATOR_LAP_COMPLETE", "OK", coordinator_id=leader)
            return None

        log(ROLE, self.node_id, "COORDINATOR_RECORDED", "OK", coordinator_id=leader)
        LOG_INFO("COORDINATOR_RECORDED", node_id=self.node_id, event="COORDINATOR_RECORDED", coordinator_id=leader)
        return msg

    def _send(self, msg: RingMessage):
        log(
            ROLE,
            self.node_id,
            "SEND",
            kind=msg.kind,
            candidate_id=msg.candidate_id,
            to=(self.identity.successor_host, self.identity.successor_port),
        )
        self.send(msg)
