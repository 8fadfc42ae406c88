"""
ring.transport

One-shot TCP transport between ring neighbours.

- Inbound: an accept thread hands every connection to its own handler thread,
  which reads exactly one line, passes it on and closes the socket.
- Outbound: every message opens a new connection, writes one line and closes.
  Unreachable successors are retried at a fixed interval forever; an
  unresolvable host name is reported once and given up on.
"""

from __future__ import annotations

import socket
import threading
from typing import Callable, Optional

from common.config import (
    BUFFER_SIZE,
    CONNECT_TIMEOUT,
    LISTEN_BACKLOG,
    LISTEN_HOST,
    READ_TIMEOUT,
    RETRY_INTERVAL,
)
from common.log import log
from common.syslog import LOG_ERROR, LOG_WARN

ROLE = "transport"


class Transport:
    def __init__(
        self,
        node_id: int,
        port: int,
        on_line: Callable[[str], None],
        host: str = LISTEN_HOST,
        retry_interval: float = RETRY_INTERVAL,
        connect_timeout: float = CONNECT_TIMEOUT,
        read_timeout: float = READ_TIMEOUT,
    ):
        """
        node_id is only used to tag log lines.
        on_line is called from a handler thread with every received line
        (trailing newline stripped).
        port may be 0; after listen() self.port holds the bound port.
        """
        self.node_id = node_id
        self.host = host
        self.port = port
        self.on_line = on_line

        self.retry_interval = retry_interval
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

        self.sock: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._closed = threading.Event()

    # ------------------------------
    # Inbound
    # ------------------------------
    def listen(self) -> bool:
        """Bind and start the accept thread. Returns False if the bind failed."""
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(LISTEN_BACKLOG)
        except OSError as e:
            sock.close()
            log(ROLE, self.node_id, "LISTEN_FAIL", "ERROR", addr=(self.host, self.port), error=e)
            LOG_ERROR("LISTEN_FAIL", node_id=self.node_id, event="LISTEN_FAIL", addr=(self.host, self.port), error=e)
            return False

        self.sock = sock
        self.port = sock.getsockname()[1]
        log(ROLE, self.node_id, "LISTEN", addr=(self.host, self.port))

        self._accept_thread = threading.Thread(
            target=self._accept_loop, name=f"accept-{self.port}", daemon=True
        )
        self._accept_thread.start()
        return True

    def _accept_loop(self):
        while True:
            try:
                conn, addr = self.sock.accept()
            except OSError as e:
                if self._closed.is_set():
                    # close() pulled the socket from under accept()
                    return
                log(ROLE, self.node_id, "ACCEPT_FAIL", "ERROR", error=e)
                LOG_ERROR("ACCEPT_FAIL", node_id=self.node_id, event="ACCEPT_FAIL", error=e)
                return

            log(ROLE, self.node_id, "CONN_ACCEPTED", addr=addr)
            threading.Thread(
                target=self._handle_connection, args=(conn, addr), daemon=True
            ).start()

    def _handle_connection(self, conn: socket.socket, addr):
        try:
            with conn:
                conn.settimeout(self.read_timeout)
                with conn.makefile("r", encoding="utf-8", errors="replace", newline="\n") as reader:
                    line = reader.readline(BUFFER_SIZE)
        except OSError as e:
            log(ROLE, self.node_id, "READ_FAIL", "WARN", addr=addr, error=e)
            return

        if len(line) >= BUFFER_SIZE and not line.endswith("\n"):
            log(ROLE, self.node_id, "LINE_TOO_LONG", "WARN", addr=addr, limit=BUFFER_SIZE)
            return

        line = line.rstrip("\r\n")
        if not line:
            # peer closed without sending anything
            return

        log(ROLE, self.node_id, "RECV", addr=addr, line=repr(line))
        try:
            self.on_line(line)
        except Exception as e:
            # keep the handler thread from dying with an unreported traceback
            log(ROLE, self.node_id, "HANDLER_FAIL", "ERROR", addr=addr, error=repr(e))

    # ------------------------------
    # Outbound
    # ------------------------------
    def send(self, host: str, port: int, line: str) -> threading.Thread:
        """Deliver line to host:port on a sender thread and return that thread."""
        t = threading.Thread(
            target=self.deliver, args=(host, port, line), name=f"send-{host}:{port}", daemon=True
        )
        t.start()
        return t

    def deliver(self, host: str, port: int, line: str) -> bool:
        """
        Blocking send with retry.

        Returns True once the line was written, False if the host does not
        resolve or the transport was closed while waiting to retry.
        """
        data = (line + "\n").encode("utf-8")
        attempt = 0

        while True:
            attempt += 1
            try:
                socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
            except socket.gaierror as e:
                log(ROLE, self.node_id, "RESOLVE_FAIL", "ERROR", addr=(host, port), error=e)
                LOG_ERROR("RESOLVE_FAIL", node_id=self.node_id, event="RESOLVE_FAIL", addr=(host, port), error=e)
                return False

            try:
                # tries every resolved address, IPv4 or IPv6
                with socket.create_connection((host, port), timeout=self.connect_timeout) as sock:
                    sock.sendall(data)
            except OSError as e:
                log(
                    ROLE,
                    self.node_id,
                    "SEND_FAIL",
                    "WARN",
                    addr=(host, port),
                    attempt=attempt,
                    retry_in=self.retry_interval,
                    error=e,
                )
                LOG_WARN("SEND_FAIL", node_id=self.node_id, event="SEND_FAIL", addr=(host, port), attempt=attempt)
                if self._closed.wait(self.retry_interval):
                    log(ROLE, self.node_id, "SEND_ABANDONED", "WARN", addr=(host, port), line=repr(line))
                    return False
                continue

            log(ROLE, self.node_id, "SENT", addr=(host, port), line=repr(line), attempt=attempt)
            return True

    def close(self):
        self._closed.set()
        if self.sock is None:
            return
        try:
            # wake accept() on platforms where close() alone does not
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
        log(ROLE, self.node_id, "LISTEN_CLOSED", addr=(self.host, self.port))
