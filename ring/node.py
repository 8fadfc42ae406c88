import random
import socket
import sys

from common.config import NODE_ID_MAX, NODE_ID_MIN
from common.log import log
from common.messages import RingMessage
from ring.election import ElectionEngine, ElectionSnapshot, NodeIdentity
from ring.transport import Transport

USAGE = "Usage: python -m ring.node <PORT> <NEXT_HOST> <NEXT_PORT> [NODE_ID]"

MENU = """
Menu:
1. Start election
2. Show status
3. Quit"""


class ConfigError(Exception):
    pass


class RingNode:
    """Wires one NodeIdentity to its election engine and transport."""

    def __init__(self, identity: NodeIdentity, **transport_opts):
        self.identity = identity
        self.transport = Transport(
            identity.node_id,
            identity.listen_port,
            on_line=self._on_line,
            **transport_opts,
        )
        self.election = ElectionEngine(identity, send=self.send_to_successor)

    @property
    def node_id(self) -> int:
        return self.identity.node_id

    def _on_line(self, line: str):
        self.election.on_line(line)

    def send_to_successor(self, msg: RingMessage):
        self.transport.send(
            self.identity.successor_host,
            self.identity.successor_port,
            msg.encode(),
        )

    def start(self) -> bool:
        log("node", self.node_id, "NODE_START", "OK",
            port=self.identity.listen_port,
            successor=(self.identity.successor_host, self.identity.successor_port))
        return self.transport.listen()

    def start_election(self) -> bool:
        return self.election.start_election()

    def status(self) -> ElectionSnapshot:
        return self.election.snapshot()

    def shutdown(self):
        log("node", self.node_id, "NODE_SHUTDOWN")
        self.transport.close()

    def status_text(self) -> str:
        state = self.status()
        leader = f"node {state.coordinator_id}" if state.coordinator_id is not None else "none"
        return "\n".join([
            f"Status of node {self.node_id}:",
            f" - Port: {self.transport.port}",
            f" - Next node: {self.identity.successor_host}:{self.identity.successor_port}",
            f" - Current leader: {leader}",
            f" - Election in progress: {state.election_in_progress}",
            f" - IP address: {get_local_ip()}",
        ])


def get_local_ip() -> str:
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # no packet is sent, connect() only picks the outgoing interface
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


def generate_node_id() -> int:
    return random.randint(NODE_ID_MIN, NODE_ID_MAX)


def check_resolvable(host: str):
    try:
        socket.getaddrinfo(host, None)
    except socket.gaierror as e:
        raise ConfigError(f"invalid address for next node: {host} ({e})") from None


def parse_args(argv) -> NodeIdentity:
    if len(argv) < 3:
        raise ConfigError(USAGE)

    try:
        port = int(argv[0])
        next_host = argv[1]
        next_port = int(argv[2])
        node_id = int(argv[3]) if len(argv) > 3 else generate_node_id()
    except ValueError:
        raise ConfigError("port and node id must be valid numbers") from None

    # 0 lets the OS pick the listen port; the successor needs a real one
    if not 0 <= port <= 65535:
        raise ConfigError(f"port out of range: {port}")
    if not 1 <= next_port <= 65535:
        raise ConfigError(f"next port out of range: {next_port}")

    return NodeIdentity(node_id, port, next_host, next_port)


def run_menu(node: RingNode, stdin=None, stdout=None):
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    while True:
        print(MENU, file=stdout)
        print("Choice: ", end="", file=stdout, flush=True)

        choice = stdin.readline()
        if not choice:
            # EOF
            break

        choice = choice.strip()
        if choice == "1":
            if not node.start_election():
                print("Election already in progress", file=stdout)
        elif choice == "2":
            print(node.status_text(), file=stdout)
        elif choice == "3":
            break
        else:
            print("Invalid option", file=stdout)

    node.shutdown()


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    if len(argv) < 3:
        print(USAGE)
        print("Example: python -m ring.node 5001 192.168.1.2 5002")
        return 1

    try:
        identity = parse_args(argv)
        check_resolvable(identity.successor_host)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    node = RingNode(identity)
    print(f"Node started with ID: {identity.node_id}")
    node.start()
    run_menu(node)
    return 0


if __name__ == "__main__":
    sys.exit(main())
