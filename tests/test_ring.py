import io
import socket
import subprocess
import sys
import time
from pathlib import Path

import pytest

from ring.election import NodeIdentity
from ring.node import ConfigError, RingNode, parse_args, run_menu

RING_IDS = [12, 47, 8]


def free_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
    finally:
        s.close()


def wait_until(predicate, timeout_s=5.0):
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def inject(port, line):
    with socket.create_connection(("127.0.0.1", port), timeout=2.0) as s:
        s.sendall((line + "\n").encode())


@pytest.fixture
def ring():
    ports = [free_port() for _ in RING_IDS]
    nodes = []
    try:
        for i, node_id in enumerate(RING_IDS):
            succ = (i + 1) % len(RING_IDS)
            identity = NodeIdentity(node_id, ports[i], "127.0.0.1", ports[succ])
            node = RingNode(identity, host="127.0.0.1", retry_interval=0.1)
            assert node.start()
            nodes.append(node)
        yield nodes
    finally:
        for n in nodes:
            n.shutdown()


def coordinators(nodes):
    return [n.status().coordinator_id for n in nodes]


def test_injected_election_elects_max(ring):
    inject(ring[0].identity.listen_port, "ELECTION 47")

    assert wait_until(lambda: coordinators(ring) == [47, 47, 47])
    assert all(not n.status().election_in_progress for n in ring)


def test_started_election_elects_max(ring):
    assert ring[2].start_election()

    assert wait_until(lambda: coordinators(ring) == [47, 47, 47])


def test_all_nodes_start_concurrently(ring):
    for n in ring:
        n.start_election()

    assert wait_until(lambda: coordinators(ring) == [47, 47, 47])


def test_malformed_message_leaves_ring_usable(ring):
    inject(ring[1].identity.listen_port, "FOO 5")
    inject(ring[1].identity.listen_port, "ELECTION abc")
    time.sleep(0.2)
    assert coordinators(ring) == [None, None, None]

    ring[0].start_election()
    assert wait_until(lambda: coordinators(ring) == [47, 47, 47])


def test_late_successor_is_retried():
    ports = [free_port(), free_port()]
    a = RingNode(NodeIdentity(3, ports[0], "127.0.0.1", ports[1]), host="127.0.0.1", retry_interval=0.1)
    b = RingNode(NodeIdentity(9, ports[1], "127.0.0.1", ports[0]), host="127.0.0.1", retry_interval=0.1)
    try:
        assert a.start()
        a.start_election()
        # b is not listening yet; a keeps retrying
        time.sleep(0.35)
        assert b.start()

        assert wait_until(lambda: [a.status().coordinator_id, b.status().coordinator_id] == [9, 9])
    finally:
        a.shutdown()
        b.shutdown()


# -------------------- bootstrap --------------------

def test_parse_args():
    identity = parse_args(["5001", "localhost", "5002", "47"])
    assert identity == NodeIdentity(47, 5001, "localhost", 5002)


def test_parse_args_generates_id():
    identity = parse_args(["5001", "localhost", "5002"])
    assert 1000 <= identity.node_id <= 9999


@pytest.mark.parametrize("argv", [["abc", "localhost", "5002"], ["5001", "localhost", "x"], ["5001", "localhost", "5002", "id"], ["70000", "localhost", "5002"]])
def test_parse_args_rejects_bad_numbers(argv):
    with pytest.raises(ConfigError):
        parse_args(argv)


def test_parse_args_rejects_successor_port_zero():
    with pytest.raises(ConfigError):
        parse_args(["5001", "localhost", "0"])


def test_parse_args_allows_listen_port_zero():
    assert parse_args(["0", "localhost", "5002", "7"]).listen_port == 0


def test_menu_commands():
    port = free_port()
    node = RingNode(NodeIdentity(47, port, "127.0.0.1", port), host="127.0.0.1", retry_interval=0.1)
    assert node.start()

    out = io.StringIO()
    # a ring of one: the node is its own successor
    run_menu(node, stdin=io.StringIO("1\n9\n"), stdout=out)

    text = out.getvalue()
    assert "Invalid option" in text
    # EOF shut the node down
    assert node.transport.sock.fileno() == -1

    node2 = RingNode(NodeIdentity(47, free_port(), "127.0.0.1", port))
    out2 = io.StringIO()
    run_menu(node2, stdin=io.StringIO("2\n3\n"), stdout=out2)
    assert "Status of node 47" in out2.getvalue()
    assert "Current leader: none" in out2.getvalue()


def test_single_node_ring_elects_itself():
    port = free_port()
    node = RingNode(NodeIdentity(5, port, "127.0.0.1", port), host="127.0.0.1", retry_interval=0.1)
    try:
        assert node.start()
        node.start_election()
        assert wait_until(lambda: node.status().coordinator_id == 5)
    finally:
        node.shutdown()


# -------------------- process startup --------------------

@pytest.fixture(scope="module")
def project_root():
    return Path(__file__).resolve().parents[1]


def run_node(project_root: Path, *args):
    cmd = [sys.executable, "-u", "-m", "ring.node", *args]
    return subprocess.run(
        cmd,
        cwd=str(project_root),
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        timeout=20,
    )


def test_process_refuses_unresolvable_successor(project_root):
    proc = run_node(project_root, str(free_port()), "no-such-host.invalid", "5002")
    assert proc.returncode == 1
    assert "invalid address" in proc.stderr


def test_process_usage(project_root):
    proc = run_node(project_root, "5001")
    assert proc.returncode == 1
    assert "Usage" in proc.stdout


def test_process_non_numeric_port(project_root):
    proc = run_node(project_root, "abc", "127.0.0.1", "5002")
    assert proc.returncode == 1


def test_process_exits_cleanly_on_eof(project_root):
    proc = run_node(project_root, str(free_port()), "127.0.0.1", "5002", "12")
    assert proc.returncode == 0
    assert "Node started with ID: 12" in proc.stdout
