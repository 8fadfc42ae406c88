import os

# longest accepted ring line, newline included
BUFFER_SIZE = 4096

# Ring messages (Chang-Roberts):

# candidate id travelling around the ring
ELECTION = "ELECTION"
# winner announcement, one extra lap
COORDINATOR = "COORDINATOR"

MESSAGE_KINDS = (ELECTION, COORDINATOR)

# Transport
RETRY_INTERVAL = float(os.getenv("RING_RETRY_INTERVAL", "5.0"))
CONNECT_TIMEOUT = float(os.getenv("RING_CONNECT_TIMEOUT", "5.0"))
READ_TIMEOUT = float(os.getenv("RING_READ_TIMEOUT", "5.0"))
LISTEN_HOST = os.getenv("RING_LISTEN_HOST", "0.0.0.0")
LISTEN_BACKLOG = 16

# Random node ids when none is given on the command line
NODE_ID_MIN = 1000
NODE_ID_MAX = 9999

# Syslog sink (see tests/dummy_syslog_listener.py)
SYSLOG_ENABLED = os.getenv("RING_SYSLOG") == "1"
SYSLOG_HOST = os.getenv("RING_SYSLOG_HOST", "127.0.0.1")
SYSLOG_PORT = int(os.getenv("RING_SYSLOG_PORT", "5514"))
SYSLOG_FACILITY = 16  # local0
