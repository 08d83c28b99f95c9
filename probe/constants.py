"""
Shared constants used across all probe modules.

Centralises defaults, limits, and tunables so they live in exactly one
place.
"""

# ---------------------------------------------------------------------------
# SSH connection
# ---------------------------------------------------------------------------

DEFAULT_PORT = 22
DEFAULT_SSH_TIMEOUT = 10.0        # seconds for TCP connect, banner and auth
DEFAULT_SSH_CONFIG = "~/.ssh/config"

PTY_TERM = "sshping"
PTY_WIDTH = 10
PTY_HEIGHT = 5
SHELL_SETTLE = 0.25               # quiet period that ends the shell drain
SHELL_DRAIN_LIMIT = 5.0           # give up draining the shell banner after this
DRAIN_READ_SIZE = 1500

# ---------------------------------------------------------------------------
# Echo test
# ---------------------------------------------------------------------------

DEFAULT_CHAR_COUNT = 1000
MIN_CHAR_COUNT = 1
DEFAULT_ECHO_CMD = "cat > /dev/null"
ECHO_CHARACTERS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
MIN_RELIABLE_SAMPLES = 20         # warn below this many echoed characters

# ---------------------------------------------------------------------------
# Speed test
# ---------------------------------------------------------------------------

DEFAULT_SIZE_MB = 8.0
DEFAULT_CHUNK_SIZE = 1_000_000    # bytes
DEFAULT_REMOTE_FILE = "/tmp/sshping-PID.tmp"
PID_PLACEHOLDER = "PID"

# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MILLI = 1_000_000
BYTES_PER_MB = 1_000_000
