"""
Probe configuration and user configuration file support.

``ProbeConfig`` is the validated input of one run.  CLI defaults can be
overridden in ``~/.sshping/config.json``.

Supported keys::

    char_count = 1000            # characters for the echo test
    echo_cmd = "cat > /dev/null"
    echo_timeout = null          # per-character timeout in seconds
    size = 8.0                   # speed test payload in megabytes
    chunk_size = 1000000         # bytes per chunk
    remote_file = "/tmp/sshping-PID.tmp"
    ssh_timeout = 10.0
    human_readable = false
    delimit = ","
    table_style = "rounded"
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .constants import (
    BYTES_PER_MB,
    DEFAULT_CHAR_COUNT,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_ECHO_CMD,
    DEFAULT_REMOTE_FILE,
    DEFAULT_SIZE_MB,
    DEFAULT_SSH_TIMEOUT,
    MIN_CHAR_COUNT,
    PID_PLACEHOLDER,
)
from .errors import ConfigError

_CONFIG_DIR = os.path.join(Path.home(), ".sshping")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Test selection
# ---------------------------------------------------------------------------

class TestSelection(str, Enum):
    ECHO = "echo"
    SPEED = "speed"
    BOTH = "both"

    @property
    def runs_echo(self) -> bool:
        return self in (TestSelection.ECHO, TestSelection.BOTH)

    @property
    def runs_speed(self) -> bool:
        return self in (TestSelection.SPEED, TestSelection.BOTH)


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------

@dataclass
class ProbeConfig:
    """Everything the orchestrator needs besides the connection itself."""

    char_count: int = DEFAULT_CHAR_COUNT
    echo_timeout: Optional[float] = None
    echo_cmd: str = DEFAULT_ECHO_CMD
    size: int = int(DEFAULT_SIZE_MB * BYTES_PER_MB)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    remote_file: str = DEFAULT_REMOTE_FILE
    tests: TestSelection = TestSelection.BOTH

    def validate(self) -> None:
        """Raise ``ConfigError`` if any parameter is out of range."""
        if self.tests.runs_echo:
            if self.char_count < MIN_CHAR_COUNT:
                raise ConfigError(f"Character count must be at least {MIN_CHAR_COUNT}")
            if self.echo_timeout is not None and self.echo_timeout <= 0:
                raise ConfigError("Echo timeout must be positive")
            if not self.echo_cmd.strip():
                raise ConfigError("Echo command must not be empty")
        if self.tests.runs_speed:
            if self.size <= 0:
                raise ConfigError("Speed test size must be positive")
            if self.chunk_size <= 0:
                raise ConfigError("Chunk size must be positive")
            if self.chunk_size > self.size:
                raise ConfigError(
                    f"Chunk size ({self.chunk_size} B) exceeds payload size ({self.size} B)"
                )
            if not self.remote_file.strip():
                raise ConfigError("Remote file path must not be empty")

    def resolved_remote_file(self) -> str:
        """Remote path with ``PID`` replaced by this process's id."""
        return self.remote_file.replace(PID_PLACEHOLDER, str(os.getpid()))


def megabytes_to_bytes(size_mb: float) -> int:
    return int(round(size_mb * BYTES_PER_MB))


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = {
    "char_count": DEFAULT_CHAR_COUNT,
    "echo_cmd": DEFAULT_ECHO_CMD,
    "echo_timeout": None,
    "size": DEFAULT_SIZE_MB,
    "chunk_size": DEFAULT_CHUNK_SIZE,
    "remote_file": DEFAULT_REMOTE_FILE,
    "ssh_timeout": DEFAULT_SSH_TIMEOUT,
    "human_readable": False,
    "delimit": ",",
    "table_style": "rounded",
}


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load config from disk, returning defaults for missing keys."""
    path = _config_path()
    config = dict(DEFAULTS)

    if not os.path.isfile(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
        if isinstance(user, dict):
            config.update({k: v for k, v in user.items() if k in DEFAULTS})
    except (json.JSONDecodeError, IOError):
        pass  # corrupt file; use defaults

    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def set_config_value(key: str, value: Any) -> str:
    """Set a single config value and persist.  Returns file path."""
    if key not in DEFAULTS:
        raise ConfigError(f"Unknown config key: {key}")
    config = load_config()
    config[key] = value
    return save_config(config)


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()


def parse_config_assignment(text: str) -> Tuple[str, Any]:
    """Split ``key=value`` and decode *value* as JSON, falling back to a string."""
    key, sep, raw = text.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ConfigError(f"Expected key=value, got {text!r}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return key, value
