"""
Error taxonomy for a probe run.

Every error is tagged with the stage that failed so the CLI can report it
and pick an exit code.  The underlying library error is always chained as
``__cause__``.
"""
from __future__ import annotations

from typing import Optional


class ProbeError(Exception):
    """Base class for all stage failures."""

    stage = "run"
    exit_code = 1

    @property
    def cause(self) -> Optional[BaseException]:
        return self.__cause__

    def describe(self) -> str:
        """One-line ``stage: message (cause)`` summary."""
        text = f"{self.stage}: {self}"
        if self.cause is not None and str(self.cause) and str(self.cause) not in str(self):
            text += f" ({self.cause})"
        return text


class ConfigError(ProbeError, ValueError):
    """Invalid configuration, detected before any stage runs."""

    stage = "config"
    exit_code = 2


class ConnectError(ProbeError):
    """Channel establishment failed (unreachable host, auth, handshake)."""

    stage = "connect"
    exit_code = 3


class ChannelError(ProbeError):
    """Transport failure during the echo test."""

    stage = "echo"
    exit_code = 4


class TransferError(ProbeError):
    """I/O failure during the chunked upload or download."""

    stage = "speed"
    exit_code = 5
