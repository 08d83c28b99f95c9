"""
Transport interfaces the probes are written against.

Two capability shapes are needed: a duplex byte channel bound to one remote
command (echo test) and a path-addressed file transport (speed test).  The
paramiko implementation lives in ``probe.ssh``; tests use in-memory fakes.
"""
from __future__ import annotations

from typing import Protocol


class DuplexChannel(Protocol):
    """Interleaved byte stream tied to one remote process invocation."""

    async def write(self, data: bytes) -> None:
        ...

    async def read(self, size: int) -> bytes:
        """Return up to *size* bytes, or ``b""`` once the remote side closed."""
        ...

    def close(self) -> None:
        ...


class RemoteFile(Protocol):
    async def write(self, data: bytes) -> None:
        ...

    async def read(self, size: int) -> bytes:
        ...

    async def close(self) -> None:
        """Flush outstanding writes and release the handle."""
        ...


class FileTransport(Protocol):
    async def open_write(self, path: str) -> RemoteFile:
        ...

    async def open_read(self, path: str) -> RemoteFile:
        ...

    async def remove(self, path: str) -> None:
        ...

    def close(self) -> None:
        ...


class Session(Protocol):
    """An established, authenticated connection to one target host."""

    async def open_duplex(self, command: str) -> DuplexChannel:
        ...

    async def open_file_transport(self) -> FileTransport:
        ...

    def close(self) -> None:
        ...
