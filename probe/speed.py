"""
File transfer throughput test.

Uploads a fixed-size payload to a remote path in chunks, downloads it back
in chunks of the same size, then removes the remote file.  Each phase is
timed as a whole; the chunks themselves are transferred strictly one after
another so the elapsed time belongs to exactly one phase.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from .channel import FileTransport, RemoteFile
from .constants import DEFAULT_CHUNK_SIZE, NANOS_PER_SECOND
from .errors import TransferError


UPLOAD = "upload"
DOWNLOAD = "download"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SpeedResult:
    """One direction of the speed test."""

    size: int
    elapsed_ns: int
    chunks: int

    @property
    def elapsed_s(self) -> float:
        return self.elapsed_ns / NANOS_PER_SECOND

    @property
    def throughput(self) -> float:
        """Bytes per second."""
        return self.size / self.elapsed_s

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "elapsed_ns": self.elapsed_ns,
            "chunks": self.chunks,
            "throughput": self.throughput,
        }


@dataclass(frozen=True)
class SpeedSummary:
    upload: SpeedResult
    download: SpeedResult

    def to_dict(self) -> dict:
        return {
            "upload": self.upload.to_dict(),
            "download": self.download.to_dict(),
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def chunk_sizes(size: int, chunk_size: int) -> Iterator[int]:
    """Lengths of the chunks *size* bytes split into; the last may be short."""
    if chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")
    remaining = size
    while remaining > 0:
        n = min(chunk_size, remaining)
        yield n
        remaining -= n


_PRINTABLE = bytes((b & 0x3F) + 32 for b in range(256))


def make_payload(length: int) -> bytes:
    """Random printable ASCII (``0x20``-``0x5f``)."""
    return os.urandom(length).translate(_PRINTABLE)


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

class ThroughputProbe:
    """Upload then download *size* bytes through a file transport."""

    def __init__(
        self,
        size: int,
        remote_path: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.size = size
        self.chunk_size = chunk_size
        self.remote_path = remote_path
        self.log = logger or logging.getLogger(__name__)
        self.on_progress: Optional[Callable[[str, int, int], None]] = None

    async def run(self, transport: FileTransport) -> SpeedSummary:
        self.log.info("Running speed test")
        self.log.debug("Payload %d bytes in chunks of %d, remote file %s",
                       self.size, self.chunk_size, self.remote_path)

        try:
            upload = await self._upload(transport)
            download = await self._download(transport)
        except Exception:
            await self._cleanup(transport)
            raise

        await self._cleanup(transport)
        return SpeedSummary(upload=upload, download=download)

    # -- Phases -------------------------------------------------------------

    async def _upload(self, transport: FileTransport) -> SpeedResult:
        self.log.info("Running upload speed test")
        # One chunk of payload is reused for every write.
        payload = make_payload(min(self.chunk_size, self.size))

        try:
            remote = await transport.open_write(self.remote_path)
        except OSError as exc:
            raise TransferError(f"Cannot open {self.remote_path} for upload: {exc}") from exc

        sent = 0
        chunks = 0
        closing = False
        start = time.perf_counter_ns()
        try:
            for n in chunk_sizes(self.size, self.chunk_size):
                await remote.write(payload if n == len(payload) else payload[:n])
                sent += n
                chunks += 1
                self._report(UPLOAD, sent)
            closing = True
            await remote.close()
        except OSError as exc:
            raise TransferError(
                f"Upload failed after {sent}/{self.size} bytes: {exc}"
            ) from exc
        finally:
            if not closing:
                await self._discard(remote)
        elapsed = max(time.perf_counter_ns() - start, 1)

        result = SpeedResult(size=sent, elapsed_ns=elapsed, chunks=chunks)
        self.log.info("Sent %d bytes in %.3f s, %.0f B/s",
                      result.size, result.elapsed_s, result.throughput)
        return result

    async def _download(self, transport: FileTransport) -> SpeedResult:
        self.log.info("Running download speed test")
        try:
            remote = await transport.open_read(self.remote_path)
        except OSError as exc:
            raise TransferError(f"Cannot open {self.remote_path} for download: {exc}") from exc

        received = 0
        chunks = 0
        complete = False
        start = time.perf_counter_ns()
        try:
            for n in chunk_sizes(self.size, self.chunk_size):
                got = 0
                while got < n:
                    data = await remote.read(n - got)
                    if not data:
                        raise TransferError(
                            f"Remote file ended after {received + got}/{self.size} bytes"
                        )
                    got += len(data)
                received += got
                chunks += 1
                self._report(DOWNLOAD, received)
            elapsed = max(time.perf_counter_ns() - start, 1)
            complete = True
        except OSError as exc:
            raise TransferError(
                f"Download failed after {received}/{self.size} bytes: {exc}"
            ) from exc
        finally:
            if not complete:
                await self._discard(remote)

        try:
            await remote.close()
        except OSError as exc:
            raise TransferError(f"Closing downloaded file failed: {exc}") from exc

        result = SpeedResult(size=received, elapsed_ns=elapsed, chunks=chunks)
        self.log.info("Received %d bytes in %.3f s, %.0f B/s",
                      result.size, result.elapsed_s, result.throughput)
        return result

    # -- Internals ----------------------------------------------------------

    async def _cleanup(self, transport: FileTransport) -> None:
        try:
            await transport.remove(self.remote_path)
        except Exception as exc:  # noqa: BLE001
            self.log.warning("Failed to remove remote file %s: %s", self.remote_path, exc)
        else:
            self.log.debug("Removed remote file %s", self.remote_path)

    async def _discard(self, remote: RemoteFile) -> None:
        """Close a handle abandoned by a failed phase; the phase error wins."""
        try:
            await remote.close()
        except Exception as exc:  # noqa: BLE001
            self.log.debug("Closing abandoned handle failed: %s", exc)

    def _report(self, phase: str, done: int) -> None:
        if self.on_progress:
            self.on_progress(phase, done, self.size)
