"""
Character echo latency test.

Protocol flow::

    1. Remote side runs the echo command behind a PTY (``cat > /dev/null``).
    2. Start the clock, write one character.
    3. Wait until the terminal echoes the same character back.
    4. Stop the clock, record the round trip.
    5. Repeat 2-4 for the desired number of characters.

Round trips are strictly lock-step so every sample is the latency of a
single keystroke.
"""
from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from .channel import DuplexChannel
from .constants import (
    DEFAULT_CHAR_COUNT,
    ECHO_CHARACTERS,
    MIN_RELIABLE_SAMPLES,
    NANOS_PER_MILLI,
)
from .errors import ChannelError
from .stats import SampleStatistics, StatsSummary


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EchoResult:
    """Outcome of one echo test; ``latency`` is ``None`` when nothing echoed."""

    char_count: int
    char_sent: int
    timed_out: bool
    latency: Optional[StatsSummary] = None
    p90: Optional[int] = None
    p95: Optional[int] = None
    p99: Optional[int] = None

    @property
    def attempted(self) -> int:
        """Characters written, including the one whose echo timed out."""
        return self.char_sent + (1 if self.timed_out else 0)

    def to_dict(self) -> dict:
        return {
            "char_count": self.char_count,
            "char_sent": self.char_sent,
            "timed_out": self.timed_out,
            "latency": self.latency.to_dict() if self.latency else None,
            "p90": self.p90,
            "p95": self.p95,
            "p99": self.p99,
        }


def printable_characters() -> Iterator[bytes]:
    """Endless ``a..zA..Z`` cycle, one single-byte ``bytes`` at a time."""
    return (bytes([c]) for c in itertools.cycle(ECHO_CHARACTERS.encode("ascii")))


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

class EchoProbe:
    """Measure per-character round-trip latency over a duplex channel."""

    def __init__(
        self,
        char_count: int = DEFAULT_CHAR_COUNT,
        timeout: Optional[float] = None,
        characters: Optional[Iterator[bytes]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.char_count = char_count
        self.timeout = timeout
        self._characters = characters if characters is not None else printable_characters()
        self.log = logger or logging.getLogger(__name__)
        self.on_progress: Optional[Callable[[int, int, float], None]] = None

    async def run(self, channel: DuplexChannel) -> EchoResult:
        stats = SampleStatistics()
        total_ns = 0
        timed_out = False

        self.log.info("Running echo latency test")
        self.log.debug("Characters to echo: %d, per-character timeout: %s s",
                       self.char_count, self.timeout)

        for n in range(self.char_count):
            char = next(self._characters)

            start = time.perf_counter_ns()
            echoed = await self._round_trip(channel, char)
            end = time.perf_counter_ns()

            if not echoed:
                self.log.warning(
                    "No echo within %s s after %d/%d characters; stopping early",
                    self.timeout, n, self.char_count,
                )
                timed_out = True
                break

            latency = end - start
            stats.add(latency)
            total_ns += latency

            if self.on_progress:
                self.on_progress(n + 1, self.char_count, total_ns / (n + 1))

        result = EchoResult(
            char_count=self.char_count,
            char_sent=stats.count,
            timed_out=timed_out,
            latency=stats.finalize(),
            p90=stats.percentile_high(0.10),
            p95=stats.percentile_high(0.05),
            p99=stats.percentile_high(0.01),
        )
        self._log_summary(result)
        return result

    # -- Internals ----------------------------------------------------------

    async def _round_trip(self, channel: DuplexChannel, char: bytes) -> bool:
        """Send *char* and wait for its echo.  ``False`` means the timeout hit."""
        # Raced with asyncio.wait rather than wait_for so a TimeoutError
        # raised by the transport is not mistaken for the per-character one.
        # The write is part of the race: a stalled remote window blocks it.
        waiter = asyncio.ensure_future(self._exchange(channel, char))
        try:
            done, _ = await asyncio.wait({waiter}, timeout=self.timeout)
        finally:
            if not waiter.done():
                waiter.cancel()

        if not done:
            with contextlib.suppress(asyncio.CancelledError):
                await waiter
            return False

        waiter.result()
        return True

    @staticmethod
    async def _exchange(channel: DuplexChannel, char: bytes) -> None:
        try:
            await channel.write(char)
        except OSError as exc:
            raise ChannelError(f"Write to echo channel failed: {exc}") from exc

        while True:
            try:
                data = await channel.read(1)
            except OSError as exc:
                raise ChannelError(f"Read from echo channel failed: {exc}") from exc

            if not data:
                raise ChannelError("Echo channel closed by the remote side")
            if data == char:
                return

    def _log_summary(self, result: EchoResult) -> None:
        if result.char_sent < MIN_RELIABLE_SAMPLES:
            self.log.warning(
                "Only %d characters echoed; too few for an accurate latency measurement",
                result.char_sent,
            )
        if result.latency is None:
            return

        lat = result.latency
        self.log.info(
            "Sent %d/%d, latency (ms): mean %.3f, std %.3f, min %.3f, "
            "median %.3f, max %.3f, 1%% high %.3f, 5%% high %.3f, 10%% high %.3f",
            result.char_sent, result.char_count,
            lat.mean / NANOS_PER_MILLI, lat.std / NANOS_PER_MILLI,
            lat.min / NANOS_PER_MILLI, lat.median / NANOS_PER_MILLI,
            lat.max / NANOS_PER_MILLI, result.p99 / NANOS_PER_MILLI,
            result.p95 / NANOS_PER_MILLI, result.p90 / NANOS_PER_MILLI,
        )
