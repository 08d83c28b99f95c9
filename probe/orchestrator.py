"""
Run sequencing: connect, echo test, speed test, report.

The run is a small state machine::

    Idle -> Connecting -> (Echoing)? -> (Transferring)? -> Done | Failed

Each state is its own frozen dataclass and ``advance()`` is the only way to
move between them, so a state such as "speed finished but echo neither ran
nor was skipped" cannot be built.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from .channel import Session
from .config import ProbeConfig, TestSelection
from .echo import EchoProbe, EchoResult
from .errors import ChannelError, ConfigError, ConnectError, ProbeError, TransferError
from .report import Report
from .speed import SpeedSummary, ThroughputProbe

Connector = Callable[[], Awaitable[Session]]


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Connecting:
    pass


@dataclass(frozen=True)
class Echoing:
    connect_ns: int


@dataclass(frozen=True)
class Transferring:
    connect_ns: int
    echo: Optional[EchoResult]


@dataclass(frozen=True)
class Done:
    report: Report


@dataclass(frozen=True)
class Failed:
    error: ProbeError


RunState = Union[Idle, Connecting, Echoing, Transferring, Done, Failed]
Outcome = Union[None, int, EchoResult, SpeedSummary, ProbeError]


def advance(state: RunState, tests: TestSelection, target: str, outcome: Outcome = None) -> RunState:
    """Return the state that follows *state* once its stage produced *outcome*."""
    if isinstance(state, (Done, Failed)):
        raise RuntimeError(f"Run already finished in state {type(state).__name__}")
    if isinstance(outcome, ProbeError):
        return Failed(outcome)

    if isinstance(state, Idle):
        return Connecting()

    if isinstance(state, Connecting) and isinstance(outcome, int):
        if tests.runs_echo:
            return Echoing(connect_ns=outcome)
        return _after_echo(tests, target, outcome, None)

    if isinstance(state, Echoing) and isinstance(outcome, EchoResult):
        return _after_echo(tests, target, state.connect_ns, outcome)

    if isinstance(state, Transferring) and isinstance(outcome, SpeedSummary):
        return Done(Report(target=target, connect_ns=state.connect_ns,
                           echo=state.echo, speed=outcome))

    raise RuntimeError(
        f"Invalid outcome {type(outcome).__name__} for state {type(state).__name__}"
    )


def _after_echo(
    tests: TestSelection, target: str, connect_ns: int, echo: Optional[EchoResult]
) -> RunState:
    if tests.runs_speed:
        return Transferring(connect_ns=connect_ns, echo=echo)
    return Done(Report(target=target, connect_ns=connect_ns, echo=echo))


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ProbeOrchestrator:
    """
    Drive one run against one target.

    *connect* establishes the session and is timed as the SSH connect time.
    The session is owned exclusively by the orchestrator and closed when the
    run ends, whether it succeeded, failed or was cancelled.
    """

    def __init__(
        self,
        config: ProbeConfig,
        connect: Connector,
        target: str = "",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.target = target
        self.log = logger or logging.getLogger(__name__)
        self.state: RunState = Idle()
        self.on_echo_progress: Optional[Callable[[int, int, float], None]] = None
        self.on_speed_progress: Optional[Callable[[str, int, int], None]] = None
        self._connect = connect
        self._session: Optional[Session] = None

    async def run(self) -> Report:
        """Return the report, or raise the ``ProbeError`` of the failing stage."""
        try:
            self.config.validate()
        except ConfigError as exc:
            self.state = Failed(exc)
            raise

        self.state = advance(self.state, self.config.tests, self.target)
        try:
            while True:
                state = self.state
                if isinstance(state, Done):
                    return state.report
                if isinstance(state, Failed):
                    raise state.error

                try:
                    outcome = await self._execute(state)
                except ProbeError as exc:
                    self.log.debug("Stage %s failed", exc.stage, exc_info=True)
                    outcome = exc
                self.state = advance(state, self.config.tests, self.target, outcome)
        finally:
            self._close_session()

    # -- Stages -------------------------------------------------------------

    async def _execute(self, state: RunState) -> Outcome:
        if isinstance(state, Connecting):
            return await self._run_connect()
        if isinstance(state, Echoing):
            return await self._run_echo()
        if isinstance(state, Transferring):
            return await self._run_speed()
        raise RuntimeError(f"No stage to run in state {type(state).__name__}")

    async def _run_connect(self) -> int:
        self.log.info("Connecting to %s", self.target or "target")
        start = time.perf_counter_ns()
        try:
            self._session = await self._connect()
        except ConnectError:
            raise
        except Exception as exc:
            raise ConnectError(f"Failed to connect to {self.target or 'target'}") from exc
        elapsed = time.perf_counter_ns() - start
        self.log.info("Connected in %.3f ms", elapsed / 1_000_000)
        return elapsed

    async def _run_echo(self) -> EchoResult:
        session = self._require_session()
        try:
            channel = await session.open_duplex(self.config.echo_cmd)
        except ChannelError:
            raise
        except Exception as exc:
            raise ChannelError(f"Cannot start echo command {self.config.echo_cmd!r}") from exc

        probe = EchoProbe(
            char_count=self.config.char_count,
            timeout=self.config.echo_timeout,
            logger=self.log.getChild("echo"),
        )
        probe.on_progress = self.on_echo_progress
        try:
            return await probe.run(channel)
        finally:
            channel.close()

    async def _run_speed(self) -> SpeedSummary:
        session = self._require_session()
        try:
            transport = await session.open_file_transport()
        except TransferError:
            raise
        except Exception as exc:
            raise TransferError("Cannot open file transfer channel") from exc

        probe = ThroughputProbe(
            size=self.config.size,
            chunk_size=self.config.chunk_size,
            remote_path=self.config.resolved_remote_file(),
            logger=self.log.getChild("speed"),
        )
        probe.on_progress = self.on_speed_progress
        try:
            return await probe.run(transport)
        finally:
            transport.close()

    def _require_session(self) -> Session:
        if self._session is None:
            raise RuntimeError("No session; the connect stage has not run")
        return self._session

    def _close_session(self) -> None:
        if self._session is None:
            return
        try:
            self._session.close()
        except Exception as exc:  # noqa: BLE001
            self.log.warning("Error while closing session: %s", exc)
        self._session = None
