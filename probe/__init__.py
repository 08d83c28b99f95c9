"""sshping measurement engine -- echo latency, transfer throughput, statistics."""

from .channel import DuplexChannel, FileTransport, RemoteFile, Session
from .config import ProbeConfig, TestSelection
from .echo import EchoProbe, EchoResult
from .errors import (
    ChannelError,
    ConfigError,
    ConnectError,
    ProbeError,
    TransferError,
)
from .orchestrator import ProbeOrchestrator
from .report import Report
from .speed import SpeedResult, SpeedSummary, ThroughputProbe, chunk_sizes
from .stats import SampleStatistics, StatsSummary

__all__ = [
    "ChannelError",
    "ConfigError",
    "ConnectError",
    "DuplexChannel",
    "EchoProbe",
    "EchoResult",
    "FileTransport",
    "ProbeConfig",
    "ProbeError",
    "ProbeOrchestrator",
    "RemoteFile",
    "Report",
    "SampleStatistics",
    "Session",
    "SpeedResult",
    "SpeedSummary",
    "StatsSummary",
    "TestSelection",
    "ThroughputProbe",
    "TransferError",
    "chunk_sizes",
]
