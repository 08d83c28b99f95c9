"""Immutable result of a successful probe run."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .echo import EchoResult
from .speed import SpeedSummary


@dataclass(frozen=True)
class Report:
    """
    What one run measured.

    ``echo`` and ``speed`` are present only when that stage was selected and
    completed.  Times are nanoseconds, sizes bytes, throughput bytes/second.
    """

    target: str
    connect_ns: int
    echo: Optional[EchoResult] = None
    speed: Optional[SpeedSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "target": self.target,
            "connect_ns": self.connect_ns,
        }
        if self.echo is not None:
            result["echo"] = self.echo.to_dict()
        if self.speed is not None:
            result["speed"] = self.speed.to_dict()
        return result
