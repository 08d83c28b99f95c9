"""
Output formatting -- units, JSON document, and ping-style summary.
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple

from probe.constants import NANOS_PER_MILLI
from probe.echo import EchoResult
from probe.report import Report
from probe.speed import SpeedResult


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

_DURATION_UNITS: List[Tuple[str, int]] = [
    ("h", 3_600_000_000_000),
    ("m", 60_000_000_000),
    ("s", 1_000_000_000),
    ("ms", 1_000_000),
    ("us", 1_000),
    ("ns", 1),
]

_SIZE_UNITS = ["kB", "MB", "GB", "TB"]


class Formatter:
    """
    Render durations and sizes either as exact integers with a thousands
    delimiter (``1,234,567ns``) or in human-friendly units (``1ms 234us``).
    """

    def __init__(self, human_readable: bool = False, delimiter: Optional[str] = ",") -> None:
        self.human_readable = human_readable
        self.delimiter = delimiter or ""

    def format_number(self, value: int) -> str:
        return f"{value:,}".replace(",", self.delimiter)

    def format_duration(self, nanos: float) -> str:
        ns = int(round(nanos))
        if not self.human_readable:
            return self.format_number(ns) + "ns"
        return human_duration(ns)

    def format_size(self, size: float) -> str:
        n = int(size)
        if not self.human_readable:
            return self.format_number(n) + " B"
        return human_size(n)

    def format_rate(self, bytes_per_second: float) -> str:
        return self.format_size(bytes_per_second) + "/s"


def human_duration(nanos: int) -> str:
    """The two most significant units, ``humantime`` style."""
    if nanos <= 0:
        return "0s"
    parts = []
    remaining = nanos
    for unit, size in _DURATION_UNITS:
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count}{unit}")
    return " ".join(parts[:2])


def human_size(size: int) -> str:
    """Base-10 abbreviated size: ``999 B``, ``1.50 kB``, ``8.00 MB``."""
    if size < 1000:
        return f"{size} B"
    value = float(size)
    for unit in _SIZE_UNITS:
        value /= 1000
        if value < 1000 or unit == _SIZE_UNITS[-1]:
            return f"{value:.2f} {unit}"
    raise AssertionError("unreachable")


# ---------------------------------------------------------------------------
# Records (Test / Metric / Result rows)
# ---------------------------------------------------------------------------

def report_records(report: Report, fmt: Formatter) -> List[Tuple[str, str, str]]:
    """Flatten *report* into table rows grouped by test."""
    rows = [("SSH", "Connect time", fmt.format_duration(report.connect_ns))]

    if report.echo is not None:
        rows.extend(_echo_records(report.echo, fmt))

    if report.speed is not None:
        rows.append(("Speed", "Upload", fmt.format_rate(report.speed.upload.throughput)))
        rows.append(("Speed", "Download", fmt.format_rate(report.speed.download.throughput)))

    return rows


def _echo_records(echo: EchoResult, fmt: Formatter) -> List[Tuple[str, str, str]]:
    sent = f"{fmt.format_number(echo.char_sent)}/{fmt.format_number(echo.char_count)}"
    if echo.timed_out:
        sent += " (timed out)"
    rows = [("Latency", "Characters echoed", sent)]

    lat = echo.latency
    if lat is None:
        rows.append(("Latency", "Average", "no data"))
        return rows

    rows.extend([
        ("Latency", "Average", fmt.format_duration(lat.mean)),
        ("Latency", "Std deviation", fmt.format_duration(lat.std)),
        ("Latency", "Median", fmt.format_duration(lat.median)),
        ("Latency", "Minimum", fmt.format_duration(lat.min)),
        ("Latency", "Maximum", fmt.format_duration(lat.max)),
    ])
    return rows


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def report_to_dict(report: Report, fmt: Formatter) -> Dict[str, Any]:
    """Structured document with formatted values, plus the raw numbers."""
    result: Dict[str, Any] = {
        "target": report.target,
        "ssh_connect_time": fmt.format_duration(report.connect_ns),
    }

    echo = report.echo
    if echo is not None:
        lat = echo.latency
        result["echo_test"] = {
            "char_count": echo.char_count,
            "char_sent": echo.char_sent,
            "timed_out": echo.timed_out,
            "avg_latency": fmt.format_duration(lat.mean) if lat else None,
            "std_latency": fmt.format_duration(lat.std) if lat else None,
            "med_latency": fmt.format_duration(lat.median) if lat else None,
            "min_latency": fmt.format_duration(lat.min) if lat else None,
            "max_latency": fmt.format_duration(lat.max) if lat else None,
        }

    if report.speed is not None:
        result["speed_test"] = {
            "upload": _speed_dict(report.speed.upload, fmt),
            "download": _speed_dict(report.speed.download, fmt),
        }

    result["raw"] = report.to_dict()
    return result


def _speed_dict(speed: SpeedResult, fmt: Formatter) -> Dict[str, Any]:
    return {
        "size": fmt.format_size(speed.size),
        "time": fmt.format_duration(speed.elapsed_ns),
        "speed": fmt.format_rate(speed.throughput),
    }


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except (IOError, OSError) as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise IOError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Ping-style summary
# ---------------------------------------------------------------------------

def format_ping_summary(report: Report) -> Optional[str]:
    """
    ``ping``-like trailer, e.g.::

        --- me@host sshping statistics ---
        1000 characters sent, 1000 echoed, 0.0% lost
        rtt min/avg/max/mdev = 0.412/0.538/2.104/0.093 ms

    ``None`` when the echo test did not run.
    """
    echo = report.echo
    if echo is None:
        return None

    attempted = echo.attempted
    lost_pct = 100.0 * (attempted - echo.char_sent) / attempted if attempted else 0.0
    lines = [
        f"--- {report.target} sshping statistics ---",
        f"{attempted} characters sent, {echo.char_sent} echoed, {lost_pct:.1f}% lost",
    ]
    lat = echo.latency
    if lat is not None:
        values = (lat.min, lat.mean, lat.max, lat.std)
        lines.append(
            "rtt min/avg/max/mdev = "
            + "/".join(f"{v / NANOS_PER_MILLI:.3f}" for v in values)
            + " ms"
        )
    return "\n".join(lines)
