"""
Rich-based terminal presentation for sshping results.

Unit formatting lives in ``ui.output`` -- this module only does
presentation via the ``rich`` library.  Results go to stdout; progress and
logs go to stderr so ``--format json`` output stays machine-readable.
"""
from __future__ import annotations

from typing import Dict, Optional

from rich import box
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from probe.report import Report
from probe.speed import DOWNLOAD, UPLOAD

from .output import Formatter, report_records

console = Console()
err_console = Console(stderr=True)

TABLE_STYLES: Dict[str, Optional[box.Box]] = {
    "empty": None,
    "blank": box.SIMPLE,
    "ascii": box.ASCII,
    "ascii-rounded": box.ASCII2,
    "markdown": box.MARKDOWN,
    "minimal": box.MINIMAL,
    "sharp": box.SQUARE,
    "rounded": box.ROUNDED,
    "heavy": box.HEAVY,
    "double": box.DOUBLE,
}
DEFAULT_TABLE_STYLE = "rounded"


# ---------------------------------------------------------------------------
# Result table
# ---------------------------------------------------------------------------

def build_report_table(report: Report, fmt: Formatter, style: str = DEFAULT_TABLE_STYLE) -> Table:
    """Test / Metric / Result table; the test name is shown once per group."""
    table = Table(box=TABLE_STYLES.get(style, box.ROUNDED), show_edge=style != "empty")
    table.add_column("Test", style="bold", justify="center")
    table.add_column("Metric", justify="center")
    table.add_column("Result", justify="center", style="cyan")

    records = report_records(report, fmt)
    for i, (test, metric, value) in enumerate(records):
        first = i == 0 or records[i - 1][0] != test
        last = i == len(records) - 1 or records[i + 1][0] != test
        table.add_row(test if first else "", metric, value, end_section=last)
    return table


def print_report(report: Report, fmt: Formatter, style: str = DEFAULT_TABLE_STYLE) -> None:
    console.print(build_report_table(report, fmt, style))


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class ProgressDisplay:
    """Manages a ``rich`` progress bar fed by the probe progress callbacks."""

    def __init__(self, fmt: Formatter) -> None:
        self.fmt = fmt
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[detail]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=err_console,
            transient=True,
        )
        self._tasks: Dict[str, TaskID] = {}

    def __enter__(self) -> ProgressDisplay:
        self.progress.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.progress.stop()

    def echo(self, sent: int, total: int, mean_ns: float) -> None:
        self._update("Echo", sent, total, f"avg {self.fmt.format_duration(mean_ns)}")

    def transfer(self, phase: str, done: int, total: int) -> None:
        label = {UPLOAD: "Upload", DOWNLOAD: "Download"}.get(phase, phase)
        detail = f"{self.fmt.format_size(done)} / {self.fmt.format_size(total)}"
        self._update(label, done, total, detail)

    def _update(self, description: str, completed: int, total: int, detail: str) -> None:
        task_id = self._tasks.get(description)
        if task_id is None:
            task_id = self.progress.add_task(description, total=total, detail="")
            self._tasks[description] = task_id
        self.progress.update(task_id, completed=completed, detail=detail)
