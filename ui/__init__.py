"""UI layer -- Rich table, progress display, and output formatters."""

from .dashboard import (
    DEFAULT_TABLE_STYLE,
    TABLE_STYLES,
    ProgressDisplay,
    build_report_table,
    console,
    err_console,
    print_report,
)
from .logging_setup import configure_logging, verbosity_to_level
from .output import (
    Formatter,
    format_ping_summary,
    human_duration,
    human_size,
    report_records,
    report_to_dict,
    save_json,
)

__all__ = [
    "DEFAULT_TABLE_STYLE",
    "Formatter",
    "ProgressDisplay",
    "TABLE_STYLES",
    "build_report_table",
    "configure_logging",
    "console",
    "err_console",
    "format_ping_summary",
    "human_duration",
    "human_size",
    "print_report",
    "report_records",
    "report_to_dict",
    "save_json",
    "verbosity_to_level",
]
