#!/usr/bin/env python3
"""
sshping -- measure SSH echo latency and file transfer speed.

Usage::

    python sshping.py user@host                 # both tests, table output
    python sshping.py host:2222 -r echo -c 500  # echo test only
    python sshping.py host -r speed -s 64       # 64 MB speed test
    python sshping.py host -H -P                # human units + ping summary
    python sshping.py host --format json        # JSON to stdout
    python sshping.py host -o result.json       # save JSON to file
    python sshping.py --set-config size=32      # persist a default
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from probe.config import (
    ProbeConfig,
    TestSelection,
    config_path,
    load_config,
    megabytes_to_bytes,
    parse_config_assignment,
    set_config_value,
)
from probe.constants import DEFAULT_SSH_CONFIG
from probe.errors import ConfigError, ProbeError
from probe.orchestrator import ProbeOrchestrator
from probe.report import Report
from probe.ssh import SshOptions, SshSession, SshTarget
from ui.dashboard import TABLE_STYLES, ProgressDisplay, console, err_console, print_report
from ui.logging_setup import configure_logging
from ui.output import Formatter, format_ping_summary, report_to_dict, save_json

EXIT_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Parameter handling
# ---------------------------------------------------------------------------

def build_config(args: argparse.Namespace) -> ProbeConfig:
    """Translate parsed arguments into a validated ``ProbeConfig``."""
    config = ProbeConfig(
        char_count=args.char_count,
        echo_timeout=args.echo_timeout,
        echo_cmd=args.echo_cmd,
        size=megabytes_to_bytes(args.size),
        chunk_size=args.chunk_size,
        remote_file=args.remote_file,
        tests=TestSelection(args.run_tests),
    )
    config.validate()
    return config


def build_ssh_options(args: argparse.Namespace) -> SshOptions:
    if args.ssh_timeout <= 0:
        raise ConfigError("SSH timeout must be positive")
    return SshOptions(
        target=SshTarget.parse(args.target),
        password=args.password,
        identity=args.identity,
        ssh_config=args.config,
        bind_addr=args.bind_addr,
        timeout=args.ssh_timeout,
    )


# ---------------------------------------------------------------------------
# Core runner
# ---------------------------------------------------------------------------

async def run_sshping(
    config: ProbeConfig,
    options: SshOptions,
    fmt: Formatter,
    logger: logging.Logger,
    show_progress: bool = False,
) -> Report:
    """Connect, run the selected tests and return the report."""

    async def _connect() -> SshSession:
        return await SshSession.connect(options)

    orchestrator = ProbeOrchestrator(config, _connect, target=str(options.target), logger=logger)

    if not show_progress:
        return await orchestrator.run()

    with ProgressDisplay(fmt) as progress:
        orchestrator.on_echo_progress = progress.echo
        orchestrator.on_speed_progress = progress.transfer
        return await orchestrator.run()


def emit_report(report: Report, args: argparse.Namespace, fmt: Formatter) -> None:
    """Render *report* in the requested format and optionally save it."""
    document = report_to_dict(report, fmt)

    if args.format == "json":
        print(json.dumps(document, indent=2))
    else:
        print_report(report, fmt, args.table_style)

    if args.ping_summary:
        summary = format_ping_summary(report)
        if summary:
            print(summary)

    if args.output:
        save_json(document, args.output)
        if args.format != "json":
            console.print(f"[green]Results saved to:[/green] {args.output}")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser(defaults: Dict[str, Any]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sshping",
        description="SSH-based ping that measures interactive character echo "
                    "latency and file transfer throughput.",
    )
    parser.add_argument("target", nargs="?", metavar="[user@]host[:port]", help="Target host")

    # Connection
    parser.add_argument("-b", "--bind-addr", metavar="SOURCE", help="Bind to this SOURCE address")
    parser.add_argument("-f", "--config", metavar="FILE", default=DEFAULT_SSH_CONFIG, help="Read the ssh config file FILE for options (default: ~/.ssh/config)")
    parser.add_argument("-i", "--identity", metavar="FILE", help="Use identity FILE, i.e., ssh private key file")
    parser.add_argument("-p", "--password", metavar="PWD", help="Use password PWD for authentication (not recommended)")
    parser.add_argument("-T", "--ssh-timeout", type=float, default=defaults["ssh_timeout"], metavar="SECONDS", help="Time limit for ssh connection in seconds (default: %(default)s)")

    # Tests
    parser.add_argument("-r", "--run-tests", choices=[t.value for t in TestSelection], default=TestSelection.BOTH.value, metavar="TEST", help="Run TEST: echo, speed or both (default: both)")
    parser.add_argument("-c", "--char-count", type=int, default=defaults["char_count"], metavar="COUNT", help="Number of characters to echo (default: %(default)s)")
    parser.add_argument("-e", "--echo-cmd", default=defaults["echo_cmd"], metavar="CMD", help="Use CMD for echo command (default: %(default)r)")
    parser.add_argument("-t", "--echo-timeout", type=float, default=defaults["echo_timeout"], metavar="SECONDS", help="Per-character echo timeout in seconds")
    parser.add_argument("-s", "--size", type=float, default=defaults["size"], metavar="MB", help="File size for speed test in megabytes (default: %(default)s)")
    parser.add_argument("-u", "--chunk-size", type=int, default=defaults["chunk_size"], metavar="BYTES", help="Chunk size for speed test in bytes (default: %(default)s)")
    parser.add_argument("-z", "--remote-file", default=defaults["remote_file"], metavar="FILE", help="Remote FILE path for speed tests; PID is replaced by the process id (default: %(default)s)")

    # Output
    parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format (default: table)")
    parser.add_argument("--table-style", choices=sorted(TABLE_STYLES), default=defaults["table_style"], help="Table border style (default: %(default)s)")
    parser.add_argument("-o", "--output", metavar="FILE", help="Also save results as JSON to FILE")
    parser.add_argument("-P", "--ping-summary", action="store_true", help="Append measurement in ping-like rtt format")
    parser.add_argument("-H", "--human-readable", action="store_true", default=defaults["human_readable"], help="Use human-friendly units")
    parser.add_argument("-d", "--delimit", default=defaults["delimit"], metavar="CHAR", help="Delimiter for big numbers, e.g. 1,234,567 (default: %(default)r)")
    parser.add_argument("-k", "--key-wait", action="store_true", help="Wait for keyboard input before exiting")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Show verbose output, use multiple for more noise")

    # Stored defaults
    parser.add_argument("--show-config", action="store_true", help="Show stored defaults and exit")
    parser.add_argument("--set-config", action="append", metavar="KEY=VALUE", help="Persist a default and exit")

    return parser


def _config_command(args: argparse.Namespace) -> int:
    if args.set_config:
        for assignment in args.set_config:
            key, value = parse_config_assignment(assignment)
            path = set_config_value(key, value)
        console.print(f"[green]Saved to:[/green] {path}")
    if args.show_config:
        console.print(f"[bold]{config_path()}[/bold]")
        for key, value in load_config().items():
            console.print(f"  {key} = {value!r}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser(load_config())
    args = parser.parse_args(argv)

    logger = configure_logging(args.verbose)

    try:
        if args.show_config or args.set_config:
            return _config_command(args)
        if not args.target:
            parser.error("the target [user@]host[:port] is required")
        config = build_config(args)
        options = build_ssh_options(args)
    except ConfigError as exc:
        err_console.print(f"[red]Error: {exc}[/red]")
        return exc.exit_code

    logger.debug("Options: %s", vars(args) | {"password": "***" if args.password else None})
    fmt = Formatter(human_readable=args.human_readable, delimiter=args.delimit)

    try:
        report = asyncio.run(
            run_sshping(config, options, fmt, logger, show_progress=err_console.is_terminal)
        )
        emit_report(report, args, fmt)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Test cancelled by user[/yellow]")
        return EXIT_INTERRUPTED
    except ProbeError as exc:
        logger.error("Failed to finish %s test: %s", exc.stage, exc.describe())
        return exc.exit_code
    except (IOError, OSError) as exc:
        err_console.print(f"[red]Error: {exc}[/red]")
        return 1

    if args.key_wait:
        input("Press enter to exit...")

    return 0


if __name__ == "__main__":
    sys.exit(main())
