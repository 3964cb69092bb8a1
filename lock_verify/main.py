#!/usr/bin/env python3
"""lock_verify/main.py: CLI entry-point for the lock order verifier.

Usage examples
--------------
    # Verify the traces of every thread of one run
    lock-verify /tmp/ubtrace.*

    # Same, with progress on stderr and a SARIF report
    python -m lock_verify -v --sarif order.sarif /tmp/ubtrace.*

    # Traces recorded on a big-endian machine with a 32-bit time_t
    lock-verify --byte-order big --timestamp-size 4 trace.0 trace.1

    # Dump the lock order graph for Graphviz
    lock-verify --dot order.dot /tmp/ubtrace.*

Exit codes
----------
    0   No inconsistent lock order found.
    1   No trace files given, or at least one ordering cycle was found.
    2   Fatal error: unreadable or malformed trace file, bad option value.
  130   Interrupted.

The module doubles as ``python -m lock_verify`` via the companion
``lock_verify/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import textwrap
import time
from pathlib import Path
from typing import Optional, Sequence, TextIO

from lock_verify import __version__
from lock_verify.config import BYTE_ORDERS, COLOUR_MODES, VerifierConfig
from lock_verify.detector import CycleDetector
from lock_verify.errors import LockVerifyError
from lock_verify.reader import TraceReader
from lock_verify.reporter import Reporter

_log = logging.getLogger("lock_verify")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_FATAL: int = 2
EXIT_INTERRUPTED: int = 130


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int, quiet: bool = False) -> None:
    """Set up the ``lock_verify`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    quiet:
        Only errors, regardless of *verbosity*.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    if quiet:
        level = logging.ERROR

    root = logging.getLogger("lock_verify")
    root.setLevel(level)
    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        root.addHandler(handler)


def _colour_flag(mode: str) -> Optional[bool]:
    if mode == "always":
        return True
    if mode == "never":
        return False
    return None


# ===========================================================================
# Verification pipeline
# ===========================================================================

def verify(
    paths: Sequence[str],
    config: Optional[VerifierConfig] = None,
    stream: Optional[TextIO] = None,
) -> int:
    """Read *paths*, check the lock order and report.

    Returns the exit code.  Fatal trace errors propagate as
    :class:`~lock_verify.errors.LockVerifyError`.
    """
    config = config or VerifierConfig()
    started = time.time()

    reporter = Reporter(
        stream=stream,
        colour=_colour_flag(config.colour),
        sarif_path=config.sarif_path,
        html_path=config.html_path,
        tool_version=__version__,
    )
    reader = TraceReader(config=config, on_skip=reporter.skipped_file)
    reader.read_files(paths)
    registry = reader.registry

    stats = registry.statistics()
    _log.info("read %d locks of %d threads with %d order edges (%d repeated)",
              stats["locks"], stats["threads"], stats["edges"], stats["duplicate_edges"])

    if config.dot_path:
        Path(config.dot_path).write_text(registry.to_dot(), encoding="utf-8")
        _log.info("order graph written to %s", config.dot_path)

    CycleDetector(registry, on_cycle=reporter.cycle).run()

    reporter.finish(locks_checked=len(registry), elapsed=int(time.time() - started))
    return reporter.exit_code


# ===========================================================================
# Argument parsing
# ===========================================================================

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the lock-verify CLI."""
    parser = argparse.ArgumentParser(
        prog="lock-verify",
        usage="%(prog)s [options] <trace file> [<trace file> ...]",
        description=(
            "Check lock traces for inconsistent lock ordering. "
            "Give one trace file per traced thread."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            environment:
              LOCK_VERIFY_BYTE_ORDER       native, little or big
              LOCK_VERIFY_TIMESTAMP_SIZE   4 or 8
              LOCK_VERIFY_TIME_TOLERANCE   seconds between trace headers
              REPORT_GENERATE_SARIF        write a SARIF report to this path
              REPORT_GENERATE_HTML         write an HTML report to this path
              NO_COLOR                     disable colour
        """),
    )
    parser.add_argument(
        "files",
        nargs="*",
        metavar="<trace file>",
        help="trace files, one per traced thread",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="show progress (-v) or every record read (-vv)",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="only log errors",
    )
    parser.add_argument(
        "--byte-order",
        choices=sorted(BYTE_ORDERS),
        default=None,
        help="byte order of the traces (default: native)",
    )
    parser.add_argument(
        "--timestamp-size",
        type=int,
        choices=(4, 8),
        default=None,
        help="width of the header timestamp in bytes (default: 8)",
    )
    parser.add_argument(
        "--time-tolerance",
        type=int,
        default=None,
        metavar="SECONDS",
        help="allowed distance between trace timestamps (default: 3600)",
    )
    parser.add_argument(
        "--colour", "--color",
        dest="colour",
        choices=COLOUR_MODES,
        default=None,
        help="colourise the report (default: auto)",
    )
    parser.add_argument(
        "--sarif",
        default=None,
        metavar="PATH",
        help="write a SARIF 2.1.0 report",
    )
    parser.add_argument(
        "--html",
        default=None,
        metavar="PATH",
        help="write an HTML report",
    )
    parser.add_argument(
        "--dot",
        default=None,
        metavar="PATH",
        help="write the lock order graph in Graphviz DOT format",
    )
    return parser


# ===========================================================================
# MAIN
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the lock-verify CLI.

    Parameters
    ----------
    argv : sequence of str, optional
        Command-line arguments. Defaults to sys.argv[1:].

    Returns
    -------
    int
        Exit code (see module docstring).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.files:
        parser.print_usage(sys.stdout)
        return EXIT_ERROR

    _configure_logging(args.verbose, args.quiet)

    try:
        config = VerifierConfig.from_env().merged(
            byte_order=args.byte_order,
            timestamp_size=args.timestamp_size,
            time_tolerance=args.time_tolerance,
            colour=args.colour,
            sarif_path=args.sarif,
            html_path=args.html,
            dot_path=args.dot,
            verbosity=args.verbose,
        )
    except ValueError as exc:
        sys.stderr.write(f"{parser.prog}: error: {exc}\n")
        return EXIT_FATAL

    try:
        return verify(args.files, config)
    except LockVerifyError as exc:
        _log.debug("aborting", exc_info=True)
        sys.stderr.write(f"{parser.prog}: {exc.to_gcc_format()}\n")
        return EXIT_FATAL
    except BrokenPipeError:
        # Handle piping to head, etc.; the report is incomplete
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return EXIT_ERROR
    except OSError as exc:
        # report files (--sarif/--html/--dot) that cannot be written
        sys.stderr.write(f"{parser.prog}: error: {exc}\n")
        return EXIT_FATAL
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted.\n")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
