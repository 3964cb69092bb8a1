"""
lock_verify: Offline Lock Order Verifier
========================================

Checks lock traces recorded from a multi-threaded program for inconsistent
lock ordering.  Each traced thread writes one binary trace file of lock
creations and "lock A was held when lock B was taken" events; this package
reads all files of one run, builds the locked-before graph over every lock
and reports each cycle in it, since a cycle means two code paths take the
same locks in opposite order and can deadlock.

Core modules
------------
trace_format
    Byte layout of trace files, decoder cursor and encoder.
reader
    Reads trace files into the registry, checking cross-file consistency.
registry
    Lock records, order edges and the key-ordered table they live in.
detector
    Depth-first cycle search over the order graph.
reporter
    Renders cycles (terminal, plain, SARIF, HTML) and computes exit status.
config
    Run configuration from defaults, environment and CLI.
errors
    Error hierarchy: fatal I/O and format errors, recoverable mismatches.

Quick start
-----------
>>> from lock_verify import LockRegistry, LockId, find_cycles
>>> reg = LockRegistry()
>>> a = reg.create_lock(LockId(0, 0), "db.c", 10)
>>> reg.add_order(a.id, a.id, "db.c", 20)
True
>>> [c.length for c in find_cycles(reg)]
[1]
"""

from __future__ import annotations

import logging
from typing import List

__version__ = "1.0.0"
__author__ = "lock-verify contributors"
__license__ = "BSD-3-Clause"

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

from lock_verify.config import VerifierConfig  # noqa: E402
from lock_verify.detector import (  # noqa: E402
    CycleDetector,
    CycleStep,
    OrderCycle,
    TraversalContext,
    find_cycles,
)
from lock_verify.errors import (  # noqa: E402
    FatalFormatError,
    FatalIOError,
    LockVerifyError,
    RecoverableFileMismatch,
)
from lock_verify.reader import TraceFileInfo, TraceReader  # noqa: E402
from lock_verify.registry import (  # noqa: E402
    LockId,
    LockRecord,
    LockRef,
    LockRegistry,
    OrderedTable,
)
from lock_verify.reporter import Reporter, ReporterStats  # noqa: E402
from lock_verify.trace_format import TraceLayout, TraceWriter  # noqa: E402

__all__: List[str] = [
    "__version__",
    "VerifierConfig",
    "CycleDetector",
    "CycleStep",
    "OrderCycle",
    "TraversalContext",
    "find_cycles",
    "FatalFormatError",
    "FatalIOError",
    "LockVerifyError",
    "RecoverableFileMismatch",
    "TraceFileInfo",
    "TraceReader",
    "LockId",
    "LockRecord",
    "LockRef",
    "LockRegistry",
    "OrderedTable",
    "Reporter",
    "ReporterStats",
    "TraceLayout",
    "TraceWriter",
]
