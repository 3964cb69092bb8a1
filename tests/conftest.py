# tests/conftest.py
"""
Shared helpers for the lock-verify test suite.

Trace files are produced with :class:`lock_verify.trace_format.TraceWriter`
from a compact record description::

    write_trace(path, thread_number=0, records=[
        create(0, 0, "db.c", 10),
        create(0, 1, "db.c", 11),
        order((0, 0), (0, 1), "query.c", 40),
    ])
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import pytest

from lock_verify.registry import LockId, LockRegistry
from lock_verify.trace_format import TraceLayout, TraceWriter

TIMESTAMP = 1_700_000_000
PROCESS_ID = 4242


# ---------------------------------------------------------------------------
# Record descriptions
# ---------------------------------------------------------------------------

def create(thread_id: int, instance: int, file: str = "lock.c", line: int = 1) -> tuple:
    return ("create", thread_id, instance, file, line)


def order(prev: Tuple[int, int], now: Tuple[int, int],
          file: str = "use.c", line: int = 1) -> tuple:
    return ("order", prev, now, file, line)


def raw(data: bytes) -> tuple:
    return ("raw", data)


def encode_trace(
    thread_number: int,
    records: Iterable[tuple] = (),
    timestamp: int = TIMESTAMP,
    process_id: int = PROCESS_ID,
    layout: Optional[TraceLayout] = None,
) -> bytes:
    buf = io.BytesIO()
    w = TraceWriter(buf, layout)
    w.header(timestamp, thread_number, process_id)
    for rec in records:
        kind = rec[0]
        if kind == "create":
            w.create(*rec[1:])
        elif kind == "order":
            w.order(*rec[1:])
        else:
            w.raw(rec[1])
    return buf.getvalue()


def write_trace(path: Path, thread_number: int, records: Iterable[tuple] = (),
                **kwargs) -> str:
    path.write_bytes(encode_trace(thread_number, records, **kwargs))
    return str(path)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------

def build_registry(
    locks: Sequence[Tuple[int, int]],
    edges: Sequence[Tuple[Tuple[int, int], Tuple[int, int]]] = (),
) -> LockRegistry:
    """Registry with *locks* created at ``lock.c:<n>`` and *edges* given as
    ``(taken_first, taken_after)`` pairs witnessed at ``use.c:<n>``."""
    reg = LockRegistry()
    for n, (t, i) in enumerate(locks):
        reg.create_lock(LockId(t, i), "lock.c", 100 + n)
    for n, (prev, now) in enumerate(edges):
        reg.add_order(LockId(*prev), LockId(*now), "use.c", 200 + n)
    return reg


def cycle_ids(cycles) -> List[List[Tuple[int, int]]]:
    return [[tuple(i) for i in c.lock_ids()] for c in cycles]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def trace_dir(tmp_path: Path) -> Path:
    d = tmp_path / "traces"
    d.mkdir()
    return d


@pytest.fixture(autouse=True)
def _reset_lock_verify_logging():
    """The CLI attaches a stderr handler; drop it so later tests start clean."""
    logger = logging.getLogger("lock_verify")
    before = list(logger.handlers)
    level = logger.level
    yield
    for h in list(logger.handlers):
        if h not in before:
            logger.removeHandler(h)
    logger.setLevel(level)
