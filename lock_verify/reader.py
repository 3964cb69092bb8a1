# lock_verify/reader.py
"""
lock_verify.reader
==================

Reads lock trace files into a :class:`~lock_verify.registry.LockRegistry`.

Files are consumed in the order given.  The first header read fixes the
reference ``(timestamp, process_id)`` of the run; every later file is
checked against it:

``process_id`` differs
    The file belongs to another run.  It is skipped in full and reported,
    the rest of the run continues.
``thread_number`` already seen
    Fatal: two files claim to trace the same thread.
``timestamp`` further than the tolerance from the reference
    Fatal: the files come from different runs.

Every format problem inside a file is fatal for the whole run; see
:mod:`lock_verify.errors`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Set

from lock_verify.config import VerifierConfig
from lock_verify.errors import (
    DuplicateThreadError,
    FatalFormatError,
    FatalIOError,
    InvalidDiscriminantError,
    RecoverableFileMismatch,
    TimestampMismatchError,
)
from lock_verify.registry import LockId, LockRegistry
from lock_verify.trace_format import (
    CREATE_DISCRIMINANT,
    TraceCursor,
    TraceHeader,
    TraceLayout,
)

_log = logging.getLogger(__name__)


@dataclass
class TraceFileInfo:
    """Outcome of reading one trace file."""

    path: str
    header: Optional[TraceHeader] = None
    skipped: bool = False
    skip_reason: str = ""
    creations: int = 0
    orderings: int = 0
    duplicate_orderings: int = 0


class TraceReader:
    """Parse trace files and feed their events into a registry.

    Parameters
    ----------
    registry : LockRegistry, optional
        Registry to fill; a fresh one is created when omitted.
    config : VerifierConfig, optional
        Byte layout and timestamp tolerance.
    on_skip : callable, optional
        Called with the :class:`RecoverableFileMismatch` of every skipped
        file, after it has been logged.
    """

    def __init__(
        self,
        registry: Optional[LockRegistry] = None,
        config: Optional[VerifierConfig] = None,
        on_skip: Optional[Callable[[RecoverableFileMismatch], None]] = None,
    ) -> None:
        self.registry = registry if registry is not None else LockRegistry()
        self.config = config or VerifierConfig()
        self.layout = TraceLayout.from_config(self.config)
        self.reference: Optional[TraceHeader] = None
        self.threads_seen: Set[int] = set()
        self.files: List[TraceFileInfo] = []
        self._on_skip = on_skip

    # ----- public API -------------------------------------------------------

    def read_files(self, paths: Iterable[str]) -> List[TraceFileInfo]:
        """Read every file in order; stops at the first fatal error."""
        return [self.read_file(path) for path in paths]

    def read_file(self, path: str) -> TraceFileInfo:
        path = str(path)
        data = _load(path)
        info = TraceFileInfo(path=path)
        self.files.append(info)

        cursor = TraceCursor(data, self.layout, path)
        header = cursor.read_header()
        info.header = header
        try:
            self._check_header(header, path)
        except RecoverableFileMismatch as mismatch:
            info.skipped = True
            info.skip_reason = mismatch.message
            _log.warning("%s", mismatch.to_gcc_format())
            if self._on_skip is not None:
                self._on_skip(mismatch)
            return info

        self._read_records(cursor, info)
        _log.info("file %s: %d creations, %d orderings (%d repeated)",
                  path, info.creations, info.orderings, info.duplicate_orderings)
        return info

    # ----- header -----------------------------------------------------------

    def _check_header(self, header: TraceHeader, path: str) -> None:
        if self.reference is None:
            self.reference = header
            self.threads_seen.add(header.thread_number)
            _log.info("file %s: trace %d from pid %d on %s",
                      path, header.thread_number, header.process_id,
                      _format_time(header.timestamp))
            return

        ref = self.reference
        if header.process_id != ref.process_id:
            raise RecoverableFileMismatch(
                f"has pid {header.process_id}, not {ref.process_id}. Skipped.",
                path=path,
                process_id=header.process_id,
                expected_process_id=ref.process_id,
            )
        if header.thread_number in self.threads_seen:
            raise DuplicateThreadError(
                f"same thread number {header.thread_number} in two files",
                path=path,
                offset=0,
            )
        self.threads_seen.add(header.thread_number)
        if abs(ref.timestamp - header.timestamp) > self.config.time_tolerance:
            raise TimestampMismatchError(
                f"input files from different times: {ref.timestamp} {header.timestamp}",
                path=path,
                offset=0,
            )
        _log.info("file %s: trace of thread %d", path, header.thread_number)

    # ----- records ----------------------------------------------------------

    def _read_records(self, cursor: TraceCursor, info: TraceFileInfo) -> None:
        registry = self.registry
        while not cursor.at_end:
            start = cursor.offset
            tag = cursor.read_int32("record discriminant")
            try:
                if tag == CREATE_DISCRIMINANT:
                    rec = cursor.read_create()
                    _log.debug("read create %s %d", rec.file, rec.line)
                    registry.create_lock(LockId(rec.thread_id, rec.instance),
                                         rec.file, rec.line)
                    info.creations += 1
                elif tag >= 0:
                    rec = cursor.read_order(tag)
                    _log.debug("read lock %s %d", rec.file, rec.line)
                    added = registry.add_order(
                        LockId(rec.prev_thread_id, rec.prev_instance),
                        LockId(rec.now_thread_id, rec.now_instance),
                        rec.file,
                        rec.line,
                    )
                    info.orderings += 1
                    if not added:
                        info.duplicate_orderings += 1
                else:
                    raise InvalidDiscriminantError(
                        f"invalid record discriminant {tag}"
                    )
            except FatalFormatError as exc:
                raise exc.with_location(cursor.path, start)


def _load(path: str) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read()
    except OSError as exc:
        raise FatalIOError(
            f"cannot read trace file: {exc.strerror or exc}", path=path
        ) from exc


def _format_time(timestamp: int) -> str:
    try:
        return time.ctime(timestamp)
    except (OverflowError, OSError, ValueError):
        return str(timestamp)


__all__ = [
    "TraceFileInfo",
    "TraceReader",
]
