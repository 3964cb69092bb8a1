# lock_verify/trace_format.py
"""
lock_verify.trace_format
========================

Byte layout of lock trace files.

A trace file holds the lock events of one traced thread.  It starts with a
header and is followed by a stream of records, each introduced by a signed
32-bit discriminant::

    header    := timestamp:time  thread_number:int32  process_id:int32
    record    := -1  create_body
               | v   order_body                    (v >= 0)
    create    := thread_id:int32  instance:int32  file:cstring  line:int32
    order     := prev_instance:int32  now_thread:int32  now_instance:int32
                 file:cstring  line:int32

``v`` in an ordering record is the thread id of the lock that was taken
first.  Fields are packed without padding; byte order and the width of the
timestamp follow the platform that recorded the trace and are taken from
:class:`~lock_verify.config.VerifierConfig`.

Public API
----------
    TraceLayout     - struct formats for one byte order / time width
    TraceHeader     - decoded file header
    CreateRecord    - a lock creation event
    OrderRecord     - a "locked before" event
    TraceCursor     - bounds-checked decoder over the bytes of one file
    TraceWriter     - encoder producing trace files (fixtures, synthetic runs)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from lock_verify.config import DEFAULT_MAX_STRING, VerifierConfig
from lock_verify.errors import ErrorCodes, StringFormatError, TruncatedRecordError

CREATE_DISCRIMINANT = -1


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

class TraceLayout:
    """Compiled :mod:`struct` formats for one byte order and time width."""

    __slots__ = ("prefix", "timestamp_size", "max_string",
                 "header", "int32", "create_ids", "order_ids")

    def __init__(
        self,
        prefix: str = "=",
        timestamp_size: int = 8,
        max_string: int = DEFAULT_MAX_STRING,
    ) -> None:
        time_code = "q" if timestamp_size == 8 else "i"
        self.prefix = prefix
        self.timestamp_size = timestamp_size
        self.max_string = max_string
        self.header = struct.Struct(f"{prefix}{time_code}ii")
        self.int32 = struct.Struct(f"{prefix}i")
        self.create_ids = struct.Struct(f"{prefix}ii")
        self.order_ids = struct.Struct(f"{prefix}iii")

    @classmethod
    def from_config(cls, config: VerifierConfig) -> "TraceLayout":
        return cls(config.struct_prefix, config.timestamp_size, config.max_string)

    def __repr__(self) -> str:
        return (
            f"TraceLayout(prefix={self.prefix!r}, "
            f"timestamp_size={self.timestamp_size}, max_string={self.max_string})"
        )


# ---------------------------------------------------------------------------
# Decoded values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TraceHeader:
    timestamp: int
    thread_number: int
    process_id: int


@dataclass(frozen=True)
class CreateRecord:
    thread_id: int
    instance: int
    file: str
    line: int


@dataclass(frozen=True)
class OrderRecord:
    prev_thread_id: int
    prev_instance: int
    now_thread_id: int
    now_instance: int
    file: str
    line: int


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

class TraceCursor:
    """Sequential, bounds-checked reader over the bytes of one trace file.

    Every ``read_*`` method raises :class:`TruncatedRecordError` when the
    data ends inside the requested item; the error carries the offset at
    which the item started.
    """

    def __init__(self, data: bytes, layout: TraceLayout, path: str = "<trace>") -> None:
        self._data = data
        self._layout = layout
        self.path = path
        self.offset = 0

    @property
    def at_end(self) -> bool:
        return self.offset >= len(self._data)

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def _unpack(self, fmt: struct.Struct, what: str) -> tuple:
        end = self.offset + fmt.size
        if end > len(self._data):
            raise TruncatedRecordError(
                f"end of file inside {what}, file too short",
                path=self.path,
                offset=self.offset,
            )
        values = fmt.unpack_from(self._data, self.offset)
        self.offset = end
        return values

    def read_header(self) -> TraceHeader:
        timestamp, thread_number, process_id = self._unpack(self._layout.header, "header")
        return TraceHeader(timestamp, thread_number, process_id)

    def read_int32(self, what: str = "record") -> int:
        return self._unpack(self._layout.int32, what)[0]

    def read_cstring(self, what: str = "string") -> str:
        """Read a zero-terminated string of at most ``max_string`` bytes
        including the terminator."""
        start = self.offset
        limit = self._layout.max_string
        window_end = min(start + limit, len(self._data))
        nul = self._data.find(b"\x00", start, window_end)
        if nul < 0:
            if window_end - start >= limit:
                raise StringFormatError(
                    f"{what} longer than {limit - 1} bytes, bad file format",
                    path=self.path,
                    offset=start,
                )
            raise StringFormatError(
                f"end of file inside {what}, file too short",
                path=self.path,
                offset=start,
                code=ErrorCodes.STRING_UNTERMINATED,
            )
        self.offset = nul + 1
        return self._data[start:nul].decode("utf-8", errors="replace")

    def read_create(self) -> CreateRecord:
        thread_id, instance = self._unpack(self._layout.create_ids, "creation record")
        file = self.read_cstring("creation file name")
        line = self.read_int32("creation record")
        return CreateRecord(thread_id, instance, file, line)

    def read_order(self, prev_thread_id: int) -> OrderRecord:
        prev_instance, now_thread_id, now_instance = self._unpack(
            self._layout.order_ids, "ordering record"
        )
        file = self.read_cstring("witness file name")
        line = self.read_int32("ordering record")
        return OrderRecord(prev_thread_id, prev_instance, now_thread_id, now_instance,
                           file, line)


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------

class TraceWriter:
    """Write a trace file in the layout :class:`TraceCursor` decodes.

    Usage::

        with open("trace.0", "wb") as fh:
            w = TraceWriter(fh)
            w.header(timestamp=1700000000, thread_number=0, process_id=42)
            w.create(0, 0, "lock.c", 10)
            w.create(0, 1, "lock.c", 11)
            w.order((0, 0), (0, 1), "use.c", 20)
    """

    def __init__(self, stream: BinaryIO, layout: Optional[TraceLayout] = None) -> None:
        self._stream = stream
        self._layout = layout or TraceLayout()

    def header(self, timestamp: int, thread_number: int, process_id: int) -> None:
        self._stream.write(self._layout.header.pack(timestamp, thread_number, process_id))

    def create(self, thread_id: int, instance: int, file: Union[str, bytes], line: int) -> None:
        self._stream.write(self._layout.int32.pack(CREATE_DISCRIMINANT))
        self._stream.write(self._layout.create_ids.pack(thread_id, instance))
        self._stream.write(_cstring(file))
        self._stream.write(self._layout.int32.pack(line))

    def order(
        self,
        prev: tuple,
        now: tuple,
        file: Union[str, bytes],
        line: int,
    ) -> None:
        """Record that lock *prev* was held when lock *now* was taken."""
        prev_thread, prev_instance = prev
        now_thread, now_instance = now
        self._stream.write(self._layout.int32.pack(prev_thread))
        self._stream.write(self._layout.order_ids.pack(prev_instance, now_thread, now_instance))
        self._stream.write(_cstring(file))
        self._stream.write(self._layout.int32.pack(line))

    def raw(self, data: bytes) -> None:
        self._stream.write(data)


def _cstring(value: Union[str, bytes]) -> bytes:
    raw = value.encode("utf-8") if isinstance(value, str) else value
    return raw + b"\x00"


__all__ = [
    "CREATE_DISCRIMINANT",
    "TraceLayout",
    "TraceHeader",
    "CreateRecord",
    "OrderRecord",
    "TraceCursor",
    "TraceWriter",
]
