# lock_verify/errors.py
"""
Error types for the lock-order verifier.

Error Hierarchy:
────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│  LockVerifyError (base)                                                     │
│  ├── FatalIOError              - trace file cannot be opened or read        │
│  ├── FatalFormatError          - malformed or inconsistent trace data       │
│  │   ├── TruncatedRecordError      - EOF inside a header or record          │
│  │   ├── StringFormatError         - over-long / unterminated string        │
│  │   ├── InvalidDiscriminantError  - record tag below -1                    │
│  │   ├── UnknownLockError          - ordering record names unknown lock     │
│  │   ├── DuplicateLockError        - lock created twice                     │
│  │   ├── DuplicateThreadError      - same thread number in two files        │
│  │   └── TimestampMismatchError    - files recorded at different times      │
│  └── RecoverableFileMismatch   - file from another process (skipped)        │
└─────────────────────────────────────────────────────────────────────────────┘

Every fatal error aborts the whole run: a partially built order graph can
hide or fabricate ordering violations, so there is no partial-result mode.
``RecoverableFileMismatch`` never escapes the reader; it is caught there and
turned into a skipped file.

Error codes follow the pattern ``LV-XXXX``:
  - 0001-0999: I/O errors
  - 1000-1999: format errors
  - 2000-2999: cross-file consistency errors
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ErrorCode:
    """A stable identifier for one kind of failure."""

    code: str
    name: str
    description: str = ""

    def __str__(self) -> str:
        return self.code


class ErrorCodes:
    """Catalogue of all verifier error codes."""

    OPEN_FAILED = ErrorCode("LV-0001", "openFailed", "trace file cannot be opened")
    READ_FAILED = ErrorCode("LV-0002", "readFailed", "trace file cannot be read")

    TRUNCATED = ErrorCode("LV-1001", "truncatedRecord", "end of file inside a record")
    STRING_TOO_LONG = ErrorCode("LV-1002", "stringTooLong", "string field exceeds bound")
    STRING_UNTERMINATED = ErrorCode(
        "LV-1003", "stringUnterminated", "end of file inside a string field"
    )
    BAD_DISCRIMINANT = ErrorCode("LV-1004", "badDiscriminant", "invalid record tag")
    UNKNOWN_LOCK = ErrorCode("LV-1005", "unknownLock", "ordering record names unknown lock")
    DUPLICATE_LOCK = ErrorCode("LV-1006", "duplicateLock", "lock created twice")

    DUPLICATE_THREAD = ErrorCode(
        "LV-2001", "duplicateThread", "duplicate thread id across files"
    )
    TIME_MISMATCH = ErrorCode(
        "LV-2002", "timeMismatch", "input files from different times"
    )
    PID_MISMATCH = ErrorCode("LV-2003", "pidMismatch", "input file from another process")


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class LockVerifyError(Exception):
    """
    Base exception for all verifier errors.

    Carries the offending trace file and the byte offset at which the
    problem was detected, when known.
    """

    default_code: ErrorCode = ErrorCodes.READ_FAILED
    fatal: bool = True

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        offset: Optional[int] = None,
        code: Optional[ErrorCode] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.offset = offset
        self.code = code or self.default_code

    def with_location(self, path: str, offset: Optional[int] = None) -> "LockVerifyError":
        """Attach a file (and offset) if none was recorded yet."""
        if self.path is None:
            self.path = path
        if self.offset is None:
            self.offset = offset
        return self

    def to_gcc_format(self) -> str:
        """Format as ``path:offset: fatal: message [name]``."""
        loc = ""
        if self.path is not None:
            loc = self.path
            if self.offset is not None:
                loc += f":{self.offset}"
            loc += ": "
        kind = "fatal" if self.fatal else "warning"
        return f"{loc}{kind}: {self.message} [{self.code.name}]"

    def __str__(self) -> str:
        return self.to_gcc_format()


class FatalIOError(LockVerifyError):
    """A trace file could not be opened or read."""

    default_code = ErrorCodes.OPEN_FAILED


class FatalFormatError(LockVerifyError):
    """Trace data is malformed or inconsistent with the rest of the run."""

    default_code = ErrorCodes.TRUNCATED


class TruncatedRecordError(FatalFormatError):
    default_code = ErrorCodes.TRUNCATED


class StringFormatError(FatalFormatError):
    default_code = ErrorCodes.STRING_TOO_LONG


class InvalidDiscriminantError(FatalFormatError):
    default_code = ErrorCodes.BAD_DISCRIMINANT


class UnknownLockError(FatalFormatError):
    default_code = ErrorCodes.UNKNOWN_LOCK


class DuplicateLockError(FatalFormatError):
    default_code = ErrorCodes.DUPLICATE_LOCK


class DuplicateThreadError(FatalFormatError):
    default_code = ErrorCodes.DUPLICATE_THREAD


class TimestampMismatchError(FatalFormatError):
    default_code = ErrorCodes.TIME_MISMATCH


class RecoverableFileMismatch(LockVerifyError):
    """The file was recorded by another process; only this file is skipped."""

    default_code = ErrorCodes.PID_MISMATCH
    fatal = False

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        process_id: int = 0,
        expected_process_id: int = 0,
    ) -> None:
        super().__init__(message, path=path)
        self.process_id = process_id
        self.expected_process_id = expected_process_id


__all__ = [
    "ErrorCode",
    "ErrorCodes",
    "LockVerifyError",
    "FatalIOError",
    "FatalFormatError",
    "TruncatedRecordError",
    "StringFormatError",
    "InvalidDiscriminantError",
    "UnknownLockError",
    "DuplicateLockError",
    "DuplicateThreadError",
    "TimestampMismatchError",
    "RecoverableFileMismatch",
]
