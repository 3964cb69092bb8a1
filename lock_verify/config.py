# lock_verify/config.py
"""
Run configuration for the verifier.

Values come from three places, later ones winning:

1. built-in defaults (native byte order, 8-byte ``time_t``, one hour of
   timestamp tolerance, 1024-byte strings),
2. environment variables (see :meth:`VerifierConfig.from_env`),
3. command-line options, applied by :mod:`lock_verify.main`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

BYTE_ORDERS = {
    "native": "=",
    "little": "<",
    "big": ">",
}

COLOUR_MODES = ("auto", "always", "never")

DEFAULT_TIME_TOLERANCE = 3600
DEFAULT_MAX_STRING = 1024
DEFAULT_TIMESTAMP_SIZE = 8


@dataclass(frozen=True)
class VerifierConfig:
    """Settings shared by the reader, the reporter and the CLI."""

    byte_order: str = "native"
    timestamp_size: int = DEFAULT_TIMESTAMP_SIZE
    time_tolerance: int = DEFAULT_TIME_TOLERANCE
    max_string: int = DEFAULT_MAX_STRING
    colour: str = "auto"
    sarif_path: Optional[str] = None
    html_path: Optional[str] = None
    dot_path: Optional[str] = None
    verbosity: int = 0

    def __post_init__(self) -> None:
        if self.byte_order not in BYTE_ORDERS:
            raise ValueError(
                f"byte order must be one of {', '.join(BYTE_ORDERS)}, "
                f"not {self.byte_order!r}"
            )
        if self.timestamp_size not in (4, 8):
            raise ValueError(f"timestamp size must be 4 or 8, not {self.timestamp_size}")
        if self.time_tolerance < 0:
            raise ValueError("time tolerance must not be negative")
        if self.max_string < 2:
            raise ValueError("string bound must leave room for the terminator")
        if self.colour not in COLOUR_MODES:
            raise ValueError(f"colour must be one of {', '.join(COLOUR_MODES)}")

    @property
    def struct_prefix(self) -> str:
        """The :mod:`struct` byte-order character for this configuration."""
        return BYTE_ORDERS[self.byte_order]

    def merged(self, **overrides: object) -> "VerifierConfig":
        """Return a copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VerifierConfig":
        """Build a configuration from environment variables.

        Recognised variables
        --------------------
        ``LOCK_VERIFY_BYTE_ORDER``      native / little / big
        ``LOCK_VERIFY_TIMESTAMP_SIZE``  4 or 8
        ``LOCK_VERIFY_TIME_TOLERANCE``  seconds
        ``REPORT_GENERATE_SARIF``       path of a SARIF file to write
        ``REPORT_GENERATE_HTML``        path of an HTML report to write
        ``NO_COLOR``                    disables colour when set
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        byte_order = env.get("LOCK_VERIFY_BYTE_ORDER", "").strip().lower()
        if byte_order:
            kwargs["byte_order"] = byte_order

        ts_size = env.get("LOCK_VERIFY_TIMESTAMP_SIZE", "").strip()
        if ts_size:
            kwargs["timestamp_size"] = _parse_int("LOCK_VERIFY_TIMESTAMP_SIZE", ts_size)

        tolerance = env.get("LOCK_VERIFY_TIME_TOLERANCE", "").strip()
        if tolerance:
            kwargs["time_tolerance"] = _parse_int("LOCK_VERIFY_TIME_TOLERANCE", tolerance)

        if env.get("REPORT_GENERATE_SARIF"):
            kwargs["sarif_path"] = env["REPORT_GENERATE_SARIF"]
        if env.get("REPORT_GENERATE_HTML"):
            kwargs["html_path"] = env["REPORT_GENERATE_HTML"]
        if env.get("NO_COLOR") is not None:
            kwargs["colour"] = "never"

        return cls(**kwargs)


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw, 10)
    except ValueError:
        raise ValueError(f"{name} must be an integer, not {raw!r}") from None


__all__ = [
    "BYTE_ORDERS",
    "COLOUR_MODES",
    "DEFAULT_MAX_STRING",
    "DEFAULT_TIME_TOLERANCE",
    "DEFAULT_TIMESTAMP_SIZE",
    "VerifierConfig",
]
