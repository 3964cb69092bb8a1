#!/usr/bin/env python3
"""
lock_verify/reporter.py
═══════════════════════

Diagnostic reporter for lock order cycles.

Output formats
──────────────
  • Terminal : colourful rendering via ``termcolor`` (TTY or forced)
  • Plain    : the classic text lines, one block per cycle
  • SARIF    : if a SARIF path is configured ($REPORT_GENERATE_SARIF / --sarif)
  • HTML     : if an HTML path is configured ($REPORT_GENERATE_HTML / --html)

Every cycle is rendered as::

    Found inconsistent locking order of length 2
    for lock 0 1 created db.c 11
    sequence is:
    [0] is locked at line query.c 40 before lock 0 0
    [0] lock 0 0 is created at db.c 10
    [1] is locked at line flush.c 12 before lock 0 1
    [1] lock 0 1 is created at db.c 11

Usage
─────
    rep = Reporter(stream=sys.stdout)
    CycleDetector(registry, on_cycle=rep.cycle).run()
    stats = rep.finish(locks_checked=len(registry), elapsed=3)
    sys.exit(rep.exit_code)
"""

from __future__ import annotations

import json
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

import jinja2
from termcolor import colored

from lock_verify.detector import OrderCycle
from lock_verify.errors import RecoverableFileMismatch

RULE_ID = "inconsistentLockOrder"
RULE_DESCRIPTION = "locks are taken in inconsistent order, threads may deadlock"


# ═════════════════════════════════════════════════════════════════════════
#  STATS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class ReporterStats:
    """Aggregate counts of one verification run."""

    errors: int = 0
    skipped_files: int = 0
    locks_checked: int = 0
    elapsed: int = 0

    def summary_line(self) -> str:
        return (
            f"checked {self.locks_checked} locks in {self.elapsed} seconds "
            f"with {self.errors} errors."
        )


# ═════════════════════════════════════════════════════════════════════════
#  TEXT LAYOUT
# ═════════════════════════════════════════════════════════════════════════

def cycle_lines(cycle: OrderCycle) -> List[str]:
    """The uncoloured text block describing *cycle*."""
    head = cycle.head
    lines = [
        f"Found inconsistent locking order of length {cycle.length}",
        f"for lock {head.id} created {head.creation_site}",
        "sequence is:",
    ]
    for i, step in enumerate(cycle.steps):
        nxt = step.lock
        lines.append(
            f"[{i}] is locked at line {step.witness_file} {step.witness_line} "
            f"before lock {nxt.id}"
        )
        lines.append(f"[{i}] lock {nxt.id} is created at {nxt.creation_site}")
    return lines


# ═════════════════════════════════════════════════════════════════════════
#  RENDERERS
# ═════════════════════════════════════════════════════════════════════════

class _PlainRenderer:
    """Non-coloured renderer for log files and pipes."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def cycle(self, cycle: OrderCycle) -> None:
        self._stream.write("\n".join(cycle_lines(cycle)) + "\n")
        self._stream.flush()

    def skipped(self, mismatch: RecoverableFileMismatch) -> None:
        self._stream.write(f"file {mismatch.path} {mismatch.message}\n")

    def summary(self, stats: ReporterStats) -> None:
        self._stream.write(stats.summary_line() + "\n")
        self._stream.flush()


class _TerminalRenderer:
    """Render cycles to a terminal with colours."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def cycle(self, cycle: OrderCycle) -> None:
        head = cycle.head
        lines: List[str] = []
        title = _paint(f"error[{RULE_ID}]", "red", attrs=["bold"])
        lines.append(
            f"{title}: "
            + _paint(f"Found inconsistent locking order of length {cycle.length}",
                      "white", attrs=["bold"])
        )
        arrow = _paint("-->", "blue", attrs=["bold"])
        lines.append(f"  {arrow} for lock {_paint(str(head.id), 'yellow')} "
                     f"created {head.creation_site}")
        lines.append("  sequence is:")
        for i, step in enumerate(cycle.steps):
            nxt = step.lock
            idx = _paint(f"[{i}]", "cyan", attrs=["bold"])
            lines.append(
                f"  {idx} is locked at line {step.witness_file} {step.witness_line} "
                f"before lock {_paint(str(nxt.id), 'yellow')}"
            )
            lines.append(
                f"  {idx} lock {_paint(str(nxt.id), 'yellow')} is created at "
                f"{nxt.creation_site}"
            )
        lines.append("")
        self._stream.write("\n".join(lines) + "\n")
        self._stream.flush()

    def skipped(self, mismatch: RecoverableFileMismatch) -> None:
        prefix = _paint("note", "cyan", attrs=["bold"])
        self._stream.write(f"{prefix}: file {mismatch.path} {mismatch.message}\n")

    def summary(self, stats: ReporterStats) -> None:
        colour = "red" if stats.errors else "green"
        self._stream.write(
            _paint(f"  ╰─ {stats.summary_line()}", colour, attrs=["bold"]) + "\n"
        )
        self._stream.flush()


# ═════════════════════════════════════════════════════════════════════════
#  SARIF 2.1.0 BUILDER
# ═════════════════════════════════════════════════════════════════════════

class _SarifBuilder:
    """Accumulates cycles and writes a SARIF 2.1.0 JSON file."""

    SARIF_VERSION = "2.1.0"
    SARIF_SCHEMA = (
        "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
        "Schemata/sarif-schema-2.1.0.json"
    )

    def __init__(self) -> None:
        self._results: List[Dict[str, Any]] = []

    def add(self, cycle: OrderCycle) -> None:
        head = cycle.head
        result: Dict[str, Any] = {
            "ruleId": RULE_ID,
            "level": "error",
            "message": {
                "text": (
                    f"inconsistent locking order of length {cycle.length} "
                    f"for lock {head.id}"
                )
            },
            "locations": [_sarif_location(head.creation_file, head.creation_line)],
        }
        related: List[Dict[str, Any]] = []
        for idx, step in enumerate(cycle.steps):
            entry = _sarif_location(step.witness_file, step.witness_line)
            entry["id"] = idx
            entry["message"] = {"text": f"locked here before lock {step.lock.id}"}
            related.append(entry)
        if related:
            result["relatedLocations"] = related
        result["properties"] = {
            "cycleLength": cycle.length,
            "locks": [list(lock_id) for lock_id in cycle.lock_ids()],
        }
        self._results.append(result)

    def to_json(self, tool_name: str, version: str) -> str:
        sarif: Dict[str, Any] = {
            "$schema": self.SARIF_SCHEMA,
            "version": self.SARIF_VERSION,
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": tool_name,
                            "version": version,
                            "rules": [
                                {
                                    "id": RULE_ID,
                                    "shortDescription": {"text": RULE_DESCRIPTION},
                                }
                            ],
                        }
                    },
                    "results": self._results,
                }
            ],
        }
        return json.dumps(sarif, indent=2)

    def write(self, path: str, tool_name: str, version: str) -> None:
        Path(path).write_text(self.to_json(tool_name, version), encoding="utf-8")


def _sarif_location(file: str, line: int) -> Dict[str, Any]:
    region: Dict[str, Any] = {}
    if line > 0:
        region["startLine"] = line
    phys: Dict[str, Any] = {"artifactLocation": {"uri": file}}
    if region:
        phys["region"] = region
    return {"physicalLocation": phys}


# ═════════════════════════════════════════════════════════════════════════
#  HTML BUILDER
# ═════════════════════════════════════════════════════════════════════════

class _HtmlBuilder:
    """Accumulates cycles and renders an HTML report via Jinja2."""

    def __init__(self) -> None:
        self._cycles: List[Dict[str, Any]] = []
        self._skipped: List[Dict[str, str]] = []

    def add(self, cycle: OrderCycle) -> None:
        self._cycles.append({
            "length": cycle.length,
            "head": str(cycle.head.id),
            "head_site": cycle.head.creation_site,
            "steps": [
                {
                    "witness": f"{s.witness_file}:{s.witness_line}",
                    "lock": str(s.lock.id),
                    "created": s.lock.creation_site,
                }
                for s in cycle.steps
            ],
        })

    def add_skipped(self, mismatch: RecoverableFileMismatch) -> None:
        self._skipped.append({"path": mismatch.path or "", "reason": mismatch.message})

    def render(self, stats: ReporterStats) -> str:
        env = jinja2.Environment(autoescape=True)
        tmpl = env.from_string(_HTML_TEMPLATE)
        return tmpl.render(cycles=self._cycles, skipped=self._skipped, stats=stats)

    def write(self, path: str, stats: ReporterStats) -> None:
        Path(path).write_text(self.render(stats), encoding="utf-8")


# ═════════════════════════════════════════════════════════════════════════
#  REPORTER  (main entry point)
# ═════════════════════════════════════════════════════════════════════════

class Reporter:
    """
    Counts ordering violations and renders them.

    ``cycle`` is meant to be handed to :class:`CycleDetector` as its
    ``on_cycle`` callback, ``skipped_file`` to :class:`TraceReader` as its
    ``on_skip`` callback.
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        colour: Optional[bool] = None,
        sarif_path: Optional[str] = None,
        html_path: Optional[str] = None,
        tool_name: str = "lock-verify",
        tool_version: str = "1.0.0",
    ) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.stats = ReporterStats()
        self.cycles: List[OrderCycle] = []

        use_colour = colour if colour is not None else _isatty(self.stream)
        if use_colour:
            self._renderer: Union[_TerminalRenderer, _PlainRenderer] = \
                _TerminalRenderer(self.stream)
        else:
            self._renderer = _PlainRenderer(self.stream)

        self._sarif_path = sarif_path
        self._sarif = _SarifBuilder() if sarif_path else None
        self._html_path = html_path
        self._html = _HtmlBuilder() if html_path else None

    # ── events ───────────────────────────────────────────────────────

    def cycle(self, cycle: OrderCycle) -> None:
        """Record and render one ordering violation."""
        self.stats.errors += 1
        self.cycles.append(cycle)
        self._renderer.cycle(cycle)
        if self._sarif is not None:
            self._sarif.add(cycle)
        if self._html is not None:
            self._html.add(cycle)

    def skipped_file(self, mismatch: RecoverableFileMismatch) -> None:
        self.stats.skipped_files += 1
        self._renderer.skipped(mismatch)
        if self._html is not None:
            self._html.add_skipped(mismatch)

    # ── finalisation ─────────────────────────────────────────────────

    @property
    def exit_code(self) -> int:
        return 1 if self.stats.errors else 0

    def finish(self, locks_checked: int, elapsed: int) -> ReporterStats:
        """Print the summary line and write SARIF / HTML if configured."""
        self.stats.locks_checked = locks_checked
        self.stats.elapsed = elapsed
        self._renderer.summary(self.stats)

        if self._sarif is not None and self._sarif_path:
            self._sarif.write(self._sarif_path, self.tool_name, self.tool_version)
        if self._html is not None and self._html_path:
            self._html.write(self._html_path, self.stats)
        return self.stats


def _paint(text: str, color: Optional[str] = None, attrs: Optional[List[str]] = None) -> str:
    # the terminal renderer is only chosen when colour is wanted
    return colored(text, color, attrs=attrs, force_color=True)


def _isatty(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


# ═════════════════════════════════════════════════════════════════════════
#  HTML TEMPLATE
# ═════════════════════════════════════════════════════════════════════════

_HTML_TEMPLATE = textwrap.dedent("""\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Lock Order Report</title>
  <style>
    body { font-family: monospace; background: #1e1e2e; color: #cdd6f4; padding: 2rem; }
    .card { background: #313244; border-left: 4px solid #f38ba8;
            border-radius: 8px; padding: 1rem; margin-bottom: 1rem; }
    .note { border-left-color: #89dceb; }
    .site { color: #89b4fa; }
    .summary { margin-top: 2rem; text-align: center; }
  </style>
</head>
<body>
  <h1>Lock Order Report</h1>
  {% for s in skipped %}
  <div class="card note">file {{ s.path }} {{ s.reason }}</div>
  {% endfor %}
  {% for c in cycles %}
  <div class="card">
    <div>Found inconsistent locking order of length {{ c.length }}</div>
    <div>for lock {{ c.head }} created <span class="site">{{ c.head_site }}</span></div>
    <ol start="0">
    {% for st in c.steps %}
      <li>locked at <span class="site">{{ st.witness }}</span> before lock {{ st.lock }}
          (created <span class="site">{{ st.created }}</span>)</li>
    {% endfor %}
    </ol>
  </div>
  {% endfor %}
  <div class="summary">{{ stats.summary_line() }}</div>
</body>
</html>
""")


__all__ = [
    "RULE_ID",
    "Reporter",
    "ReporterStats",
    "cycle_lines",
]
