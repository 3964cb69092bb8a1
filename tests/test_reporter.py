# tests/test_reporter.py
"""
Tests for cycle rendering, SARIF / HTML output and exit status.
"""

import io
import json

from lock_verify.detector import find_cycles
from lock_verify.errors import RecoverableFileMismatch
from lock_verify.reporter import RULE_ID, Reporter, ReporterStats, cycle_lines
from tests.conftest import build_registry


def _self_loop():
    return find_cycles(build_registry([(0, 0)], [((0, 0), (0, 0))]))[0]


def _inversion():
    reg = build_registry([(0, 0), (0, 1)], [((0, 0), (0, 1)), ((0, 1), (0, 0))])
    return find_cycles(reg)[0]


class TestTextLayout:

    def test_self_loop_block(self):
        assert cycle_lines(_self_loop()) == [
            "Found inconsistent locking order of length 1",
            "for lock 0 0 created lock.c 100",
            "sequence is:",
            "[0] is locked at line use.c 200 before lock 0 0",
            "[0] lock 0 0 is created at lock.c 100",
        ]

    def test_each_step_has_its_own_witness(self):
        lines = cycle_lines(_inversion())
        assert lines[0] == "Found inconsistent locking order of length 2"
        assert lines[1] == "for lock 0 0 created lock.c 100"
        assert lines[3] == "[0] is locked at line use.c 200 before lock 0 1"
        assert lines[4] == "[0] lock 0 1 is created at lock.c 101"
        assert lines[5] == "[1] is locked at line use.c 201 before lock 0 0"
        assert lines[6] == "[1] lock 0 0 is created at lock.c 100"

    def test_summary_line(self):
        stats = ReporterStats(errors=2, locks_checked=7, elapsed=3)
        assert stats.summary_line() == "checked 7 locks in 3 seconds with 2 errors."


class TestReporter:

    def test_plain_output(self):
        out = io.StringIO()
        rep = Reporter(stream=out, colour=False)
        rep.cycle(_self_loop())
        rep.finish(locks_checked=1, elapsed=0)
        assert out.getvalue() == (
            "Found inconsistent locking order of length 1\n"
            "for lock 0 0 created lock.c 100\n"
            "sequence is:\n"
            "[0] is locked at line use.c 200 before lock 0 0\n"
            "[0] lock 0 0 is created at lock.c 100\n"
            "checked 1 locks in 0 seconds with 1 errors.\n"
        )

    def test_exit_code(self):
        rep = Reporter(stream=io.StringIO(), colour=False)
        assert rep.exit_code == 0
        rep.cycle(_self_loop())
        assert rep.exit_code == 1
        assert rep.stats.errors == 1

    def test_clean_run_summary(self):
        out = io.StringIO()
        rep = Reporter(stream=out, colour=False)
        stats = rep.finish(locks_checked=12, elapsed=1)
        assert stats.errors == 0
        assert out.getvalue() == "checked 12 locks in 1 seconds with 0 errors.\n"

    def test_stream_without_tty_is_plain(self):
        out = io.StringIO()
        rep = Reporter(stream=out)
        rep.cycle(_self_loop())
        assert "\x1b[" not in out.getvalue()

    def test_colour_output_keeps_text(self):
        out = io.StringIO()
        rep = Reporter(stream=out, colour=True)
        rep.cycle(_inversion())
        rep.finish(locks_checked=2, elapsed=0)
        text = out.getvalue()
        assert "\x1b[" in text
        assert "Found inconsistent locking order of length 2" in text
        assert "use.c 201" in text
        assert RULE_ID in text
        assert "checked 2 locks in 0 seconds with 1 errors." in text

    def test_skipped_file_note(self):
        out = io.StringIO()
        rep = Reporter(stream=out, colour=False)
        rep.skipped_file(RecoverableFileMismatch(
            "has pid 7, not 8. Skipped.", path="t1", process_id=7, expected_process_id=8,
        ))
        assert out.getvalue() == "file t1 has pid 7, not 8. Skipped.\n"
        assert rep.stats.skipped_files == 1
        assert rep.exit_code == 0


class TestSarif:

    def test_sarif_file(self, tmp_path):
        path = tmp_path / "out.sarif"
        rep = Reporter(stream=io.StringIO(), colour=False, sarif_path=str(path),
                       tool_version="9.9")
        rep.cycle(_inversion())
        rep.finish(locks_checked=2, elapsed=0)
        doc = json.loads(path.read_text(encoding="utf-8"))
        assert doc["version"] == "2.1.0"
        run = doc["runs"][0]
        assert run["tool"]["driver"]["name"] == "lock-verify"
        assert run["tool"]["driver"]["version"] == "9.9"
        (result,) = run["results"]
        assert result["ruleId"] == RULE_ID
        loc = result["locations"][0]["physicalLocation"]
        assert loc["artifactLocation"]["uri"] == "lock.c"
        assert loc["region"]["startLine"] == 100
        assert [r["physicalLocation"]["region"]["startLine"]
                for r in result["relatedLocations"]] == [200, 201]
        assert result["properties"]["cycleLength"] == 2
        assert result["properties"]["locks"] == [[0, 1], [0, 0]]

    def test_sarif_written_for_clean_run(self, tmp_path):
        path = tmp_path / "out.sarif"
        rep = Reporter(stream=io.StringIO(), colour=False, sarif_path=str(path))
        rep.finish(locks_checked=0, elapsed=0)
        doc = json.loads(path.read_text(encoding="utf-8"))
        assert doc["runs"][0]["results"] == []


class TestHtml:

    def test_html_report(self, tmp_path):
        path = tmp_path / "out.html"
        rep = Reporter(stream=io.StringIO(), colour=False, html_path=str(path))
        rep.skipped_file(RecoverableFileMismatch("has pid 7, not 8. Skipped.", path="t<1>"))
        rep.cycle(_inversion())
        rep.finish(locks_checked=2, elapsed=0)
        html = path.read_text(encoding="utf-8")
        assert html.startswith("<!DOCTYPE html>")
        assert "Found inconsistent locking order of length 2" in html
        assert "use.c:201" in html
        assert "t&lt;1&gt;" in html
        assert "checked 2 locks in 0 seconds with 1 errors." in html
