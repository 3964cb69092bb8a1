# tests/test_cli.py
"""
End-to-end tests of the lock-verify command line.
"""

import json

import pytest

from lock_verify.main import EXIT_ERROR, EXIT_FATAL, EXIT_OK, build_parser, main
from tests.conftest import create, order, write_trace


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("LOCK_VERIFY_BYTE_ORDER", "LOCK_VERIFY_TIMESTAMP_SIZE",
                 "LOCK_VERIFY_TIME_TOLERANCE", "REPORT_GENERATE_SARIF",
                 "REPORT_GENERATE_HTML"):
        monkeypatch.delenv(name, raising=False)


def _consistent(trace_dir):
    return [
        write_trace(trace_dir / "t0", 0, [
            create(0, 0, "db.c", 10),
            create(0, 1, "db.c", 11),
            order((0, 0), (0, 1), "query.c", 40),
        ]),
        write_trace(trace_dir / "t1", 1),
    ]


def _inverted(trace_dir):
    return [
        write_trace(trace_dir / "t0", 0, [
            create(0, 0, "db.c", 10),
            create(0, 1, "db.c", 11),
            order((0, 0), (0, 1), "query.c", 40),
        ]),
        write_trace(trace_dir / "t1", 1, [
            order((0, 1), (0, 0), "flush.c", 12),
        ]),
    ]


class TestArguments:

    def test_no_files_prints_usage(self, capsys):
        assert main([]) == EXIT_ERROR
        out = capsys.readouterr().out
        assert out.startswith("usage: lock-verify")

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["--version"])
        assert info.value.code == 0
        assert "lock-verify" in capsys.readouterr().out

    def test_parser_options(self):
        args = build_parser().parse_args(
            ["-vv", "--byte-order", "big", "--timestamp-size", "4", "--color", "never", "a"]
        )
        assert args.verbose == 2
        assert args.byte_order == "big"
        assert args.timestamp_size == 4
        assert args.colour == "never"
        assert args.files == ["a"]

    def test_bad_environment_value(self, trace_dir, capsys, monkeypatch):
        monkeypatch.setenv("LOCK_VERIFY_BYTE_ORDER", "sideways")
        assert main(_consistent(trace_dir)) == EXIT_FATAL
        assert "byte order" in capsys.readouterr().err


class TestRuns:

    def test_consistent_run(self, trace_dir, capsys):
        assert main(_consistent(trace_dir)) == EXIT_OK
        out = capsys.readouterr().out
        assert "checked 2 locks in" in out
        assert "with 0 errors." in out

    def test_inverted_order(self, trace_dir, capsys):
        assert main(_inverted(trace_dir)) == EXIT_ERROR
        out = capsys.readouterr().out
        assert "Found inconsistent locking order of length 2" in out
        assert "query.c 40" in out
        assert "flush.c 12" in out
        assert "with 1 errors." in out

    def test_fatal_error_stops_without_summary(self, trace_dir, capsys):
        paths = [
            write_trace(trace_dir / "t0", 0, [create(0, 0)]),
            write_trace(trace_dir / "t1", 0),
        ]
        assert main(paths) == EXIT_FATAL
        captured = capsys.readouterr()
        assert "fatal" in captured.err
        assert "duplicateThread" in captured.err
        assert "checked" not in captured.out

    def test_missing_file(self, trace_dir, capsys):
        assert main([str(trace_dir / "nope")]) == EXIT_FATAL
        assert "nope" in capsys.readouterr().err

    def test_skipped_file_is_noted(self, trace_dir, capsys):
        paths = _consistent(trace_dir)
        paths.append(write_trace(trace_dir / "t2", 2, process_id=1))
        assert main(paths) == EXIT_OK
        out = capsys.readouterr().out
        assert "has pid 1" in out
        assert "Skipped." in out

    def test_big_endian_option(self, trace_dir, capsys):
        from lock_verify.config import VerifierConfig
        from lock_verify.trace_format import TraceLayout

        layout = TraceLayout.from_config(VerifierConfig(byte_order="big"))
        path = write_trace(trace_dir / "t0", 0, [create(0, 0)], layout=layout)
        assert main(["--byte-order", "big", path]) == EXIT_OK
        assert "checked 1 locks" in capsys.readouterr().out


class TestOutputs:

    def test_dot_file(self, trace_dir, tmp_path, capsys):
        dot = tmp_path / "order.dot"
        assert main(["--dot", str(dot)] + _consistent(trace_dir)) == EXIT_OK
        text = dot.read_text(encoding="utf-8")
        assert '"L0_0" -> "L0_1"' in text
        assert "query.c:40" in text

    def test_sarif_from_environment(self, trace_dir, tmp_path, monkeypatch, capsys):
        sarif = tmp_path / "report.sarif"
        monkeypatch.setenv("REPORT_GENERATE_SARIF", str(sarif))
        assert main(_inverted(trace_dir)) == EXIT_ERROR
        doc = json.loads(sarif.read_text(encoding="utf-8"))
        assert len(doc["runs"][0]["results"]) == 1

    def test_html_option(self, trace_dir, tmp_path, capsys):
        html = tmp_path / "report.html"
        assert main(["--html", str(html)] + _inverted(trace_dir)) == EXIT_ERROR
        assert "flush.c:12" in html.read_text(encoding="utf-8")

    def test_forced_colour(self, trace_dir, capsys):
        assert main(["--colour", "always"] + _inverted(trace_dir)) == EXIT_ERROR
        assert "\x1b[" in capsys.readouterr().out
