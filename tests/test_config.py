# tests/test_config.py
"""
Tests for VerifierConfig defaults, validation and environment parsing.
"""

import pytest

from lock_verify.config import VerifierConfig


class TestDefaults:

    def test_defaults(self):
        cfg = VerifierConfig()
        assert cfg.byte_order == "native"
        assert cfg.struct_prefix == "="
        assert cfg.timestamp_size == 8
        assert cfg.time_tolerance == 3600
        assert cfg.max_string == 1024
        assert cfg.colour == "auto"
        assert cfg.sarif_path is None

    @pytest.mark.parametrize("kwargs", [
        {"byte_order": "middle"},
        {"timestamp_size": 2},
        {"time_tolerance": -1},
        {"max_string": 1},
        {"colour": "sometimes"},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            VerifierConfig(**kwargs)

    def test_merged_ignores_none(self):
        cfg = VerifierConfig(byte_order="big").merged(byte_order=None, time_tolerance=5)
        assert cfg.byte_order == "big"
        assert cfg.struct_prefix == ">"
        assert cfg.time_tolerance == 5


class TestEnvironment:

    def test_empty_environment(self):
        assert VerifierConfig.from_env({}) == VerifierConfig()

    def test_layout_variables(self):
        cfg = VerifierConfig.from_env({
            "LOCK_VERIFY_BYTE_ORDER": "Little",
            "LOCK_VERIFY_TIMESTAMP_SIZE": "4",
            "LOCK_VERIFY_TIME_TOLERANCE": "60",
        })
        assert cfg.struct_prefix == "<"
        assert cfg.timestamp_size == 4
        assert cfg.time_tolerance == 60

    def test_report_variables(self):
        cfg = VerifierConfig.from_env({
            "REPORT_GENERATE_SARIF": "a.sarif",
            "REPORT_GENERATE_HTML": "a.html",
            "NO_COLOR": "",
        })
        assert cfg.sarif_path == "a.sarif"
        assert cfg.html_path == "a.html"
        assert cfg.colour == "never"

    def test_non_numeric_value(self):
        with pytest.raises(ValueError, match="LOCK_VERIFY_TIME_TOLERANCE"):
            VerifierConfig.from_env({"LOCK_VERIFY_TIME_TOLERANCE": "soon"})

    def test_unknown_byte_order(self):
        with pytest.raises(ValueError):
            VerifierConfig.from_env({"LOCK_VERIFY_BYTE_ORDER": "pdp"})
