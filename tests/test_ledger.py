"""Tests for the per-dependency build ledger."""

from __future__ import annotations

import pytest

from magick_builder.ledger import BuildLedger
from magick_builder.models.version import CommitVersion, Version


class TestBuildLedger:
    def test_missing_entry(self, tmp_path):
        ledger = BuildLedger(tmp_path / "packages")
        assert ledger.get("zlib") is None
        assert not ledger.is_up_to_date("zlib", "1.3")
        assert ledger.entries() == {}

    def test_record_then_up_to_date(self, tmp_path):
        ledger = BuildLedger(tmp_path)
        ledger.record("libtool", "2.4.7")
        assert (tmp_path / "libtool.done").read_text() == "2.4.7\n"
        assert ledger.get("libtool") == "2.4.7"
        assert ledger.is_up_to_date("libtool", "2.4.7")

    def test_version_mismatch_is_stale(self, tmp_path):
        ledger = BuildLedger(tmp_path)
        ledger.record("harfbuzz", "8.3.0")
        assert not ledger.is_up_to_date("harfbuzz", "8.3.1")
        assert not ledger.is_up_to_date("harfbuzz", "8.3")

    def test_record_overwrites(self, tmp_path):
        ledger = BuildLedger(tmp_path)
        ledger.record("harfbuzz", "8.3.0")
        ledger.record("harfbuzz", "8.4.0")
        assert ledger.get("harfbuzz") == "8.4.0"
        assert list(tmp_path.iterdir()) == [tmp_path / "harfbuzz.done"]

    def test_resolved_values_compared_by_text(self, tmp_path):
        ledger = BuildLedger(tmp_path)
        ledger.record("openjpeg", Version.parse("v2.5.0"))
        ledger.record("libfpx", CommitVersion("abcdef0123456"))
        assert ledger.is_up_to_date("openjpeg", "2.5.0")
        assert ledger.is_up_to_date("libfpx", CommitVersion("abcdef0999999"))

    def test_forget_affects_one_entry(self, tmp_path):
        ledger = BuildLedger(tmp_path)
        ledger.record("m4", "latest")
        ledger.record("lcms", "2.16")
        assert ledger.forget("m4") is True
        assert ledger.forget("m4") is False
        assert ledger.entries() == {"lcms": "2.16"}

    def test_entries_ignores_other_files(self, tmp_path):
        ledger = BuildLedger(tmp_path)
        ledger.record("fribidi", "1.0.13")
        (tmp_path / "fribidi-1.0.13.tar.gz").write_bytes(b"\x1f\x8b")
        (tmp_path / "fribidi-1-0-13").mkdir()
        assert ledger.entries() == {"fribidi": "1.0.13"}

    @pytest.mark.parametrize("name", ["", "../etc/passwd", "a/b", ".hidden"])
    def test_rejects_unsafe_names(self, tmp_path, name):
        with pytest.raises(ValueError):
            BuildLedger(tmp_path).record(name, "1.0")
