"""Tests for presubmitctl.xunit -- report parsing and writing."""

import pytest
from conftest import make_xunit_content

from presubmitctl.xunit import (
    ReportError,
    parse_report,
    read_report,
    report_file_name,
    shard_dir,
    shard_report_path,
    write_failure_report,
    write_report,
)

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

class TestPaths:
    def test_report_file_name_replaces_dashes(self):
        assert report_file_name("vanadium-go-test") == "tests_vanadium_go_test.xml"

    def test_shard_dir(self):
        assert shard_dir("/ws/test_results/7", "linux-slave", "t") == (
            "/ws/test_results/7/L=linux-slave,TEST=t"
        )

    def test_shard_report_path(self):
        assert shard_report_path("/r", "", "a-b") == "/r/L=,TEST=a-b/tests_a_b.xml"


# ---------------------------------------------------------------------------
# parse_report
# ---------------------------------------------------------------------------

class TestParseReport:
    def test_passing_and_failing_cases(self):
        data = make_xunit_content([
            {"name": "TestOk"},
            {"name": "TestBad", "failure": "assert false"},
        ])
        cases = parse_report(data)
        assert [c.name for c in cases] == ["TestOk", "TestBad"]
        assert not cases[0].failed
        assert cases[1].failed
        assert cases[1].failure == "assert false"

    def test_classname_falls_back_to_suite(self):
        data = make_xunit_content([{"name": "T1", "classname": None}], suite="v.io/x/ref")
        (case,) = parse_report(data)
        assert case.class_name == "v.io/x/ref"
        assert case.suite == "v.io/x/ref"

    def test_html_entities_unescaped(self):
        data = make_xunit_content([
            {"name": "Test&lt;int&gt;", "classname": "pkg.A&amp;B"},
        ])
        (case,) = parse_report(data)
        assert case.name == "Test<int>"
        assert case.class_name == "pkg.A&B"

    def test_double_escaped_entities_unescaped_once_more(self):
        data = make_xunit_content([{"name": "a&amp;quot;b"}])
        (case,) = parse_report(data)
        assert case.name == 'a"b'

    def test_error_counts_as_failure(self):
        data = make_xunit_content([{"name": "T", "error": "panic"}])
        (case,) = parse_report(data)
        assert case.failed
        assert case.failure == "panic"

    def test_failure_without_text_uses_message(self):
        data = make_xunit_content([{"name": "T", "failure": ""}])
        (case,) = parse_report(data)
        assert case.failure == "failed"

    def test_skipped_case_not_failed(self):
        data = make_xunit_content([{"name": "T", "skipped": True}])
        (case,) = parse_report(data)
        assert case.skipped
        assert not case.failed

    def test_label_applied(self):
        data = make_xunit_content([{"name": "T"}])
        (case,) = parse_report(data, label="mac-slave")
        assert case.label == "mac-slave"

    def test_single_testsuite_root(self):
        data = '<testsuite name="s"><testcase classname="c" name="n"/></testsuite>'
        (case,) = parse_report(data)
        assert case.key == ("c", "n")

    def test_bytes_input(self):
        data = make_xunit_content([{"name": "T"}]).encode()
        assert len(parse_report(data)) == 1

    def test_malformed_raises(self):
        with pytest.raises(ReportError, match="malformed"):
            parse_report("<testsuites><testsuite>")

    def test_unexpected_root_raises(self):
        with pytest.raises(ReportError, match="unexpected root"):
            parse_report("<html/>")

    def test_empty_report(self):
        assert parse_report("<testsuites/>") == []


# ---------------------------------------------------------------------------
# write_report / write_failure_report
# ---------------------------------------------------------------------------

class TestWriteReport:
    def test_written_report_parses_back(self, tmp_path):
        path = tmp_path / "sub" / "tests_x.xml"
        write_report(path, [{
            "name": "suite",
            "cases": [
                {"class_name": "pkg.C", "name": "ok", "time": 1.5},
                {"class_name": "pkg.C", "name": "bad", "failure": "boom"},
            ],
        }])
        cases = read_report(path)
        assert [(c.name, c.failed) for c in cases] == [("ok", False), ("bad", True)]
        assert cases[1].failure == "boom"

    def test_vio_prefix_rewritten(self, tmp_path):
        path = tmp_path / "r.xml"
        write_report(path, [{
            "name": "v.io/x/ref",
            "cases": [{"class_name": "v.io/x/ref", "name": "T"}],
        }])
        (case,) = read_report(path)
        assert case.class_name == "v_io.x/ref"
        assert case.suite == "v_io.x/ref"

    def test_failure_report(self, tmp_path):
        path = tmp_path / "tests_t.xml"
        write_failure_report(path, "vanadium-go-test", "timeout", "timed out")
        (case,) = read_report(path)
        assert case.class_name == "timeout"
        assert case.name == "vanadium-go-test"
        assert case.failure == "timed out"

    def test_read_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_report(tmp_path / "missing.xml")
