#!/usr/bin/env python3
"""Read and write xUnit test reports.

Each shard of a presubmit run leaves a tests_<test>.xml report next to its
status file. Parsing turns a report into TestCase objects with HTML
entities in class and test names unescaped, since those names end up in a
review message where they must render literally.
"""

import html
import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path

from presubmitctl.models import TestCase

logger = logging.getLogger(__name__)

FAILURE_REPORT_SUITE = "timeout"


class ReportError(ValueError):
    """Raised when an xUnit document cannot be decoded."""


def report_file_name(test_name: str) -> str:
    """Report file name for a test: this-is-a-test -> tests_this_is_a_test.xml."""
    return f"tests_{test_name.replace('-', '_')}.xml"


def shard_dir(results_dir: str, label: str, test_name: str) -> str:
    """Directory the master job collects one shard's files into."""
    return os.path.join(results_dir, f"L={label},TEST={test_name}")


def shard_report_path(results_dir: str, label: str, test_name: str) -> str:
    return os.path.join(
        shard_dir(results_dir, label, test_name), report_file_name(test_name),
    )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _failure_text(case_el: ET.Element) -> str:
    """Return the failure detail of a <testcase>, empty if it passed.

    <failure> wins over <error>. An element with neither text nor a message
    attribute still marks the case failed.
    """
    for tag in ("failure", "error"):
        elements = case_el.findall(tag)
        if not elements:
            continue
        texts = []
        for el in elements:
            text = (el.text or "").strip() or el.get("message", "").strip()
            if text:
                texts.append(text)
        return "\n".join(texts) or tag
    return ""


def _iter_suites(root: ET.Element):
    if root.tag == "testsuite":
        yield root
        return
    if root.tag != "testsuites":
        raise ReportError(f"unexpected root element <{root.tag}>")
    yield from root.iter("testsuite")


def parse_report(data: bytes | str, label: str = "") -> list[TestCase]:
    """Parse an xUnit document into test cases, in document order.

    Cases without a classname inherit their suite's name. Raises
    ReportError if the document is not well-formed xUnit.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ReportError(f"malformed xUnit report: {e}") from e

    cases = []
    for suite_el in _iter_suites(root):
        suite_name = suite_el.get("name", "")
        for case_el in suite_el.findall("testcase"):
            class_name = case_el.get("classname") or suite_name
            cases.append(TestCase(
                class_name=html.unescape(class_name),
                name=html.unescape(case_el.get("name", "")),
                failure=_failure_text(case_el),
                skipped=case_el.find("skipped") is not None,
                suite=suite_name,
                label=label,
            ))
    return cases


def read_report(path: str | Path, label: str = "") -> list[TestCase]:
    """Parse the report at path. Raises OSError or ReportError."""
    return parse_report(Path(path).read_bytes(), label=label)


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

def _host_safe_name(name: str) -> str:
    # The report host splits packages at the last "."; keep "v.io/x" from
    # turning into package "v".
    if name.startswith("v.io/"):
        return name.replace("v.io/", "v_io.", 1)
    return name


def write_report(path: str | Path, suites: list[dict]) -> None:
    """Write an xUnit report.

    Each suite dict has a ``name`` and a ``cases`` list; each case dict has
    ``class_name``, ``name`` and optionally ``failure``, ``skipped`` and
    ``time`` (seconds).
    """
    root = ET.Element("testsuites")
    for suite in suites:
        cases = suite.get("cases", [])
        failures = sum(1 for c in cases if c.get("failure"))
        skipped = sum(1 for c in cases if c.get("skipped"))
        suite_el = ET.SubElement(root, "testsuite", {
            "name": _host_safe_name(suite["name"]),
            "tests": str(len(cases)),
            "errors": "0",
            "failures": str(failures),
            "skip": str(skipped),
        })
        for case in cases:
            case_el = ET.SubElement(suite_el, "testcase", {
                "classname": _host_safe_name(case["class_name"]),
                "name": case["name"],
                "time": f"{case.get('time', 0):.2f}",
            })
            if case.get("failure"):
                failure_el = ET.SubElement(case_el, "failure", {"type": "error"})
                failure_el.text = case["failure"]
            if case.get("skipped"):
                ET.SubElement(case_el, "skipped")

    tree = ET.ElementTree(root)
    ET.indent(tree)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    tree.write(path, encoding="utf-8", xml_declaration=True)
    logger.debug("Wrote %s", path)


def write_failure_report(
    path: str | Path, test_name: str, class_name: str, message: str,
) -> None:
    """Write a report holding a single failed case, named after the test.

    Used when a shard never produced a report of its own: it timed out, or
    its changes could not be merged.
    """
    write_report(path, [{
        "name": FAILURE_REPORT_SUITE,
        "cases": [{
            "class_name": class_name,
            "name": test_name,
            "failure": message,
        }],
    }])
