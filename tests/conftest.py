"""Shared fixtures and helpers for presubmitctl tests."""

import json
import os

from presubmitctl.config import Config


def make_xunit_content(cases, suite="suite"):
    """Generate an xUnit document from a list of case dicts.

    Each case dict should have:
        name, and optionally: classname (omitted when None),
        failure (failure text), error (error text), skipped (bool).
    """
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        "<testsuites>",
        f'  <testsuite name="{suite}" tests="{len(cases)}">',
    ]
    for case in cases:
        attrs = f'name="{case["name"]}"'
        classname = case.get("classname", "pkg.Class")
        if classname is not None:
            attrs = f'classname="{classname}" ' + attrs
        body = []
        if case.get("failure") is not None:
            body.append(f'      <failure message="failed">{case["failure"]}</failure>')
        if case.get("error") is not None:
            body.append(f'      <error message="error">{case["error"]}</error>')
        if case.get("skipped"):
            body.append("      <skipped/>")
        if body:
            lines.append(f"    <testcase {attrs}>")
            lines.extend(body)
            lines.append("    </testcase>")
        else:
            lines.append(f"    <testcase {attrs}/>")
    lines.append("  </testsuite>")
    lines.append("</testsuites>")
    return "\n".join(lines) + "\n"


def make_status(test_name, status="passed", label="", timestamp=1000, **extra):
    """Generate a status record dict as written to status_<test>.json."""
    data = {
        "status": status,
        "test_name": test_name,
        "label": label,
        "timestamp": timestamp,
        "timeout": 0,
        "merge_conflict_cl": "",
    }
    data.update(extra)
    return data


def write_shard(results_dir, test_name, status="passed", label="",
                cases=None, timestamp=1000, **extra):
    """Lay out one shard directory: status file plus optional xUnit report.

    Returns the shard directory path.
    """
    shard = os.path.join(str(results_dir), f"L={label},TEST={test_name}")
    os.makedirs(shard, exist_ok=True)
    file_stem = test_name.replace("-", "_")
    with open(os.path.join(shard, f"status_{file_stem}.json"), "w") as f:
        json.dump(make_status(test_name, status, label, timestamp, **extra), f)
    if cases is not None:
        with open(os.path.join(shard, f"tests_{file_stem}.xml"), "w") as f:
            f.write(make_xunit_content(cases))
    return shard


def make_config(workspace="", **overrides):
    """Config with test-friendly defaults."""
    values = {
        "workspace": str(workspace),
        "build_number": 7,
        "jenkins_host": "https://ci.example.com/jenkins",
        "report_base_url": "https://reports.example.com/vpst",
        "gerrit_url": "https://review.example.com",
        "refs": ["refs/changes/34/1234/2"],
        "projects": ["release.go.core"],
        "tests": ["vanadium-go-test", "vanadium-js-test"],
    }
    values.update(overrides)
    return Config(**values)


def jenkins_build(number, timestamp, result="SUCCESS"):
    """Jenkins build JSON document."""
    return {"number": number, "timestamp": timestamp, "result": result,
            "building": False}


def jenkins_test_report(failing, passing=()):
    """Jenkins testReport JSON with failing and passing (class, name) pairs."""
    cases = [
        {"className": c, "name": n, "status": "FAILED", "errorDetails": "boom"}
        for c, n in failing
    ]
    cases += [
        {"className": c, "name": n, "status": "PASSED"} for c, n in passing
    ]
    return {"suites": [{"name": "suite", "cases": cases}]}
