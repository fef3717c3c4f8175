#!/usr/bin/env python3
"""Render the presubmit report posted to the review thread.

The report is plain text. In order it holds the build cop notice, one
status transition line per shard, the NEW / KNOWN / FIXED failure groups
and links to the master build and to rerun the presubmit. Three states
short-circuit into a reduced report: no results at all (nothing is
rendered), a merge conflict, and a failed master build.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import urlencode

from presubmitctl.config import DEFAULT_TEST_TIMEOUT, Config
from presubmitctl.models import (
    BaselineSnapshot,
    ClassificationGroups,
    FailedTestCase,
    FailureType,
    TestRunResult,
    TestStatus,
)

PASS_SYMBOL = "✔"
FAIL_SYMBOL = "✖"
UNKNOWN_SYMBOL = "?"
TRANSITION_ARROW = "➔"

RETRY_MESSAGE = "SOME TESTS FAILED TO RUN.\nRetrying...\n"
MERGE_CONFLICT_MESSAGE_TMPL = (
    "Possible merge conflict detected in {cl}.\n"
    "Presubmit tests will be executed after a new patchset that resolves "
    "the conflicts is submitted."
)


@dataclass(frozen=True)
class ReportFacts:
    """Facts about the run that do not come from the shard results."""

    master_failed: bool = False
    build_cop: str = ""


def format_duration(seconds: int) -> str:
    """Format seconds the way timeouts are configured: 1h2m3s, 10m0s, 45s."""
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def merge_conflict(results: Sequence[TestRunResult]) -> TestRunResult | None:
    """Return the first shard that reported a merge conflict, if any."""
    for result in results:
        if result.status == TestStatus.MERGE_CONFLICT:
            return result
    return None


def failed_test_names(results: Sequence[TestRunResult]) -> list[str]:
    """Names of shards that ran and did not pass, in shard order, deduplicated."""
    names: list[str] = []
    for result in results:
        if result.status in (TestStatus.PASSED, TestStatus.SKIPPED):
            continue
        if result.test_name not in names:
            names.append(result.test_name)
    return names


def count_new_failures(groups: ClassificationGroups) -> int:
    return len(groups[FailureType.NEW])


def _baseline_symbol(baseline: BaselineSnapshot | None) -> str:
    if baseline is None or not baseline.known:
        return UNKNOWN_SYMBOL
    if baseline.result == "SUCCESS":
        return PASS_SYMBOL
    return FAIL_SYMBOL


def _display_name(result: TestRunResult, config: Config) -> str:
    if config.is_multi_configuration_job(result.test_name):
        label = result.label.replace("-slave", "")
        return f"{result.test_name} [{label}]"
    return result.test_name


def render_summary(
    results: Sequence[TestRunResult],
    baselines: Mapping[tuple[str, str], BaselineSnapshot],
    config: Config,
) -> str:
    """One "<baseline> ➔ <current>: <test>" line per shard."""
    lines = ["Test results:"]
    for result in results:
        if result.status == TestStatus.SKIPPED:
            lines.append(f"skipped {result.test_name}")
            continue
        previous = _baseline_symbol(baselines.get(result.shard))
        current = PASS_SYMBOL if result.status == TestStatus.PASSED else FAIL_SYMBOL
        line = f"{previous} {TRANSITION_ARROW} {current}: {_display_name(result, config)}"
        if result.status == TestStatus.TIMED_OUT:
            timeout = result.timeout or DEFAULT_TEST_TIMEOUT
            line += f" [TIMED OUT after {format_duration(timeout)}]"
        lines.append(line)
    return "\n".join(lines) + "\n"


def _format_entry(entry: FailedTestCase) -> str:
    if entry.link:
        return f"- {entry.identity}\n{entry.link}"
    return f"- {entry.identity}"


def render_groups(groups: ClassificationGroups) -> str:
    """NEW, KNOWN and FIXED sections; empty groups are left out."""
    out = []
    for failure_type, entries in groups.items():
        if not entries:
            continue
        body = "\n".join(_format_entry(e) for e in entries)
        out.append(f"\n{failure_type.header(len(entries))}:\n{body}\n\n")
    return "".join(out)


def rerun_link(config: Config, tests: Sequence[str]) -> str:
    """Link that starts a new presubmit build for the same refs."""
    query = urlencode({
        "REFS": ":".join(config.refs),
        "PROJECTS": ":".join(config.projects),
        "TESTS": " ".join(tests),
    })
    return f"{config.master_job_url}/parambuild/?{query}"


def render_useful_links(config: Config, failed_tests: Sequence[str]) -> str:
    out = [
        f"\nMore details at:\n{config.master_job_url}/{config.build_number}/\n"
    ]
    if failed_tests:
        out.append(
            "\nTo re-run FAILED TESTS ONLY without uploading a new patch set:\n"
            "(click Proceed button on the next screen)\n"
            f"{rerun_link(config, failed_tests)}\n"
        )
        out.append(
            "\nTo re-run presubmit tests without uploading a new patch set:\n"
            "(click Proceed button on the next screen)\n"
            f"{rerun_link(config, config.tests)}\n"
        )
    return "".join(out)


def render_report(
    results: Sequence[TestRunResult],
    groups: ClassificationGroups,
    baselines: Mapping[tuple[str, str], BaselineSnapshot],
    facts: ReportFacts,
    config: Config,
) -> str | None:
    """Render the full report, or None when there is nothing to report.

    A merge conflict in any shard yields only the merge-conflict message; a
    failed master build yields only the retry notice.
    """
    if not results:
        return None

    conflict = merge_conflict(results)
    if conflict is not None:
        return MERGE_CONFLICT_MESSAGE_TMPL.format(
            cl=conflict.merge_conflict_cl or conflict.test_name,
        )

    if facts.master_failed:
        return RETRY_MESSAGE

    out = []
    if facts.build_cop:
        out.append(f"\nCurrent Build Cop: {facts.build_cop}\n\n")
    out.append(render_summary(results, baselines, config))

    failed = failed_test_names(results)
    if failed:
        out.append(render_groups(groups))
    out.append(render_useful_links(config, failed))
    return "".join(out)
