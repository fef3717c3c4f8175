#!/usr/bin/env python3
"""Run one presubmit shard and record its outcome.

The shard's commands run through the worker pool. Afterwards the shard
directory holds the files the result pass reads:

    <workspace>/test_results/<build>/L=<label>,TEST=<test>/status_<test>.json
    <workspace>/test_results/<build>/L=<label>,TEST=<test>/tests_<test>.xml

A command may write its own xUnit report to the path passed to it in
XUNIT_OUTPUT_FILE. Otherwise one test case per command is recorded.
"""

import logging
import os
import time
from collections.abc import Sequence

from presubmitctl.config import DEFAULT_TEST_TIMEOUT, Config
from presubmitctl.models import TestRunResult, TestStatus
from presubmitctl.pool import Job, JobResult, PoolInterrupted, run_jobs
from presubmitctl.render import MERGE_CONFLICT_MESSAGE_TMPL, format_duration
from presubmitctl.status import write_status_file
from presubmitctl.xunit import (
    report_file_name,
    shard_dir,
    write_failure_report,
    write_report,
)

logger = logging.getLogger(__name__)

STATUS_OK = 0
STATUS_ERROR = 1

REPORT_ENV_VAR = "XUNIT_OUTPUT_FILE"
MERGE_CONFLICT_CLASS = "merge conflict"
TIMEOUT_CLASS = "timeout"

# Tail of a failed command's output kept in the report.
MAX_OUTPUT_CHARS = 16 * 1024


def now_ms() -> int:
    return int(time.time() * 1000)


def shard_status(results: Sequence[JobResult]) -> TestStatus:
    """Overall shard status: any timeout wins over any failure."""
    if any(r.timed_out for r in results):
        return TestStatus.TIMED_OUT
    if all(r.ok for r in results):
        return TestStatus.PASSED
    return TestStatus.FAILED


def _failure_detail(result: JobResult) -> str:
    if result.ok:
        return ""
    if result.error:
        return result.error
    output = result.output[-MAX_OUTPUT_CHARS:]
    if result.timed_out:
        return f"timed out after {result.duration:.0f}s\n{output}".rstrip()
    return f"exit status {result.returncode}\n{output}".rstrip()


def _job_cases(test_name: str, results: Sequence[JobResult]) -> list[dict]:
    return [{
        "class_name": test_name,
        "name": r.name,
        "failure": _failure_detail(r),
        "time": r.duration,
    } for r in results]


def record_merge_conflict(
    config: Config, test_name: str, label: str, cl: str,
    timestamp: int | None = None,
) -> TestRunResult:
    """Record that the refs under test could not be merged, without running."""
    directory = shard_dir(config.results_dir, label, test_name)
    write_failure_report(
        os.path.join(directory, report_file_name(test_name)),
        test_name, MERGE_CONFLICT_CLASS,
        MERGE_CONFLICT_MESSAGE_TMPL.format(cl=cl),
    )
    result = TestRunResult(
        status=TestStatus.MERGE_CONFLICT,
        test_name=test_name,
        label=label,
        timestamp=timestamp or now_ms(),
        merge_conflict_cl=cl,
    )
    write_status_file(directory, result)
    return result


def run_shard(
    config: Config,
    test_name: str,
    commands: Sequence[Sequence[str]],
    label: str = "",
    timeout: int = DEFAULT_TEST_TIMEOUT,
    workers: int | None = None,
    timestamp: int | None = None,
) -> TestRunResult:
    """Run commands for one shard and write its report and status file.

    Raises PoolInterrupted if the run is interrupted; nothing is written
    in that case.
    """
    directory = shard_dir(config.results_dir, label, test_name)
    report_path = os.path.join(directory, report_file_name(test_name))
    os.makedirs(directory, exist_ok=True)
    if os.path.exists(report_path):
        os.remove(report_path)

    timestamp = timestamp or now_ms()
    if len(commands) == 1:
        names = [test_name]
    else:
        names = [f"{test_name}-{i}" for i in range(1, len(commands) + 1)]
    jobs = [
        Job(name=name, command=list(cmd), timeout=timeout or None,
            env={REPORT_ENV_VAR: report_path})
        for name, cmd in zip(names, commands)
    ]
    job_results = run_jobs(jobs, workers=workers)
    status = shard_status(job_results)

    if status == TestStatus.TIMED_OUT:
        write_failure_report(
            report_path, test_name, TIMEOUT_CLASS,
            f"The test timed out after {format_duration(timeout)}.",
        )
    elif not os.path.exists(report_path):
        write_report(report_path, [{
            "name": test_name,
            "cases": _job_cases(test_name, job_results),
        }])

    result = TestRunResult(
        status=status,
        test_name=test_name,
        label=label,
        timestamp=timestamp,
        timeout=timeout,
    )
    write_status_file(directory, result)
    logger.info("%s [%s]: %s", test_name, label or "-", status.value)
    return result


def run(
    config: Config,
    test_name: str,
    commands: Sequence[Sequence[str]],
    label: str = "",
    timeout: int = DEFAULT_TEST_TIMEOUT,
    workers: int | None = None,
    merge_conflict_cl: str = "",
    timestamp: int | None = None,
) -> int:
    """Run a shard (or record its merge conflict). Returns a status code."""
    if not config.workspace:
        logger.error("Workspace is not set (use --workspace or WORKSPACE)")
        return STATUS_ERROR

    if merge_conflict_cl:
        record_merge_conflict(config, test_name, label, merge_conflict_cl, timestamp)
        return STATUS_OK

    if not commands:
        logger.error("No command given for %s", test_name)
        return STATUS_ERROR

    try:
        result = run_shard(
            config, test_name, commands, label=label, timeout=timeout,
            workers=workers, timestamp=timestamp,
        )
    except PoolInterrupted as e:
        logger.error("%s", e)
        return STATUS_ERROR
    return STATUS_OK if result.status == TestStatus.PASSED else STATUS_ERROR
