#!/usr/bin/env python3
"""Unified CLI for presubmitctl -- presubmit result aggregation and reporting."""

import argparse
import logging
import os
import shlex
import sys

from presubmitctl import __version__
from presubmitctl.config import (
    DEFAULT_MAX_LOOKBACK,
    DEFAULT_PRESUBMIT_JOB,
    DEFAULT_TEST_TIMEOUT,
    DEFAULT_VOTE_LABEL,
    from_args,
)

STATUS_OK = 0
STATUS_ERROR = 1


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: '{value}'") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def cmd_result(args):
    from presubmitctl.result import run
    return run(from_args(args))


def cmd_test(args):
    from presubmitctl.runner import run
    commands = [shlex.split(c) for c in args.command_string]
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if command:
        commands.append(command)
    return run(
        from_args(args), args.test, commands,
        label=args.label, timeout=args.timeout, workers=args.jobs,
        merge_conflict_cl=args.merge_conflict, timestamp=args.timestamp,
    )


def cmd_baseline(args):
    """Print the baseline a shard submitted at --before would be compared to."""
    from presubmitctl.baseline import resolve
    from presubmitctl.jenkins import JenkinsClient
    from presubmitctl.runner import now_ms

    config = from_args(args)
    try:
        jenkins = JenkinsClient(
            config.jenkins_host, config.jenkins_user, config.jenkins_token,
        )
    except ValueError as e:
        logging.getLogger(__name__).error("%s", e)
        return STATUS_ERROR

    snapshot = resolve(
        jenkins, args.test, args.label, args.before or now_ms(),
        multi_configuration=config.is_multi_configuration_job(args.test),
        max_lookback=config.max_lookback,
    )
    if not snapshot.known:
        print(f"{args.test}: no baseline")
        return STATUS_ERROR
    print(f"{args.test}: build {snapshot.build_number} {snapshot.result}")
    for case in snapshot.failures:
        print(f"  {case.class_name}::{case.name}")
    return STATUS_OK


def cmd_classify(args):
    """Classify one xUnit report against one CI build, offline from the run."""
    from presubmitctl.classify import classify
    from presubmitctl.jenkins import JenkinsClient, JenkinsError
    from presubmitctl.render import render_groups
    from presubmitctl.xunit import ReportError, read_report

    logger = logging.getLogger(__name__)
    config = from_args(args)
    try:
        cases = read_report(args.report, label=args.label)
    except (OSError, ReportError) as e:
        logger.error("Cannot read %s: %s", args.report, e)
        return STATUS_ERROR
    try:
        jenkins = JenkinsClient(
            config.jenkins_host, config.jenkins_user, config.jenkins_token,
        )
        baseline = jenkins.failed_test_cases(args.baseline_build)
    except (ValueError, JenkinsError) as e:
        logger.error("Cannot load baseline %s: %s", args.baseline_build, e)
        return STATUS_ERROR

    groups = classify([c for c in cases if c.failed], baseline, label=args.label)
    output = render_groups(groups)
    print(output.strip() if output else "No failures.")
    return STATUS_OK


def _add_workspace_args(p):
    p.add_argument(
        "--workspace", default="",
        help="CI workspace holding test_results/ (default: $WORKSPACE)",
    )
    p.add_argument(
        "--build-number", type=int, required=True,
        help="Build number of the presubmit master job",
    )


def _add_jenkins_args(p):
    p.add_argument(
        "--jenkins", default="",
        help="Base URL of the CI server (default: $JENKINS_HOST)",
    )
    p.add_argument(
        "--max-lookback", type=_positive_int, default=DEFAULT_MAX_LOOKBACK,
        help=f"Maximum builds walked back for a baseline (default: {DEFAULT_MAX_LOOKBACK})",
    )


def main():
    parser = argparse.ArgumentParser(
        prog="presubmitctl",
        description="Presubmit result aggregator -- classifies failures as new, known or fixed",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--debug", action="store_true",
        help="Enable debug logging (verbose output)",
    )
    subparsers = parser.add_subparsers(dest="command_name", required=True)

    # --- result ---
    p_result = subparsers.add_parser(
        "result", help="Process all shard results and post the report",
    )
    _add_workspace_args(p_result)
    _add_jenkins_args(p_result)
    p_result.add_argument(
        "--presubmit-job", default=DEFAULT_PRESUBMIT_JOB,
        help=f"Name of the presubmit master job (default: {DEFAULT_PRESUBMIT_JOB})",
    )
    p_result.add_argument(
        "--report-url", default="",
        help="Base URL of per-shard test report pages",
    )
    p_result.add_argument(
        "--gerrit", default="",
        help="Base URL of the review server (default: $GERRIT_URL)",
    )
    p_result.add_argument(
        "--refs", default="",
        help="Colon-separated review refs being tested",
    )
    p_result.add_argument(
        "--projects", default="",
        help="Colon-separated projects the refs belong to",
    )
    p_result.add_argument(
        "--tests", default="",
        help="Space-separated tests of this presubmit run (default: $TESTS)",
    )
    p_result.add_argument(
        "--vote-label", default=DEFAULT_VOTE_LABEL,
        help=f"Review label to vote on (default: {DEFAULT_VOTE_LABEL})",
    )
    p_result.add_argument(
        "--parallel", action="store_true",
        help="Resolve shard baselines concurrently",
    )
    p_result.add_argument(
        "--rotation", default=None,
        help="Build cop rotation XML file (default: no build cop notice)",
    )
    p_result.add_argument(
        "--dry-run", action="store_true",
        help="Print the report instead of posting it",
    )
    p_result.set_defaults(func=cmd_result)

    # --- test ---
    p_test = subparsers.add_parser(
        "test", help="Run one presubmit shard and record its status and report",
    )
    _add_workspace_args(p_test)
    p_test.add_argument(
        "--test", required=True,
        help="Test (shard) name",
    )
    p_test.add_argument(
        "--label", default=os.environ.get("L", ""),
        help="Executor label of the shard (default: $L)",
    )
    p_test.add_argument(
        "--timeout", type=int, default=DEFAULT_TEST_TIMEOUT,
        help=f"Per-command timeout in seconds, 0 for none (default: {DEFAULT_TEST_TIMEOUT})",
    )
    p_test.add_argument(
        "--jobs", type=int, default=None,
        help="Commands run at once (default: number of CPUs)",
    )
    p_test.add_argument(
        "--timestamp", type=int, default=None,
        help="Submission time in epoch milliseconds (default: now)",
    )
    p_test.add_argument(
        "--merge-conflict", default="",
        metavar="CL",
        help="Record a merge conflict in CL instead of running",
    )
    p_test.add_argument(
        "--command", dest="command_string", action="append", default=[],
        help="Shell-quoted command to run; may be repeated",
    )
    p_test.add_argument(
        "command", nargs=argparse.REMAINDER,
        help="Command to run, after --",
    )
    p_test.set_defaults(func=cmd_test)

    # --- baseline ---
    p_baseline = subparsers.add_parser(
        "baseline", help="Show the postsubmit baseline of a test",
    )
    _add_jenkins_args(p_baseline)
    p_baseline.add_argument(
        "--test", required=True,
        help="Test (job) name",
    )
    p_baseline.add_argument(
        "--label", default="",
        help="Executor label, for multi-configuration jobs",
    )
    p_baseline.add_argument(
        "--before", type=int, default=None,
        help="Cutoff in epoch milliseconds (default: now)",
    )
    p_baseline.set_defaults(func=cmd_baseline)

    # --- classify ---
    p_classify = subparsers.add_parser(
        "classify", help="Classify an xUnit report against a CI build",
    )
    p_classify.add_argument(
        "--jenkins", default="",
        help="Base URL of the CI server (default: $JENKINS_HOST)",
    )
    p_classify.add_argument(
        "--report", required=True,
        help="xUnit report file",
    )
    p_classify.add_argument(
        "--baseline-build", required=True,
        help="Build to compare against, e.g. vanadium-go-test/123",
    )
    p_classify.add_argument(
        "--label", default="",
        help="Executor label recorded on the cases",
    )
    p_classify.set_defaults(func=cmd_classify)

    args = parser.parse_args()

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format=(
            "%(message)s" if level == logging.INFO
            else "%(asctime)s %(name)s %(levelname)s %(message)s"
        ),
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
