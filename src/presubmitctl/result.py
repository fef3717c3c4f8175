#!/usr/bin/env python3
"""Process the results of all presubmit shards and post the report.

The presubmit master job collects each shard's files as

    <workspace>/test_results/<build>/L=<label>,TEST=<test>/status_<test>.json
    <workspace>/test_results/<build>/L=<label>,TEST=<test>/tests_<test>.xml

This pass loads the status files in sorted order, resolves each shard's
postsubmit baseline, classifies failures, renders the report and posts it
to the review thread of every tested ref.
"""

import logging
import sys
from collections.abc import Sequence

from presubmitctl.baseline import resolve_all
from presubmitctl.buildcop import current_build_cop
from presubmitctl.classify import classify_run
from presubmitctl.config import Config
from presubmitctl.gerrit import GerritClient, GerritError
from presubmitctl.jenkins import JenkinsClient, JenkinsError
from presubmitctl.models import ClassificationGroups, TestCase, TestRunResult
from presubmitctl.publish import post_message
from presubmitctl.render import (
    ReportFacts,
    count_new_failures,
    merge_conflict,
    render_report,
)
from presubmitctl.status import load_results
from presubmitctl.xunit import ReportError, read_report, shard_report_path

logger = logging.getLogger(__name__)

STATUS_OK = 0
STATUS_ERROR = 1


def load_reports(
    results: Sequence[TestRunResult], config: Config,
) -> dict[tuple[str, str], list[TestCase] | None]:
    """Parse each shard's xUnit report; None for shards without a usable one.

    Some shards never write a report, so a missing file is only logged.
    """
    reports: dict[tuple[str, str], list[TestCase] | None] = {}
    for result in results:
        if result.shard in reports:
            continue
        path = shard_report_path(config.results_dir, result.label, result.test_name)
        try:
            reports[result.shard] = read_report(path, label=result.label)
        except FileNotFoundError:
            logger.info("No xUnit report for %s [%s] at %s",
                        result.test_name, result.label or "-", path)
            reports[result.shard] = None
        except (OSError, ReportError) as e:
            logger.warning("Skipping report %s: %s", path, e)
            reports[result.shard] = None
    return reports


def master_build_failed(jenkins: JenkinsClient, config: Config) -> bool:
    """Whether the presubmit master build itself failed.

    Lookup errors are logged and treated as "not failed".
    """
    spec = f"{config.presubmit_job}/{config.build_number}"
    try:
        info = jenkins.build_info(spec)
    except JenkinsError as e:
        logger.warning("Could not check master build %s: %s", spec, e)
        return False
    logger.info("Master build %s: %s", spec, info.result or "in progress")
    return info.result == "FAILURE"


def generate_report(
    results: Sequence[TestRunResult], jenkins: JenkinsClient, config: Config,
) -> tuple[str | None, bool, bool]:
    """Build the report for results.

    Returns (message, success, postable). message is None when there is
    nothing to report. success is the vote: no new failures. postable is
    False for the retry notice of a failed master build, which a rerun
    replaces shortly.
    """
    if not results:
        return None, True, False

    logger.info("### Preparing report")
    if merge_conflict(results) is not None:
        message = render_report(results, ClassificationGroups(), {}, ReportFacts(), config)
        return message, False, True

    if master_build_failed(jenkins, config):
        facts = ReportFacts(master_failed=True)
        message = render_report(results, ClassificationGroups(), {}, facts, config)
        return message, False, False

    baselines = resolve_all(jenkins, results, config)
    reports = load_reports(results, config)
    groups = classify_run(results, reports, baselines, config)
    facts = ReportFacts(build_cop=current_build_cop(config.rotation_file))
    message = render_report(results, groups, baselines, facts, config)
    return message, count_new_failures(groups) == 0, True


def post_test_report(
    results: Sequence[TestRunResult],
    config: Config,
    jenkins: JenkinsClient,
    gerrit: GerritClient | None,
) -> int:
    """Generate the report for results and post it. Returns a status code."""
    message, success, postable = generate_report(results, jenkins, config)
    if message is None:
        logger.info("No test results, nothing to report.")
        return STATUS_OK
    if not postable:
        logger.warning("%s", message.strip())
        return STATUS_OK
    if config.dry_run or gerrit is None:
        sys.stdout.write(message)
        if not message.endswith("\n"):
            sys.stdout.write("\n")
        return STATUS_OK

    logger.info("### Posting test results to Gerrit")
    try:
        post_message(
            gerrit, message, config.refs, success,
            label=config.vote_label, query=config.query,
        )
    except GerritError as e:
        logger.error("Failed to post report: %s", e)
        return STATUS_ERROR
    return STATUS_OK


def run(config: Config) -> int:
    """Load shard results from the workspace and post the report."""
    if not config.workspace:
        logger.error("Workspace is not set (use --workspace or WORKSPACE)")
        return STATUS_ERROR
    if not config.refs:
        logger.error("No refs to report on (use --refs)")
        return STATUS_ERROR

    results = load_results(config.results_dir)
    if not results:
        logger.info("No test results, nothing to report.")
        return STATUS_OK

    try:
        jenkins = JenkinsClient(
            config.jenkins_host, config.jenkins_user, config.jenkins_token,
        )
        gerrit = None
        if not config.dry_run:
            gerrit = GerritClient(config.gerrit_url, config.gerrit_credential)
    except ValueError as e:
        logger.error("%s", e)
        return STATUS_ERROR

    return post_test_report(results, config, jenkins, gerrit)
