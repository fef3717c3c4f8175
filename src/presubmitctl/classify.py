#!/usr/bin/env python3
"""Classify presubmit test failures against their postsubmit baselines.

For every shard of a presubmit run, failing cases are compared with the
failing cases of the shard's baseline build:

  NEW    fails now, not failing in the baseline
  KNOWN  fails now and already failing in the baseline
  FIXED  failing in the baseline, not failing now

Matching is exact equality of (class name, test name). NEW/KNOWN and FIXED
are computed independently, so one report can list a test as NEW for one
shard and FIXED for another.

Nothing here does I/O; reports and baselines are loaded by the caller.
"""

import logging
from collections.abc import Callable, Mapping, Sequence

from presubmitctl.config import Config
from presubmitctl.links import SeenTestCounter, identity, result_url
from presubmitctl.models import (
    BaselineSnapshot,
    ClassificationGroups,
    FailedTestCase,
    FailureType,
    TestCase,
    TestRunResult,
    TestStatus,
)

logger = logging.getLogger(__name__)

LinkFn = Callable[[TestCase, int], str]


def classify(
    current: Sequence[TestCase],
    baseline: Sequence[TestCase],
    occurrences: Sequence[int] | None = None,
    test_name: str = "",
    label: str = "",
    link: LinkFn | None = None,
) -> ClassificationGroups:
    """Group current and baseline failures into NEW, KNOWN and FIXED.

    Args:
        current: Failing cases of this run, in encounter order.
        baseline: Failing cases of the baseline build.
        occurrences: Occurrence count of each current case within the
            report pass (defaults to 1 for all); drives the _<n> suffix.
        test_name: Shard test name recorded on each entry.
        label: Shard executor label recorded on each entry.
        link: Builds the result-page link for a current case.

    Returns:
        ClassificationGroups with every current case in exactly one of
        NEW/KNOWN and every baseline case absent from current in FIXED.
    """
    if occurrences is None:
        occurrences = [1] * len(current)
    if len(occurrences) != len(current):
        raise ValueError(
            f"got {len(occurrences)} occurrence counts for {len(current)} cases"
        )

    baseline_keys = {case.key for case in baseline}
    current_keys = {case.key for case in current}

    groups = ClassificationGroups()
    for case, occurrence in zip(current, occurrences):
        failure_type = (
            FailureType.KNOWN if case.key in baseline_keys else FailureType.NEW
        )
        groups.add(failure_type, FailedTestCase(
            case=case,
            identity=identity(case.class_name, case.name, occurrence),
            occurrence=occurrence,
            test_name=test_name,
            label=label,
            link=link(case, occurrence) if link else "",
        ))

    # Fixed tests did not fail in this build, so there is no result page to
    # link; only their names are shown.
    for case in baseline:
        if case.key not in current_keys:
            groups.add(FailureType.FIXED, FailedTestCase(
                case=case,
                identity=identity(case.class_name, case.name),
                test_name=test_name,
                label=label,
            ))
    return groups


def classify_shard(
    result: TestRunResult,
    cases: Sequence[TestCase],
    baseline: BaselineSnapshot,
    seen: SeenTestCounter,
    config: Config,
) -> ClassificationGroups:
    """Classify one shard's report against its baseline.

    Every case in the report, passing or not, advances the seen-test
    counter, mirroring how the report host numbers repeated cases.
    Skipped cases are counted but never classified.
    """
    failures: list[TestCase] = []
    occurrences: list[int] = []
    for case in cases:
        occurrence = seen.see(case.class_name, case.name, result.label)
        if case.failed:
            failures.append(case)
            occurrences.append(occurrence)

    def link(case: TestCase, occurrence: int) -> str:
        return result_url(
            config.report_base_url, config.build_number,
            case.class_name, case.name, occurrence,
            result.test_name, result.label,
        )

    groups = classify(
        failures, baseline.failures, occurrences,
        test_name=result.test_name, label=result.label, link=link,
    )
    logger.debug(
        "%s [%s]: %d new, %d known, %d fixed",
        result.test_name, result.label or "-",
        len(groups[FailureType.NEW]), len(groups[FailureType.KNOWN]),
        len(groups[FailureType.FIXED]),
    )
    return groups


def classify_run(
    results: Sequence[TestRunResult],
    reports: Mapping[tuple[str, str], Sequence[TestCase] | None],
    baselines: Mapping[tuple[str, str], BaselineSnapshot],
    config: Config,
) -> ClassificationGroups:
    """Classify all shards of a run, in the given (sorted) shard order.

    Shards without a parsed report (reports value missing or None) and
    skipped shards contribute nothing. A missing baseline counts as an
    unknown one, which makes every failure of that shard NEW.
    """
    seen = SeenTestCounter()
    groups = ClassificationGroups()
    for result in results:
        if result.status == TestStatus.SKIPPED:
            continue
        cases = reports.get(result.shard)
        if cases is None:
            continue
        baseline = baselines.get(result.shard) or BaselineSnapshot.unknown(
            result.test_name, result.label,
        )
        groups.extend(classify_shard(result, cases, baseline, seen, config))
    return groups
