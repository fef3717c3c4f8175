#!/usr/bin/env python3
"""Resolve the postsubmit baseline a presubmit shard is compared against.

The baseline of a shard is the most recent completed postsubmit build of
the same test (and, for multi-configuration jobs, the same executor label)
that started at or before the shard was submitted. Its failing cases are
what "known failures" means for that shard.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from presubmitctl.config import DEFAULT_MAX_LOOKBACK, Config
from presubmitctl.jenkins import JenkinsClient, JenkinsError, build_spec
from presubmitctl.models import BaselineSnapshot, TestRunResult

logger = logging.getLogger(__name__)


def resolve(
    jenkins: JenkinsClient,
    test_name: str,
    label: str,
    cutoff: int,
    multi_configuration: bool = False,
    max_lookback: int = DEFAULT_MAX_LOOKBACK,
) -> BaselineSnapshot:
    """Walk back from the last completed build to the first one <= cutoff.

    cutoff is in epoch milliseconds. Returns an unknown snapshot, which has
    no known failures, if no build qualifies within max_lookback builds or
    a lookup fails.
    """
    def spec(build):
        return build_spec(test_name, build, label, multi_configuration)

    logger.info("Getting postsubmit baseline for %s [%s] before %d...",
                test_name, label or "-", cutoff)
    try:
        last = jenkins.build_info(spec("lastCompletedBuild"))
    except JenkinsError as e:
        logger.warning("No baseline for %s [%s]: %s", test_name, label or "-", e)
        return BaselineSnapshot.unknown(test_name, label)

    lowest = max(last.number - max_lookback + 1, 1)
    for number in range(last.number, lowest - 1, -1):
        try:
            info = last if number == last.number else jenkins.build_info(spec(number))
            if info.timestamp > cutoff:
                logger.debug("Build %d of %s started after cutoff, skipping",
                             number, test_name)
                continue
            failures = jenkins.failed_test_cases(spec(number))
        except JenkinsError as e:
            logger.warning("No baseline for %s [%s]: %s",
                           test_name, label or "-", e)
            return BaselineSnapshot.unknown(test_name, label)
        logger.info("Baseline for %s [%s]: build %d %s, %d failing case(s)",
                    test_name, label or "-", number, info.result, len(failures))
        return BaselineSnapshot(
            test_name=test_name,
            label=label,
            build_number=number,
            result=info.result,
            failures=tuple(failures),
        )

    if lowest > 1:
        logger.warning("No baseline for %s [%s] within %d builds",
                       test_name, label or "-", max_lookback)
    else:
        logger.warning("No baseline for %s [%s]: history exhausted",
                       test_name, label or "-")
    return BaselineSnapshot.unknown(test_name, label)


def resolve_all(
    jenkins: JenkinsClient, results: list[TestRunResult], config: Config,
) -> dict[tuple[str, str], BaselineSnapshot]:
    """Resolve one baseline per distinct (test name, label) shard.

    Baselines are re-resolved on every call. With config.parallel_baselines
    the lookups run concurrently; the returned mapping is keyed by shard, so
    callers iterate it in their own (sorted) shard order.
    """
    shards: dict[tuple[str, str], int] = {}
    for result in results:
        # Earliest submission wins when a shard shows up twice.
        if result.shard not in shards or result.timestamp < shards[result.shard]:
            shards[result.shard] = result.timestamp

    def _resolve(shard):
        test_name, label = shard
        return resolve(
            jenkins, test_name, label, shards[shard],
            multi_configuration=config.is_multi_configuration_job(test_name),
            max_lookback=config.max_lookback,
        )

    keys = list(shards)
    if config.parallel_baselines and len(keys) > 1:
        with ThreadPoolExecutor() as executor:
            snapshots = list(executor.map(_resolve, keys))
    else:
        snapshots = [_resolve(k) for k in keys]
    return dict(zip(keys, snapshots))
