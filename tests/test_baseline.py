"""Tests for presubmitctl.baseline -- postsubmit baseline resolution."""

from unittest.mock import MagicMock

from conftest import make_config

from presubmitctl.baseline import resolve, resolve_all
from presubmitctl.jenkins import BuildInfo, JenkinsError
from presubmitctl.models import TestCase, TestRunResult, TestStatus


def fake_jenkins(builds, failures=None, last="lastCompletedBuild"):
    """Mock client over {number: timestamp}; failures maps number -> cases."""
    failures = failures or {}
    latest = max(builds)

    def build_info(spec):
        build = spec.rsplit("/", 1)[1]
        number = latest if build == last else int(build)
        if number not in builds:
            raise JenkinsError(f"no build {number}")
        return BuildInfo(number, builds[number], "SUCCESS" if number not in failures else "UNSTABLE")

    def failed_test_cases(spec):
        return list(failures.get(int(spec.rsplit("/", 1)[1]), []))

    jenkins = MagicMock()
    jenkins.build_info.side_effect = build_info
    jenkins.failed_test_cases.side_effect = failed_test_cases
    return jenkins


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------

class TestResolve:
    def test_latest_build_before_cutoff(self):
        jenkins = fake_jenkins({1: 100, 2: 200, 3: 300})
        snapshot = resolve(jenkins, "t", "", cutoff=250)
        assert snapshot.build_number == 2
        assert snapshot.result == "SUCCESS"
        assert snapshot.known

    def test_cutoff_inclusive(self):
        jenkins = fake_jenkins({1: 100, 2: 200})
        assert resolve(jenkins, "t", "", cutoff=200).build_number == 2

    def test_failures_of_chosen_build(self):
        case = TestCase("p.C", "T", failure="boom")
        jenkins = fake_jenkins({1: 100, 2: 200}, failures={1: [case]})
        snapshot = resolve(jenkins, "t", "", cutoff=150)
        assert snapshot.failures == (case,)
        assert snapshot.result == "UNSTABLE"
        jenkins.failed_test_cases.assert_called_once_with("t/1")

    def test_all_builds_after_cutoff_is_unknown(self):
        jenkins = fake_jenkins({1: 100, 2: 200})
        snapshot = resolve(jenkins, "t", "", cutoff=50)
        assert not snapshot.known
        assert snapshot.failures == ()

    def test_lookback_bound(self):
        builds = {n: n * 100 for n in range(1, 11)}
        jenkins = fake_jenkins(builds)
        snapshot = resolve(jenkins, "t", "", cutoff=250, max_lookback=3)
        assert not snapshot.known
        # lastCompletedBuild plus builds 9 and 8.
        assert jenkins.build_info.call_count == 3

    def test_lookup_error_is_unknown(self):
        jenkins = MagicMock()
        jenkins.build_info.side_effect = JenkinsError("down")
        snapshot = resolve(jenkins, "t", "l", cutoff=100)
        assert not snapshot.known
        assert (snapshot.test_name, snapshot.label) == ("t", "l")

    def test_gap_in_history_is_unknown(self):
        jenkins = fake_jenkins({1: 100, 3: 300})
        assert not resolve(jenkins, "t", "", cutoff=150).known

    def test_multi_configuration_spec(self):
        jenkins = fake_jenkins({1: 100})
        resolve(jenkins, "t", "linux-slave", cutoff=100, multi_configuration=True)
        jenkins.build_info.assert_called_once_with("t/L=linux-slave/lastCompletedBuild")
        jenkins.failed_test_cases.assert_called_once_with("t/L=linux-slave/1")


# ---------------------------------------------------------------------------
# resolve_all
# ---------------------------------------------------------------------------

class TestResolveAll:
    def test_one_lookup_per_shard_earliest_timestamp(self):
        jenkins = fake_jenkins({1: 100, 2: 200, 3: 300})
        results = [
            TestRunResult(TestStatus.FAILED, "t", timestamp=350),
            TestRunResult(TestStatus.FAILED, "t", timestamp=250),
            TestRunResult(TestStatus.PASSED, "u", timestamp=150),
        ]
        baselines = resolve_all(jenkins, results, make_config())
        assert list(baselines) == [("t", ""), ("u", "")]
        assert baselines[("t", "")].build_number == 2
        assert baselines[("u", "")].build_number == 1

    def test_parallel_same_result(self):
        results = [
            TestRunResult(TestStatus.FAILED, name, timestamp=250)
            for name in ("a", "b", "c", "d")
        ]
        serial = resolve_all(fake_jenkins({1: 100, 2: 200}), results, make_config())
        parallel = resolve_all(
            fake_jenkins({1: 100, 2: 200}), results, make_config(parallel_baselines=True),
        )
        assert parallel == serial
        assert list(parallel) == [("a", ""), ("b", ""), ("c", ""), ("d", "")]
