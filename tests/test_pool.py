"""Tests for presubmitctl.pool -- bounded subprocess worker pool."""

import os
import signal
import sys
import threading
import time

import pytest

from presubmitctl.pool import Job, PoolInterrupted, run_jobs


def python_job(name, code, timeout=None, env=None):
    return Job(name=name, command=[sys.executable, "-c", code], timeout=timeout, env=env)


class TestRunJobs:
    def test_no_jobs(self):
        assert run_jobs([]) == []

    def test_results_in_submission_order(self):
        jobs = [
            python_job("slow", "import time; time.sleep(0.3); print('slow')"),
            python_job("fast", "print('fast')"),
        ]
        results = run_jobs(jobs, workers=2)
        assert [r.name for r in results] == ["slow", "fast"]
        assert results[0].output.strip() == "slow"
        assert results[1].output.strip() == "fast"

    def test_exit_status(self):
        results = run_jobs([
            python_job("ok", "pass"),
            python_job("bad", "import sys; sys.exit(3)"),
        ])
        assert results[0].ok
        assert results[0].returncode == 0
        assert not results[1].ok
        assert results[1].returncode == 3

    def test_stderr_captured(self):
        (result,) = run_jobs([python_job("e", "import sys; sys.stderr.write('oops')")])
        assert "oops" in result.output

    def test_timeout(self):
        (result,) = run_jobs([python_job("t", "import time; time.sleep(10)", timeout=0.5)])
        assert result.timed_out
        assert not result.ok
        assert result.duration < 10

    def test_timeout_kills_grandchildren(self):
        start = time.monotonic()
        job = Job(name="sh", command=["sh", "-c", "sleep 8; true"], timeout=1)
        (result,) = run_jobs([job])
        assert result.timed_out
        assert time.monotonic() - start < 4

    def test_env_passed(self):
        job = python_job("env", "import os; print(os.environ['SHARD_X'])",
                         env={"SHARD_X": "42"})
        (result,) = run_jobs([job])
        assert result.output.strip() == "42"

    def test_missing_executable(self, tmp_path):
        job = Job(name="missing", command=[str(tmp_path / "no-such-binary")])
        (result,) = run_jobs([job])
        assert result.error
        assert not result.ok
        assert result.returncode is None

    def test_single_worker_runs_everything(self):
        jobs = [python_job(f"j{i}", f"print({i})") for i in range(5)]
        results = run_jobs(jobs, workers=1)
        assert [r.output.strip() for r in results] == ["0", "1", "2", "3", "4"]


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
class TestInterrupt:
    def test_sigterm_reports_pending_jobs(self):
        jobs = [
            python_job("done", "pass"),
            python_job("stuck", "import time; time.sleep(30)", timeout=60),
        ]
        timer = threading.Timer(1.0, os.kill, (os.getpid(), signal.SIGTERM))
        timer.start()
        try:
            with pytest.raises(PoolInterrupted) as excinfo:
                run_jobs(jobs, workers=2)
        finally:
            timer.cancel()
        assert excinfo.value.pending == ["stuck"]
        assert "stuck" in str(excinfo.value)
