#!/usr/bin/env python3
"""Bounded worker pool running shard commands as subprocesses.

N jobs go onto a queue, a fixed number of worker tasks drain it and the
caller waits for exactly N results. Results come back in submission order.
"""

import asyncio
import logging
import os
import signal
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class PoolInterrupted(Exception):
    """The pool received SIGINT or SIGTERM before all jobs completed."""

    def __init__(self, pending: Sequence[str]):
        self.pending = list(pending)
        super().__init__(f"interrupted with {len(self.pending)} job(s) pending: "
                         + ", ".join(self.pending))


@dataclass(frozen=True)
class Job:
    name: str
    command: Sequence[str]
    timeout: float | None = None
    env: Mapping[str, str] | None = None
    cwd: str | None = None


@dataclass
class JobResult:
    name: str
    returncode: int | None = None
    output: str = ""
    duration: float = 0.0
    timed_out: bool = False
    error: str = ""
    command: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.error


async def _run_one(job: Job) -> JobResult:
    start = time.monotonic()
    result = JobResult(name=job.name, command=list(job.command))
    env = None
    if job.env is not None:
        env = {**os.environ, **job.env}
    try:
        proc = await asyncio.create_subprocess_exec(
            *job.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=env,
            cwd=job.cwd,
            start_new_session=True,
        )
    except OSError as e:
        result.error = str(e)
        result.duration = time.monotonic() - start
        logger.warning("Job %s could not start: %s", job.name, e)
        return result

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=job.timeout)
    except TimeoutError:
        # Each job leads its own process group; grandchildren hold the pipe.
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await proc.wait()
        stdout = b""
        result.timed_out = True
        logger.warning("Job %s timed out after %ss", job.name, job.timeout)

    result.returncode = proc.returncode
    result.output = (stdout or b"").decode(errors="replace")
    result.duration = time.monotonic() - start
    return result


async def _worker(queue: asyncio.Queue, results: asyncio.Queue) -> None:
    while True:
        index, job = await queue.get()
        try:
            logger.debug("Starting %s: %s", job.name, " ".join(job.command))
            result = await _run_one(job)
            await results.put((index, result))
        finally:
            queue.task_done()


async def _run_pool(jobs: Sequence[Job], workers: int) -> list[JobResult]:
    queue: asyncio.Queue = asyncio.Queue(maxsize=len(jobs))
    done: asyncio.Queue = asyncio.Queue(maxsize=len(jobs))
    for index, job in enumerate(jobs):
        queue.put_nowait((index, job))

    loop = asyncio.get_running_loop()
    interrupted = loop.create_future()

    def _on_signal(signum):
        if not interrupted.done():
            interrupted.set_result(signum)

    handled = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _on_signal, signum)
            handled.append(signum)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not the main thread, or no signal support on this platform.
            pass

    tasks = [asyncio.create_task(_worker(queue, done)) for _ in range(workers)]
    collected: dict[int, JobResult] = {}
    try:
        while len(collected) < len(jobs):
            getter = asyncio.ensure_future(done.get())
            finished, _ = await asyncio.wait(
                {getter, interrupted}, return_when=asyncio.FIRST_COMPLETED,
            )
            if getter in finished:
                index, result = getter.result()
                collected[index] = result
                logger.info("%s %s (%.1fs)", result.name,
                            "OK" if result.ok else "FAILED", result.duration)
                continue
            getter.cancel()
            pending = [job.name for i, job in enumerate(jobs) if i not in collected]
            logger.warning("Interrupted by %s, pending jobs: %s",
                           signal.Signals(interrupted.result()).name,
                           ", ".join(pending))
            raise PoolInterrupted(pending)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for signum in handled:
            loop.remove_signal_handler(signum)

    return [collected[i] for i in range(len(jobs))]


def run_jobs(jobs: Sequence[Job], workers: int | None = None) -> list[JobResult]:
    """Run jobs with at most workers running at once; default os.cpu_count().

    Blocks until every job completed. Raises PoolInterrupted on SIGINT or
    SIGTERM, carrying the names of jobs that had not completed.
    """
    if not jobs:
        return []
    workers = max(1, min(workers or os.cpu_count() or 1, len(jobs)))
    logger.info("Running %d job(s) with %d worker(s)", len(jobs), workers)
    return asyncio.run(_run_pool(jobs, workers))
