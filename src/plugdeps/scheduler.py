# scheduler.py
from __future__ import annotations

import os
import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

from .errors import ProcessExitError, StreamError
from .model import Job
from .ui.console import Level, Notifier

DEFAULT_JOB_TIMEOUT = 30.0
TIMEOUT_MARKER = "PROCESS REACHED TIMEOUT."


def default_concurrency() -> int:
    """80% of available CPUs, at least one."""
    return max(int(0.8 * (os.cpu_count() or 1)), 1)


class _Batch:
    """Bookkeeping shared by the worker threads of one `run_jobs` call."""

    def __init__(self, total: int, timeout: float, notifier: Optional[Notifier]):
        self.total = total
        self.timeout = timeout
        self.notifier = notifier
        self.finished = 0
        self.cancelled = threading.Event()
        self._procs: Set[subprocess.Popen] = set()
        self._lock = threading.Lock()

    def execute(self, job: Job) -> None:
        if self.cancelled.is_set():
            job.stderr.append(TIMEOUT_MARKER)
            return

        try:
            proc = subprocess.Popen(
                job.command,
                cwd=str(job.cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            # Missing executable or working directory
            job.stderr.append(f"{StreamError(job.cwd, str(e))}\n")
            self._finish(job)
            return

        with self._lock:
            self._procs.add(proc)
        if self.cancelled.is_set():
            proc.kill()

        timed_out = False
        try:
            out, err = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            out, err = proc.communicate()
            timed_out = True
        except OSError as e:
            proc.kill()
            proc.wait()
            out, err = "", ""
            job.stderr.append(f"{StreamError(job.cwd, str(e))}\n")
        finally:
            with self._lock:
                self._procs.discard(proc)

        if timed_out or self.cancelled.is_set():
            if err:
                job.stderr.append(err)
            job.stderr.append(TIMEOUT_MARKER)
        elif proc.returncode == 0 and not job.stderr:
            job.stdout.append(out)
            # Git reports progress and advice on stderr even on success
            if err:
                job.warnings.append(err)
        else:
            job.stdout.append(out)
            if err:
                job.stderr.append(err)
            if proc.returncode != 0:
                job.stderr.insert(0, f"{ProcessExitError(proc.returncode, job.command)}\n")

        self._finish(job)

    def _finish(self, job: Job) -> None:
        with self._lock:
            self.finished += 1
            if self.notifier is not None and job.exit_message and not job.failed:
                self.notifier.notify(f"({self.finished}/{self.total}) {job.exit_message}", Level.INFO)

    def cancel(self) -> None:
        self.cancelled.set()
        with self._lock:
            procs = list(self._procs)
        for proc in procs:
            try:
                proc.kill()
            except OSError:
                # Already exited
                pass


def run_jobs(
    jobs: Sequence[Job],
    concurrency: Optional[int] = None,
    timeout: Optional[float] = None,
    notifier: Optional[Notifier] = None,
    cancel_on_timeout: bool = True,
) -> None:
    """
    Run jobs with bounded parallelism and block until they are done.

    Jobs start in array order, at most `concurrency` at a time, and finish in
    any order: results live on each Job, never in completion order. A job
    that already failed or has no command is skipped without spawning a
    process.

    The whole call waits at most `timeout * number_of_runnable_jobs` seconds.
    When that deadline passes with `cancel_on_timeout`, running processes are
    killed and every unfinished job is marked as timed out. Without it the
    call returns while processes keep running in the background, and their
    jobs may still be mutated after return.
    """
    if concurrency is None:
        concurrency = default_concurrency()
    if timeout is None:
        timeout = DEFAULT_JOB_TIMEOUT

    runnable: List[Job] = [j for j in jobs if j.runnable]
    if not runnable:
        return

    batch = _Batch(total=len(runnable), timeout=timeout, notifier=notifier)
    pool = ThreadPoolExecutor(max_workers=max(1, concurrency), thread_name_prefix="plugdeps")
    in_flight: dict[Future, Job] = {pool.submit(batch.execute, j): j for j in runnable}

    _done, pending = wait(list(in_flight.keys()), timeout=timeout * len(runnable))

    if not pending:
        pool.shutdown(wait=True)
        return

    if not cancel_on_timeout:
        pool.shutdown(wait=False)
        return

    batch.cancel()
    for fut in pending:
        if fut.cancel():
            # Never started
            in_flight[fut].stderr.append(TIMEOUT_MARKER)
    pool.shutdown(wait=True)


@dataclass
class RunOptions:
    """Scheduler settings shared by every stage of one operation."""
    concurrency: Optional[int] = None
    timeout: Optional[float] = None
    notifier: Optional[Notifier] = None
    cancel_on_timeout: bool = True

    def run(self, jobs: Sequence[Job]) -> None:
        run_jobs(
            jobs,
            concurrency=self.concurrency,
            timeout=self.timeout,
            notifier=self.notifier,
            cancel_on_timeout=self.cancel_on_timeout,
        )

    def notify(self, message: str, level: Level = Level.INFO) -> None:
        if self.notifier is not None:
            self.notifier.notify(message, level)
