# pingmap/sweep/pool.py

from __future__ import annotations

import queue
import threading
import time
from typing import Any, Callable, Optional

from pingmap.models import AddressTask, ProbeOutcome, ProbeResult, RetryPolicy
from pingmap.sweep.icmp import Probe, ProbeParseError, ProbeSetupError, ProbeTimeout
from pingmap.utils.logging import get_logger

log = get_logger(__name__)

_STOP = object()

# how often blocked queue operations look at the abort flag
POLL_INTERVAL = 0.1


def offer(q: queue.Queue, item: Any, aborted: threading.Event) -> bool:
    """Put ``item`` on a bounded queue, giving up (False) once ``aborted`` is set."""
    while not aborted.is_set():
        try:
            q.put(item, timeout=POLL_INTERVAL)
            return True
        except queue.Full:
            continue
    return False


class ProbeWorkerPool:
    """
    Fixed set of worker threads turning AddressTasks into ProbeResults.

    Every task taken from ``tasks`` produces exactly one result on
    ``results``; retries happen inside the worker that owns the task.
    Setting ``aborted`` makes workers drop what they hold and exit even
    while both queues are full.
    """

    def __init__(
            self,
            tasks: queue.Queue,
            results: queue.Queue,
            probe: Probe,
            pool_size: int = 20,
            retry: Optional[RetryPolicy] = None,
            sleep: Callable[[float], None] = time.sleep,
            aborted: Optional[threading.Event] = None,
    ):
        if pool_size < 1:
            raise ValueError(f"pool_size must be >= 1, got {pool_size}")
        self.tasks = tasks
        self.results = results
        self.probe = probe
        self.pool_size = pool_size
        self.retry = retry or RetryPolicy()
        self.aborted = aborted or threading.Event()
        self._sleep = sleep
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("worker pool already started")
        for i in range(self.pool_size):
            t = threading.Thread(target=self._run, name=f"probe-worker-{i}", daemon=True)
            t.start()
            self._threads.append(t)
        log.debug("Started %d probe workers", self.pool_size)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Send one stop marker per worker and wait for them to exit."""
        for _ in self._threads:
            if not offer(self.tasks, _STOP, self.aborted):
                break
        self._join(timeout)

    def abort(self, timeout: Optional[float] = None) -> None:
        """Make every worker exit without finishing the queue, then wait for them."""
        self.aborted.set()
        self._join(timeout)

    def _join(self, timeout: Optional[float]) -> None:
        for t in self._threads:
            t.join(timeout)
        self._threads = []

    def _run(self) -> None:
        while not self.aborted.is_set():
            try:
                task = self.tasks.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            if task is _STOP:
                return
            if not offer(self.results, self.resolve(task), self.aborted):
                return

    def resolve(self, task: AddressTask) -> ProbeResult:
        """Probe one address until it yields a terminal outcome or the retry budget runs out."""
        attempts = 0
        while True:
            attempts += 1
            try:
                outcome = self.probe(task.address)
            except ProbeTimeout as e:
                if self.retry.exhausted(attempts) or self.aborted.is_set():
                    log.debug("%s: giving up after %d timeouts", task.address, attempts)
                    return self._result(task, ProbeOutcome.NO_REPLY, attempts)
                log.debug("%s: %s (attempt %d), retrying", task.address, e, attempts)
                continue
            except ProbeSetupError as e:
                if self.retry.exhausted(attempts) or self.aborted.is_set():
                    log.warning("%s: probe failed after %d attempts: %s", task.address, attempts, e)
                    return self._result(task, ProbeOutcome.ERROR, attempts)
                delay = self.retry.delay(attempts)
                log.debug("%s: %s (attempt %d), retrying in %.2fs", task.address, e, attempts, delay)
                self._sleep(delay)
                continue
            except ProbeParseError as e:
                log.warning("%s: unreadable reply: %s", task.address, e)
                return self._result(task, ProbeOutcome.MALFORMED, attempts)
            except Exception:
                # an unresolved task would stall the aggregator forever
                log.exception("%s: unexpected probe failure", task.address)
                return self._result(task, ProbeOutcome.ERROR, attempts)
            return self._result(task, outcome, attempts)

    @staticmethod
    def _result(task: AddressTask, outcome: ProbeOutcome, attempts: int) -> ProbeResult:
        return ProbeResult(offset=task.offset, address=task.address, outcome=outcome, attempts=attempts)
