# pingmap/sweep/engine.py

from __future__ import annotations

import queue
import threading
import time
from typing import Callable, Optional

from pingmap.models import Block, ProbeResult, SweepConfig, SweepSummary
from pingmap.sweep.aggregate import Aggregator, SweepStateError
from pingmap.sweep.canvas import Canvas
from pingmap.sweep.icmp import IcmpProber, Probe
from pingmap.sweep.pool import ProbeWorkerPool, offer
from pingmap.sweep.ranges import enumerate_tasks
from pingmap.utils.logging import get_logger

log = get_logger(__name__)


def _produce(block: Block, tasks: queue.Queue, aborted: threading.Event) -> None:
    for task in enumerate_tasks(block):
        if not offer(tasks, task, aborted):
            return


def run_sweep(
        block: Block,
        config: Optional[SweepConfig] = None,
        probe: Optional[Probe] = None,
        on_result: Optional[Callable[[ProbeResult], None]] = None,
) -> SweepSummary:
    """
    Probe every host of ``block`` and return the painted canvas.

    Queues, workers, producer and canvas all belong to this call; nothing
    outlives it except the returned summary. ``probe`` defaults to a real
    ICMP prober built from ``config``; tests pass a fake.
    """
    config = config or SweepConfig()
    if probe is None:
        probe = IcmpProber(timeout=config.probe_timeout, privileged=config.privileged)

    tasks: queue.Queue = queue.Queue(maxsize=config.queue_capacity)
    results: queue.Queue = queue.Queue(maxsize=config.queue_capacity)

    canvas = Canvas(config.canvas_side(block))
    aggregator = Aggregator(block, canvas)
    aborted = threading.Event()
    pool = ProbeWorkerPool(
        tasks, results, probe, pool_size=config.pool_size, retry=config.retry, aborted=aborted,
    )
    producer = threading.Thread(
        target=_produce, args=(block, tasks, aborted), name="task-producer", daemon=True,
    )

    log.info(
        "Sweeping %s: %d hosts, %d workers, %dpx canvas",
        block.cidr,
        block.host_count,
        config.pool_size,
        canvas.side,
    )
    started = time.monotonic()

    pool.start()
    producer.start()
    completed = False
    try:
        aggregator.drain(results, on_result=on_result)
        completed = True
    finally:
        if not completed:
            log.warning("Sweep of %s stopped after %d/%d results", block.cidr, aggregator.completed, block.host_count)
            pool.abort()
            producer.join()

    # every task has reported, so the producer is finished and the workers are idle
    producer.join()
    pool.stop()
    if not results.empty():
        raise SweepStateError(f"{results.qsize()} result(s) arrived after the sweep of {block.cidr} completed")

    elapsed = time.monotonic() - started
    log.info(
        "Sweep of %s finished in %.1fs: %d/%d reachable",
        block.cidr,
        elapsed,
        sum(n for outcome, n in aggregator.outcomes.items() if outcome.reachable),
        aggregator.completed,
    )
    if aggregator.clipped:
        log.info("%d address(es) fell outside the %dpx canvas", aggregator.clipped, canvas.side)

    return SweepSummary(
        block=block,
        canvas=canvas,
        outcomes=dict(aggregator.outcomes),
        clipped=aggregator.clipped,
        elapsed=elapsed,
    )
