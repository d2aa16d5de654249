# pingmap/sweep/aggregate.py

from __future__ import annotations

import queue
from collections import Counter
from typing import Callable, Optional

from pingmap.models import Block, ProbeResult
from pingmap.sweep.canvas import REACHABLE, UNREACHABLE, Canvas
from pingmap.sweep.hilbert import hilbert_coordinates
from pingmap.utils.logging import get_logger

log = get_logger(__name__)


class SweepStateError(RuntimeError):
    """A result arrived that the sweep cannot account for."""


class Aggregator:
    """
    Paints ProbeResults onto the canvas and counts completions.

    The sweep is complete once ``expected`` distinct offsets have reported
    (by default every host offset of the block). Duplicates, offsets outside
    the block and anything arriving after completion raise SweepStateError.
    """

    def __init__(self, block: Block, canvas: Canvas, expected: Optional[int] = None):
        self.block = block
        self.canvas = canvas
        self.expected = block.host_count if expected is None else expected
        self.completed = 0
        self.clipped = 0
        self.outcomes: Counter = Counter()
        self._seen = bytearray((block.size + 7) // 8)

    @property
    def done(self) -> bool:
        return self.completed >= self.expected

    def add(self, result: ProbeResult) -> bool:
        """Record one result; returns True when it completes the sweep."""
        if self.done:
            raise SweepStateError(
                f"result for offset {result.offset} arrived after the sweep of {self.block.cidr} completed"
            )
        offset = result.offset
        if not 1 <= offset < self.block.size:
            raise SweepStateError(f"offset {offset} is not a host of {self.block.cidr}")
        byte, bit = divmod(offset, 8)
        if self._seen[byte] & (1 << bit):
            raise SweepStateError(f"duplicate result for offset {offset} ({result.address})")
        self._seen[byte] |= 1 << bit

        x, y = hilbert_coordinates(offset, self.block.size)
        if not self.canvas.paint(x, y, REACHABLE if result.reachable else UNREACHABLE):
            self.clipped += 1
            log.debug("%s maps to (%d, %d), outside the %dpx canvas", result.address, x, y, self.canvas.side)

        self.completed += 1
        self.outcomes[result.outcome] += 1
        return self.done

    def drain(
            self,
            results: queue.Queue,
            on_result: Optional[Callable[[ProbeResult], None]] = None,
    ) -> None:
        while not self.done:
            result = results.get()
            self.add(result)
            if on_result is not None:
                on_result(result)
