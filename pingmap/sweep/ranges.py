# pingmap/sweep/ranges.py

from __future__ import annotations

from typing import Iterator

from pingmap.models import AddressTask, Block


def enumerate_tasks(block: Block) -> Iterator[AddressTask]:
    """
    Yield one AddressTask per host offset 1 .. size-1, in ascending order.

    The network address (offset 0) is never yielded. The generator is lazy,
    so a /2 does not materialize its 2**30 tasks.
    """
    for offset in range(1, block.size):
        yield AddressTask(address=block.address(offset), offset=offset)
