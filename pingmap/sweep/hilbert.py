# pingmap/sweep/hilbert.py

from __future__ import annotations


def hilbert_coordinates(offset: int, size: int) -> tuple[int, int]:
    """
    Map a position along a Hilbert curve to (x, y).

    The offset is consumed two bits at a time, least significant pair first.
    Each pair picks a quadrant of the current cell; entering quadrant 0 or 3
    rotates what has been built so far, then the quadrant origin (scaled by
    the current cell size) is added.

    ``size`` bounds the iteration (cell sizes 1, 2, 4, ... below ``size``).
    Using the block size here, as the sweep does, makes every offset in
    [0, size) land on a distinct cell, and consecutive offsets on
    neighbouring cells.
    """
    x = y = 0
    t = offset
    cell = 1
    while cell < size:
        rx = 1 & (t // 2)
        ry = 1 & (t ^ rx)
        if ry == 0:
            if rx == 1:
                x = cell - 1 - x
                y = cell - 1 - y
            x, y = y, x
        x += cell * rx
        y += cell * ry
        t //= 4
        cell *= 2
    return x, y


def hilbert_side(size: int) -> int:
    """Side of the square grid that holds the coordinates of every offset below ``size``."""
    if size <= 1:
        return 1
    bits = (size - 1).bit_length()
    return 1 << ((bits + 1) // 2)
