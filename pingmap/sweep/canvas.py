# pingmap/sweep/canvas.py

from __future__ import annotations

UNREACHABLE = 0
REACHABLE = 1


class Canvas:
    """
    Square two-value pixel grid painted by the aggregator.

    Rows are bytearrays indexed ``rows[y][x]``. Every cell starts as
    UNREACHABLE; points outside the grid are not painted.
    """

    def __init__(self, side: int):
        if side < 1:
            raise ValueError(f"Canvas side must be >= 1, got {side}")
        self.side = side
        self.rows = [bytearray(side) for _ in range(side)]

    def contains(self, x: int, y: int) -> bool:
        return 0 <= x < self.side and 0 <= y < self.side

    def paint(self, x: int, y: int, value: int) -> bool:
        """Set one pixel; returns False (and changes nothing) when (x, y) is off the canvas."""
        if value not in (UNREACHABLE, REACHABLE):
            raise ValueError(f"Unknown pixel value: {value}")
        if not self.contains(x, y):
            return False
        self.rows[y][x] = value
        return True

    def get(self, x: int, y: int) -> int:
        return self.rows[y][x]

    def count(self, value: int) -> int:
        return sum(row.count(value) for row in self.rows)

    def to_lists(self) -> list[list[int]]:
        return [list(row) for row in self.rows]
