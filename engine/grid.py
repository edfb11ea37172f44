"""
Square grid geometry for the tactical board.

Positions are integer (x, y) with the origin in the top-left corner.
All distances are Manhattan; nothing in the ruleset paths around obstacles.
"""

from dataclasses import dataclass
from typing import Iterator, NamedTuple


class Position(NamedTuple):
    """A tile coordinate."""
    x: int
    y: int

    def offset(self, dx: int, dy: int) -> "Position":
        return Position(self.x + dx, self.y + dy)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


def manhattan(a: tuple[int, int], b: tuple[int, int]) -> int:
    """Manhattan distance between two tiles."""
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def sign(value: int) -> int:
    return (value > 0) - (value < 0)


@dataclass(frozen=True)
class Board:
    """Board bounds."""
    width: int = 8
    height: int = 10

    def in_bounds(self, pos: tuple[int, int]) -> bool:
        x, y = pos
        return 0 <= x < self.width and 0 <= y < self.height

    def diamond(self, center: tuple[int, int], radius: int) -> Iterator[Position]:
        """
        Yield every in-bounds tile at Manhattan distance 1..radius from center.

        Dense scan over the bounding square, row by row. The center itself
        is never yielded.
        """
        cx, cy = center
        for dy in range(-radius, radius + 1):
            for dx in range(-radius, radius + 1):
                distance = abs(dx) + abs(dy)
                if distance == 0 or distance > radius:
                    continue
                pos = Position(cx + dx, cy + dy)
                if self.in_bounds(pos):
                    yield pos
