"""
Capturable buildings: cities, factories and headquarters.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .grid import Position
from .units import Side


class BuildingKind(Enum):
    CITY = "city"
    FACTORY = "factory"
    HQ = "hq"


@dataclass(frozen=True)
class BuildingStats:
    """Static per-kind building properties loaded from the ruleset."""
    kind: BuildingKind
    max_capture_points: int = 20
    income: int = 100
    can_produce: bool = False


@dataclass
class Building:
    """A building on the board. Owner None means neutral."""
    kind: BuildingKind
    x: int
    y: int
    stats: BuildingStats
    owner: Optional[Side] = None
    capture_points: Optional[int] = None

    def __post_init__(self):
        if self.capture_points is None:
            self.capture_points = self.stats.max_capture_points

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    @property
    def max_capture_points(self) -> int:
        return self.stats.max_capture_points

    @property
    def income(self) -> int:
        return self.stats.income

    def can_produce(self) -> bool:
        return self.stats.can_produce

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "x": self.x,
            "y": self.y,
            "owner": self.owner.value if self.owner else "neutral",
            "capture_points": self.capture_points,
            "max_capture_points": self.max_capture_points,
        }
