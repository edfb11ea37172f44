"""
Unit state for the tactical board.

Handles unit kinds, sides, per-kind stats and runtime health/action flags.
"""

import math
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .grid import Position


class Side(Enum):
    """The two competing sides. PLAYER moves first."""
    PLAYER = "player"
    ENEMY = "enemy"

    @property
    def opponent(self) -> "Side":
        return Side.ENEMY if self is Side.PLAYER else Side.PLAYER


class UnitKind(Enum):
    INFANTRY = "infantry"
    TANK = "tank"
    CHOPPER = "chopper"


class UnitCategory(Enum):
    GROUND = "ground"
    AIR = "air"


@dataclass(frozen=True)
class UnitStats:
    """Static per-kind stats loaded from the ruleset."""
    kind: UnitKind
    max_health: int = 100
    max_soldiers: int = 10
    movement: int = 3
    attack_range: int = 1
    attack_power: int = 25
    cost: int = 300
    category: UnitCategory = UnitCategory.GROUND

    def __post_init__(self):
        if self.max_health <= 0:
            raise ValueError(f"{self.kind.value}: max_health must be positive")
        if self.movement < 0 or self.attack_range < 1:
            raise ValueError(f"{self.kind.value}: invalid movement/attack_range")


@dataclass
class Unit:
    """A unit on the board."""
    kind: UnitKind
    side: Side
    x: int
    y: int
    stats: UnitStats
    health: Optional[int] = None
    has_moved: bool = False
    has_attacked: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def __post_init__(self):
        if self.health is None:
            self.health = self.stats.max_health
        if not 0 <= self.health <= self.stats.max_health:
            raise ValueError(
                f"health {self.health} outside [0, {self.stats.max_health}]"
            )

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    @property
    def max_health(self) -> int:
        return self.stats.max_health

    @property
    def max_soldiers(self) -> int:
        return self.stats.max_soldiers

    @property
    def movement(self) -> int:
        return self.stats.movement

    @property
    def attack_range(self) -> int:
        return self.stats.attack_range

    @property
    def attack_power(self) -> int:
        return self.stats.attack_power

    @property
    def soldiers(self) -> int:
        """Soldiers shown for this unit, always derived from health."""
        return soldiers_for(self.health, self.max_health, self.max_soldiers)

    @property
    def display_number(self) -> int:
        return math.ceil(self.health / 10)

    @property
    def is_exhausted(self) -> bool:
        return self.has_moved and self.has_attacked

    def is_alive(self) -> bool:
        return self.health > 0

    def take_damage(self, damage: int):
        """Apply damage, clamping health into [0, max_health]."""
        self.health = max(0, min(self.max_health, self.health - max(0, damage)))

    def move_to(self, pos: Position):
        self.x, self.y = pos
        self.has_moved = True

    def exhaust(self):
        """Mark the unit as having used both its move and attack."""
        self.has_moved = True
        self.has_attacked = True

    def reset(self):
        """Start-of-turn reset."""
        self.has_moved = False
        self.has_attacked = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "side": self.side.value,
            "x": self.x,
            "y": self.y,
            "health": self.health,
            "max_health": self.max_health,
            "soldiers": self.soldiers,
            "display_number": self.display_number,
            "has_moved": self.has_moved,
            "has_attacked": self.has_attacked,
            "category": self.stats.category.value,
        }


def soldiers_for(health: int, max_health: int, max_soldiers: int) -> int:
    return math.ceil(health * max_soldiers / max_health)
