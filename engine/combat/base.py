"""
Base combat resolution: the damage primitive and engagement report.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CombatReport:
    """Outcome of one attack, including any counterattack."""
    attacker_id: str
    defender_id: str
    attacker_kind: str
    defender_kind: str
    defender_damage: int
    defender_died: bool
    defender_soldiers_lost: int = 0
    counter_damage: Optional[int] = None
    attacker_died: bool = False
    attacker_soldiers_lost: int = 0
    distance: int = 0
    notes: list[str] = field(default_factory=list)

    @property
    def countered(self) -> bool:
        return self.counter_damage is not None

    def to_dict(self) -> dict:
        return {
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "attacker_kind": self.attacker_kind,
            "defender_kind": self.defender_kind,
            "defender_damage": self.defender_damage,
            "defender_died": self.defender_died,
            "defender_soldiers_lost": self.defender_soldiers_lost,
            "counter_damage": self.counter_damage,
            "attacker_died": self.attacker_died,
            "attacker_soldiers_lost": self.attacker_soldiers_lost,
            "distance": self.distance,
            "notes": list(self.notes),
        }


class CombatResolver:
    """Base class for combat resolution."""

    VARIANCE_MIN = 0.8
    VARIANCE_SPAN = 0.4

    def __init__(self, rng_seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random(rng_seed)

    def roll_multiplier(self) -> float:
        """Uniform random multiplier in [0.8, 1.2)."""
        return self.VARIANCE_MIN + self.rng.random() * self.VARIANCE_SPAN

    def calculate_damage(self, attacker) -> int:
        """
        Damage dealt by attacker: attack power scaled by the attacker's
        remaining health fraction and by the random multiplier.

        Used for both the initial strike and the counterattack.
        """
        damage = attacker.attack_power
        damage *= attacker.health / attacker.max_health
        damage *= self.roll_multiplier()
        return math.floor(damage)
