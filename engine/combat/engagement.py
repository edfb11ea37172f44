"""
Unit-vs-unit engagement resolution.

The attacker strikes first. A surviving defender counterattacks only when
the attacker stands within the defender's own attack range. Dead units are
purged from the roster after both halves resolve.
"""

import logging
from typing import Optional

from ..grid import manhattan
from ..state import GameState
from ..units import Unit
from .base import CombatResolver, CombatReport

logger = logging.getLogger(__name__)


class EngagementCombat(CombatResolver):
    """Resolves an attack between two units on the board."""

    def resolve(
        self,
        state: GameState,
        attacker: Unit,
        defender: Unit,
        defender_damage: Optional[int] = None,
        counter_damage: Optional[int] = None,
    ) -> CombatReport:
        """
        Resolve attacker vs defender and mutate the state.

        defender_damage / counter_damage replay pre-rolled values (used when
        mirroring a remote peer's attack); otherwise damage is rolled here.
        Legality (sides, range, action flags) is the caller's concern.
        """
        distance = manhattan(attacker.position, defender.position)
        defender_soldiers_before = defender.soldiers

        if defender_damage is None:
            defender_damage = self.calculate_damage(attacker)
        defender.take_damage(defender_damage)
        defender_died = not defender.is_alive()

        report = CombatReport(
            attacker_id=attacker.id,
            defender_id=defender.id,
            attacker_kind=attacker.kind.value,
            defender_kind=defender.kind.value,
            defender_damage=defender_damage,
            defender_died=defender_died,
            defender_soldiers_lost=defender_soldiers_before - defender.soldiers,
            distance=distance,
        )

        if not defender_died:
            if distance <= defender.attack_range:
                attacker_soldiers_before = attacker.soldiers
                if counter_damage is None:
                    counter_damage = self.calculate_damage(defender)
                attacker.take_damage(counter_damage)
                report.counter_damage = counter_damage
                report.attacker_died = not attacker.is_alive()
                report.attacker_soldiers_lost = attacker_soldiers_before - attacker.soldiers
            else:
                report.notes.append("defender out of range, no counterattack")

        attacker.has_attacked = True
        attacker.has_moved = True

        dead = state.purge_dead()
        if dead:
            logger.info(
                "Destroyed: " + ", ".join(f"{u.side.value} {u.kind.value}" for u in dead)
            )
        logger.debug(
            f"{attacker.side.value} {attacker.kind.value} -> {defender.side.value} "
            f"{defender.kind.value}: dmg={defender_damage} counter={report.counter_damage}"
        )
        return report
