"""
Movement and attack range calculation.

Reachability is pure Manhattan distance: a blocked tile between a unit and
its destination does not shorten how far the unit can go. Only the
destination itself must be free.
"""

from typing import Optional

from .grid import Position
from .state import GameState
from .units import Unit


def movement_range(state: GameState, unit: Unit) -> list[Position]:
    """Tiles the unit may move to this turn."""
    if unit.has_moved:
        return []
    return [
        pos for pos in state.board.diamond(unit.position, unit.movement)
        if state.unit_at(pos) is None
    ]


def attack_targets(
    state: GameState, unit: Unit, origin: Optional[tuple[int, int]] = None
) -> list[Position]:
    """
    Tiles holding an opposing unit within attack range of origin.

    origin defaults to the unit's current position. This is the set that
    gates the attack action.
    """
    if unit.has_attacked:
        return []
    origin = origin if origin is not None else unit.position
    targets = []
    for pos in state.board.diamond(origin, unit.attack_range):
        target = state.unit_at(pos)
        if target is not None and target.side != unit.side:
            targets.append(pos)
    return targets


def attack_area(
    state: GameState, unit: Unit, origin: Optional[tuple[int, int]] = None
) -> list[Position]:
    """Every in-bounds tile within attack range, occupied or not. Display only."""
    origin = origin if origin is not None else unit.position
    return list(state.board.diamond(origin, unit.attack_range))


def can_move_to(state: GameState, unit: Unit, pos: tuple[int, int]) -> bool:
    return Position(*pos) in movement_range(state, unit)


def can_attack(state: GameState, attacker: Unit, defender: Unit) -> bool:
    if attacker.side == defender.side or not defender.is_alive():
        return False
    return defender.position in attack_targets(state, attacker)
