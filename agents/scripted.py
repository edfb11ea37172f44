"""
Scripted greedy agent.

Per unit: attack the nearest enemy when it is in range, capture the building
underfoot, otherwise take one step toward a target (the nearest enemy, or
for infantry the nearest building it does not own when that is no further
away). Before moving it spends its funds on infantry at free factories.
"""

import logging
from typing import Optional

from engine.buildings import Building
from engine.economy import can_capture, can_produce
from engine.grid import Position, manhattan, sign
from engine.state import GameState
from engine.units import Unit, UnitKind

from .base import Action, ActionType, Agent

logger = logging.getLogger(__name__)


def nearest_enemy(state: GameState, unit: Unit) -> Optional[Unit]:
    """Manhattan-nearest opposing unit; roster order breaks ties."""
    best, best_dist = None, None
    for other in state.units:
        if other.side == unit.side or not other.is_alive():
            continue
        dist = manhattan(unit.position, other.position)
        if best_dist is None or dist < best_dist:
            best, best_dist = other, dist
    return best


def nearest_unowned_building(state: GameState, unit: Unit) -> Optional[Building]:
    best, best_dist = None, None
    for building in state.buildings:
        if building.owner == unit.side:
            continue
        dist = manhattan(unit.position, building.position)
        if best_dist is None or dist < best_dist:
            best, best_dist = building, dist
    return best


def step_toward(state: GameState, unit: Unit, target: tuple[int, int]) -> Optional[Position]:
    """First free in-bounds neighbour in the fixed preference order."""
    sx = sign(target[0] - unit.x)
    sy = sign(target[1] - unit.y)
    for dx, dy in ((sx, sy), (sx, 0), (0, sy), (-sx, sy), (sx, -sy)):
        if dx == 0 and dy == 0:
            continue
        pos = unit.position.offset(dx, dy)
        if state.in_bounds(pos) and state.unit_at(pos) is None:
            return pos
    return None


def decide(state: GameState, unit: Unit) -> Action:
    """
    Choose the next action for unit without mutating state.

    A unit that has already moved can only attack or capture.
    """
    enemy = nearest_enemy(state, unit)
    enemy_dist = manhattan(unit.position, enemy.position) if enemy else None

    if enemy is not None and not unit.has_attacked and enemy_dist <= unit.attack_range:
        return Action(ActionType.ATTACK, unit.id, enemy.position)

    building = state.building_at(unit.position)
    if can_capture(unit, building):
        return Action(ActionType.CAPTURE, unit.id, building.position)

    if unit.has_moved:
        return Action(ActionType.WAIT, unit.id)

    target = enemy.position if enemy else None
    if unit.kind == UnitKind.INFANTRY:
        objective = nearest_unowned_building(state, unit)
        if objective is not None:
            building_dist = manhattan(unit.position, objective.position)
            if enemy_dist is None or building_dist <= enemy_dist:
                target = objective.position

    if target is None:
        return Action(ActionType.WAIT, unit.id)

    step = step_toward(state, unit, target)
    if step is None:
        return Action(ActionType.WAIT, unit.id)
    return Action(ActionType.MOVE, unit.id, step)


class ScriptedAgent(Agent):
    """Deterministic agent used for the single-player opponent and headless runs."""

    def produce(self, manager) -> list[Unit]:
        state, ruleset = manager.state, manager.ruleset
        kind = ruleset.ai_production_kind
        built = []
        for building in list(state.buildings):
            if not can_produce(state, building, kind, self.side, ruleset):
                continue
            unit = manager.perform_production(building, kind, self.side)
            if unit is not None:
                built.append(unit)
        return built

    def play_turn(self, manager) -> list[Action]:
        self.turn_count += 1
        state = manager.state
        taken: list[Action] = []

        self.produce(manager)

        for unit in list(state.units_of(self.side)):
            if state.game_over:
                break
            if not unit.is_alive() or unit.has_moved:
                continue
            action = decide(state, unit)
            if self._execute(manager, unit, action):
                taken.append(action)
            if action.type == ActionType.MOVE and unit.is_alive():
                follow_up = decide(state, unit)
                if follow_up.type != ActionType.WAIT and self._execute(manager, unit, follow_up):
                    taken.append(follow_up)

        logger.info(
            f"Turn {state.turn}: {self.side.value} agent took {len(taken)} actions"
        )
        return taken

    def _execute(self, manager, unit: Unit, action: Action) -> bool:
        state = manager.state
        if action.type == ActionType.ATTACK:
            return manager.perform_attack(unit, state.unit_at(action.target)) is not None
        if action.type == ActionType.CAPTURE:
            return manager.perform_capture(unit, state.building_at(action.target)) is not None
        if action.type == ActionType.MOVE:
            return manager.perform_move(unit, action.target)
        return False
