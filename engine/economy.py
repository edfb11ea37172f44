"""
Building capture, per-turn income and unit production.

Capture amount scales with the capturing unit's remaining health. Only
factories produce, and produced units cannot act on the turn they appear.
"""

import math
import logging
from dataclasses import dataclass
from typing import Optional

from .buildings import Building
from .rules import Ruleset
from .state import GameState
from .units import Side, Unit, UnitKind

logger = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    """Outcome of one capture action."""
    unit_id: str
    building_kind: str
    position: tuple[int, int]
    amount: int
    remaining: int
    captured: bool
    previous_owner: Optional[Side]
    new_owner: Optional[Side]

    def to_dict(self) -> dict:
        return {
            "unit_id": self.unit_id,
            "building_kind": self.building_kind,
            "position": list(self.position),
            "amount": self.amount,
            "remaining": self.remaining,
            "captured": self.captured,
            "previous_owner": self.previous_owner.value if self.previous_owner else "neutral",
            "new_owner": self.new_owner.value if self.new_owner else "neutral",
        }


def capture_amount(unit: Unit) -> int:
    return math.ceil(unit.health / 10)


def can_capture(unit: Unit, building: Optional[Building]) -> bool:
    """Infantry that has not attacked, standing on a building it does not own."""
    if building is None or not unit.is_alive():
        return False
    if unit.kind != UnitKind.INFANTRY or unit.has_attacked:
        return False
    if unit.position != building.position:
        return False
    return building.owner != unit.side


def capture(state: GameState, unit: Unit, building: Building) -> Optional[CaptureResult]:
    """
    Deplete the building's capture points; transfer ownership at zero.

    The capturing unit is exhausted for the turn whatever the outcome.
    Returns None (no state change) if the capture is not allowed.
    """
    if not can_capture(unit, building):
        logger.debug(f"Capture rejected: {unit.kind.value} at {unit.position}")
        return None

    amount = capture_amount(unit)
    previous_owner = building.owner
    building.capture_points -= amount

    captured = building.capture_points <= 0
    if captured:
        building.owner = unit.side
        building.capture_points = building.max_capture_points
        logger.info(
            f"{unit.side.value} captured {building.kind.value} at {building.position}"
        )

    unit.exhaust()
    return CaptureResult(
        unit_id=unit.id,
        building_kind=building.kind.value,
        position=tuple(building.position),
        amount=amount,
        remaining=building.capture_points,
        captured=captured,
        previous_owner=previous_owner,
        new_owner=building.owner,
    )


def income_for(state: GameState, side: Side, ruleset: Ruleset) -> int:
    """Base stipend plus income of every building the side owns."""
    return ruleset.base_income + sum(b.income for b in state.buildings_owned_by(side))


def credit_income(state: GameState, side: Side, ruleset: Ruleset) -> int:
    income = income_for(state, side, ruleset)
    state.treasury[side] += income
    return income


def can_produce(
    state: GameState, building: Optional[Building], kind: UnitKind, side: Side, ruleset: Ruleset
) -> bool:
    if building is None or not building.can_produce() or building.owner != side:
        return False
    if kind not in ruleset.unit_stats:
        return False
    if state.unit_at(building.position) is not None:
        return False
    return state.treasury[side] >= ruleset.cost_of(kind)


def produce(
    state: GameState, building: Building, kind: UnitKind, side: Side, ruleset: Ruleset
) -> Optional[Unit]:
    """Spend funds to build a unit on an owned factory. None if not allowed."""
    if not can_produce(state, building, kind, side, ruleset):
        logger.debug(f"Production of {kind.value} at {building.position if building else None} rejected")
        return None

    state.treasury[side] -= ruleset.cost_of(kind)
    unit = ruleset.make_unit(kind, side, building.x, building.y)
    unit.exhaust()
    state.add_unit(unit)
    logger.info(
        f"{side.value} produced {kind.value} at {building.position} "
        f"(funds left: {state.treasury[side]})"
    )
    return unit
