"""
Game state for a single match.

GameState is the single source of truth: it owns the unit and building
rosters, the treasuries, the side to move and the transient selection state.
Every resolver and agent receives it explicitly.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from .grid import Board, Position
from .units import Side, Unit
from .buildings import Building, BuildingKind


class Phase(Enum):
    """Interaction phase of the side to move."""
    SELECTING = "selecting"
    MOVE_PREVIEW = "move_preview"
    ATTACK_PREVIEW = "attack_preview"
    CAPTURE_PROMPT = "capture_prompt"
    PRODUCTION_MENU = "production_menu"


@dataclass
class GameState:
    """Complete state of one match."""
    board: Board = field(default_factory=Board)
    units: list[Unit] = field(default_factory=list)
    buildings: list[Building] = field(default_factory=list)
    treasury: dict[Side, int] = field(
        default_factory=lambda: {Side.PLAYER: 0, Side.ENEMY: 0}
    )
    current_side: Side = Side.PLAYER
    turn: int = 1
    game_over: bool = False
    winner: Optional[Side] = None

    # Transient selection state
    phase: Phase = Phase.SELECTING
    selected_unit: Optional[Unit] = None
    selected_building: Optional[Building] = None
    movable: list[Position] = field(default_factory=list)
    attackable: list[Position] = field(default_factory=list)

    # Occupancy queries
    def in_bounds(self, pos: tuple[int, int]) -> bool:
        return self.board.in_bounds(pos)

    def unit_at(self, pos: tuple[int, int]) -> Optional[Unit]:
        for unit in self.units:
            if (unit.x, unit.y) == tuple(pos):
                return unit
        return None

    def building_at(self, pos: tuple[int, int]) -> Optional[Building]:
        for building in self.buildings:
            if (building.x, building.y) == tuple(pos):
                return building
        return None

    def get_unit(self, unit_id: str) -> Optional[Unit]:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        return None

    def units_of(self, side: Side) -> list[Unit]:
        return [u for u in self.units if u.side == side]

    def buildings_owned_by(self, side: Optional[Side]) -> list[Building]:
        return [b for b in self.buildings if b.owner == side]

    def has_hq(self, side: Side) -> bool:
        return any(b.kind == BuildingKind.HQ and b.owner == side for b in self.buildings)

    # Mutation helpers
    def add_unit(self, unit: Unit):
        if self.unit_at(unit.position) is not None:
            raise ValueError(f"tile {unit.position} is already occupied")
        self.units.append(unit)

    def purge_dead(self) -> list[Unit]:
        """Drop dead units from the roster and return them."""
        dead = [u for u in self.units if not u.is_alive()]
        if dead:
            self.units = [u for u in self.units if u.is_alive()]
            if self.selected_unit in dead:
                self.clear_selection()
        return dead

    def reset_side(self, side: Side):
        for unit in self.units_of(side):
            unit.reset()

    def clear_selection(self):
        self.phase = Phase.SELECTING
        self.selected_unit = None
        self.selected_building = None
        self.movable = []
        self.attackable = []

    def is_movable(self, pos: tuple[int, int]) -> bool:
        return Position(*pos) in self.movable

    def is_attackable(self, pos: tuple[int, int]) -> bool:
        return Position(*pos) in self.attackable

    def snapshot(self) -> dict:
        """Read-only view for presentation layers."""
        return {
            "board": {"width": self.board.width, "height": self.board.height},
            "turn": self.turn,
            "current_side": self.current_side.value,
            "phase": self.phase.value,
            "treasury": {side.value: amount for side, amount in self.treasury.items()},
            "game_over": self.game_over,
            "winner": self.winner.value if self.winner else None,
            "units": [u.to_dict() for u in self.units],
            "buildings": [b.to_dict() for b in self.buildings],
            "selected_unit": self.selected_unit.id if self.selected_unit else None,
            "selected_building": (
                self.selected_building.position.to_dict()
                if self.selected_building else None
            ),
            "movable": _positions(self.movable),
            "attackable": _positions(self.attackable),
        }


def _positions(positions: Iterable[Position]) -> list[dict]:
    return [p.to_dict() for p in positions]
