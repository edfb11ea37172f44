"""
Ruleset loading: board size, economy, unit/building stat tables and the
initial layout.

Rules are read from YAML. If the file is missing, the built-in defaults
below are used instead.
"""

import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .grid import Board
from .units import Side, Unit, UnitCategory, UnitKind, UnitStats
from .buildings import Building, BuildingKind, BuildingStats

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).parent / "data" / "rules.yaml"


class RulesetError(ValueError):
    """Raised when a ruleset file is malformed."""


@dataclass(frozen=True)
class UnitPlacement:
    kind: UnitKind
    side: Side
    x: int
    y: int


@dataclass(frozen=True)
class BuildingPlacement:
    kind: BuildingKind
    owner: Optional[Side]
    x: int
    y: int


@dataclass
class Ruleset:
    """All static game parameters."""
    board: Board = field(default_factory=Board)
    starting_funds: int = 1000
    base_income: int = 300
    unit_stats: dict[UnitKind, UnitStats] = field(default_factory=dict)
    building_stats: dict[BuildingKind, BuildingStats] = field(default_factory=dict)
    unit_layout: list[UnitPlacement] = field(default_factory=list)
    building_layout: list[BuildingPlacement] = field(default_factory=list)
    ai_production_kind: UnitKind = UnitKind.INFANTRY

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Ruleset":
        """Load a ruleset from YAML, falling back to defaults if missing."""
        path = Path(path) if path else DEFAULT_RULES_PATH
        if not path.exists():
            logger.warning(f"Ruleset not found: {path}, using built-in defaults")
            return cls.default()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        ruleset = cls.from_dict(data)
        logger.info(
            f"Loaded ruleset from {path}: {len(ruleset.unit_stats)} unit types, "
            f"{len(ruleset.building_stats)} building types"
        )
        return ruleset

    @classmethod
    def default(cls) -> "Ruleset":
        return cls.from_dict(_DEFAULTS)

    @classmethod
    def from_dict(cls, data: dict) -> "Ruleset":
        if not isinstance(data, dict):
            raise RulesetError("ruleset root must be a mapping")

        board_data = data.get("board", {})
        economy = data.get("economy", {})

        try:
            board = Board(
                width=int(board_data.get("width", 8)),
                height=int(board_data.get("height", 10)),
            )

            unit_stats = {}
            for name, info in (data.get("unit_types") or _DEFAULTS["unit_types"]).items():
                kind = UnitKind(name)
                unit_stats[kind] = UnitStats(
                    kind=kind,
                    max_health=int(info.get("max_health", 100)),
                    max_soldiers=int(info.get("max_soldiers", 10)),
                    movement=int(info.get("movement", 3)),
                    attack_range=int(info.get("attack_range", 1)),
                    attack_power=int(info.get("attack_power", 25)),
                    cost=int(info.get("cost", 300)),
                    category=UnitCategory(info.get("category", "ground")),
                )

            building_stats = {}
            for name, info in (data.get("building_types") or _DEFAULTS["building_types"]).items():
                kind = BuildingKind(name)
                building_stats[kind] = BuildingStats(
                    kind=kind,
                    max_capture_points=int(info.get("capture_points", 20)),
                    income=int(info.get("income", 100)),
                    can_produce=bool(info.get("can_produce", False)),
                )

            layout = data.get("layout", {})
            unit_layout = [
                UnitPlacement(UnitKind(u["kind"]), Side(u["side"]), int(u["x"]), int(u["y"]))
                for u in layout.get("units", [])
            ]
            building_layout = [
                BuildingPlacement(
                    BuildingKind(b["kind"]), _parse_owner(b.get("owner")),
                    int(b["x"]), int(b["y"]),
                )
                for b in layout.get("buildings", [])
            ]

            ai = data.get("ai", {})
            ai_kind = UnitKind(ai.get("production_kind", "infantry"))

            starting_funds = int(economy.get("starting_funds", 1000))
            base_income = int(economy.get("base_income", 300))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RulesetError(f"Invalid ruleset: {e}") from e

        ruleset = cls(
            board=board,
            starting_funds=starting_funds,
            base_income=base_income,
            unit_stats=unit_stats,
            building_stats=building_stats,
            unit_layout=unit_layout,
            building_layout=building_layout,
            ai_production_kind=ai_kind,
        )
        ruleset._validate_layout()
        return ruleset

    def _validate_layout(self):
        seen = set()
        for p in self.unit_layout:
            pos = (p.x, p.y)
            if not self.board.in_bounds(pos):
                raise RulesetError(f"unit placement out of bounds: {pos}")
            if pos in seen:
                raise RulesetError(f"two units placed on {pos}")
            if p.kind not in self.unit_stats:
                raise RulesetError(f"no stats for unit kind {p.kind.value}")
            seen.add(pos)
        seen = set()
        for p in self.building_layout:
            pos = (p.x, p.y)
            if not self.board.in_bounds(pos):
                raise RulesetError(f"building placement out of bounds: {pos}")
            if pos in seen:
                raise RulesetError(f"two buildings placed on {pos}")
            if p.kind not in self.building_stats:
                raise RulesetError(f"no stats for building kind {p.kind.value}")
            seen.add(pos)

    # Factories
    def stats_for(self, kind: UnitKind) -> UnitStats:
        try:
            return self.unit_stats[kind]
        except KeyError:
            raise ValueError(f"Unknown unit kind: {kind}") from None

    def cost_of(self, kind: UnitKind) -> int:
        return self.stats_for(kind).cost

    def make_unit(self, kind: UnitKind, side: Side, x: int, y: int, **kwargs) -> Unit:
        return Unit(kind=kind, side=side, x=x, y=y, stats=self.stats_for(kind), **kwargs)

    def make_building(
        self, kind: BuildingKind, x: int, y: int, owner: Optional[Side] = None, **kwargs
    ) -> Building:
        return Building(
            kind=kind, x=x, y=y, stats=self.building_stats[kind], owner=owner, **kwargs
        )

    def initial_units(self) -> list[Unit]:
        return [self.make_unit(p.kind, p.side, p.x, p.y) for p in self.unit_layout]

    def initial_buildings(self) -> list[Building]:
        return [self.make_building(p.kind, p.x, p.y, p.owner) for p in self.building_layout]


def _parse_owner(value) -> Optional[Side]:
    if value in (None, "neutral", ""):
        return None
    return Side(value)


_DEFAULTS = {
    "board": {"width": 8, "height": 10},
    "economy": {"starting_funds": 1000, "base_income": 300},
    "unit_types": {
        "infantry": {"max_soldiers": 10, "movement": 3, "attack_range": 1,
                     "attack_power": 25, "cost": 300},
        "tank": {"max_soldiers": 4, "movement": 5, "attack_range": 1,
                 "attack_power": 60, "cost": 500},
        "chopper": {"max_soldiers": 3, "movement": 6, "attack_range": 2,
                    "attack_power": 35, "cost": 700, "category": "air"},
    },
    "building_types": {
        "city": {"capture_points": 20, "income": 100},
        "factory": {"capture_points": 20, "income": 100, "can_produce": True},
        "hq": {"capture_points": 30, "income": 200},
    },
    "layout": {
        "units": [
            {"kind": "infantry", "side": "player", "x": 2, "y": 8},
            {"kind": "infantry", "side": "player", "x": 2, "y": 9},
            {"kind": "tank", "side": "player", "x": 0, "y": 8},
            {"kind": "chopper", "side": "player", "x": 1, "y": 9},
            {"kind": "infantry", "side": "enemy", "x": 5, "y": 1},
            {"kind": "infantry", "side": "enemy", "x": 5, "y": 0},
            {"kind": "tank", "side": "enemy", "x": 7, "y": 1},
            {"kind": "chopper", "side": "enemy", "x": 6, "y": 0},
        ],
        "buildings": [
            {"kind": "hq", "owner": "player", "x": 0, "y": 9},
            {"kind": "factory", "owner": "player", "x": 1, "y": 8},
            {"kind": "hq", "owner": "enemy", "x": 7, "y": 0},
            {"kind": "factory", "owner": "enemy", "x": 6, "y": 1},
            {"kind": "city", "owner": "neutral", "x": 2, "y": 3},
            {"kind": "city", "owner": "neutral", "x": 5, "y": 3},
            {"kind": "city", "owner": "neutral", "x": 3, "y": 5},
            {"kind": "city", "owner": "neutral", "x": 4, "y": 5},
            {"kind": "city", "owner": "neutral", "x": 2, "y": 7},
            {"kind": "city", "owner": "neutral", "x": 5, "y": 7},
        ],
    },
    "ai": {"production_kind": "infantry"},
}
