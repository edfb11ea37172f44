"""
Grid tactics engine for a two-sided skirmish game.

Core modules:
- grid: Board geometry and Manhattan distance
- units / buildings: Entity model
- rules: YAML ruleset (stat tables, economy, initial layout)
- state: Match state and selection phases
- ranges: Movement and attack range calculation
- combat/: Attack and counterattack resolution
- economy: Capture, income and production
- turn: Turn sequencing and the interaction state machine
"""

from .grid import Board, Position, manhattan
from .units import Side, Unit, UnitCategory, UnitKind, UnitStats
from .buildings import Building, BuildingKind, BuildingStats
from .rules import Ruleset, RulesetError
from .state import GameState, Phase
from .ranges import attack_targets, movement_range
from .combat import CombatReport, CombatResolver, EngagementCombat
from .economy import CaptureResult, capture, produce
from .turn import TurnManager

__all__ = [
    # Grid
    "Board", "Position", "manhattan",
    # Entities
    "Side", "Unit", "UnitCategory", "UnitKind", "UnitStats",
    "Building", "BuildingKind", "BuildingStats",
    # Rules
    "Ruleset", "RulesetError",
    # State
    "GameState", "Phase",
    # Ranges
    "attack_targets", "movement_range",
    # Combat
    "CombatReport", "CombatResolver", "EngagementCombat",
    # Economy
    "CaptureResult", "capture", "produce",
    # Turn Management
    "TurnManager",
]
