"""Shared test fixtures and helpers."""

import random

import pytest

from engine import EngagementCombat, GameState, Ruleset, TurnManager
from engine.buildings import BuildingKind
from engine.units import Side, UnitKind


# --- Fixtures ---


@pytest.fixture
def ruleset():
    """Built-in default ruleset."""
    return Ruleset.default()


@pytest.fixture
def state(ruleset):
    """Empty board: no units, one HQ per side, 1000 funds each."""
    game_state = GameState(board=ruleset.board)
    game_state.buildings = [
        ruleset.make_building(BuildingKind.HQ, 0, 9, owner=Side.PLAYER),
        ruleset.make_building(BuildingKind.HQ, 7, 0, owner=Side.ENEMY),
    ]
    game_state.treasury = {Side.PLAYER: 1000, Side.ENEMY: 1000}
    return game_state


@pytest.fixture
def place(state, ruleset):
    """Factory that puts a unit on the `state` board and returns it."""
    def _place(kind, side, x, y, **kwargs):
        unit = ruleset.make_unit(UnitKind(kind), Side(side), x, y, **kwargs)
        state.add_unit(unit)
        return unit
    return _place


@pytest.fixture
def build(state, ruleset):
    """Factory that adds a building to the `state` board and returns it."""
    def _build(kind, x, y, owner=None, **kwargs):
        building = ruleset.make_building(
            BuildingKind(kind), x, y, owner=Side(owner) if owner else None, **kwargs
        )
        state.buildings.append(building)
        return building
    return _build


@pytest.fixture
def combat():
    """Combat resolver with the random multiplier pinned to 1.0."""
    return fixed_roll_combat()


@pytest.fixture
def manager(ruleset, combat):
    """TurnManager on the default layout, no opponent agent."""
    return TurnManager(ruleset=ruleset, combat=combat)


@pytest.fixture
def skirmish(manager, state):
    """TurnManager driving the empty `state` board."""
    manager.state = state
    return manager


@pytest.fixture
def rng():
    """Deterministic RNG seeded at 42."""
    return random.Random(42)


# --- Helper functions ---


def fixed_roll_combat(multiplier=1.0):
    resolver = EngagementCombat(rng_seed=0)
    resolver.roll_multiplier = lambda: multiplier
    return resolver


class Recorder:
    """Collects (event, payload) pairs emitted through on_action."""

    def __init__(self):
        self.sent = []

    def __call__(self, event, payload):
        self.sent.append((event, payload))

    @property
    def types(self):
        return [event for event, _ in self.sent]
