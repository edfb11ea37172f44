"""
Turn sequencing and interaction state machine.

Top level the two sides alternate (player -> enemy -> player ...). Within
the local side's turn, intents move the selection through the phases
SELECTING -> MOVE_PREVIEW / ATTACK_PREVIEW -> CAPTURE_PROMPT /
PRODUCTION_MENU and back.

Three ways to drive the other side:
- single-player: an agent plays the enemy turn right after end_turn()
- networked: local intents are mirrored out through on_action and the
  remote peer's intents come back in through apply_remote_event()
- neither: both sides are driven through the perform_* API (headless runs)

Illegal intents are rejected silently: they return False/None and leave the
state untouched.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from .buildings import Building
from .combat import CombatReport, EngagementCombat
from .economy import CaptureResult, capture, can_capture, credit_income, produce
from .grid import Position
from .ranges import attack_targets, can_attack, can_move_to, movement_range
from .rules import Ruleset
from .state import GameState, Phase
from .units import Side, Unit, UnitKind

logger = logging.getLogger(__name__)


class TurnManager:
    """Manages turn execution and the selection state machine."""

    def __init__(
        self,
        ruleset: Optional[Ruleset] = None,
        rules_path: Path | str | None = None,
        local_side: Side = Side.PLAYER,
        opponent=None,
        rng_seed: Optional[int] = None,
        combat: Optional[EngagementCombat] = None,
    ):
        self.ruleset = ruleset or Ruleset.load(rules_path)
        self.combat = combat or EngagementCombat(rng_seed)
        self.local_side = local_side
        self.opponent = opponent

        # Multiplayer state
        self.networked = False
        self.game_id: Optional[str] = None
        self.opponent_id: Optional[str] = None
        self.turn_handed_off = False

        # Event log for replays/tests
        self.events: list[dict] = []

        # Callbacks for presentation/network integration
        self.on_action: Optional[Callable[[str, dict], Any]] = None
        self.on_turn_start: Optional[Callable[[Side, int], Any]] = None
        self.on_turn_end: Optional[Callable[[Side, int], Any]] = None
        self.on_game_over: Optional[Callable[[Side], Any]] = None

        self.state = self._new_state()

    def _new_state(self) -> GameState:
        state = GameState(board=self.ruleset.board)
        state.units = self.ruleset.initial_units()
        state.buildings = self.ruleset.initial_buildings()
        state.treasury = {side: self.ruleset.starting_funds for side in Side}
        return state

    # ── Queries ──

    @property
    def remote_side(self) -> Side:
        return self.local_side.opponent

    def is_local_turn(self) -> bool:
        if self.state.game_over or self.turn_handed_off:
            return False
        return self.state.current_side == self.local_side

    def snapshot(self) -> dict:
        snap = self.state.snapshot()
        snap["local_side"] = self.local_side.value
        snap["networked"] = self.networked
        return snap

    # ── Rule-level mutation API (human intents, AI and remote mirror) ──

    def _may_act(self, unit: Optional[Unit]) -> bool:
        if unit is None or self.state.game_over:
            return False
        if unit.side != self.state.current_side:
            return False
        return unit.is_alive() and any(u is unit for u in self.state.units)

    def perform_move(self, unit: Unit, to: tuple[int, int]) -> bool:
        if not self._may_act(unit) or not can_move_to(self.state, unit, to):
            logger.debug(f"Move rejected: {unit.kind.value if unit else None} -> {to}")
            return False
        origin = unit.position
        unit.move_to(Position(*to))
        self._record("move", unit.side, unit_id=unit.id, kind=unit.kind.value,
                     from_pos=list(origin), to_pos=list(unit.position))
        if unit.side == self.local_side:
            self._emit("playerMove", {
                "fromX": origin.x, "fromY": origin.y, "toX": unit.x, "toY": unit.y,
            })
        return True

    def perform_attack(
        self,
        attacker: Unit,
        defender: Optional[Unit],
        defender_damage: Optional[int] = None,
        counter_damage: Optional[int] = None,
    ) -> Optional[CombatReport]:
        if not self._may_act(attacker) or defender is None:
            return None
        if not can_attack(self.state, attacker, defender):
            logger.debug(f"Attack rejected: {attacker.kind.value} -> {defender.position}")
            return None
        attacker_pos, target_pos = attacker.position, defender.position
        report = self.combat.resolve(
            self.state, attacker, defender,
            defender_damage=defender_damage, counter_damage=counter_damage,
        )
        self._record("attack", attacker.side, **report.to_dict())
        if attacker.side == self.local_side:
            # Rolled damages travel with the event so the peer replays them.
            self._emit("playerAttack", {
                "attackerX": attacker_pos.x, "attackerY": attacker_pos.y,
                "targetX": target_pos.x, "targetY": target_pos.y,
                "defenderDamage": report.defender_damage,
                "counterDamage": report.counter_damage,
            })
        self._check_victory(attacker.side)
        return report

    def perform_capture(self, unit: Unit, building: Optional[Building]) -> Optional[CaptureResult]:
        if not self._may_act(unit):
            return None
        result = capture(self.state, unit, building)
        if result is None:
            return None
        self._record("capture", unit.side, **result.to_dict())
        if unit.side == self.local_side:
            self._emit("captureBuilding", {
                "unitX": unit.x, "unitY": unit.y,
                "buildingX": building.x, "buildingY": building.y,
                "captureAmount": result.amount,
            })
        self._check_victory(unit.side)
        return result

    def perform_production(
        self, building: Optional[Building], kind: UnitKind, side: Side
    ) -> Optional[Unit]:
        if self.state.game_over or side != self.state.current_side or building is None:
            return None
        unit = produce(self.state, building, kind, side, self.ruleset)
        if unit is None:
            return None
        self._record("produce", side, unit_id=unit.id, kind=kind.value,
                     position=list(unit.position))
        if side == self.local_side:
            self._emit("produceUnit", {
                "buildingX": building.x, "buildingY": building.y, "unitType": kind.value,
            })
        return unit

    def close_turn(self, side: Side) -> int:
        """End-of-turn bookkeeping for side: reset its units, credit income."""
        self.state.reset_side(side)
        income = credit_income(self.state, side, self.ruleset)
        logger.info(
            f"Turn {self.state.turn}: {side.value} ends turn, +{income} "
            f"(treasury {self.state.treasury[side]})"
        )
        self._record("end_turn", side, income=income, treasury=self.state.treasury[side])
        if self.on_turn_end:
            self.on_turn_end(side, self.state.turn)
        return income

    def _set_side(self, side: Side):
        if side == self.state.current_side:
            return
        self.state.current_side = side
        self.turn_handed_off = False
        if side == Side.PLAYER:
            self.state.turn += 1
        self.state.clear_selection()
        if self.on_turn_start:
            self.on_turn_start(side, self.state.turn)

    def advance_turn(self) -> Side:
        """Close the current side's turn and hand over to the other side."""
        side = self.state.current_side
        self.close_turn(side)
        self._set_side(side.opponent)
        return self.state.current_side

    def _check_victory(self, acting_side: Side):
        """A side loses when it has no units left or no longer owns an HQ."""
        if self.state.game_over:
            return
        for side in (Side.PLAYER, Side.ENEMY):
            if not self.state.units_of(side) or not self.state.has_hq(side):
                self._declare_winner(side.opponent)
                if acting_side == self.local_side:
                    self._emit("gameOver", {"playerWon": side.opponent == self.local_side})
                return

    def _declare_winner(self, winner: Side):
        self.state.game_over = True
        self.state.winner = winner
        self.state.clear_selection()
        logger.info(f"Game over: {winner.value} wins on turn {self.state.turn}")
        self._record("game_over", winner, winner=winner.value)
        if self.on_game_over:
            self.on_game_over(winner)

    def _record(self, event_type: str, side: Side, **data):
        self.events.append({
            "turn": self.state.turn,
            "side": side.value,
            "type": event_type,
            **data,
        })

    # ── Local intents ──

    def click(self, pos: tuple[int, int]) -> bool:
        """Dispatch a tile click from the presentation layer."""
        if not self.is_local_turn():
            return False
        state = self.state
        pos = Position(*pos)

        if state.is_attackable(pos) and state.selected_unit is not None:
            return self.attack(pos)

        if state.is_movable(pos):
            return self.move_unit(pos)

        unit = state.unit_at(pos)
        building = state.building_at(pos)

        if unit is not None and unit is state.selected_unit:
            if state.phase == Phase.ATTACK_PREVIEW:
                self.cancel_selection()
                return True
            if not unit.has_moved and not unit.has_attacked:
                state.phase = Phase.ATTACK_PREVIEW
                state.movable = []
                state.attackable = attack_targets(state, unit)
                return True
            self.cancel_selection()
            return True

        if building is not None and unit is None:
            if building.owner == self.local_side and building.can_produce():
                return self.open_production(building)
            if building is state.selected_building:
                state.selected_building = None
            else:
                state.clear_selection()
                state.selected_building = building
            return True

        if unit is not None and unit.side == self.local_side:
            if (
                not unit.has_moved
                and can_capture(unit, building)
            ):
                return self.begin_capture(unit, building)
            return self.select_unit(unit)

        self.cancel_selection()
        return True

    def select_unit(self, unit: Unit) -> bool:
        if not self.is_local_turn() or unit is None or unit.side != self.local_side:
            return False
        state = self.state
        state.clear_selection()
        state.selected_unit = unit
        if unit.has_moved:
            state.phase = Phase.ATTACK_PREVIEW
            state.attackable = attack_targets(state, unit)
        else:
            state.phase = Phase.MOVE_PREVIEW
            state.movable = movement_range(state, unit)
            state.attackable = attack_targets(state, unit)
        return True

    def cancel_selection(self):
        self.state.clear_selection()

    def move_unit(self, to: tuple[int, int]) -> bool:
        state = self.state
        unit = state.selected_unit
        if not self.is_local_turn() or unit is None or not state.is_movable(to):
            return False
        if not self.perform_move(unit, to):
            return False

        building = state.building_at(unit.position)
        if can_capture(unit, building):
            return self.begin_capture(unit, building)

        targets = attack_targets(state, unit)
        if targets:
            state.selected_unit = unit
            state.phase = Phase.ATTACK_PREVIEW
            state.movable = []
            state.attackable = targets
        else:
            state.clear_selection()
        return True

    def attack(self, target: tuple[int, int]) -> bool:
        state = self.state
        attacker = state.selected_unit
        if not self.is_local_turn() or attacker is None or not state.is_attackable(target):
            return False
        defender = state.unit_at(target)
        if self.perform_attack(attacker, defender) is None:
            return False
        state.clear_selection()
        return True

    def begin_capture(self, unit: Optional[Unit] = None, building: Optional[Building] = None) -> bool:
        state = self.state
        unit = unit or state.selected_unit
        if unit is None or not self.is_local_turn() or unit.side != self.local_side:
            return False
        building = building or state.building_at(unit.position)
        if not can_capture(unit, building):
            return False
        state.phase = Phase.CAPTURE_PROMPT
        state.selected_unit = unit
        state.selected_building = building
        state.movable = []
        state.attackable = []
        return True

    def confirm_capture(self) -> bool:
        state = self.state
        if state.phase != Phase.CAPTURE_PROMPT or not self.is_local_turn():
            return False
        unit, building = state.selected_unit, state.selected_building
        if self.perform_capture(unit, building) is None:
            return False
        state.clear_selection()
        return True

    def cancel_capture(self) -> bool:
        state = self.state
        if state.phase != Phase.CAPTURE_PROMPT:
            return False
        unit = state.selected_unit
        state.selected_building = None
        targets = attack_targets(state, unit) if unit else []
        if targets:
            state.phase = Phase.ATTACK_PREVIEW
            state.movable = []
            state.attackable = targets
        else:
            state.clear_selection()
        return True

    def open_production(self, building: Building) -> bool:
        state = self.state
        if not self.is_local_turn() or building is None:
            return False
        if building.owner != self.local_side or not building.can_produce():
            return False
        if state.unit_at(building.position) is not None:
            return False
        state.clear_selection()
        state.phase = Phase.PRODUCTION_MENU
        state.selected_building = building
        return True

    def produce_unit(self, kind: UnitKind | str) -> bool:
        state = self.state
        if state.phase != Phase.PRODUCTION_MENU or not self.is_local_turn():
            return False
        try:
            kind = UnitKind(kind)
        except ValueError:
            return False
        building = state.selected_building
        if self.perform_production(building, kind, self.local_side) is None:
            return False
        state.clear_selection()
        return True

    def close_production(self):
        if self.state.phase == Phase.PRODUCTION_MENU:
            self.state.clear_selection()

    def end_turn(self) -> bool:
        if not self.is_local_turn():
            return False
        self.state.clear_selection()

        if self.networked:
            # The relay owns the turn token; wait for turnChanged.
            self.close_turn(self.local_side)
            self.turn_handed_off = True
            self._emit("endTurn", {})
            return True

        self.advance_turn()
        if self.opponent is not None:
            self.run_opponent_turn()
        return True

    def run_opponent_turn(self):
        """Let the agent play the other side, then hand the turn back."""
        if self.state.game_over or self.state.current_side != self.remote_side:
            return
        logger.info(f"Turn {self.state.turn}: {self.remote_side.value} agent thinking")
        self.opponent.play_turn(self)
        if not self.state.game_over:
            self.advance_turn()

    def restart(self):
        """Discard the match and start a fresh local game."""
        self.networked = False
        self.game_id = None
        self.opponent_id = None
        self.turn_handed_off = False
        self.on_action = None
        self.local_side = Side.PLAYER
        self.events = []
        self.state = self._new_state()
        logger.info("Game restarted")

    # ── Networked play ──

    def start_networked(
        self,
        my_team: Side | str,
        on_action: Callable[[str, dict], Any],
        game_id: Optional[str] = None,
        opponent_id: Optional[str] = None,
    ):
        """Begin a fresh match against a remote peer."""
        self.restart()
        self.local_side = Side(my_team)
        self.networked = True
        self.on_action = on_action
        self.game_id = game_id
        self.opponent_id = opponent_id
        logger.info(f"Networked game {game_id}: playing as {self.local_side.value}")

    def _emit(self, event_type: str, payload: dict):
        if self.networked and self.on_action is not None:
            self.on_action(event_type, payload)

    def apply_remote_event(self, event_type: str, payload: Optional[dict] = None) -> bool:
        """
        Apply an event received from the relay to the local state.

        Remote intents go through the same rule checks as local ones; an
        event that does not fit the local state is dropped.
        """
        payload = payload or {}
        handler = self._remote_handlers().get(event_type)
        if handler is None:
            logger.warning(f"Unhandled remote event: {event_type}")
            return False
        try:
            return bool(handler(payload))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed {event_type} payload {payload}: {e}")
            return False

    def _remote_handlers(self) -> dict[str, Callable[[dict], Any]]:
        return {
            "opponentMove": self._on_opponent_move,
            "opponentAttack": self._on_opponent_attack,
            "opponentCapture": self._on_opponent_capture,
            "opponentProduce": self._on_opponent_produce,
            "turnChanged": self._on_turn_changed,
            "opponentGameOver": self._on_opponent_game_over,
            "opponentDisconnected": self._on_opponent_disconnected,
        }

    def _remote_unit(self, payload: dict, x_key: str, y_key: str) -> Optional[Unit]:
        unit = self.state.unit_at((int(payload[x_key]), int(payload[y_key])))
        if unit is None or unit.side != self.remote_side:
            return None
        return unit

    def _on_opponent_move(self, payload: dict) -> bool:
        unit = self._remote_unit(payload, "fromX", "fromY")
        if unit is None:
            return False
        return self.perform_move(unit, (int(payload["toX"]), int(payload["toY"])))

    def _on_opponent_attack(self, payload: dict) -> bool:
        attacker = self._remote_unit(payload, "attackerX", "attackerY")
        defender = self.state.unit_at((int(payload["targetX"]), int(payload["targetY"])))
        if attacker is None:
            return False
        report = self.perform_attack(
            attacker, defender,
            defender_damage=_optional_int(payload.get("defenderDamage")),
            counter_damage=_optional_int(payload.get("counterDamage")),
        )
        return report is not None

    def _on_opponent_capture(self, payload: dict) -> bool:
        unit = self._remote_unit(payload, "unitX", "unitY")
        building = self.state.building_at((int(payload["buildingX"]), int(payload["buildingY"])))
        if unit is None:
            return False
        return self.perform_capture(unit, building) is not None

    def _on_opponent_produce(self, payload: dict) -> bool:
        building = self.state.building_at((int(payload["buildingX"]), int(payload["buildingY"])))
        kind = UnitKind(payload["unitType"])
        return self.perform_production(building, kind, self.remote_side) is not None

    def _on_turn_changed(self, payload: dict) -> bool:
        new_side = Side(payload["newSide"])
        previous = self.state.current_side
        if new_side == previous:
            return False
        if previous == self.remote_side:
            # Mirror the bookkeeping the peer did on its own end_turn.
            self.close_turn(previous)
        self._set_side(new_side)
        return True

    def _on_opponent_game_over(self, payload: dict) -> bool:
        if self.state.game_over:
            return False
        opponent_won = bool(payload.get("playerWon"))
        self._declare_winner(self.remote_side if opponent_won else self.local_side)
        return True

    def _on_opponent_disconnected(self, payload: dict) -> bool:
        logger.warning("Opponent disconnected, returning to single player")
        self.restart()
        return True


def _optional_int(value) -> Optional[int]:
    if value is None:
        return None
    return max(0, int(value))
