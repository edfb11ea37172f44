"""
Headless match runner.

Plays the scripted agent against itself and writes a JSON game log.
"""

import json
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

from engine import Ruleset, Side, TurnManager
from agents import ScriptedAgent

logger = logging.getLogger(__name__)


class GameSimulation:
    """Main simulation orchestrator."""

    def __init__(
        self,
        rules_path: Optional[str] = None,
        log_dir: str = "logs",
        seed: Optional[int] = None,
    ):
        self.ruleset = Ruleset.load(rules_path)
        self.log_dir = Path(log_dir)
        self.seed = seed

        self.turn_manager = TurnManager(ruleset=self.ruleset, rng_seed=seed)
        self.agents = {side: ScriptedAgent(side) for side in Side}

        # Game log
        self.game_log: list[dict] = []
        self.start_time: Optional[datetime] = None

    def initialize(self):
        state = self.turn_manager.state
        self.start_time = datetime.now()
        self._log_event("game_start", {
            "seed": self.seed,
            "board": {"width": state.board.width, "height": state.board.height},
            "units": {side.value: len(state.units_of(side)) for side in Side},
            "buildings": len(state.buildings),
        })
        logger.info(
            f"Game initialized: {len(state.units)} units, {len(state.buildings)} buildings"
        )

    def run_side_turn(self) -> dict:
        """Let the side to move play its turn, then hand over."""
        manager = self.turn_manager
        state = manager.state
        side = state.current_side
        turn = state.turn

        first_event = len(manager.events)
        actions = self.agents[side].play_turn(manager)
        if not state.game_over:
            manager.advance_turn()

        turn_log = {
            "turn": turn,
            "side": side.value,
            "actions": [a.to_dict() for a in actions],
            "events": manager.events[first_event:],
            "treasury": {s.value: amount for s, amount in state.treasury.items()},
            "units": {s.value: len(state.units_of(s)) for s in Side},
        }
        self._log_event("turn_complete", turn_log)
        return turn_log

    def run_game(self, max_turns: int = 50) -> dict:
        """Run until a side wins or max_turns full turns have been played."""
        self.initialize()
        state = self.turn_manager.state

        while state.turn <= max_turns and not state.game_over:
            self.run_side_turn()

        results = self._compile_results()
        self._log_event("game_end", results)
        self._save_game_log()
        return results

    def _compile_results(self) -> dict:
        state = self.turn_manager.state
        return {
            "turns_played": state.turn,
            "winner": state.winner.value if state.winner else None,
            "surviving_units": {s.value: len(state.units_of(s)) for s in Side},
            "buildings_owned": {s.value: len(state.buildings_owned_by(s)) for s in Side},
            "treasury": {s.value: amount for s, amount in state.treasury.items()},
            "duration": str(datetime.now() - self.start_time) if self.start_time else None,
        }

    def _log_event(self, event_type: str, data: dict):
        self.game_log.append({
            "timestamp": datetime.now().isoformat(),
            "event": event_type,
            "data": data,
        })

    def _save_game_log(self) -> Path:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = self.log_dir / f"game_{timestamp}.json"

        with open(log_path, "w") as f:
            json.dump(self.game_log, f, indent=2, default=str)

        logger.info(f"Game log saved to: {log_path}")
        return log_path


def main():
    """Run a headless AI-vs-AI match."""
    import argparse

    parser = argparse.ArgumentParser(description="Headless AI-vs-AI match")
    parser.add_argument("--turns", type=int, default=50, help="Max full turns")
    parser.add_argument("--seed", type=int, default=None, help="Combat RNG seed")
    parser.add_argument("--rules", default=None, help="Ruleset YAML path")
    parser.add_argument("--log-dir", default="logs", help="Log directory path")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    sim = GameSimulation(rules_path=args.rules, log_dir=args.log_dir, seed=args.seed)
    results = sim.run_game(max_turns=args.turns)

    print("\n" + "="*60)
    print("FINAL RESULTS")
    print("="*60)
    print(f"Turns played: {results['turns_played']}")
    print(f"Winner: {results['winner'] or 'none'}")
    print(f"Surviving units - player: {results['surviving_units']['player']}, enemy: {results['surviving_units']['enemy']}")
    print(f"Buildings - player: {results['buildings_owned']['player']}, enemy: {results['buildings_owned']['enemy']}")
    print(f"Duration: {results['duration']}")


if __name__ == "__main__":
    main()
