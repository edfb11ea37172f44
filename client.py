"""
Headless relay client: joins a match and plays the local side with the
scripted agent.

Usage:
    python client.py --url ws://localhost:8080
    python client.py --create-room
    python client.py --room ABC123
"""

import os
import json
import asyncio
import logging
import argparse
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

import websockets

from engine import Ruleset, TurnManager
from engine.units import Side
from agents import ScriptedAgent

logger = logging.getLogger(__name__)


class MatchClient:
    """Mirrors one networked match into a local TurnManager."""

    def __init__(self, manager: TurnManager, agent_factory=ScriptedAgent):
        self.manager = manager
        self.agent_factory = agent_factory
        self.agent: Optional[ScriptedAgent] = None
        self.outbox: list[dict] = []
        self.finished = False
        self.room_code: Optional[str] = None

    def queue(self, msg_type: str, payload: dict):
        self.outbox.append({"type": msg_type, **payload})

    def handle(self, msg: dict) -> list[dict]:
        """Apply one server event. Returns the messages to send in reply."""
        msg_type = msg.get("type", "")
        payload = {k: v for k, v in msg.items() if k != "type"}

        if msg_type == "gameMatched":
            team = Side(payload["yourTeam"])
            self.manager.start_networked(
                team, self.queue,
                game_id=payload.get("gameId"), opponent_id=payload.get("opponentId"),
            )
            self.agent = self.agent_factory(team)
            logger.info(
                f"Matched in {payload.get('gameId')} as {team.value}"
                f" ({'first' if payload.get('startsFirst') else 'second'})"
            )
        elif msg_type == "waitingForOpponent":
            logger.info("Waiting for an opponent...")
        elif msg_type == "roomCreated":
            self.room_code = payload.get("roomCode")
            logger.info(f"Room created: {self.room_code}")
        elif msg_type in ("joinRoomError", "error"):
            logger.error(f"Server error: {payload.get('message')}")
            if msg_type == "joinRoomError":
                self.finished = True
        elif msg_type in ("opponentGameOver", "opponentDisconnected"):
            self.manager.apply_remote_event(msg_type, payload)
            self.finished = True
        else:
            self.manager.apply_remote_event(msg_type, payload)

        self._maybe_play()
        if self.manager.state.game_over:
            self.finished = True

        outgoing, self.outbox = self.outbox, []
        return outgoing

    def _maybe_play(self):
        manager = self.manager
        if not manager.networked or self.agent is None or not manager.is_local_turn():
            return
        self.agent.play_turn(manager)
        if not manager.state.game_over:
            manager.end_turn()


async def run(url: str, create_room: bool, room_code: Optional[str], rules: Optional[str]):
    manager = TurnManager(ruleset=Ruleset.load(rules))
    client = MatchClient(manager)

    async with websockets.connect(url) as websocket:
        if room_code:
            first = {"type": "joinRoom", "roomCode": room_code}
        elif create_room:
            first = {"type": "createRoom"}
        else:
            first = {"type": "joinMatchmaking"}
        await websocket.send(json.dumps(first))

        try:
            async for raw in websocket:
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring non-JSON frame: {raw!r}")
                    continue
                for out in client.handle(msg):
                    await websocket.send(json.dumps(out))
                if client.finished:
                    break
        except websockets.exceptions.ConnectionClosed:
            logger.info("Connection to relay closed")

    state = manager.state
    if state.winner is not None:
        outcome = "won" if state.winner == manager.local_side else "lost"
        logger.info(f"Match over on turn {state.turn}: we {outcome}")


def main():
    parser = argparse.ArgumentParser(description="Play a networked match with the scripted agent")
    parser.add_argument("--url", default=os.environ.get("RELAY_URL", "ws://localhost:8080"))
    parser.add_argument("--create-room", action="store_true", help="Host a private room")
    parser.add_argument("--room", default=None, help="Join a private room by code")
    parser.add_argument("--rules", default=None, help="Ruleset YAML path")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(run(args.url, args.create_room, args.room, args.rules))


if __name__ == "__main__":
    main()
