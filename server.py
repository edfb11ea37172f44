"""
WebSocket relay server for two-player matches.

Pairs clients through a matchmaking queue or private room codes, then relays
each player's actions to their opponent. The server holds the turn token per
session but never validates game moves; each client runs its own engine.
"""

import os
import json
import random
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

import websockets
from websockets.datastructures import Headers
from websockets.http11 import Response

logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
TEAMS = ("player", "enemy")

# client event -> event forwarded to the peer
RELAYED_EVENTS = {
    "playerMove": "opponentMove",
    "playerAttack": "opponentAttack",
    "captureBuilding": "opponentCapture",
    "produceUnit": "opponentProduce",
}


@dataclass
class ServerConfig:
    """Relay settings, read from the environment."""
    host: str = "0.0.0.0"
    port: int = 8080
    room_code_length: int = 6
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        return cls(
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8080")),
            room_code_length=int(os.environ.get("ROOM_CODE_LENGTH", "6")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


class PlayerConnection:
    """One connected client."""

    def __init__(self, websocket, conn_id: Optional[str] = None):
        self.websocket = websocket
        self.id = conn_id or f"conn_{random.getrandbits(48):012x}"

    async def send(self, msg_type: str, data: Optional[dict] = None) -> bool:
        """Send one event. Returns False if the peer is already gone."""
        try:
            await self.websocket.send(json.dumps({"type": msg_type, **(data or {})}))
            return True
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Send of {msg_type} to {self.id} failed: connection closed")
            return False

    def __repr__(self) -> str:
        return f"PlayerConnection({self.id})"


@dataclass
class Room:
    code: str
    host: PlayerConnection
    guest: Optional[PlayerConnection] = None

    @property
    def is_open(self) -> bool:
        return self.guest is None


@dataclass
class GameSession:
    """A paired match with its own turn token."""
    game_id: str
    players: dict[str, PlayerConnection]
    current_side: str = "player"
    room_code: Optional[str] = None
    closed: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def team_of(self, conn: PlayerConnection) -> Optional[str]:
        for team, player in self.players.items():
            if player is conn:
                return team
        return None

    def peer_of(self, conn: PlayerConnection) -> Optional[PlayerConnection]:
        team = self.team_of(conn)
        if team is None:
            return None
        return self.players[TEAMS[1] if team == TEAMS[0] else TEAMS[0]]


class RelayServer:
    """
    Matchmaking, rooms and per-session relay.

    Lock order is always lobby_lock first, then a session lock. The lobby lock
    guards the waiting slot, the room table and session creation/teardown.
    """

    def __init__(self, config: Optional[ServerConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or ServerConfig()
        self.rng = rng or random.Random()
        self.waiting: Optional[PlayerConnection] = None
        self.rooms: dict[str, Room] = {}
        self.sessions: dict[str, GameSession] = {}
        self.session_of: dict[str, str] = {}
        self.lobby_lock = asyncio.Lock()

        self.handlers = {
            "joinMatchmaking": self.on_join_matchmaking,
            "cancelMatchmaking": self.on_cancel_matchmaking,
            "createRoom": self.on_create_room,
            "joinRoom": self.on_join_room,
            "cancelRoom": self.on_cancel_room,
            "endTurn": self.on_end_turn,
            "gameOver": self.on_game_over,
        }
        for event in RELAYED_EVENTS:
            self.handlers[event] = self.on_relay

    # ── Lookup helpers ──

    def session_for(self, conn: PlayerConnection) -> Optional[GameSession]:
        game_id = self.session_of.get(conn.id)
        return self.sessions.get(game_id) if game_id else None

    def room_hosted_by(self, conn: PlayerConnection) -> Optional[Room]:
        for room in self.rooms.values():
            if room.host is conn:
                return room
        return None

    def generate_room_code(self) -> str:
        while True:
            code = "".join(
                self.rng.choice(ROOM_CODE_ALPHABET)
                for _ in range(self.config.room_code_length)
            )
            if code not in self.rooms:
                return code

    def health(self) -> dict:
        return {
            "status": "ok",
            "sessions": len(self.sessions),
            "rooms": len(self.rooms),
            "waiting": self.waiting is not None,
        }

    # ── Session lifecycle (call with lobby_lock held) ──

    def _create_session(
        self, first: PlayerConnection, second: PlayerConnection, room_code: Optional[str] = None
    ) -> GameSession:
        if self.rng.random() < 0.5:
            players = {"player": first, "enemy": second}
        else:
            players = {"player": second, "enemy": first}
        game_id = f"game_{self.rng.getrandbits(64):016x}"
        session = GameSession(game_id=game_id, players=players, room_code=room_code)
        self.sessions[game_id] = session
        for conn in players.values():
            self.session_of[conn.id] = game_id
        logger.info(
            f"Game {game_id} started: {players['player'].id} (player) vs "
            f"{players['enemy'].id} (enemy)" + (f" in room {room_code}" if room_code else "")
        )
        return session

    def _discard_session(self, session: GameSession):
        session.closed = True
        self.sessions.pop(session.game_id, None)
        for conn in session.players.values():
            if self.session_of.get(conn.id) == session.game_id:
                del self.session_of[conn.id]
        if session.room_code:
            self.rooms.pop(session.room_code, None)
        logger.info(f"Game {session.game_id} ended")

    def _close_open_room(self, conn: PlayerConnection) -> Optional[Room]:
        room = self.room_hosted_by(conn)
        if room is None or not room.is_open:
            return None
        del self.rooms[room.code]
        return room

    async def _announce_match(self, session: GameSession):
        for team, conn in session.players.items():
            peer = session.peer_of(conn)
            payload = {
                "gameId": session.game_id,
                "yourTeam": team,
                "opponentId": peer.id,
                "startsFirst": team == "player",
            }
            if session.room_code:
                payload["roomCode"] = session.room_code
            await conn.send("gameMatched", payload)

    # ── Message dispatch ──

    async def dispatch(self, conn: PlayerConnection, raw) -> None:
        try:
            msg = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            await conn.send("error", {"message": "Invalid JSON"})
            return
        if not isinstance(msg, dict):
            await conn.send("error", {"message": "Message must be a JSON object"})
            return

        msg_type = msg.get("type", "")
        if not isinstance(msg_type, str):
            await conn.send("error", {"message": "Message type must be a string"})
            return
        handler = self.handlers.get(msg_type)
        if handler is None:
            await conn.send("error", {"message": f"Unknown message type: {msg_type}"})
            return
        await handler(conn, msg)

    async def on_join_matchmaking(self, conn: PlayerConnection, msg: dict):
        session = None
        async with self.lobby_lock:
            if self.session_for(conn) is not None:
                await conn.send("error", {"message": "Already in a game"})
                return
            if self.waiting is None or self.waiting is conn:
                self.waiting = conn
                logger.info(f"{conn.id} waiting for an opponent")
            else:
                opponent, self.waiting = self.waiting, None
                for player in (opponent, conn):
                    self._close_open_room(player)
                session = self._create_session(opponent, conn)

        if session is None:
            await conn.send("waitingForOpponent")
        else:
            await self._announce_match(session)

    async def on_cancel_matchmaking(self, conn: PlayerConnection, msg: dict):
        async with self.lobby_lock:
            if self.waiting is conn:
                self.waiting = None
                logger.info(f"{conn.id} left matchmaking")

    async def on_create_room(self, conn: PlayerConnection, msg: dict):
        async with self.lobby_lock:
            if self.session_for(conn) is not None:
                await conn.send("error", {"message": "Already in a game"})
                return
            self._close_open_room(conn)
            if self.waiting is conn:
                self.waiting = None
            code = self.generate_room_code()
            self.rooms[code] = Room(code=code, host=conn)
            logger.info(f"Room {code} created by {conn.id}")
        await conn.send("roomCreated", {"roomCode": code})

    async def on_join_room(self, conn: PlayerConnection, msg: dict):
        code = str(msg.get("roomCode") or "").strip().upper()
        error = None
        session = None
        async with self.lobby_lock:
            room = self.rooms.get(code)
            if room is None:
                error = "Room not found"
            elif not room.is_open:
                error = "Room is full"
            elif room.host is conn:
                error = "Cannot join your own room"
            elif self.session_for(conn) is not None:
                error = "Already in a game"
            elif self.session_for(room.host) is not None:
                error = "Room is full"
            else:
                self._close_open_room(conn)
                room.guest = conn
                if self.waiting is conn:
                    self.waiting = None
                session = self._create_session(room.host, conn, room_code=code)

        if error:
            logger.info(f"Failed join of room {code or '?'} by {conn.id}: {error}")
            await conn.send("joinRoomError", {"message": error})
            return
        await self._announce_match(session)

    async def on_cancel_room(self, conn: PlayerConnection, msg: dict):
        async with self.lobby_lock:
            room = self._close_open_room(conn)
            if room is not None:
                logger.info(f"Room {room.code} cancelled by {conn.id}")

    async def on_relay(self, conn: PlayerConnection, msg: dict):
        session = self.session_for(conn)
        if session is None:
            await conn.send("error", {"message": "Not in a game"})
            return
        payload = {k: v for k, v in msg.items() if k != "type"}
        async with session.lock:
            if session.closed:
                return
            peer = session.peer_of(conn)
            await peer.send(RELAYED_EVENTS[msg["type"]], payload)

    async def on_end_turn(self, conn: PlayerConnection, msg: dict):
        session = self.session_for(conn)
        if session is None:
            await conn.send("error", {"message": "Not in a game"})
            return
        async with session.lock:
            if session.closed:
                return
            if session.team_of(conn) != session.current_side:
                await conn.send("error", {"message": "Not your turn"})
                return
            session.current_side = "enemy" if session.current_side == "player" else "player"
            logger.info(f"Game {session.game_id}: turn passes to {session.current_side}")
            for player in session.players.values():
                await player.send("turnChanged", {"newSide": session.current_side})

    async def on_game_over(self, conn: PlayerConnection, msg: dict):
        async with self.lobby_lock:
            session = self.session_for(conn)
            if session is None:
                await conn.send("error", {"message": "Not in a game"})
                return
            async with session.lock:
                if session.closed:
                    return
                peer = session.peer_of(conn)
                self._discard_session(session)
        await peer.send("opponentGameOver", {"playerWon": bool(msg.get("playerWon"))})

    async def handle_disconnect(self, conn: PlayerConnection):
        peer = None
        async with self.lobby_lock:
            if self.waiting is conn:
                self.waiting = None
            room = self._close_open_room(conn)
            if room is not None:
                logger.info(f"Room {room.code} deleted due to disconnection")
            session = self.session_for(conn)
            if session is not None:
                async with session.lock:
                    if not session.closed:
                        peer = session.peer_of(conn)
                        self._discard_session(session)
        if peer is not None:
            await peer.send("opponentDisconnected")
        logger.info(f"{conn.id} disconnected")

    # ── WebSocket entry point ──

    async def handle_websocket(self, websocket):
        """Handle a single WebSocket connection for its whole lifetime."""
        conn = PlayerConnection(websocket)
        logger.info(f"{conn.id} connected")
        try:
            async for raw in websocket:
                await self.dispatch(conn, raw)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            await self.handle_disconnect(conn)

    def http_handler(self, connection, request):
        """Answer GET /health; anything else proceeds to the WebSocket upgrade."""
        if request.path == "/health":
            body = json.dumps(self.health()).encode()
            return Response(
                200,
                "OK",
                Headers([
                    ("Content-Type", "application/json"),
                    ("Content-Length", str(len(body))),
                ]),
                body,
            )
        return None


async def main():
    config = ServerConfig.from_env()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
    relay = RelayServer(config)

    logger.info(f"Starting relay on ws://{config.host}:{config.port}")

    async with websockets.serve(
        relay.handle_websocket,
        config.host,
        config.port,
        process_request=relay.http_handler,
    ):
        await asyncio.Future()  # run forever


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
