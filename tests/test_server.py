"""Tests for the relay server: matchmaking, rooms, relay and teardown."""

import asyncio
import json
import random

import pytest
import websockets

from server import ROOM_CODE_ALPHABET, PlayerConnection, RelayServer, ServerConfig


class FakeWebSocket:
    """Records every frame the server sends."""

    def __init__(self, closed=False):
        self.frames = []
        self.closed = closed

    async def send(self, data):
        if self.closed:
            raise websockets.exceptions.ConnectionClosed(None, None)
        self.frames.append(json.loads(data))


def connect(name):
    return PlayerConnection(FakeWebSocket(), conn_id=name)


def frames(conn, msg_type=None):
    sent = conn.websocket.frames
    if msg_type is None:
        return sent
    return [f for f in sent if f["type"] == msg_type]


async def send(relay, conn, msg_type, **payload):
    await relay.dispatch(conn, json.dumps({"type": msg_type, **payload}))


@pytest.fixture
def relay():
    return RelayServer(ServerConfig(), rng=random.Random(1234))


async def matched_pair(relay):
    a, b = connect("a"), connect("b")
    await send(relay, a, "joinMatchmaking")
    await send(relay, b, "joinMatchmaking")
    game = frames(a, "gameMatched")[0]
    if game["yourTeam"] == "player":
        return a, b
    return b, a


@pytest.mark.asyncio
async def test_matchmaking_pairs_two_clients(relay):
    a, b = connect("a"), connect("b")

    await send(relay, a, "joinMatchmaking")
    assert frames(a) == [{"type": "waitingForOpponent"}]
    assert relay.waiting is a

    await send(relay, b, "joinMatchmaking")
    assert relay.waiting is None
    match_a = frames(a, "gameMatched")[0]
    match_b = frames(b, "gameMatched")[0]

    assert {match_a["yourTeam"], match_b["yourTeam"]} == {"player", "enemy"}
    assert match_a["gameId"] == match_b["gameId"]
    assert match_a["gameId"].startswith("game_")
    assert match_a["opponentId"] == "b" and match_b["opponentId"] == "a"
    for match in (match_a, match_b):
        assert match["startsFirst"] == (match["yourTeam"] == "player")
    assert len(relay.sessions) == 1


@pytest.mark.asyncio
async def test_coin_flip_assigns_both_orders():
    firsts = set()
    for seed in range(20):
        relay = RelayServer(rng=random.Random(seed))
        a, b = connect("a"), connect("b")
        await send(relay, a, "joinMatchmaking")
        await send(relay, b, "joinMatchmaking")
        firsts.add(frames(a, "gameMatched")[0]["yourTeam"])
    assert firsts == {"player", "enemy"}


@pytest.mark.asyncio
async def test_cancel_matchmaking_only_removes_waiting_entry(relay):
    a, b = connect("a"), connect("b")
    await send(relay, a, "joinMatchmaking")
    await send(relay, b, "cancelMatchmaking")
    assert relay.waiting is a

    await send(relay, a, "cancelMatchmaking")
    assert relay.waiting is None

    await send(relay, b, "joinMatchmaking")
    assert frames(b) == [{"type": "waitingForOpponent"}]
    assert relay.sessions == {}


@pytest.mark.asyncio
async def test_room_lifecycle(relay):
    host, guest = connect("host"), connect("guest")
    await send(relay, host, "createRoom")
    code = frames(host, "roomCreated")[0]["roomCode"]
    assert len(code) == 6
    assert all(c in ROOM_CODE_ALPHABET for c in code)

    await send(relay, guest, "joinRoom", roomCode=code.lower())
    match_host = frames(host, "gameMatched")[0]
    match_guest = frames(guest, "gameMatched")[0]
    assert match_host["roomCode"] == code
    assert {match_host["yourTeam"], match_guest["yourTeam"]} == {"player", "enemy"}

    third = connect("third")
    await send(relay, third, "joinRoom", roomCode=code)
    assert frames(third) == [{"type": "joinRoomError", "message": "Room is full"}]


@pytest.mark.asyncio
async def test_join_unknown_room(relay):
    a = connect("a")
    await send(relay, a, "joinRoom", roomCode="ZZZZZZ")
    assert frames(a) == [{"type": "joinRoomError", "message": "Room not found"}]
    assert relay.sessions == {}


@pytest.mark.asyncio
async def test_cannot_join_own_room(relay):
    host = connect("host")
    await send(relay, host, "createRoom")
    code = frames(host, "roomCreated")[0]["roomCode"]
    await send(relay, host, "joinRoom", roomCode=code)
    assert frames(host, "joinRoomError") == [
        {"type": "joinRoomError", "message": "Cannot join your own room"}
    ]
    assert relay.sessions == {}


@pytest.mark.asyncio
async def test_cancel_room(relay):
    host, guest = connect("host"), connect("guest")
    await send(relay, host, "createRoom")
    code = frames(host, "roomCreated")[0]["roomCode"]
    await send(relay, host, "cancelRoom")
    assert relay.rooms == {}
    await send(relay, guest, "joinRoom", roomCode=code)
    assert frames(guest)[0]["message"] == "Room not found"


@pytest.mark.asyncio
async def test_room_codes_are_unique(relay):
    hosts = [connect(f"h{i}") for i in range(30)]
    for host in hosts:
        await send(relay, host, "createRoom")
    codes = {frames(h, "roomCreated")[0]["roomCode"] for h in hosts}
    assert len(codes) == 30
    assert len(relay.rooms) == 30


@pytest.mark.asyncio
async def test_actions_relayed_to_peer(relay):
    first, second = await matched_pair(relay)

    await send(relay, first, "playerMove", fromX=2, fromY=8, toX=2, toY=6)
    await send(relay, first, "playerAttack", attackerX=2, attackerY=6, targetX=2,
               targetY=5, defenderDamage=25, counterDamage=None)
    await send(relay, first, "captureBuilding", unitX=2, unitY=7, buildingX=2,
               buildingY=7, captureAmount=10)
    await send(relay, first, "produceUnit", buildingX=1, buildingY=8, unitType="tank")

    relayed = frames(second)[1:]
    assert relayed == [
        {"type": "opponentMove", "fromX": 2, "fromY": 8, "toX": 2, "toY": 6},
        {"type": "opponentAttack", "attackerX": 2, "attackerY": 6, "targetX": 2,
         "targetY": 5, "defenderDamage": 25, "counterDamage": None},
        {"type": "opponentCapture", "unitX": 2, "unitY": 7, "buildingX": 2,
         "buildingY": 7, "captureAmount": 10},
        {"type": "opponentProduce", "buildingX": 1, "buildingY": 8, "unitType": "tank"},
    ]
    assert len(frames(first)) == 1


@pytest.mark.asyncio
async def test_end_turn_flips_token(relay):
    first, second = await matched_pair(relay)

    await send(relay, second, "endTurn")
    assert frames(second)[-1] == {"type": "error", "message": "Not your turn"}
    assert frames(first, "turnChanged") == []

    await send(relay, first, "endTurn")
    assert frames(first, "turnChanged") == [{"type": "turnChanged", "newSide": "enemy"}]
    assert frames(second, "turnChanged") == [{"type": "turnChanged", "newSide": "enemy"}]

    await send(relay, second, "endTurn")
    assert frames(first, "turnChanged")[-1]["newSide"] == "player"


@pytest.mark.asyncio
async def test_game_over_discards_session(relay):
    first, second = await matched_pair(relay)
    await send(relay, first, "gameOver", playerWon=True)
    assert frames(second)[-1] == {"type": "opponentGameOver", "playerWon": True}
    assert relay.sessions == {}

    await send(relay, second, "playerMove", fromX=0, fromY=0, toX=0, toY=1)
    assert frames(second)[-1] == {"type": "error", "message": "Not in a game"}


@pytest.mark.asyncio
async def test_disconnect_notifies_peer_and_frees_room(relay):
    host, guest = connect("host"), connect("guest")
    await send(relay, host, "createRoom")
    code = frames(host, "roomCreated")[0]["roomCode"]
    await send(relay, guest, "joinRoom", roomCode=code)

    await relay.handle_disconnect(guest)

    assert frames(host)[-1] == {"type": "opponentDisconnected"}
    assert relay.sessions == {}
    assert relay.rooms == {}
    assert relay.session_for(host) is None


@pytest.mark.asyncio
async def test_disconnect_while_waiting(relay):
    a = connect("a")
    await send(relay, a, "joinMatchmaking")
    await relay.handle_disconnect(a)
    assert relay.waiting is None

    host = connect("host")
    await send(relay, host, "createRoom")
    await relay.handle_disconnect(host)
    assert relay.rooms == {}


@pytest.mark.asyncio
async def test_send_to_closed_peer_is_tolerated(relay):
    first, second = await matched_pair(relay)
    second.websocket.closed = True
    await send(relay, first, "playerMove", fromX=0, fromY=0, toX=0, toY=1)
    await relay.handle_disconnect(second)
    assert frames(first)[-1] == {"type": "opponentDisconnected"}


@pytest.mark.asyncio
async def test_sessions_are_independent(relay):
    p1, e1 = await matched_pair(relay)
    c, d = connect("c"), connect("d")
    await send(relay, c, "joinMatchmaking")
    await send(relay, d, "joinMatchmaking")
    assert len(relay.sessions) == 2

    await send(relay, p1, "endTurn")
    assert frames(c, "turnChanged") == []
    assert frames(d, "turnChanged") == []


@pytest.mark.asyncio
async def test_malformed_and_unknown_messages(relay):
    a = connect("a")
    await relay.dispatch(a, "{not json")
    await relay.dispatch(a, json.dumps([1, 2]))
    await send(relay, a, "launchNukes")
    await send(relay, a, "endTurn")
    await relay.dispatch(a, json.dumps({"type": ["endTurn"]}))
    assert [f["type"] for f in frames(a)] == ["error"] * 5
    assert frames(a)[2]["message"] == "Unknown message type: launchNukes"
    assert frames(a)[4]["message"] == "Message type must be a string"


@pytest.mark.asyncio
async def test_bad_message_type_leaves_session_running(relay):
    first, second = await matched_pair(relay)
    await relay.dispatch(first, json.dumps({"type": {"nested": 1}}))
    assert frames(first)[-1]["type"] == "error"
    assert frames(second, "opponentDisconnected") == []
    assert relay.session_for(first) is relay.session_for(second) is not None


def test_health_counts(relay):
    assert relay.health() == {"status": "ok", "sessions": 0, "rooms": 0, "waiting": False}


def test_health_endpoint(relay):
    class Request:
        path = "/health"

    response = relay.http_handler(None, Request())
    assert response.status_code == 200
    assert json.loads(response.body) == relay.health()

    Request.path = "/"
    assert relay.http_handler(None, Request()) is None


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("ROOM_CODE_LENGTH", "4")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    config = ServerConfig.from_env()
    assert config.port == 9001
    assert config.room_code_length == 4
    assert config.log_level == "DEBUG"


@pytest.mark.asyncio
async def test_joining_a_room_closes_the_guests_own_room(relay):
    a, b, c = connect("a"), connect("b"), connect("c")
    await send(relay, a, "createRoom")
    room_a = frames(a, "roomCreated")[0]["roomCode"]
    await send(relay, b, "createRoom")
    room_b = frames(b, "roomCreated")[0]["roomCode"]

    await send(relay, a, "joinRoom", roomCode=room_b)
    game_id = relay.session_for(a).game_id
    assert room_a not in relay.rooms

    await send(relay, c, "joinRoom", roomCode=room_a)
    assert frames(c) == [{"type": "joinRoomError", "message": "Room not found"}]
    assert len(relay.sessions) == 1
    assert relay.session_for(a).game_id == game_id


@pytest.mark.asyncio
async def test_cannot_join_room_of_host_already_playing(relay):
    host, rival, guest = connect("host"), connect("rival"), connect("guest")
    await send(relay, host, "createRoom")
    code = frames(host, "roomCreated")[0]["roomCode"]
    async with relay.lobby_lock:
        session = relay._create_session(rival, host)

    await send(relay, guest, "joinRoom", roomCode=code)
    assert frames(guest) == [{"type": "joinRoomError", "message": "Room is full"}]
    assert relay.session_for(host) is session
    assert len(relay.sessions) == 1


class YieldingWebSocket(FakeWebSocket):
    """Suspends on every send so concurrent handlers interleave."""

    async def send(self, data):
        await asyncio.sleep(0)
        await super().send(data)


def connect_yielding(name):
    return PlayerConnection(YieldingWebSocket(), conn_id=name)


@pytest.mark.asyncio
async def test_lobby_handlers_wait_for_the_lobby_lock(relay):
    a = connect("a")
    async with relay.lobby_lock:
        task = asyncio.create_task(send(relay, a, "joinMatchmaking"))
        for _ in range(5):
            await asyncio.sleep(0)
        assert relay.waiting is None
        assert frames(a) == []
    await task
    assert relay.waiting is a


@pytest.mark.asyncio
async def test_end_turn_waits_for_the_session_lock(relay):
    first, second = await matched_pair(relay)
    session = relay.session_for(first)
    async with session.lock:
        task = asyncio.create_task(send(relay, first, "endTurn"))
        for _ in range(5):
            await asyncio.sleep(0)
        assert session.current_side == "player"
    await task
    assert session.current_side == "enemy"


@pytest.mark.asyncio
async def test_concurrent_matchmaking_pairs_everyone_once(relay):
    conns = [connect_yielding(f"p{i}") for i in range(10)]
    await asyncio.gather(*(send(relay, c, "joinMatchmaking") for c in conns))

    assert relay.waiting is None
    assert len(relay.sessions) == 5
    for conn in conns:
        assert len(frames(conn, "gameMatched")) == 1
        session = relay.session_for(conn)
        assert conn in session.players.values()


@pytest.mark.asyncio
async def test_join_racing_cancel_leaves_consistent_lobby(relay):
    a, b = connect_yielding("a"), connect_yielding("b")
    await send(relay, a, "joinMatchmaking")
    await asyncio.gather(
        send(relay, a, "cancelMatchmaking"),
        send(relay, b, "joinMatchmaking"),
    )
    if relay.sessions:
        assert relay.waiting is None
        assert relay.session_for(a) is relay.session_for(b)
    else:
        assert relay.waiting is b


@pytest.mark.asyncio
async def test_simultaneous_disconnects_tear_down_once(relay):
    a, b = connect_yielding("a"), connect_yielding("b")
    await send(relay, a, "joinMatchmaking")
    await send(relay, b, "joinMatchmaking")

    await asyncio.gather(relay.handle_disconnect(a), relay.handle_disconnect(b))

    notices = frames(a, "opponentDisconnected") + frames(b, "opponentDisconnected")
    assert len(notices) == 1
    assert relay.sessions == {}
    assert relay.session_of == {}
