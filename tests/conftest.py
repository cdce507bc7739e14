from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import Cookie, FastAPI, HTTPException, Request

from leekgarden.config import GardenConfig
from leekgarden.session import GardenSession, Session


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that returns at once and remembers delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeGarden:
    """In-memory state behind the fake LeekWars API."""

    def __init__(self) -> None:
        self.login = "farmer"
        self.password = "hunter2"
        self.token = "token-1"
        self.farmer_id = 7
        self.leeks: Dict[str, Dict[str, Any]] = {"42": {"name": "Second"}, "5": {"name": "First"}}
        self.remaining = 3
        self.team_fights = 2
        self.opponents: List[Dict[str, Any]] = [
            {"id": 100, "name": "Strong", "talent": 300},
            {"id": 200, "name": "Weak", "talent": 100},
        ]
        self.history: List[Dict[str, Any]] = []
        self.history_status = 200
        self.outcomes: Dict[int, int] = {}
        self.default_winner = 1
        self.pending_polls = 0
        self.failing_polls = 0
        self.started: List[Dict[str, List[str]]] = []
        self.polls: Dict[int, int] = {}
        self.requested: List[str] = []
        self.registers: List[Dict[str, Any]] = []
        self.logins = 0
        self.expire_once: set = set()
        self._fight_ids = itertools.count(1000)

    def fight_result(self, fight_id: int) -> Dict[str, Any]:
        return {
            "winner": self.outcomes.get(fight_id, self.default_winner),
            "farmers1": {str(self.farmer_id): {"name": "me"}},
            "farmers2": {"99": {"name": "them"}},
        }


def build_fake_api(garden: FakeGarden) -> FastAPI:
    app = FastAPI()

    def authenticate(token: Optional[str], path: str) -> None:
        if path in garden.expire_once:
            garden.expire_once.discard(path)
            raise HTTPException(status_code=401, detail="wrong_token")
        if token != garden.token:
            raise HTTPException(status_code=401, detail="wrong_token")

    async def form(request: Request) -> Dict[str, List[str]]:
        return parse_qs((await request.body()).decode())

    @app.post("/api/farmer/login-token")
    async def login(request: Request) -> Dict[str, Any]:
        fields = await form(request)
        if fields.get("login") != [garden.login] or fields.get("password") != [garden.password]:
            raise HTTPException(status_code=401, detail="invalid")
        garden.logins += 1
        return {"token": garden.token}

    @app.get("/api/farmer/get-from-token")
    async def identity(token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "farmer/get-from-token")
        return {
            "farmer": {"id": garden.farmer_id, "leeks": garden.leeks, "fights": garden.remaining}
        }

    @app.get("/api/garden/get")
    async def garden_state(token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "garden/get")
        return {"garden": {"fights": garden.remaining, "team_fights": garden.team_fights}}

    @app.get("/api/garden/get-leek-opponents/{leek}")
    async def leek_opponents(leek: int, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "garden/get-leek-opponents")
        return {"opponents": garden.opponents}

    @app.get("/api/garden/get-farmer-opponents")
    async def farmer_opponents(token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "garden/get-farmer-opponents")
        return {"opponents": garden.opponents}

    @app.get("/api/garden/get-composition-opponents/{composition}")
    async def composition_opponents(composition: int, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "garden/get-composition-opponents")
        garden.requested.append(f"composition/{composition}")
        return {"opponents": garden.opponents}

    @app.post("/api/garden/start-solo-fight")
    async def start_solo(request: Request, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "garden/start-solo-fight")
        return start(await form(request))

    @app.post("/api/garden/start-farmer-fight")
    async def start_farmer(request: Request, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "garden/start-farmer-fight")
        return start(await form(request))

    @app.post("/api/garden/start-team-fight")
    async def start_team(request: Request, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "garden/start-team-fight")
        garden.team_fights -= 1
        return start(await form(request), counted=False)

    def start(fields: Dict[str, List[str]], counted: bool = True) -> Dict[str, Any]:
        garden.started.append(fields)
        if counted:
            garden.remaining -= 1
        return {"fight": next(garden._fight_ids)}

    @app.get("/api/fight/get/{fight_id}")
    async def fight(fight_id: int, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "fight/get")
        garden.polls[fight_id] = garden.polls.get(fight_id, 0) + 1
        if garden.failing_polls > 0:
            garden.failing_polls -= 1
            raise HTTPException(status_code=502, detail="upstream")
        if garden.polls[fight_id] <= garden.pending_polls:
            return {"winner": -1, "farmers1": {}, "farmers2": {}}
        return garden.fight_result(fight_id)

    @app.get("/api/history/get-leek-history/{leek}")
    async def leek_history(leek: int, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "history")
        if garden.history_status != 200:
            raise HTTPException(status_code=garden.history_status, detail="history down")
        return {"fights": garden.history}

    @app.get("/api/history/get-farmer-history/{farmer}")
    async def farmer_history(farmer: int, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "history")
        return {"fights": garden.history}

    @app.get("/api/history/get-team-history/{team}")
    async def team_history(team: int, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "history")
        garden.requested.append(f"team-history/{team}")
        return {"fights": garden.history}

    @app.get("/api/leek/get-registers/{leek}")
    async def registers(leek: int, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "leek/get-registers")
        garden.requested.append(f"registers/{leek}")
        return {"registers": garden.registers}

    @app.post("/api/leek/register-auto-br")
    async def register(request: Request, token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
        authenticate(token, "leek/register-auto-br")
        fields = await form(request)
        return {"registered": fields.get("leek_id")}

    return app


class FakeSocket:
    """Websocket double: replays inbound frames and records outbound ones."""

    def __init__(self, frames: Optional[List[Any]] = None, *, hold_open: bool = False) -> None:
        self.frames = list(frames or [])
        self.sent: List[Any] = []
        self.closed = False
        self.release = asyncio.Event() if hold_open else None

    async def send(self, frame: str) -> None:
        self.sent.append(json.loads(frame))

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame if isinstance(frame, str) else json.dumps(frame)
        if self.release is not None:
            await self.release.wait()


class FakeChannelSession:
    """Session double for the push channel.

    ``login_errors`` is consumed one entry per login; ``None`` entries succeed.
    A ``fights`` of ``None`` leaves the field out of the farmer payload.
    """

    def __init__(self, fights: Any = 5, login_errors: Optional[List[Optional[Exception]]] = None) -> None:
        self.fights = fights
        self.login_errors = list(login_errors or [])
        self.logins = 0
        self.identity_requests = 0

    async def login(self) -> Session:
        self.logins += 1
        error = self.login_errors.pop(0) if self.login_errors else None
        if error is not None:
            raise error
        return Session(farmer_id=7, leeks=[5, 42], token="token-1")

    def cookie_header(self) -> str:
        return "token=token-1"

    async def get(self, path: str) -> Dict[str, Any]:
        assert path == "farmer/get-from-token"
        self.identity_requests += 1
        farmer: Dict[str, Any] = {"id": 7}
        if self.fights is not None:
            farmer["fights"] = self.fights
        return {"farmer": farmer}


@pytest.fixture()
def garden() -> FakeGarden:
    return FakeGarden()


@pytest.fixture()
def config(tmp_path) -> GardenConfig:
    return GardenConfig(
        login="farmer",
        password="hunter2",
        api_url="http://testserver/api",
        ws_url="ws://testserver/ws",
        database=str(tmp_path / "garden.db"),
    )


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def make_session(garden: FakeGarden, config: GardenConfig, sleep: RecordingSleep):
    app = build_fake_api(garden)

    def factory() -> GardenSession:
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver/api/"
        )
        return GardenSession(config, client=client, sleep=sleep)

    return factory
