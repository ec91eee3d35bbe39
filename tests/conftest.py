from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from attendance_app.config import Settings
from attendance_app.main import create_app
from attendance_app.schemas.events import Role
from attendance_app.services.auth_service import Identity, TokenService
from attendance_app.services.event_handlers import AttendanceEventHandlers
from attendance_app.services.realtime_hub import Connection, RealtimeHub
from attendance_app.services.repository import InMemoryRepository
from attendance_app.services.session_controller import SessionController
from attendance_app.services.session_store import SessionStore

from fakes import FakeWebSocket, seed


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret="test-secret", seed_file="", log_level="DEBUG")


@pytest.fixture
def tokens(settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def repository() -> InMemoryRepository:
    return seed(InMemoryRepository())


# ── HTTP / WebSocket through the real app ────────────────────────────────────
@pytest.fixture
def client(settings, repository):
    app = create_app(settings, repository)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_header(tokens):
    def _header(user_id: str, role: Role) -> dict[str, str]:
        return {"Authorization": f"Bearer {tokens.issue(user_id, role)}"}

    return _header


@pytest.fixture
def ws_url(tokens):
    def _url(user_id: str, role: Role) -> str:
        return f"/ws?token={tokens.issue(user_id, role)}"

    return _url


# ── engine pieces wired by hand, for direct async tests ──────────────────────
class Engine:
    def __init__(self, repository, tokens: TokenService) -> None:
        self.repository = repository
        self.store = SessionStore()
        self.controller = SessionController(self.store, repository)
        self.hub = RealtimeHub(tokens)
        self.handlers = AttendanceEventHandlers(self.store, repository, self.hub)
        self.hub.attach(self.handlers)

    async def connect(self, user_id: str, role: Role, websocket: FakeWebSocket | None = None):
        websocket = websocket or FakeWebSocket()
        connection = Connection(websocket, Identity(user_id=user_id, role=role))
        await self.hub.registry.add(connection)
        return connection, websocket


@pytest.fixture
def make_engine(tokens):
    def _make(repository) -> Engine:
        return Engine(repository, tokens)

    return _make


@pytest.fixture
def engine(make_engine, repository) -> Engine:
    return make_engine(repository)
