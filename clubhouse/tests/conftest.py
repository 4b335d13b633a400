import os
import tempfile

# Configure the app for tests before anything imports it.
os.environ["CLUBHOUSE_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CLUBHOUSE_SECURE_COOKIES"] = "false"
os.environ.setdefault("CLUBHOUSE_LOG_DIR", tempfile.mkdtemp(prefix="clubhouse-logs-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clubhouse.data.club_manager import ClubManager
from clubhouse.data.user_manager import UserManager
from clubhouse.database import Base, get_db
from clubhouse.main import app
from clubhouse.services.meeting_locks import MeetingLockRegistry
from clubhouse.utils.security import get_password_hash
from clubhouse.utils.websocket_manager import WebSocketManager

TEST_PASSWORD = "Passw0rd123"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def password_hash() -> str:
    # bcrypt is slow; every test user shares one hash.
    return get_password_hash(TEST_PASSWORD)


@pytest.fixture(scope="function")
def db_session():
    """
    Provides an isolated in-memory database for one test and points the
    app's get_db dependency at it.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield db
    finally:
        app.dependency_overrides.pop(get_db, None)
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def client(db_session: Session):
    """TestClient with the lifespan hook running (logging, room registry)."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db_session: Session, password_hash: str):
    manager = UserManager()
    manager.set_db(db_session)

    def _make(login: str, first_name: str = None, last_name: str = None):
        return manager.add_user(
            login=login,
            hashed_password=password_hash,
            email=f"{login}@clubhouse.test",
            first_name=first_name,
            last_name=last_name,
        )

    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("alice", "Alice", "Admin")


@pytest.fixture
def member_user(make_user):
    return make_user("bob", "Bob", "Member")


@pytest.fixture
def second_member(make_user):
    return make_user("carol", "Carol", "Member")


@pytest.fixture
def outsider(make_user):
    return make_user("dave", "Dave", "Outsider")


@pytest.fixture
def club(db_session: Session, admin_user, member_user, second_member):
    clubs = ClubManager(db_session)
    created = clubs.create_club(admin_user, "Book Club", "Monthly reads")
    clubs.join_by_code(member_user, created.join_code)
    clubs.join_by_code(second_member, created.join_code)
    return created


@pytest.fixture
def notifier() -> WebSocketManager:
    manager = WebSocketManager()
    manager.start()
    return manager


@pytest.fixture
def locks() -> MeetingLockRegistry:
    return MeetingLockRegistry()


class RecordingSocket:
    """Stands in for a WebSocket; keeps every JSON frame it is sent."""

    def __init__(self, *, should_fail: bool = False, on_send=None):
        self.sent = []
        self.should_fail = should_fail
        self.on_send = on_send

    async def send_json(self, message):
        if self.on_send:
            self.on_send()
        if self.should_fail:
            raise RuntimeError("send failed")
        self.sent.append(message)


@pytest.fixture
def recording_socket():
    return RecordingSocket


@pytest.fixture
def login_as(client: TestClient):
    """Swap the client's auth cookie to another user."""

    def _login(login: str, password: str = TEST_PASSWORD):
        client.cookies.clear()
        response = client.post(
            "/api/auth/token", json={"username": login, "password": password}
        )
        assert response.status_code == 200, response.text
        return response

    return _login
