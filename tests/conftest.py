import os
import tempfile

# Set environment variables BEFORE any imports that might use settings
# Use a temporary directory for test database to avoid permission issues
_test_db_dir = tempfile.mkdtemp()
_test_db_path = os.path.join(_test_db_dir, "test_accounts.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_test_db_path}"
os.environ["SECRET_KEY"] = "test-secret-key-min-32-characters-long-for-testing"
os.environ["ALGORITHM"] = "HS256"
os.environ["ACCESS_TOKEN_EXPIRE_MINUTES"] = "30"
os.environ["SUPER_ADMIN_EMAIL"] = "superadmin@test.example.com"
os.environ["SUPER_ADMIN_PASSWORD"] = "SuperAdmin123"
os.environ["CLIENT_DEFAULT_PASSWORD"] = "123"
os.environ["FRONTEND_URL"] = ""

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from accounts_api.api.deps import get_db, get_notifier
from accounts_api.core.security import create_access_token, get_password_hash
from accounts_api.db.models.user import User as UserModel
from accounts_api.domain.account_state import initial_validity
from accounts_api.domain.roles import Role
from accounts_api.main import app
from accounts_api.repositories.user import create_user
from accounts_api.schemas.event import DomainEvent
from accounts_api.services.bootstrap import ensure_super_admin

DEFAULT_PASSWORD = "Passw0rd1"


class RecordingNotifier:
    """Stands in for EventNotifier and keeps every emitted event in memory."""

    def __init__(self):
        self.events: list[DomainEvent] = []

    def emit(self, event_type, payload) -> DomainEvent:
        domain_event = DomainEvent.create(event_type, payload)
        self.events.append(domain_event)
        return domain_event

    def types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def of_type(self, event_type) -> list[DomainEvent]:
        name = getattr(event_type, "value", event_type)
        return [e for e in self.events if e.event_type == name]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test and run migrations."""
    temp_db_dir = tempfile.mkdtemp()
    test_db_path = os.path.join(temp_db_dir, "test.db")
    test_db_url = f"sqlite:///{test_db_path}"

    test_engine = create_engine(
        test_db_url,
        connect_args={"check_same_thread": False},
    )

    # Enable WAL mode to reduce locking issues
    @event.listens_for(test_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", test_db_url)
    command.upgrade(alembic_cfg, "head")

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        test_engine.dispose()

        try:
            for suffix in ["", "-wal", "-shm"]:
                path = f"{test_db_path}{suffix}"
                if os.path.exists(path):
                    os.remove(path)
            os.rmdir(temp_db_dir)
        except OSError as e:
            print(f"Cleanup failed: {e}")


@pytest.fixture(scope="function")
def db(db_session):
    """Alias for db_session to match test naming conventions."""
    return db_session


@pytest.fixture(scope="function")
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="function")
def client(db_session, notifier):
    """Create a test client with database and notifier dependency overrides."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def make_user(db: Session):
    """Factory inserting an account directly through the store."""

    def _make_user(
        role: Role,
        email: str,
        *,
        name: str | None = None,
        password: str = DEFAULT_PASSWORD,
        zone: str | None = None,
        created_by: str | None = None,
        is_valid: bool | None = None,
    ) -> UserModel:
        return create_user(
            db,
            name=name or email.split("@")[0],
            email=email,
            password_hash=get_password_hash(password),
            role=role,
            zone_of_responsibility=zone,
            created_by=created_by,
            is_valid=initial_validity(role) if is_valid is None else is_valid,
        )

    return _make_user


@pytest.fixture(scope="function")
def auth_headers():
    """Build a bearer header for an account."""

    def _auth_headers(user: UserModel) -> dict[str, str]:
        token = create_access_token(user.id, user.role, bool(user.is_valid))
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture(scope="function")
def super_admin(db: Session) -> UserModel:
    """The bootstrapped SUPER_ADMIN. Its creation event is not recorded."""
    admin = ensure_super_admin(db, RecordingNotifier())
    if admin is None:
        raise RuntimeError("Super admin bootstrap did not create an account")
    return admin


@pytest.fixture(scope="function")
def admin(make_user, super_admin) -> UserModel:
    return make_user(Role.ADMIN, "admin@example.com", zone="North", created_by=super_admin.id)


@pytest.fixture(scope="function")
def other_admin(make_user, super_admin) -> UserModel:
    return make_user(Role.ADMIN, "admin2@example.com", zone="South", created_by=super_admin.id)


@pytest.fixture(scope="function")
def assistant(make_user, admin) -> UserModel:
    return make_user(
        Role.ADMIN_ASSISTANT, "assistant@example.com", zone="North", created_by=admin.id
    )


@pytest.fixture(scope="function")
def partner(make_user) -> UserModel:
    return make_user(Role.PARTNER, "partner@example.com", is_valid=True)


@pytest.fixture(scope="function")
def pending_partner(make_user) -> UserModel:
    return make_user(Role.PARTNER, "pending@example.com")


@pytest.fixture(scope="function")
def client_account(make_user, partner) -> UserModel:
    return make_user(Role.CLIENT, "client@example.com", created_by=partner.id)


@pytest.fixture(scope="function")
def driver(make_user, admin) -> UserModel:
    return make_user(Role.DRIVER, "driver@example.com", zone="North", created_by=admin.id)
