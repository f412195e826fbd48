"""Test configuration and fixtures for the library inventory backend.

1. Isolated test databases - each test gets its own SQLite file
2. A controllable clock - issue and return stamps are deterministic
3. Configuration overrides - test-specific server settings
4. An HTTP client - FastAPI TestClient with a staff bearer token
"""

import os
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from library_inventory.api.app import create_app
from library_inventory.api.auth import hash_password
from library_inventory.config import ServerConfig, reset_config
from library_inventory.database.catalog_repository import (
    AuthorCreateSchema,
    AuthorRepository,
    ItemCreateSchema,
    ItemRepository,
    PublisherCreateSchema,
    PublisherRepository,
)
from library_inventory.database.loan_ledger import LoanLedger
from library_inventory.database.patron_repository import PatronCreateSchema, PatronRepository
from library_inventory.database.session import DatabaseManager
from library_inventory.database.staff_repository import StaffCreateSchema, StaffRepository
from library_inventory.models.catalog import ItemKind
from library_inventory.services.availability import AvailabilityEngine
from library_inventory.services.reporting import ReportingProjection

STAFF_PASSWORD = "correct-horse"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


# === Test Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    """Each test gets its own database file."""
    return tmp_path / "test_library.db"


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def db_manager(test_database_url: str) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(test_database_url)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    db_session = db_manager.create_session()
    try:
        yield db_session
    finally:
        db_session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 9, 2, 10, 0, 0))


# === Domain Fixtures ===


@pytest.fixture
def staff_password() -> str:
    return STAFF_PASSWORD


@pytest.fixture
def staff(session: Session):
    """A librarian whose id is used as the actor on loans."""
    return StaffRepository(session).create(
        StaffCreateSchema(
            username="librarian",
            full_name="Anna Librarian",
            role="librarian",
            password_hash=hash_password(STAFF_PASSWORD, iterations=1000),
        )
    )


@pytest.fixture
def catalog(session: Session, staff) -> dict:
    """
    Two books, one disk and three patrons.

    Barcodes: books B1, B2, disk D1; patrons P1, P2, P3.
    """
    author = AuthorRepository(session).create(
        AuthorCreateSchema(last_name="Tolstoy", first_name="Lev", middle_name="Nikolaevich")
    )
    publisher = PublisherRepository(session).create(PublisherCreateSchema(name="Prosveshchenie"))
    items = ItemRepository(session)
    patrons = PatronRepository(session)
    return {
        "author": author,
        "publisher": publisher,
        "B1": items.create(
            ItemCreateSchema(
                kind=ItemKind.BOOK,
                barcode="B1",
                title="War and Peace",
                isbn="9785170906307",
                author_id=author.id,
                publisher_id=publisher.id,
            ),
            actor_id=staff.id,
        ),
        "B2": items.create(
            ItemCreateSchema(kind=ItemKind.BOOK, barcode="B2", title="Anna Karenina"),
            actor_id=staff.id,
        ),
        "D1": items.create(
            ItemCreateSchema(
                kind=ItemKind.DISK, barcode="D1", title="Cell Biology", subject="Biology"
            ),
            actor_id=staff.id,
        ),
        "P1": patrons.create(
            PatronCreateSchema(barcode="P1", last_name="Ivanova", first_name="Maria", grade=7),
            actor_id=staff.id,
        ),
        "P2": patrons.create(
            PatronCreateSchema(barcode="P2", last_name="Petrov", first_name="Ivan", grade=5),
            actor_id=staff.id,
        ),
        "P3": patrons.create(
            PatronCreateSchema(barcode="P3", last_name="Sidorov", first_name="Oleg"),
            actor_id=staff.id,
        ),
    }


@pytest.fixture
def engine(session: Session, clock: FakeClock) -> AvailabilityEngine:
    return AvailabilityEngine(session, now=clock)


@pytest.fixture
def ledger(session: Session, clock: FakeClock) -> LoanLedger:
    return LoanLedger(session, now=clock)


@pytest.fixture
def reporting(session: Session, clock: FakeClock) -> ReportingProjection:
    return ReportingProjection(session, now=clock)


# === Configuration Fixtures ===


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[ServerConfig, None, None]:
    reset_config()
    config = ServerConfig(
        server_name="test-library",
        server_version="0.0.1-test",
        database_path=test_db_path,
        secret_key="test-secret-key",
        debug=True,
        log_level="DEBUG",
    )
    yield config
    reset_config()


@pytest.fixture
def client(
    test_config: ServerConfig, db_manager: DatabaseManager, clock: FakeClock
) -> Generator[TestClient, None, None]:
    app = create_app(test_config, db_manager=db_manager, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client: TestClient, staff) -> dict[str, str]:
    response = client.post(
        "/api/auth/login", json={"username": staff.username, "password": STAFF_PASSWORD}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


# === Environment Fixtures ===


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Run without any LIBRARY_* variables from the outer environment."""
    original_env = os.environ.copy()
    for key in list(os.environ.keys()):
        if key.startswith("LIBRARY_"):
            del os.environ[key]

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def cleanup_config():
    """Drop the cached process configuration after every test."""
    yield
    reset_config()
