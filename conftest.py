import os
import uuid

import pytest

TEST_DATABASE_URL = "sqlite:///./campus-connect-test.db"
_TEST_DB_PATH = TEST_DATABASE_URL.split("///")[-1]

# The app binds its engine at import time, so point it at the test DB first
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
# Embedded metrics go to stdout instead of a CloudWatch agent
os.environ.setdefault("AWS_EMF_ENVIRONMENT", "Local")
os.environ.setdefault("LOG_FORMAT", "console")
if os.path.exists(_TEST_DB_PATH):
    os.unlink(_TEST_DB_PATH)

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from alembic.config import Config  # noqa: E402
from alembic import command  # noqa: E402

from main import app, get_db  # noqa: E402
from database import Base  # noqa: E402
import crud  # noqa: E402
import schemas  # noqa: E402
from workflows import UserRole  # noqa: E402

connect_args = (
    {"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {}
)
test_engine = create_engine(TEST_DATABASE_URL, connect_args=connect_args)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models and stamp with Alembic head."""
    Base.metadata.create_all(bind=test_engine)

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    command.stamp(alembic_cfg, "head")

    yield  # Tests run here

    test_engine.dispose()
    if os.path.exists(_TEST_DB_PATH):
        try:
            os.unlink(_TEST_DB_PATH)
        except OSError as e:
            print(f"Error removing test database file {_TEST_DB_PATH}: {e}")


@pytest.fixture(scope="function")
def db_session(setup_test_database):
    """Yields a SQLAlchemy session directly from the test factory."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def override_get_db():
    """Route the app's get_db dependency to the test session factory."""

    def _override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = _override_get_db

    yield

    if original:
        app.dependency_overrides[get_db] = original
    else:
        del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def test_client(override_get_db):
    """Provides a test client configured with our test database session."""
    return TestClient(app)


@pytest.fixture(scope="function")
def make_profile(db_session):
    """Factory creating committed profiles with unique emails."""

    def _make_profile(role: UserRole = UserRole.student, first_name: str = "Test", last_name: str = "User", **extension):
        email = f"{role.value}-{uuid.uuid4().hex[:10]}@example.com"
        profile = crud.create_profile(
            db_session,
            schemas.ProfileCreate(email=email, first_name=first_name, last_name=last_name, role=role),
        )
        if extension and role == UserRole.student:
            crud.upsert_student_profile(db_session, profile.id, schemas.StudentProfileUpdate(**extension))
        elif extension and role == UserRole.alumni:
            crud.upsert_alumni_profile(db_session, profile.id, schemas.AlumniProfileUpdate(**extension))
        db_session.commit()
        db_session.refresh(profile)
        return profile

    return _make_profile

