from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
# Fast hashing for the test suite.
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST"] = "1024"
os.environ["ARGON2_PARALLELISM"] = "1"

from fortifymis.database import Base, get_read_db, get_write_db  # noqa: E402
from fortifymis.apps.accounts import models as account_models  # noqa: E402,F401
from fortifymis.apps.audit import models as audit_models  # noqa: E402,F401
from fortifymis.apps.notifications import models as notification_models  # noqa: E402,F401
from fortifymis.apps.alerts import models as alert_models  # noqa: E402,F401
from fortifymis.apps.compliance import models as compliance_models  # noqa: E402,F401
from fortifymis.apps.maintenance import models as maintenance_models  # noqa: E402,F401
from fortifymis.apps.iot import models as iot_models  # noqa: E402,F401
from fortifymis.apps.training import models as training_models  # noqa: E402,F401
from fortifymis.apps.procurement import models as procurement_models  # noqa: E402,F401
from fortifymis.apps.logistics import models as logistics_models  # noqa: E402,F401


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient

    from fortifymis.main import app

    def _override():
        # Failed requests must not leave pending rows in the shared session.
        try:
            yield db_session
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_write_db] = _override
    app.dependency_overrides[get_read_db] = _override
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


TEST_PASSWORD = "Passw0rd123"


@pytest.fixture()
def make_mill(db_session):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = {
            "code": f"MILL-{counter['n']:03d}",
            "name": f"Test Mill {counter['n']}",
            "region": "Central",
            "country": "KE",
        }
        values.update(overrides)
        mill = account_models.Mill(**values)
        db_session.add(mill)
        db_session.commit()
        return mill

    return _make


@pytest.fixture()
def make_user(db_session):
    from fortifymis.security import get_password_hash

    hashed = get_password_hash(TEST_PASSWORD)
    counter = {"n": 0}

    def _make(role=account_models.UserRole.MILL_OPERATOR, mill=None, **overrides):
        counter["n"] += 1
        values = {
            "email": f"user{counter['n']}@example.com",
            "full_name": f"Test User {counter['n']}",
            "role": role,
            "mill_id": mill.id if mill is not None else None,
            "hashed_password": hashed,
            "is_active": True,
        }
        values.update(overrides)
        user = account_models.User(**values)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def auth_headers():
    from fortifymis.security import create_user_token

    def _headers(user):
        return {"Authorization": f"Bearer {create_user_token(user)}"}

    return _headers
