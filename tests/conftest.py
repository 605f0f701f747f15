import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-entropy-0123456789")
os.environ.setdefault("CSRF_SECRET", "test-csrf-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.pop("REDIS_URL", None)

from app.db.session import Base
from app.main import app
from app.api import deps
from app.models import User, UserRole
from app.services import password as passwords
from app.services import rate_limit, token_store

ADMIN_PASSWORD = "Tr0ub4dor&Xy"


@pytest.fixture(scope="session")
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture(scope="function")
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionTesting = sessionmaker(bind=connection, autoflush=False, autocommit=False)
    session = SessionTesting()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(autouse=True)
def reset_auth_state(monkeypatch):
    token_store.store.reset()
    limiter = rate_limit.RateLimiter(
        token_store.store, rate_limit.PROFILES["test"]
    )
    monkeypatch.setattr(rate_limit, "auth_limiter", limiter)
    yield
    token_store.store.reset()


@pytest.fixture(scope="function")
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[deps.get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, role=UserRole.admin, name="admin", password=ADMIN_PASSWORD):
    user = User(
        email=email,
        name=name,
        role=role,
        password_hash=passwords.hash_password(password) if password else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db_session):
    return make_user(db_session, "root@features.dev", name="root")


@pytest.fixture
def user_factory(db_session):
    def factory(email, role=UserRole.admin, name="admin", password=ADMIN_PASSWORD):
        return make_user(db_session, email, role=role, name=name, password=password)

    return factory
