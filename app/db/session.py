from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings

Base = declarative_base()

_engine = None
_SessionLocal = None


def _create_engine():
    if settings.env.lower() == "test":
        # one shared in-memory database for every connection
        return create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(settings.database_url, pool_pre_ping=True, future=True)


def get_engine():
    global _engine
    if _engine is None:
        _engine = _create_engine()
    return _engine


def get_session_local():
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(), future=True)
    return _SessionLocal


def SessionLocal():
    return get_session_local()()


def get_db():
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()
