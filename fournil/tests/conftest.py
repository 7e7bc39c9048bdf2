import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from fournil.app.api.deps import get_db  # noqa: E402
from fournil.app.db.base import Base  # noqa: E402
from fournil.app.main import app  # noqa: E402
from fournil.tests.builders import Bakery, make_engine  # noqa: E402


@pytest.fixture(scope="function")
def db_engine():
    engine = make_engine()
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Session:
    """
    Session isolée par test.

    SQLite en mémoire, schéma recréé à chaque test : les commit() des
    unités de travail sont réels, rien ne fuit d'un test à l'autre.
    """
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def bakery(db_session: Session) -> Bakery:
    return Bakery(db_session)
