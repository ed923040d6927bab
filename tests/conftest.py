import os
import tempfile

import pytest

# must be in place before board.config is imported
_TMP = tempfile.mkdtemp(prefix="board-tests-")
os.environ.setdefault("DB_PATH", os.path.join(_TMP, "app.db"))
os.environ.setdefault("STATIC_DIR", os.path.join(_TMP, "no-static"))

from fastapi.testclient import TestClient  # noqa: E402

from board.main import app  # noqa: E402
from board.metrics import reset_metrics  # noqa: E402
from board.storage import (  # noqa: E402
    create_store_engine,
    get_db,
    init_db,
    make_sessionmaker,
    session_scope,
)


@pytest.fixture
def store_engine(tmp_path):
    eng = create_store_engine(f"sqlite:///{tmp_path / 'chat.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(store_engine):
    return make_sessionmaker(store_engine)


@pytest.fixture
def db(session_factory):
    with session_scope(session_factory) as session:
        yield session


@pytest.fixture
def broken_session_factory(tmp_path):
    # the parent directory does not exist, so sqlite cannot open the file
    eng = create_store_engine(f"sqlite:///{tmp_path / 'missing' / 'chat.db'}")
    yield make_sessionmaker(eng)
    eng.dispose()


def _client_for(factory):
    def override_get_db():
        with session_scope(factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    reset_metrics()
    return TestClient(app)


@pytest.fixture
def client(session_factory):
    with _client_for(session_factory) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def broken_client(broken_session_factory):
    with _client_for(broken_session_factory) as c:
        yield c
    app.dependency_overrides.clear()


class CloseCounter:
    """Session factory wrapper that counts how often sessions are closed."""

    def __init__(self, factory):
        self.factory = factory
        self.opened = 0
        self.closed = 0

    def __call__(self):
        session = self.factory()
        real_close = session.close
        self.opened += 1

        def close():
            self.closed += 1
            real_close()

        session.close = close
        return session


@pytest.fixture
def counting_factory(session_factory):
    return CloseCounter(session_factory)


@pytest.fixture
def counting_broken_factory(broken_session_factory):
    return CloseCounter(broken_session_factory)
