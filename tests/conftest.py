import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mcqbank.core.database import get_db, init_db
from mcqbank.main import app
from mcqbank.models.variants import HierarchyVariant


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False},
                           poolclass=StaticPool, future=True)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File backed SQLite shared by worker threads.

    Transactions open with BEGIN IMMEDIATE so concurrent writers queue on
    the database lock, and savepoints nest inside a real transaction.
    """
    engine = create_engine(f"sqlite:///{tmp_path / 'bank.db'}",
                           connect_args={"check_same_thread": False, "timeout": 30}, future=True)

    @event.listens_for(engine, "connect")
    def disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_chain():
    """Build a Year..Chapter chain in one variant; returns the nodes root first."""
    def make(db, variant=HierarchyVariant.LEGACY, orders=(1, 1, 1, 1, 1), root_name=None, leaf_name=None):
        nodes, parent = [], None
        for level, order in enumerate(orders, start=1):
            name = f"{variant.level_type(level)} {order}"
            if level == 1 and root_name:
                name = root_name
            elif level == len(orders) and leaf_name:
                name = leaf_name
            node = variant.model(name=name, level=level, type=variant.level_type(level), order=order,
                                 parent_id=parent.id if parent is not None else None)
            db.add(node)
            db.flush()
            nodes.append(node)
            parent = node
        db.commit()
        return nodes
    return make


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
