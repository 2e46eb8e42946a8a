"""
Shared pytest fixtures

Tests run against an in-memory SQLite database. The pysqlite driver needs
explicit BEGIN handling for SAVEPOINTs to behave.
"""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import date
from uuid import uuid4

from cashflow.database.database import Base, get_db
import cashflow.modules.projects.models
import cashflow.modules.payments.models
import cashflow.modules.expenses.models
import cashflow.modules.incomes.models

from cashflow.modules.projects.models import Client, Project


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client_app(db_session):
    """TestClient with get_db bound to the test session"""
    from fastapi.testclient import TestClient
    from cashflow.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def sample_project(db_session):
    """Cliente con un proyecto que inicia el 2024-01-01"""
    client = Client(id=uuid4(), name="Empresa de Prueba S.A.S.")
    project = Project(id=uuid4(), client_id=client.id, name="Implementación ERP", start_date=date(2024, 1, 1))
    db_session.add_all([client, project])
    db_session.commit()
    return project
