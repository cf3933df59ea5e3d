import os
import tempfile
from pathlib import Path

import pytest

# Base de datos temporal ANTES de importar la aplicación
_TEST_DB = Path(tempfile.mkdtemp()) / "growthloop_test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DEFAULT_TIMEZONE"] = "UTC"
os.environ["DEFAULT_LOCALE"] = "en"


@pytest.fixture(autouse=True)
def fresh_db():
    """Tablas vacías para cada test"""
    from database import Base, engine, init_db

    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app) as test_client:
        yield test_client


def _register(client, username):
    response = client.post("/auth/register", json={
        "username": username,
        "email": f"{username}@example.com",
        "password": "secreto123",
    })
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def auth_headers(client):
    return _register(client, "ana")


@pytest.fixture
def other_headers(client):
    return _register(client, "luis")
