import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from storage import ImageStorage


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient()["firesafety_test"]
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db, tmp_path, monkeypatch):
    monkeypatch.setattr(main, "image_storage", ImageStorage(str(tmp_path / "uploads")))
    return TestClient(main.app)


@pytest.fixture
def auth_headers(client):
    res = client.post("/api/auth/signup", json={"name": "Admin", "email": "admin@firesafety.in", "password": "s3cret"})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def make_product(client, auth_headers):
    def _make(**overrides):
        body = {"name": "ABC Extinguisher 4kg", "description": "Dry powder", "price": 500, "stock": 20, "category": "Extinguishers"}
        body.update(overrides)
        res = client.post("/api/admin/products", json=body, headers=auth_headers)
        assert res.status_code == 200
        return res.json()["id"]
    return _make
