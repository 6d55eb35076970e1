import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_USERNAMES"] = "admin,root"

import pytest
from fastapi.testclient import TestClient

import database
from cart import carts
from main import app


@pytest.fixture(autouse=True)
def fresh_state():
    database.drop_db()
    database.init_db()
    carts.reset()
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def register(client, username="alice", email=None, password="secret"):
    res = client.post("/api/register", json={
        "username": username,
        "email": email or f"{username}@example.com",
        "password": password,
    })
    assert res.status_code == 201, res.text
    return res.json()


def login_headers(client, username="alice", password="secret"):
    res = client.post("/api/login", json={"username": username, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def user(client):
    return register(client)


@pytest.fixture
def auth(client, user):
    return login_headers(client)


@pytest.fixture
def add_book(client, auth):
    def _add(isbn, title, price, author=None, genre=None):
        res = client.post("/api/books", json={
            "isbn": isbn, "title": title, "price": price, "author": author, "genre": genre,
        }, headers=auth)
        assert res.status_code == 201, res.text
        return res.json()
    return _add
