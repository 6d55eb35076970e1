import httpx
import pytest

import database
from database import users
from image_host import ImageHost, ImageUploadError, get_image_host
from main import app
from security import create_access_token
from conftest import register, login_headers


def test_register_assigns_roles(client):
    assert register(client, "admin")["role"] == "admin"
    assert register(client, "root")["role"] == "admin"
    assert register(client, "carol")["role"] == "user"


def test_register_never_returns_or_stores_plain_password(client):
    body = register(client, "dave", password="hunter2")
    assert "password" not in body
    stored = database.get_row_by(users, "username", "dave")
    assert stored["password"] != "hunter2"
    assert all("password" not in u for u in client.get("/api/users").json())


def test_register_duplicates(client, user):
    res = client.post("/api/register", json={"username": "alice", "email": "new@example.com", "password": "x"})
    assert res.status_code == 400
    assert res.json() == {"error": "Username already exists"}
    res = client.post("/api/register", json={"username": "other", "email": "alice@example.com", "password": "x"})
    assert res.status_code == 400
    assert res.json() == {"error": "Email already exists"}


def test_register_rejects_bad_email(client):
    res = client.post("/api/register", json={"username": "eve", "email": "not-an-email", "password": "x"})
    assert res.status_code == 400


def test_login_by_username_or_email(client, user):
    res = client.post("/api/login", json={"username": "alice", "password": "secret"})
    assert res.status_code == 200
    assert res.json()["user"]["username"] == "alice"
    res = client.post("/api/login", json={"username": "alice@example.com", "password": "secret"})
    assert res.status_code == 200
    res = client.post("/api/login", json={"email": "alice@example.com", "password": "secret"})
    assert res.status_code == 200


def test_login_bad_credentials(client, user):
    res = client.post("/api/login", json={"username": "alice", "password": "wrong"})
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid credentials"}
    assert client.post("/api/login", json={"username": "nobody", "password": "secret"}).status_code == 401


def test_profile_requires_token(client):
    res = client.get("/api/user")
    assert res.status_code == 401
    assert res.json() == {"error": "Missing token"}


def test_profile_with_invalid_token(client):
    res = client.get("/api/user", headers={"Authorization": "Bearer not.a.token"})
    assert res.status_code == 403
    assert res.json() == {"error": "Invalid or expired token"}


def test_profile_with_expired_token(client, user):
    token = create_access_token({"id": user["id"], "role": "user"}, expires_minutes=-1)
    res = client.get("/api/user", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 403


def test_profile(client, auth, user):
    res = client.get("/api/user", headers=auth)
    assert res.status_code == 200
    assert res.json() == user


def test_profile_of_deleted_user(client, auth, user):
    database.delete_row(users, user["id"])
    res = client.get("/api/user", headers=auth)
    assert res.status_code == 404
    assert res.json() == {"error": "User not found"}


def test_logout_revokes_token(client, auth):
    assert client.post("/api/logout", headers=auth).status_code == 200
    assert client.get("/api/user", headers=auth).status_code == 403


class FakeImageHost:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []

    def upload(self, data, filename="upload", content_type="application/octet-stream"):
        if self.fail:
            raise ImageUploadError("Image upload failed: boom")
        self.uploads.append((data, filename, content_type))
        return f"https://images.example.com/{filename}"


def test_profile_update_with_picture(client, auth):
    host = FakeImageHost()
    app.dependency_overrides[get_image_host] = lambda: host
    res = client.put(
        "/api/profile/update",
        data={"username": "alice2"},
        files={"profile_pic": ("me.png", b"\x89PNG", "image/png")},
        headers=auth,
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["username"] == "alice2"
    assert body["profile_pic_url"] == "https://images.example.com/me.png"
    assert host.uploads == [(b"\x89PNG", "me.png", "image/png")]


def test_profile_update_password(client, auth):
    res = client.put("/api/profile/update", data={"password": "changed"}, headers=auth)
    assert res.status_code == 200
    login_headers(client, "alice", "changed")


def test_profile_update_upload_failure(client, auth, user):
    app.dependency_overrides[get_image_host] = lambda: FakeImageHost(fail=True)
    res = client.put(
        "/api/profile/update",
        data={"username": "renamed"},
        files={"profile_pic": ("me.png", b"data", "image/png")},
        headers=auth,
    )
    assert res.status_code == 500
    assert res.json() == {"error": "Image upload failed: boom"}
    assert client.get("/api/user", headers=auth).json()["username"] == "alice"


def test_profile_update_duplicate_email(client, auth):
    register(client, "bob")
    res = client.put("/api/profile/update", data={"email": "bob@example.com"}, headers=auth)
    assert res.status_code == 400


def test_profile_update_requires_token(client):
    assert client.put("/api/profile/update", data={"username": "x"}).status_code == 401


def test_image_host_returns_url():
    def handler(request):
        assert request.headers["Authorization"] == "Bearer key"
        return httpx.Response(200, json={"data": {"url": "https://cdn.example.com/a.png"}})

    host = ImageHost("https://upload.example.com", "key", transport=httpx.MockTransport(handler))
    assert host.upload(b"bytes", "a.png", "image/png") == "https://cdn.example.com/a.png"


def test_image_host_errors():
    host = ImageHost("https://upload.example.com", transport=httpx.MockTransport(lambda r: httpx.Response(502)))
    with pytest.raises(ImageUploadError):
        host.upload(b"bytes")
    with pytest.raises(ImageUploadError):
        ImageHost(None).upload(b"bytes")


def test_profile_update_duplicate_username(client, auth):
    register(client, "bob")
    res = client.put("/api/profile/update", data={"username": "bob"}, headers=auth)
    assert res.status_code == 400
    assert res.json() == {"error": "Username already exists"}
    assert client.get("/api/user", headers=auth).json()["username"] == "alice"


def test_profile_update_with_own_email_in_other_case(client, auth, user):
    res = client.put("/api/profile/update", data={"email": "alice@EXAMPLE.COM"}, headers=auth)
    assert res.status_code == 200, res.text
    assert res.json()["email"] == user["email"]


def test_profile_update_invalid_email(client, auth):
    res = client.put("/api/profile/update", data={"email": "nope"}, headers=auth)
    assert res.status_code == 400
    assert res.json() == {"error": "Invalid email address"}
