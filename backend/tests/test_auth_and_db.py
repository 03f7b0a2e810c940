from datetime import datetime, timedelta, timezone

import jwt
import pytest

from examhub import errors
from examhub.auth import ADMIN_AUDIENCE, USER_AUDIENCE, create_access_token, decode_token


def test_token_subject_roundtrip(settings):
    token = create_access_token(42, USER_AUDIENCE, settings)
    assert decode_token(token, USER_AUDIENCE, settings) == 42


def test_tampered_payload_rejected(settings):
    token = create_access_token(1, USER_AUDIENCE, settings)
    header, payload, signature = token.split(".")
    forged = jwt.encode({"sub": "2", "aud": USER_AUDIENCE, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}, "other", algorithm="HS256")
    forged_payload = forged.split(".")[1]
    with pytest.raises(errors.AuthError):
        decode_token(".".join([header, forged_payload, signature]), USER_AUDIENCE, settings)


def test_tampered_signature_rejected(settings):
    token = create_access_token(1, USER_AUDIENCE, settings)
    header, payload, signature = token.split(".")
    bad = ("A" if signature[0] != "A" else "B") + signature[1:]
    with pytest.raises(errors.AuthError):
        decode_token(".".join([header, payload, bad]), USER_AUDIENCE, settings)


def test_namespaces_are_separate(settings):
    user_token = create_access_token(1, USER_AUDIENCE, settings)
    admin_token = create_access_token(1, ADMIN_AUDIENCE, settings)
    with pytest.raises(errors.AuthError):
        decode_token(user_token, ADMIN_AUDIENCE, settings)
    with pytest.raises(errors.AuthError):
        decode_token(admin_token, USER_AUDIENCE, settings)


def test_expired_token_rejected(settings):
    token = jwt.encode(
        {"sub": "1", "aud": USER_AUDIENCE, "exp": datetime.now(timezone.utc) - timedelta(seconds=5)},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(errors.AuthError) as exc:
        decode_token(token, USER_AUDIENCE, settings)
    assert exc.value.message == "Token expired"


def test_register_login_and_me(client):
    r = client.post("/auth/register", json={"email": "a@example.com", "username": "alice", "password": "pass123"})
    assert r.status_code == 201
    user = r.json()["data"]["user"]
    assert user["email"] == "a@example.com"
    assert "password_hash" not in user
    r2 = client.post("/auth/login", json={"email": "a@example.com", "password": "pass123"})
    assert r2.status_code == 200
    token = r2.json()["data"]["token"]
    r3 = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r3.status_code == 200
    assert r3.json()["data"]["user"]["id"] == user["id"]


def test_duplicate_registration(client):
    body = {"email": "a@example.com", "username": "alice", "password": "pass123"}
    assert client.post("/auth/register", json=body).status_code == 201
    r = client.post("/auth/register", json=body)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "USER_EXISTS"


def test_bad_credentials(client):
    client.post("/auth/register", json={"email": "a@example.com", "username": "alice", "password": "pass123"})
    r = client.post("/auth/login", json={"email": "a@example.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.json() == {"error": {"code": "AUTH_ERROR", "message": "Invalid credentials"}}
    r2 = client.post("/auth/login", json={"email": "nobody@example.com", "password": "x"})
    assert r2.status_code == 401


def test_missing_fields_are_validation_errors(client):
    r = client.post("/auth/register", json={"email": "a@example.com"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_protected_routes_need_token(client):
    r = client.get("/exams")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "AUTH_ERROR"
    r2 = client.get("/exams", headers={"Authorization": "Bearer not-a-token"})
    assert r2.status_code == 401


def test_user_token_rejected_on_admin_routes(client, user_headers):
    r = client.get("/admin/exams", headers=user_headers)
    assert r.status_code == 401


def test_admin_token_rejected_on_user_routes(client, admin_headers):
    r = client.get("/exams", headers=admin_headers)
    assert r.status_code == 401
    assert client.get("/admin/exams", headers=admin_headers).status_code == 200


def test_token_for_deleted_subject_rejected(client, settings):
    token = create_access_token(999, USER_AUDIENCE, settings)
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
