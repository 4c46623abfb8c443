from datetime import timedelta

import pytest

from shared.security import create_access_token


@pytest.mark.parametrize("method,path", [
    ("post", "/api/admin/test/folders"),
    ("get", "/api/admin/test/search"),
    ("get", "/api/tests/free"),
    ("get", "/api/tests/history"),
    ("post", "/api/tests/test/1/submit"),
])
def test_missing_token_is_401(client, method, path):
    r = getattr(client, method)(path)
    assert r.status_code == 401
    assert r.json() == {"error": "JWT token required."}


def test_bad_or_expired_token_is_401(client):
    r = client.get("/api/tests/history", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid or expired access token."}

    expired = create_access_token({"id": 5, "role": "student"}, expires_delta=timedelta(minutes=-5))
    r = client.get("/api/tests/history", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401


def test_token_without_user_id_is_401(client):
    token = create_access_token({"role": "admin"})
    r = client.get("/api/tests/history", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_student_cannot_use_admin_routes(client, student_headers):
    r = client.post("/api/admin/test/folders", json={"name": "Nope"}, headers=student_headers)
    assert r.status_code == 403
    assert r.json() == {"error": "Access denied. Admin privileges required."}


def test_sub_claim_is_accepted_as_user_id(client):
    token = create_access_token({"sub": "42", "role": "student"})
    r = client.get("/api/tests/history", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200


def test_health_and_root_are_open(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "test-service"}
    assert client.get("/").json()["docs"] == "/docs"
