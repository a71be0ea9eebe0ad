from uuid import UUID

from httpx import AsyncClient

from school_api.core.enums import UserRole

PASSWORD = "StrongPass123"


async def test_register_and_login(client: AsyncClient) -> None:
    payload = {
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "Jane.Doe@Example.com",
        "password": "StrongPass123",
        "role": "TEACHER",
    }
    response = await client.post("/api/v1/auth/register", json=payload)
    assert response.status_code == 201
    data = response.json()
    UUID(data["id"])
    assert data["email"] == "jane.doe@example.com"
    assert data["role"] == "TEACHER"
    assert "password_hash" not in data

    # Email lookup is case-insensitive
    response = await client.post(
        "/api/v1/auth/login", json={"email": "JANE.DOE@example.com", "password": "StrongPass123"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["name"] == "Jane Doe"
    assert body["refresh_token"]

    profile = await client.get(
        "/api/v1/auth/profile", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert profile.status_code == 200
    assert profile.json()["last_login_at"] is not None


async def test_register_duplicate_email_conflict(client: AsyncClient, make_user) -> None:
    existing = await make_user(UserRole.TEACHER)
    payload = {
        "first_name": "Copy",
        "last_name": "Cat",
        "email": existing.email.upper(),
        "password": "StrongPass123",
    }
    response = await client.post("/api/v1/auth/register", json=payload)
    assert response.status_code == 409
    assert response.json()["detail"] == "User with this email already exists"


async def test_register_short_password_rejected(client: AsyncClient) -> None:
    payload = {"first_name": "A", "last_name": "B", "email": "ab@example.com", "password": "short"}
    response = await client.post("/api/v1/auth/register", json=payload)
    assert response.status_code == 422


async def test_login_wrong_password(client: AsyncClient, make_user) -> None:
    user = await make_user(UserRole.STUDENT)
    response = await client.post("/api/v1/auth/login", json={"email": user.email, "password": "WrongPass999"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


async def test_login_inactive_user_forbidden(client: AsyncClient, make_user) -> None:
    user = await make_user(UserRole.STUDENT, is_active=False)
    response = await client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
    assert response.status_code == 403


async def test_refresh_issues_new_access_token(client: AsyncClient, make_user) -> None:
    user = await make_user(UserRole.TEACHER)
    login = await client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
    refresh_token = login.json()["refresh_token"]

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 200
    assert response.json()["access_token"]

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": "not-a-token"})
    assert response.status_code == 401


async def test_protected_endpoint_requires_valid_token(client: AsyncClient, make_user, headers) -> None:
    response = await client.get("/api/v1/auth/profile")
    assert response.status_code == 401

    response = await client.get("/api/v1/auth/profile", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401

    inactive = await make_user(UserRole.TEACHER, is_active=False)
    response = await client.get("/api/v1/auth/profile", headers=headers(inactive))
    assert response.status_code == 401
