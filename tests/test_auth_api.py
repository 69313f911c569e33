from app.models.user import User
from app.services.auth import AuthService
from app.services.role_service import RoleService
from app.services.token_service import get_token_service
from factories import auth_headers, create_user


async def _load_user(session_factory, user_id: int) -> User:
    async with session_factory() as session:
        return await session.get(User, user_id)


async def test_register_returns_token_for_user_without_role(client):
    response = await client.post("/api/v1/auth/register", json={
        "email": "Fresh@X.com",
        "password": "long-enough-password",
        "first_name": "Fresh",
    })

    assert response.status_code == 201
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 7 * 24 * 60 * 60
    assert body["user"]["email"] == "fresh@x.com"
    assert body["user"]["roles"] == []
    assert body["user"]["username"].startswith("fresh_")

    claims = get_token_service().verify(body["access_token"])
    assert claims.user_id == body["user"]["user_id"]


async def test_register_rejects_taken_email(client, db):
    await create_user(db, email="taken@x.com")

    response = await client.post("/api/v1/auth/register", json={
        "email": "TAKEN@x.com",
        "password": "long-enough-password",
    })

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "message": "Email already registered",
        "detail": "Email already registered",
        "error": "conflict",
    }


async def test_register_validates_payload(client):
    response = await client.post("/api/v1/auth/register", json={"email": "not-an-email", "password": "short"})

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "invalid_request"
    assert {tuple(error["loc"]) for error in body["errors"]} == {("body", "email"), ("body", "password")}


async def test_login_with_password_returns_roles(client, db):
    user = await create_user(db, password=AuthService.get_password_hash("secret-password"))
    await RoleService(db).set_role(user.user_id, "CLIENT")

    response = await client.post("/api/v1/auth/login", json={"email": "existing@x.com", "password": "secret-password"})

    assert response.status_code == 200
    assert response.json()["user"]["roles"] == ["CLIENT"]
    assert get_token_service().verify(response.json()["access_token"]).roles == ["CLIENT"]


async def test_wrong_password_is_counted_and_reset_by_successful_login(client, db, session_factory):
    user = await create_user(db, password=AuthService.get_password_hash("secret-password"))

    for _ in range(2):
        response = await client.post("/api/v1/auth/login", json={"email": "existing@x.com", "password": "wrong"})
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"

    assert (await _load_user(session_factory, user.user_id)).login_attempts == 2

    await client.post("/api/v1/auth/login", json={"email": "existing@x.com", "password": "secret-password"})

    reloaded = await _load_user(session_factory, user.user_id)
    assert reloaded.login_attempts == 0
    assert reloaded.last_login_at is not None


async def test_oauth_only_user_cannot_log_in_with_password(client, db):
    await create_user(db, password="")

    response = await client.post("/api/v1/auth/login", json={"email": "existing@x.com", "password": "anything"})

    assert response.status_code == 401


async def test_unknown_email_gets_the_same_answer_as_wrong_password(client):
    response = await client.post("/api/v1/auth/login", json={"email": "nobody@x.com", "password": "anything"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


async def test_banned_user_cannot_log_in(client, db):
    await create_user(db, password=AuthService.get_password_hash("secret-password"), is_banned=True)

    response = await client.post("/api/v1/auth/login", json={"email": "existing@x.com", "password": "secret-password"})

    assert response.status_code == 403
    assert response.json()["error"] == "access_denied"


async def test_me_returns_profile_with_current_roles(client, db):
    user = await create_user(db)
    await RoleService(db).set_role(user.user_id, "VIDEO_EDITOR")

    # Roles come from the database, not from the (older) token
    response = await client.get("/api/v1/auth/me", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["email"] == "existing@x.com"
    assert response.json()["roles"] == ["VIDEO_EDITOR"]


async def test_me_rejects_invalid_token(client):
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["error"] == "invalid_token"


async def test_health_reports_database_and_enabled_providers(client):
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database_connected"] is True
    assert body["providers"] == ["google", "facebook"]


async def test_responses_carry_request_id_and_timing(client):
    generated = await client.get("/api/v1/health")
    forwarded = await client.get("/api/v1/health", headers={"X-Request-ID": "trace-42"})

    assert len(generated.headers["x-request-id"]) == 32
    assert forwarded.headers["x-request-id"] == "trace-42"
    assert float(forwarded.headers["x-process-time"]) >= 0
