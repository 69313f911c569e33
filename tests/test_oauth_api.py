from urllib.parse import parse_qs, urlparse

import httpx
from sqlalchemy import func, select

from app.models.oauth_account import OAuthAccount
from app.models.user import User
from app.services.encryption_service import get_encryption_service
from app.services.token_service import get_token_service
from factories import auth_headers, create_user, google_handler, google_profile, link_account


def _query(location: str) -> dict:
    return {key: values[0] for key, values in parse_qs(urlparse(location).query).items()}


async def _user_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(User))


async def _start_google_login(client, redirect=None) -> dict:
    params = {"redirect": redirect} if redirect else None
    response = await client.get("/api/v1/oauth/google", params=params)
    assert response.status_code == 307
    return _query(response.headers["location"])


async def test_providers_lists_configured_logins(client):
    response = await client.get("/api/v1/oauth/providers")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [p["name"] for p in body["data"]["providers"]] == ["google", "facebook"]


async def test_google_login_redirects_and_sets_flow_cookies(client):
    response = await client.get("/api/v1/oauth/google")

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")

    cookies = response.headers.get_list("set-cookie")
    state_cookie = next(c for c in cookies if c.startswith("oauth_state="))
    assert any(c.startswith("oauth_code_verifier=") for c in cookies)
    assert not any(c.startswith("oauth_redirect=") for c in cookies)
    assert "HttpOnly" in state_cookie
    assert "Max-Age=600" in state_cookie
    assert "samesite=lax" in state_cookie.lower()

    assert _query(response.headers["location"])["state"] == client.cookies.get("oauth_state")


async def test_login_rejects_foreign_redirect(client):
    response = await client.get("/api/v1/oauth/google", params={"redirect": "https://evil.example.com/"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"
    assert "set-cookie" not in response.headers


async def test_unconfigured_provider_is_unavailable(client):
    response = await client.get("/api/v1/oauth/apple")

    assert response.status_code == 503
    assert response.json()["success"] is False


async def test_login_attempts_are_rate_limited(client):
    for _ in range(10):
        assert (await client.get("/api/v1/oauth/facebook")).status_code == 307

    response = await client.get("/api/v1/oauth/facebook")

    assert response.status_code == 429
    assert int(response.headers["retry-after"]) > 0


async def test_rotating_forwarded_for_does_not_reset_the_limit(client):
    for i in range(10):
        response = await client.get("/api/v1/oauth/google", headers={"X-Forwarded-For": f"10.0.0.{i}"})
        assert response.status_code == 307

    response = await client.get("/api/v1/oauth/google", headers={"X-Forwarded-For": "10.0.0.99"})

    assert response.status_code == 429


async def test_google_callback_creates_user_and_redirects_with_token(client, provider_stub, session_factory):
    provider_stub.handler = google_handler(google_profile(sub="g-123", email="new@x.com"))
    params = await _start_google_login(client)
    verifier = client.cookies.get("oauth_code_verifier")

    response = await client.get("/api/v1/oauth/google/callback", params={"code": "abc", "state": params["state"]})

    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith("http://localhost:3000/auth/callback?")
    query = _query(location)
    assert query["isNewUser"] == "true"
    assert query["provider"] == "google"

    claims = get_token_service().verify(query["token"])
    assert str(claims.user_id) == query["userId"]
    assert claims.email == "new@x.com"

    token_request = parse_qs(provider_stub.requests[0].content.decode())
    assert token_request["code_verifier"] == [verifier]

    cleared = response.headers.get_list("set-cookie")
    for name in ("oauth_state", "oauth_code_verifier", "oauth_redirect"):
        assert any(c.startswith(f'{name}=""') or c.startswith(f"{name}=;") for c in cleared)
    assert await _user_count(session_factory) == 1


async def test_second_google_callback_returns_existing_user(client, provider_stub):
    provider_stub.handler = google_handler(google_profile(sub="g-123"))

    first = await _start_google_login(client)
    first_response = await client.get("/api/v1/oauth/google/callback", params={"code": "a", "state": first["state"]})
    second = await _start_google_login(client)
    second_response = await client.get("/api/v1/oauth/google/callback", params={"code": "b", "state": second["state"]})

    assert _query(first_response.headers["location"])["isNewUser"] == "true"
    assert _query(second_response.headers["location"])["isNewUser"] == "false"
    assert (
        _query(first_response.headers["location"])["userId"]
        == _query(second_response.headers["location"])["userId"]
    )


async def test_callback_returns_to_allowed_custom_redirect(client, provider_stub):
    provider_stub.handler = google_handler(google_profile())
    params = await _start_google_login(client, redirect="http://localhost:3000/jobs/7")

    assert "|" in params["state"]

    response = await client.get("/api/v1/oauth/google/callback", params={"code": "abc", "state": params["state"]})

    assert response.headers["location"].startswith("http://localhost:3000/jobs/7?token=")


async def test_state_mismatch_is_rejected_before_code_exchange(client, provider_stub):
    await _start_google_login(client)

    response = await client.get("/api/v1/oauth/google/callback", params={"code": "abc", "state": "forged"})

    assert response.status_code == 302
    query = _query(response.headers["location"])
    assert response.headers["location"].startswith("http://localhost:3000/auth/error?")
    assert query["error"] == "invalid_state"
    assert query["message"] == "State validation failed"
    assert provider_stub.requests == []


async def test_callback_without_session_cookie_reports_expired_session(client, provider_stub):
    response = await client.get("/api/v1/oauth/google/callback", params={"code": "abc", "state": "whatever"})

    query = _query(response.headers["location"])
    assert query["error"] == "invalid_state"
    assert query["message"] == "Session expired. Please try again."
    assert provider_stub.requests == []


async def test_callback_without_code_is_invalid_request(client):
    params = await _start_google_login(client)

    response = await client.get("/api/v1/oauth/google/callback", params={"state": params["state"]})

    assert _query(response.headers["location"])["error"] == "invalid_request"


async def test_provider_denial_is_passed_to_frontend(client):
    response = await client.get(
        "/api/v1/oauth/google/callback",
        params={"error": "access_denied", "error_description": "User cancelled"}
    )

    query = _query(response.headers["location"])
    assert query == {"error": "access_denied", "message": "User cancelled"}


async def test_unknown_provider_error_is_reported_as_server_error(client):
    response = await client.get("/api/v1/oauth/facebook/callback", params={"error": "weird_error"})

    assert _query(response.headers["location"]) == {
        "error": "server_error",
        "message": "An error occurred during authentication.",
    }


async def test_expired_code_redirects_with_invalid_grant_and_writes_nothing(client, provider_stub, session_factory):
    provider_stub.handler = lambda request: httpx.Response(400, json={"error": "invalid_grant"})
    params = await _start_google_login(client)

    response = await client.get("/api/v1/oauth/google/callback", params={"code": "old", "state": params["state"]})

    query = _query(response.headers["location"])
    assert query["error"] == "invalid_grant"
    assert "expired" in query["message"]
    assert await _user_count(session_factory) == 0


async def test_banned_user_is_sent_to_error_page(client, db, provider_stub):
    user = await create_user(db, email="new@x.com", is_banned=True)
    await link_account(db, user, "google", "g-123")
    provider_stub.handler = google_handler(google_profile(sub="g-123"))
    params = await _start_google_login(client)

    response = await client.get("/api/v1/oauth/google/callback", params={"code": "abc", "state": params["state"]})

    assert _query(response.headers["location"])["error"] == "access_denied"


async def test_second_google_account_for_linked_email_reports_the_conflict(client, db, provider_stub):
    user = await create_user(db, email="new@x.com")
    await link_account(db, user, "google", "g-old")
    provider_stub.handler = google_handler(google_profile(sub="g-new"))
    params = await _start_google_login(client)

    response = await client.get("/api/v1/oauth/google/callback", params={"code": "abc", "state": params["state"]})

    assert _query(response.headers["location"]) == {
        "error": "server_error",
        "message": "This email is already linked to a different Google account.",
    }

async def test_facebook_callback_links_existing_account(client, db, provider_stub):
    existing = await create_user(db, email="existing@x.com")

    def handler(request):
        if request.url.path.endswith("/oauth/access_token"):
            return httpx.Response(200, json={"access_token": "fb-access"})
        return httpx.Response(200, json={"id": "fb-9", "email": "existing@x.com", "first_name": "Ex"})

    provider_stub.handler = handler
    login = await client.get("/api/v1/oauth/facebook")
    state = _query(login.headers["location"])["state"]

    response = await client.get("/api/v1/oauth/facebook/callback", params={"code": "fb-code", "state": state})

    query = _query(response.headers["location"])
    assert query["isNewUser"] == "false"
    assert query["userId"] == str(existing.user_id)
    assert query["provider"] == "facebook"


async def test_set_role_returns_token_with_new_role_and_bonus(client, db):
    user = await create_user(db)

    response = await client.post(
        "/api/v1/oauth/set-role", json={"role": "videographer"}, headers=auth_headers(user)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"].startswith("Role set successfully! Welcome!")
    data = body["data"]
    assert data["role"] == "VIDEOGRAPHER"
    assert data["redirect"] == "/dashboard/freelancer-dashboard"
    assert data["signup_bonus"]["credits_added"] == 5
    assert get_token_service().verify(data["token"]).roles == ["VIDEOGRAPHER"]


async def test_set_client_role_points_to_client_dashboard(client, db):
    user = await create_user(db)

    response = await client.post("/api/v1/oauth/set-role", json={"role": "CLIENT"}, headers=auth_headers(user))

    assert response.json()["data"]["redirect"] == "/dashboard/client-dashboard"
    assert response.json()["message"] == "Role set successfully"


async def test_admin_role_cannot_be_self_assigned(client, db):
    user = await create_user(db)

    response = await client.post("/api/v1/oauth/set-role", json={"role": "ADMIN"}, headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_argument"


async def test_role_status_requires_authentication(client):
    response = await client.get("/api/v1/oauth/role-status")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


async def test_role_status_reports_pending_selection(client, db):
    user = await create_user(db)

    response = await client.get("/api/v1/oauth/role-status", headers=auth_headers(user))

    assert response.json()["data"] == {"has_role": False, "roles": [], "needs_role_selection": True}


async def test_banned_user_token_is_refused(client, db):
    user = await create_user(db, is_banned=True)

    response = await client.get("/api/v1/oauth/linked", headers=auth_headers(user))

    assert response.status_code == 403


async def test_linked_and_unlink_endpoints(client, db):
    user = await create_user(db, password="")
    await link_account(db, user, "google", "g-1")
    await link_account(db, user, "facebook", "fb-1")
    headers = auth_headers(user)

    linked = await client.get("/api/v1/oauth/linked", headers=headers)
    assert linked.json()["data"]["providers"] == ["google", "facebook"]

    unlinked = await client.delete("/api/v1/oauth/unlink/Google", headers=headers)
    assert unlinked.status_code == 200
    assert unlinked.json()["message"] == "Google account unlinked successfully"

    last = await client.delete("/api/v1/oauth/unlink/facebook", headers=headers)
    assert last.status_code == 400

    unknown = await client.delete("/api/v1/oauth/unlink/myspace", headers=headers)
    assert unknown.status_code == 400


async def test_refresh_endpoint_returns_new_google_token(client, db, provider_stub):
    user = await create_user(db)
    await link_account(db, user, "google", "g-1", refresh_token="stored-refresh")
    provider_stub.handler = lambda request: httpx.Response(200, json={"access_token": "fresh", "expires_in": 60})

    response = await client.post("/api/v1/oauth/refresh", json={"provider": "google"}, headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["data"]["access_token"] == "fresh"


async def test_refresh_endpoint_asks_to_reauthenticate_when_revoked(client, db, provider_stub):
    user = await create_user(db)
    await link_account(db, user, "google", "g-1", refresh_token="revoked")
    provider_stub.handler = lambda request: httpx.Response(400, json={"error": "invalid_grant"})

    response = await client.post("/api/v1/oauth/refresh", json={}, headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["message"] == "Unable to refresh token. Please re-authenticate with Google."


async def test_refresh_endpoint_only_supports_google(client, db):
    user = await create_user(db)

    response = await client.post("/api/v1/oauth/refresh", json={"provider": "facebook"}, headers=auth_headers(user))

    assert response.status_code == 400


async def test_stored_tokens_are_encrypted_at_rest(client, provider_stub, session_factory):
    provider_stub.handler = google_handler(google_profile(sub="g-55"), grant={"access_token": "plain-access"})
    params = await _start_google_login(client)

    await client.get("/api/v1/oauth/google/callback", params={"code": "abc", "state": params["state"]})

    async with session_factory() as session:
        account = (await session.execute(select(OAuthAccount))).scalar_one()
    assert account.access_token != "plain-access"
    assert get_encryption_service().decrypt(account.access_token) == "plain-access"


async def test_apple_form_post_error_redirects_to_frontend(client):
    response = await client.post("/api/v1/oauth/apple/callback", data={"error": "user_cancelled_authorize"})

    assert response.status_code == 302
    assert _query(response.headers["location"]) == {
        "error": "access_denied",
        "message": "Apple authentication failed",
    }
