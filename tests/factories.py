"""
Builders shared by the test modules
"""

import httpx

from app.models.oauth_account import OAuthAccount
from app.models.user import User
from app.schemas.oauth import OAuthTokens, OAuthUserData
from app.services.encryption_service import get_encryption_service
from app.services.token_service import get_token_service


class ProviderStub:
    """Answers provider HTTP calls; tests swap the handler per scenario."""

    def __init__(self):
        self.handler = None
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is None:
            return httpx.Response(500, json={"error": "server_error"})
        return self.handler(request)


def google_handler(profile: dict, grant: dict = None):
    """Successful Google token exchange followed by a userinfo call."""
    grant = grant or {"access_token": "g-access", "refresh_token": "g-refresh", "expires_in": 3600}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json=grant)
        if request.url.host == "openidconnect.googleapis.com":
            return httpx.Response(200, json=profile)
        return httpx.Response(404)

    return handler


def google_profile(sub="g-123", email="new@x.com", **fields) -> dict:
    profile = {
        "sub": sub,
        "email": email,
        "email_verified": True,
        "given_name": "Grace",
        "family_name": "Hopper",
        "picture": "https://lh3.googleusercontent.com/a/pic",
    }
    profile.update(fields)
    return profile


def identity(provider_id="g-123", email="new@x.com", **fields) -> OAuthUserData:
    data = dict(
        provider_id=provider_id,
        email=email,
        email_verified=True,
        first_name="Grace",
        last_name="Hopper",
        profile_picture="https://example.com/pic.jpg",
        raw_data={"sub": provider_id},
    )
    data.update(fields)
    return OAuthUserData(**data)


def provider_tokens(access_token="new-access", refresh_token="new-refresh") -> OAuthTokens:
    return OAuthTokens(access_token=access_token, refresh_token=refresh_token)


async def create_user(db, email="existing@x.com", **fields) -> User:
    defaults = dict(
        email=email,
        username=email.split("@")[0],
        first_name="Existing",
        last_name="User",
        password="",
        email_verified=True,
        is_active=True,
        is_banned=False,
        login_attempts=0,
    )
    defaults.update(fields)
    user = User(**defaults)
    db.add(user)
    await db.commit()
    return user


async def link_account(
    db,
    user: User,
    provider="google",
    provider_user_id="g-123",
    access_token="old-access",
    refresh_token="old-refresh"
) -> OAuthAccount:
    encryption = get_encryption_service()
    account = OAuthAccount(
        user_id=user.user_id,
        provider=provider,
        provider_user_id=provider_user_id,
        access_token=encryption.encrypt(access_token),
        refresh_token=encryption.encrypt(refresh_token) if refresh_token else None,
    )
    db.add(account)
    await db.commit()
    return account


def auth_headers(user: User, roles=None) -> dict:
    token = get_token_service().issue(user.user_id, user.email, roles or [])
    return {"Authorization": f"Bearer {token}"}


class StubS3Client:
    """Records boto3 S3 calls instead of talking to AWS."""

    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.put_calls = []
        self.deleted = []

    def put_object(self, **kwargs):
        if self.fail_with:
            raise self.fail_with
        self.put_calls.append(kwargs)
        return {"ETag": '"etag"'}

    def delete_object(self, **kwargs):
        self.deleted.append(kwargs["Key"])
        return {}
