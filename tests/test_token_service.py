from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from app.core.exceptions import InvalidToken
from app.services.token_service import TokenService


@pytest.fixture()
def token_service():
    return TokenService(secret_key="unit-test-secret", algorithm="HS256", expire_days=7)


def test_issue_and_verify_round_trip_claims(token_service):
    token = token_service.issue(42, "a@x.com", ["CLIENT"])

    claims = token_service.verify(token)

    assert claims.user_id == 42
    assert claims.email == "a@x.com"
    assert claims.roles == ["CLIENT"]


def test_issued_token_carries_id_alias_and_seven_day_expiry(token_service):
    token = token_service.issue(7, "b@x.com", [])

    payload = jwt.get_unverified_claims(token)

    assert payload["id"] == payload["user_id"] == 7
    expires = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    remaining = expires - datetime.now(timezone.utc)
    assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)


def test_expired_token_is_rejected(token_service):
    token = jwt.encode(
        {"id": 1, "user_id": 1, "email": "c@x.com", "roles": [], "exp": datetime.now(timezone.utc) - timedelta(seconds=5)},
        "unit-test-secret",
        algorithm="HS256"
    )

    with pytest.raises(InvalidToken):
        token_service.verify(token)


def test_token_signed_with_other_key_is_rejected(token_service):
    token = TokenService(secret_key="someone-else").issue(1, "d@x.com", [])

    with pytest.raises(InvalidToken):
        token_service.verify(token)


def test_tampered_token_is_rejected(token_service):
    header, payload, signature = token_service.issue(1, "e@x.com", []).split(".")
    forged_payload = jwt.encode({"user_id": 2}, "x").split(".")[1]

    with pytest.raises(InvalidToken):
        token_service.verify(f"{header}.{forged_payload}.{signature}")


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_token_is_rejected(token_service, token):
    with pytest.raises(InvalidToken):
        token_service.verify(token)


def test_token_without_identity_is_rejected(token_service):
    token = jwt.encode(
        {"roles": ["ADMIN"], "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        "unit-test-secret",
        algorithm="HS256"
    )

    with pytest.raises(InvalidToken):
        token_service.verify(token)


def test_invalid_token_error_asks_for_bearer_authentication(token_service):
    with pytest.raises(InvalidToken) as exc_info:
        token_service.verify("garbage")

    assert exc_info.value.status_code == 401
    assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}
