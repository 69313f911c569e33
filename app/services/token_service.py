"""
Bearer credential issuing and verification
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from jose import JWTError, jwt

from app.config import get_settings
from app.core.exceptions import InvalidToken
from app.schemas.auth import TokenClaims


class TokenService:
    """Signs and verifies the JWT bearer credential carrying identity and roles."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        expire_days: Optional[int] = None
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expires_delta = timedelta(days=expire_days or settings.jwt_expire_days)

    def issue(self, user_id: int, email: str, roles: List[str]) -> str:
        """
        Create a signed bearer credential.

        Args:
            user_id: Local user ID
            email: User email
            roles: Role names held by the user

        Returns:
            str: Encoded JWT, valid for the configured number of days
        """
        expire = datetime.now(timezone.utc) + self.expires_delta
        payload = {
            "id": user_id,
            "user_id": user_id,
            "email": email,
            "roles": list(roles),
            "exp": expire,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Verify and decode a bearer credential.

        Expired, tampered and malformed tokens are rejected the same way.

        Args:
            token: Encoded JWT

        Returns:
            TokenClaims: Decoded claims

        Raises:
            InvalidToken: If the token cannot be trusted
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            raise InvalidToken()

        user_id = payload.get("user_id")
        email = payload.get("email")
        if user_id is None or email is None:
            raise InvalidToken()

        return TokenClaims(
            user_id=int(user_id),
            email=email,
            roles=payload.get("roles") or []
        )


_token_service: Optional[TokenService] = None


def get_token_service() -> TokenService:
    """
    Get token service instance (singleton pattern).

    Returns:
        TokenService: Token service instance
    """
    global _token_service
    if _token_service is None:
        _token_service = TokenService()
    return _token_service
