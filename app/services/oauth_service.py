"""
Account linking service for OAuth logins

Resolves a provider identity to a local user (existing link, link by email,
or new account) and manages the links afterwards.
"""

import logging
import re
import secrets
import string
import time
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import AccountForbidden, Conflict, InvalidArgument, NotFound, ProviderExchangeFailed
from app.core.time import utcnow
from app.database import transaction
from app.models.oauth_account import OAuthAccount
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.schemas.oauth import (
    OAuthCallbackResult,
    OAuthTokens,
    OAuthUser,
    OAuthUserData,
    ProviderInfo,
)
from app.services.encryption_service import EncryptionError, get_encryption_service
from app.services.oauth_providers import ProviderRegistry, get_provider_registry
from app.services.token_service import get_token_service

logger = logging.getLogger(__name__)
settings = get_settings()

# Attempts at the linking transaction when a concurrent callback wins a unique constraint
MAX_LINK_ATTEMPTS = 3

_BASE36 = string.digits + string.ascii_lowercase


def _base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_username(email: str) -> str:
    """
    Derive a unique-looking username from an email address.

    Format: <alphanumeric local part>_<base36 millisecond time><random suffix>
    """
    base = re.sub(r"[^a-z0-9]", "", email.split("@")[0].lower()) or "user"
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{base}_{_base36(int(time.time() * 1000))}{suffix}"


def is_allowed_redirect_url(url: Optional[str]) -> bool:
    """
    Check that a post-login redirect points at a known frontend origin.

    Args:
        url: Absolute URL supplied by the client

    Returns:
        bool: True if the URL's origin is allowed
    """
    if not url:
        return False

    allowed_origins = [
        settings.frontend_url,
        settings.admin_panel_url,
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False

    for origin in allowed_origins:
        if not origin:
            continue
        allowed = urlparse(origin)
        if (parsed.scheme, parsed.netloc.lower()) == (allowed.scheme, allowed.netloc.lower()):
            return True
    return False


class OAuthService:
    """Service for OAuth logins and linked provider management."""

    def __init__(self, db: AsyncSession, registry: Optional[ProviderRegistry] = None):
        """
        Initialize OAuth service.

        Args:
            db: Database session
            registry: Provider adapters (defaults to the configured registry)
        """
        self.db = db
        self.repository = UserRepository(db)
        self.registry = registry or get_provider_registry()
        self.encryption_service = get_encryption_service()
        self.token_service = get_token_service()

    async def handle_callback(
        self,
        provider_name: str,
        code: str,
        code_verifier: Optional[str] = None,
        extra: Optional[dict] = None
    ) -> OAuthCallbackResult:
        """
        Complete a provider login: exchange the code, then link or create the user.

        The code exchange happens before any database work, so a rejected
        code leaves no trace.

        Args:
            provider_name: google, facebook or apple
            code: Authorization code from the callback
            code_verifier: PKCE verifier (Google)
            extra: Provider specific callback fields (Apple id_token/user)

        Returns:
            OAuthCallbackResult: Resolved user, bearer token and new-user flag
        """
        provider = self.registry.get(provider_name)
        user_data, tokens = await provider.handle_callback(code, code_verifier, extra)
        return await self.find_or_create_oauth_user(provider.name, user_data, tokens)

    async def find_or_create_oauth_user(
        self,
        provider: str,
        user_data: OAuthUserData,
        tokens: OAuthTokens
    ) -> OAuthCallbackResult:
        """
        Find the local user for a provider identity, linking or creating one as needed.

        Runs in a single transaction. A unique-constraint violation from a
        concurrent callback rolls the attempt back and the lookup is retried.

        Args:
            provider: Provider name
            user_data: Normalized provider identity
            tokens: Provider tokens to store

        Returns:
            OAuthCallbackResult: Resolved user, bearer token and new-user flag

        Raises:
            ProviderExchangeFailed: If the provider supplied no email
            AccountForbidden: If the user is banned or deactivated
            NotFound: If a link points at a missing user
            Conflict: If the email's user is linked to another account at the same provider
        """
        if not user_data.email:
            raise ProviderExchangeFailed("missing_email", provider=provider)

        if not user_data.email_verified:
            logger.warning(f"{provider} OAuth: unverified email for {user_data.email}")

        for attempt in range(1, MAX_LINK_ATTEMPTS + 1):
            try:
                async with transaction(self.db):
                    user, is_new_user = await self._resolve_user(provider, user_data, tokens)
                    user.last_login_at = utcnow()
                    user.login_attempts = 0
                break
            except IntegrityError:
                if attempt == MAX_LINK_ATTEMPTS:
                    logger.error(
                        f"{provider} OAuth: giving up on {user_data.provider_id} after {attempt} attempts"
                    )
                    raise
                logger.warning(
                    f"{provider} OAuth: concurrent link for {user_data.provider_id}, retrying ({attempt})"
                )

        roles = await self.repository.get_user_roles(user.user_id)
        token = self.token_service.issue(user.user_id, user.email, roles)

        oauth_user = OAuthUser.model_validate(user)
        oauth_user.roles = roles

        logger.info(
            f"OAuth {'registration' if is_new_user else 'login'} successful for {user.email} via {provider}"
        )

        return OAuthCallbackResult(user=oauth_user, token=token, is_new_user=is_new_user)

    async def _resolve_user(
        self,
        provider: str,
        user_data: OAuthUserData,
        tokens: OAuthTokens
    ) -> Tuple[User, bool]:
        account = await self.repository.get_oauth_account(provider, user_data.provider_id)

        if account:
            user = await self.repository.get_user_by_id(account.user_id)
            if not user:
                raise NotFound("User account not found. It may have been deleted.")
            if user.is_banned:
                raise AccountForbidden("Your account has been suspended. Please contact support.")
            if not user.is_active:
                raise AccountForbidden("Your account is deactivated. Please contact support.")

            self._store_tokens(account, tokens)
            return user, False

        user = await self.repository.get_user_by_email(user_data.email)

        if user:
            if user.is_banned:
                raise AccountForbidden("This email is associated with a suspended account.")
            if not user.is_active:
                raise AccountForbidden("This email is associated with a deactivated account.")

            if await self.repository.get_user_oauth_account(user.user_id, provider):
                logger.warning(f"User {user.user_id} already has a different {provider} account linked")
                raise Conflict(f"This email is already linked to a different {provider.capitalize()} account.")

            await self._link_account(user, provider, user_data, tokens)

            if not user.profile_picture and user_data.profile_picture:
                user.profile_picture = user_data.profile_picture
            if not user.email_verified and user_data.email_verified:
                user.email_verified = True

            logger.info(f"Linked {provider} account to existing user {user.user_id}")
            return user, False

        user = await self.repository.add_user(User(
            first_name=user_data.first_name or "User",
            last_name=user_data.last_name or "",
            email=user_data.email.strip().lower(),
            username=generate_username(user_data.email),
            password="",
            profile_picture=user_data.profile_picture,
            email_verified=user_data.email_verified,
            is_active=True,
            is_banned=False,
            login_attempts=0
        ))
        await self._link_account(user, provider, user_data, tokens)

        # No role yet: the user picks one through the role selection flow
        logger.info(f"New OAuth user {user.email} created - pending role selection")
        return user, True

    async def _link_account(
        self,
        user: User,
        provider: str,
        user_data: OAuthUserData,
        tokens: OAuthTokens
    ) -> OAuthAccount:
        account = OAuthAccount(
            user_id=user.user_id,
            provider=provider,
            provider_user_id=user_data.provider_id,
            provider_data=user_data.raw_data
        )
        self._store_tokens(account, tokens)
        return await self.repository.add_oauth_account(account)

    def _store_tokens(self, account: OAuthAccount, tokens: OAuthTokens) -> None:
        """Overwrite stored tokens; an absent refresh token keeps the previous one."""
        account.access_token = self.encryption_service.encrypt(tokens.access_token)
        if tokens.refresh_token:
            account.refresh_token = self.encryption_service.encrypt(tokens.refresh_token)
        account.token_expires_at = tokens.expires_at

    async def get_linked_providers(self, user_id: int) -> List[str]:
        """
        Get providers linked to a user.

        Args:
            user_id: User ID

        Returns:
            List of provider names
        """
        accounts = await self.repository.list_oauth_accounts(user_id)
        return [account.provider for account in accounts]

    async def unlink_provider(self, user_id: int, provider: str) -> None:
        """
        Remove a provider link, refusing to remove the last way to sign in.

        Args:
            user_id: User ID
            provider: Provider name

        Raises:
            NotFound: If the user or the link does not exist
            InvalidArgument: If the link is the only authentication method
        """
        async with transaction(self.db):
            user = await self.repository.get_user_by_id(user_id)
            if not user:
                raise NotFound("User not found")

            accounts = await self.repository.list_oauth_accounts(user_id)
            if not any(account.provider == provider for account in accounts):
                raise NotFound(f"{provider} account is not linked")

            other_links = [account for account in accounts if account.provider != provider]
            if not user.has_password and not other_links:
                raise InvalidArgument(
                    "Cannot unlink the only authentication method. "
                    "Please set a password first or link another OAuth provider."
                )

            await self.repository.delete_oauth_account(user_id, provider)

        logger.info(f"Unlinked {provider} from user {user_id}")

    async def refresh_provider_token(self, user_id: int, provider: str = "google") -> Optional[OAuthTokens]:
        """
        Refresh a stored provider access token.

        Args:
            user_id: User ID
            provider: Provider name

        Returns:
            Optional[OAuthTokens]: New tokens, or None if the user has to re-authenticate
        """
        adapter = self.registry.get(provider)

        async with transaction(self.db):
            account = await self.repository.get_user_oauth_account(user_id, provider)
            if not account or not account.refresh_token:
                logger.warning(f"No {provider} refresh token found for user {user_id}")
                return None

            try:
                stored_refresh_token = self.encryption_service.decrypt(account.refresh_token)
            except EncryptionError:
                logger.warning(f"Stored {provider} refresh token for user {user_id} is unreadable")
                account.refresh_token = None
                return None

        # No transaction is held while the provider is called
        try:
            tokens = await adapter.refresh_access_token(stored_refresh_token)
        except ProviderExchangeFailed:
            logger.warning(f"{provider} refresh token expired/revoked for user {user_id}")
            await self._drop_refresh_token(user_id, provider)
            return None

        async with transaction(self.db):
            account = await self.repository.get_user_oauth_account(user_id, provider)
            if not account:
                logger.warning(f"{provider} was unlinked from user {user_id} during token refresh")
                return None
            self._store_tokens(account, tokens)

        return OAuthTokens(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or stored_refresh_token,
            expires_at=tokens.expires_at
        )

    async def _drop_refresh_token(self, user_id: int, provider: str) -> None:
        async with transaction(self.db):
            account = await self.repository.get_user_oauth_account(user_id, provider)
            if account:
                account.refresh_token = None

    def get_available_providers(self) -> List[ProviderInfo]:
        """
        Get providers with configured credentials.

        Returns:
            List of provider descriptions
        """
        return [provider.info() for provider in self.registry.available()]
